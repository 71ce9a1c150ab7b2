"""Shared helpers for narration-ms tests."""
from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

import httpx
import pytest

from narration_ms.core.config import NarrationServiceConfig, Settings

# MPEG-1 Layer III, 128 kbps, 44.1 kHz, no padding: 417-byte frames
FRAME_HEADER = b"\xff\xfb\x90\x44"
FRAME_SIZE = 417
FRAME_SECONDS = 1152 / 44100

TEST_API_KEY = "test-key"


def fake_mp3(size: int = 8000) -> bytes:
    """Whole frames followed by zero padding up to ``size`` bytes."""
    frame = FRAME_HEADER + b"\x00" * (FRAME_SIZE - len(FRAME_HEADER))
    frames = size // FRAME_SIZE
    body = frame * frames
    return body + b"\x00" * (size - len(body))


def make_settings(**sections: Any) -> Settings:
    """Settings with a test API key and fast retries, overridable per section."""
    raw: Dict[str, Any] = {
        "provider": {"api_key": TEST_API_KEY},
        "request": {
            "timeout_ms": 1000,
            "retry": {"max_retries": 3, "base_delay_ms": 100, "max_delay_ms": 1000, "backoff_factor": 2.0},
        },
    }
    for name, value in sections.items():
        if isinstance(value, dict) and isinstance(raw.get(name), dict):
            merged = dict(raw[name])
            merged.update(value)
            raw[name] = merged
        else:
            raw[name] = value
    return Settings(raw=raw)


def make_config(**sections: Any) -> NarrationServiceConfig:
    return NarrationServiceConfig.from_settings(make_settings(**sections))


class RecordingSleep:
    """Sleep replacement that records requested delays instead of waiting."""

    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class RecordingSink:
    """Analytics sink that keeps every call."""

    def __init__(self, fail_with: Optional[BaseException] = None) -> None:
        self.syntheses: List[Any] = []
        self.errors: List[Any] = []
        self.fail_with = fail_with

    async def record_synthesis(self, metrics: Any) -> None:
        self.syntheses.append(metrics)
        if self.fail_with is not None:
            raise self.fail_with

    async def record_error(self, message: str, context: Dict[str, Any]) -> None:
        self.errors.append((message, context))
        if self.fail_with is not None:
            raise self.fail_with


class ScriptedTransport:
    """
    MockTransport handler that replays a list of responses or exceptions.

    The last entry repeats once the script runs out. Every request is kept
    in ``requests``.
    """

    def __init__(self, *steps: Any) -> None:
        self.steps = list(steps)
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        step = self.steps[min(len(self.requests), len(self.steps)) - 1]
        if isinstance(step, BaseException):
            raise step
        if callable(step):
            return step(request)
        # Fresh copy per call; a response is closed after each attempt
        return httpx.Response(step.status_code, headers=step.headers, content=step.content)

    @property
    def calls(self) -> int:
        return len(self.requests)

    def body(self, index: int = -1) -> Dict[str, Any]:
        return json.loads(self.requests[index].content)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


def audio_response(size: int = 8000) -> httpx.Response:
    return httpx.Response(200, content=fake_mp3(size), headers={"Content-Type": "audio/mpeg"})


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture(autouse=True)
def no_env_api_key(monkeypatch):
    """Tests configure the key explicitly; a developer's real key must not leak in."""
    monkeypatch.delenv("ELEVENLABS_API_KEY", raising=False)
    monkeypatch.delenv("NARRATION_MS_SETTINGS", raising=False)

"""Tests for the provider voice catalog."""
from __future__ import annotations

import asyncio

import httpx
import pytest

from conftest import RecordingSleep, ScriptedTransport, TEST_API_KEY, make_config
from narration_ms.core.metrics import NarrationMetrics
from narration_ms.net.http_client import ResilientHttpClient
from narration_ms.services.synthesis import ErrorCode, ProviderError, TransportError
from narration_ms.services.voices import Voice, VoiceCatalog

VOICES = {
    "voices": [
        {"voice_id": f"v{i}", "name": f"Voice {i}", "category": "premade",
         "preview_url": f"https://cdn.test/v{i}.mp3", "labels": {"accent": "american"}}
        for i in range(15)
    ],
    "has_more": False,
}


def run_catalog(transport, call, **sections):
    config = make_config(**sections)

    async def go():
        async with httpx.AsyncClient(transport=transport.transport()) as raw:
            client = ResilientHttpClient(raw, sleep=RecordingSleep(), metrics=NarrationMetrics())
            return await call(VoiceCatalog(config, client))

    return asyncio.run(go())


class TestListVoices:
    def test_default_limit(self):
        transport = ScriptedTransport(httpx.Response(200, json=VOICES))

        voices = run_catalog(transport, lambda c: c.list_voices())

        assert len(voices) == 10
        assert voices[0] == Voice(id="v0", name="Voice 0", category="premade", preview_url="https://cdn.test/v0.mp3")

    def test_request_shape(self):
        transport = ScriptedTransport(httpx.Response(200, json=VOICES))

        run_catalog(
            transport,
            lambda c: c.list_voices(3),
            provider={"voices_url": "https://tts.test/v2/voices"},
        )

        request = transport.requests[0]
        assert request.method == "GET"
        assert str(request.url) == "https://tts.test/v2/voices"
        assert request.headers["xi-api-key"] == TEST_API_KEY
        assert request.headers["accept"] == "application/json"

    def test_limit_respected(self):
        transport = ScriptedTransport(httpx.Response(200, json=VOICES))
        assert len(run_catalog(transport, lambda c: c.list_voices(3))) == 3

    def test_to_dict(self):
        assert Voice(id="a", name="A").to_dict() == {"id": "a", "name": "A", "category": None, "preview_url": None}

    def test_retries_then_succeeds(self):
        transport = ScriptedTransport(httpx.Response(502), httpx.Response(200, json=VOICES))
        voices = run_catalog(transport, lambda c: c.list_voices(1))
        assert [v.id for v in voices] == ["v0"]
        assert transport.calls == 2

    def test_rejected(self):
        transport = ScriptedTransport(httpx.Response(401, json={"detail": "invalid key"}))

        with pytest.raises(ProviderError) as exc_info:
            run_catalog(transport, lambda c: c.list_voices())

        assert exc_info.value.body_excerpt == "invalid key"
        assert transport.calls == 1

    def test_rejected_with_large_body(self):
        transport = ScriptedTransport(httpx.Response(403, content=b"q" * 100_000))

        with pytest.raises(ProviderError) as exc_info:
            run_catalog(transport, lambda c: c.list_voices())

        assert exc_info.value.body_excerpt == "q" * 200

    def test_invalid_payload(self):
        transport = ScriptedTransport(httpx.Response(200, content=b"<html>not json</html>"))

        with pytest.raises(ProviderError) as exc_info:
            run_catalog(transport, lambda c: c.list_voices())

        assert exc_info.value.body_excerpt == "invalid voice list payload"

    def test_unavailable(self):
        transport = ScriptedTransport(httpx.Response(503))

        with pytest.raises(TransportError) as exc_info:
            run_catalog(transport, lambda c: c.list_voices(), request={"retry": {"max_retries": 1, "base_delay_ms": 1}})

        assert exc_info.value.code == ErrorCode.PROVIDER_UNAVAILABLE
        assert exc_info.value.attempts == 2


class TestGetVoice:
    def test_found(self):
        transport = ScriptedTransport(httpx.Response(200, json=VOICES))
        voice = run_catalog(transport, lambda c: c.get_voice("v12"))
        assert voice is not None
        assert voice.name == "Voice 12"

    def test_missing(self):
        transport = ScriptedTransport(httpx.Response(200, json=VOICES))
        assert run_catalog(transport, lambda c: c.get_voice("nope")) is None

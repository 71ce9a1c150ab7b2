"""
Tests for NarrationService.synthesize().

Tests cover:
- End-to-end success against a mock provider
- Truncated text is what reaches the provider
- Default and explicit voice/model resolution
- Request shape (URL, headers, JSON body)
- Exactly one analytics record per run
"""
from __future__ import annotations

import asyncio
from typing import Optional

import httpx
import pytest

from conftest import RecordingSink, RecordingSleep, ScriptedTransport, TEST_API_KEY, audio_response, make_config
from narration_ms.core.metrics import NarrationMetrics
from narration_ms.net.http_client import ResilientHttpClient
from narration_ms.services.synthesis import (
    AUDIO_MIME_TYPE,
    NarrationService,
    SynthesisRequest,
    ValidationError,
)


def synthesize(
    transport: ScriptedTransport,
    request: SynthesisRequest,
    sink: Optional[RecordingSink] = None,
    metrics: Optional[NarrationMetrics] = None,
    **sections,
):
    """Run one synthesis on a fresh service wired to ``transport``."""
    config = make_config(**sections)
    metrics = metrics or NarrationMetrics()

    async def go():
        async with httpx.AsyncClient(transport=transport.transport()) as raw:
            client = ResilientHttpClient(raw, sleep=RecordingSleep(), metrics=metrics)
            service = NarrationService(config, client, analytics=sink or RecordingSink(), metrics=metrics)
            return await service.synthesize(request)

    return asyncio.run(go())


class TestEndToEnd:
    def test_hello_world(self):
        transport = ScriptedTransport(audio_response(8000))
        sink = RecordingSink()

        audio = synthesize(
            transport,
            SynthesisRequest(text="Hello world", user_id="u1"),
            sink=sink,
            text={"max_length": 5000},
        )

        assert audio.mime_type == AUDIO_MIME_TYPE
        assert audio.size_bytes == 8000
        assert audio.estimated_duration_seconds > 0
        assert audio.characters_processed == 11
        assert audio.warning is None

        assert len(sink.syntheses) == 1
        assert sink.errors == []
        record = sink.syntheses[0]
        assert record.characters_requested == 11
        assert record.characters_processed == 11
        assert record.user_id == "u1"
        assert record.audio_bytes == 8000
        assert record.success is True
        assert record.request_id == audio.request_id

    def test_long_text_truncated_before_sending(self):
        sentence = "This sentence is part of a very long narration. "
        text = (sentence * 200)[:6000]
        assert len(text) == 6000
        transport = ScriptedTransport(audio_response(8000))
        sink = RecordingSink()

        audio = synthesize(
            transport,
            SynthesisRequest(text=text, user_id="u1"),
            sink=sink,
            text={"max_length": 5000, "warning_length": 4000},
        )

        sent = transport.body()["text"]
        assert len(sent) <= 5000
        assert text.startswith(sent[:-1])
        assert audio.warning is not None
        assert "truncated" in audio.warning

        record = sink.syntheses[0]
        assert record.characters_requested == 6000
        assert record.characters_processed <= 5000
        assert record.characters_processed == len(sent)
        assert record.warning == audio.warning

    def test_warning_band_text_sent_unchanged(self):
        text = "word " * 30
        transport = ScriptedTransport(audio_response())

        audio = synthesize(
            transport,
            SynthesisRequest(text=text, user_id="u1"),
            text={"max_length": 500, "warning_length": 100},
        )

        assert transport.body()["text"] == text.strip()
        assert "recommended" in audio.warning


class TestProviderRequest:
    def test_defaults_resolved(self):
        transport = ScriptedTransport(audio_response())

        synthesize(
            transport,
            SynthesisRequest(text="Hi there", user_id="u1"),
            provider={"base_url": "https://tts.test/v1", "default_voice_id": "voiceD", "default_model_id": "modelD"},
        )

        request = transport.requests[0]
        assert request.method == "POST"
        assert str(request.url) == "https://tts.test/v1/text-to-speech/voiceD"
        assert request.headers["xi-api-key"] == TEST_API_KEY
        assert request.headers["accept"] == "audio/mpeg"
        assert transport.body() == {"model_id": "modelD", "text": "Hi there"}

    def test_explicit_voice_and_model(self):
        transport = ScriptedTransport(audio_response())
        sink = RecordingSink()

        synthesize(
            transport,
            SynthesisRequest(text="Hi", user_id="u1", voice_id="voiceX", model_id="modelY"),
            sink=sink,
        )

        assert transport.requests[0].url.path.endswith("/text-to-speech/voiceX")
        assert transport.body()["model_id"] == "modelY"
        assert sink.syntheses[0].voice_id == "voiceX"
        assert sink.syntheses[0].model_id == "modelY"

    def test_original_request_not_mutated(self):
        request = SynthesisRequest(text="  padded  ", user_id="u1")
        transport = ScriptedTransport(audio_response())

        synthesize(transport, request)

        assert request.text == "  padded  "
        assert transport.body()["text"] == "padded"


class TestProcessRequest:
    def test_process_request_rejects_empty(self):
        config = make_config()
        service = NarrationService(config, http_client=None, analytics=RecordingSink(), metrics=NarrationMetrics())
        with pytest.raises(ValidationError):
            service.process_request(SynthesisRequest(text="   ", user_id="u1"))

    def test_process_request_fills_defaults(self):
        config = make_config(provider={"default_voice_id": "dv", "default_model_id": "dm"})
        service = NarrationService(config, http_client=None, analytics=RecordingSink(), metrics=NarrationMetrics())

        processed = service.process_request(SynthesisRequest(text="Hello", user_id="u9"))

        assert processed.voice_id == "dv"
        assert processed.model_id == "dm"
        assert processed.user_id == "u9"
        assert processed.characters_requested == 5
        assert processed.characters_processed == 5


class TestServiceMetrics:
    def test_success_metrics(self):
        metrics = NarrationMetrics()
        transport = ScriptedTransport(audio_response(8000))

        synthesize(transport, SynthesisRequest(text="Hello world", user_id="u1"), metrics=metrics)

        registry = metrics.registry
        assert registry.get_sample_value(
            "narration_requests_total", {"status": "success", "error_code": ""}
        ) == 1
        assert registry.get_sample_value("narration_audio_bytes_total") == 8000
        assert registry.get_sample_value("narration_characters_total", {"kind": "requested"}) == 11
        assert registry.get_sample_value("narration_in_flight_requests") == 0


class TestSynthesizedAudio:
    def test_data_url(self):
        transport = ScriptedTransport(audio_response(100))
        audio = synthesize(transport, SynthesisRequest(text="Hi", user_id="u1"))
        assert audio.to_data_url().startswith("data:audio/mpeg;base64,")

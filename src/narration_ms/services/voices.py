"""
Voice Catalog.

Lists the voices the provider offers, through the same resilient client
(timeout, retry, backoff) as synthesis.

    GET {voices_url}  Accept: application/json
    -> {"voices": [{"voice_id", "name", "category", "preview_url", ...}]}

Failures use the synthesis error taxonomy: a 4xx or an unparseable body is
a ProviderError, exhausted retries are a TransportError.
"""
from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from narration_ms.core.config import NarrationServiceConfig
from narration_ms.core.logging import get_logger, info, verbose
from narration_ms.net.http_client import ResilientHttpClient, RetriesExhaustedError
from narration_ms.services.provider_models import (
    UNREADABLE_BODY,
    ProviderVoice,
    ProviderVoiceList,
    error_excerpt,
    read_error_body,
)
from narration_ms.services.synthesis import ProviderError, TransportError

_LOG = get_logger("narration-ms.voices")

DEFAULT_VOICE_LIMIT = 10
LOOKUP_VOICE_LIMIT = 100


@dataclass(frozen=True)
class Voice:
    id: str
    name: str
    category: Optional[str] = None
    preview_url: Optional[str] = None

    @classmethod
    def from_provider(cls, voice: ProviderVoice) -> "Voice":
        return cls(
            id=voice.voice_id,
            name=voice.name,
            category=voice.category,
            preview_url=voice.preview_url,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "preview_url": self.preview_url,
        }


class VoiceCatalog:
    """Read-only view of the provider's voices."""

    def __init__(self, config: NarrationServiceConfig, http_client: ResilientHttpClient):
        self._config = config
        self._http = http_client

    def _headers(self) -> Dict[str, str]:
        provider = self._config.provider
        return {
            provider.api_key_header: provider.api_key,
            "Accept": "application/json",
        }

    async def list_voices(self, limit: int = DEFAULT_VOICE_LIMIT) -> List[Voice]:
        """
        Return up to ``limit`` voices in provider order.

        Raises:
            ProviderError: Provider rejected the call or sent an invalid body.
            TransportError: Provider unreachable after all retries.
        """
        try:
            outcome = await self._http.get(
                self._config.provider.voices_url,
                headers=self._headers(),
                policy=self._config.retry_policy,
                timeout_ms=self._config.timeout_ms,
            )
        except RetriesExhaustedError as e:
            raise TransportError(
                f"voice listing unavailable after {e.attempts} attempts: {e.last_outcome.describe()}",
                attempts=e.attempts,
                timed_out=e.timed_out,
                status_code=e.status_code,
            ) from e

        response = outcome.response
        assert response is not None
        reading = response.aread() if outcome.ok else read_error_body(response)
        try:
            body = await asyncio.wait_for(reading, timeout=self._config.timeout_ms / 1000.0)
        except (httpx.HTTPError, asyncio.TimeoutError) as e:
            if not outcome.ok:
                raise ProviderError(response.status_code, UNREADABLE_BODY) from e
            raise TransportError(
                f"failed reading voice list: {e}",
                attempts=outcome.attempts,
                timed_out=isinstance(e, asyncio.TimeoutError),
                status_code=response.status_code,
            ) from e
        finally:
            await response.aclose()

        if not outcome.ok:
            raise ProviderError(response.status_code, error_excerpt(body))

        try:
            parsed = ProviderVoiceList.model_validate(json.loads(body))
        except (ValueError, PydanticValidationError) as e:
            raise ProviderError(response.status_code, "invalid voice list payload") from e

        voices = [Voice.from_provider(v) for v in parsed.voices[:max(0, limit)]]
        verbose(_LOG, "voices_listed", count=len(voices), available=len(parsed.voices))
        return voices

    async def get_voice(self, voice_id: str) -> Optional[Voice]:
        """Look a voice up by id among the first LOOKUP_VOICE_LIMIT voices."""
        voices = await self.list_voices(LOOKUP_VOICE_LIMIT)
        for voice in voices:
            if voice.id == voice_id:
                return voice
        info(_LOG, "voice_not_found", voice_id=voice_id)
        return None

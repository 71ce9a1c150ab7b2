"""
Provider Payload Models.

Explicit shapes for everything exchanged with the text-to-speech provider
(ElevenLabs-compatible API). Responses are validated here, at the
boundary, before the rest of the service trusts them.

Models:
    ProviderSpeechRequest: JSON body of POST /text-to-speech/{voice_id}
    ProviderErrorBody: JSON error body, ``{"detail": "..."}`` or
        ``{"detail": {"status": "...", "message": "..."}}``
    ProviderVoice / ProviderVoiceList: GET /v2/voices response

Unknown fields are ignored so provider additions do not break parsing.
"""
from __future__ import annotations

import json
from typing import List, Optional, Union

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

ERROR_EXCERPT_CHARS = 200
ERROR_BODY_READ_LIMIT = 4096
UNREADABLE_BODY = "<unreadable error body>"


class ProviderSpeechRequest(BaseModel):
    """Speech synthesis request body."""
    model_id: str = Field(..., min_length=1, description="Provider model id")
    text: str = Field(..., min_length=1, description="Processed text to synthesize")


class ProviderErrorDetail(BaseModel):
    model_config = ConfigDict(extra="ignore")

    status: Optional[str] = None
    message: Optional[str] = None


class ProviderErrorBody(BaseModel):
    model_config = ConfigDict(extra="ignore")

    detail: Union[str, ProviderErrorDetail, None] = None
    error: Optional[str] = None

    def best_message(self) -> Optional[str]:
        if isinstance(self.detail, str) and self.detail.strip():
            return self.detail.strip()
        if isinstance(self.detail, ProviderErrorDetail):
            if self.detail.message:
                return self.detail.message.strip()
            if self.detail.status:
                return self.detail.status.strip()
        if self.error and self.error.strip():
            return self.error.strip()
        return None


class ProviderVoice(BaseModel):
    """One voice as listed by the provider."""
    model_config = ConfigDict(extra="ignore")

    voice_id: str = Field(..., min_length=1)
    name: str = ""
    category: Optional[str] = None
    preview_url: Optional[str] = None
    description: Optional[str] = None


class ProviderVoiceList(BaseModel):
    model_config = ConfigDict(extra="ignore")

    voices: List[ProviderVoice] = Field(default_factory=list)


def error_excerpt(body: bytes, limit: int = ERROR_EXCERPT_CHARS) -> str:
    """
    Human-readable excerpt of a provider error body.

    A JSON ``detail`` (string or ``{message}``) wins over raw text. Bodies
    that cannot be decoded at all yield UNREADABLE_BODY.
    """
    try:
        text = body.decode("utf-8", errors="replace").strip()
    except (AttributeError, UnicodeError):
        return UNREADABLE_BODY
    if not text:
        return UNREADABLE_BODY

    try:
        parsed = ProviderErrorBody.model_validate(json.loads(text))
        message = parsed.best_message()
        if message:
            text = message
    except (ValueError, ValidationError, RecursionError):
        # Not a recognized JSON error shape; keep the raw text
        pass

    return text[:limit]


async def read_error_body(response: httpx.Response, limit: int = ERROR_BODY_READ_LIMIT) -> bytes:
    """Read at most ``limit`` bytes of an error body; the rest is never pulled."""
    chunks: List[bytes] = []
    size = 0
    async for chunk in response.aiter_bytes():
        chunks.append(chunk)
        size += len(chunk)
        if size >= limit:
            break
    return b"".join(chunks)[:limit]

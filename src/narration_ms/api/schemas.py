"""
API Request/Response Schemas.

Models:
    SpeechRequest: Input schema for POST /v1/tts
    VoiceOut / VoiceListResponse: GET /v1/voices responses
    HealthResponse: GET /health

Example Request:
    {
        "text": "Once upon a time...",
        "user_id": "u1",
        "voice_id": "21m00Tcm4TlvDq8ikWAM",
        "model_id": "eleven_multilingual_v2"
    }
"""
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

# Hard cap on the request body; the service truncates long text to its
# configured limit, this only rejects absurd payloads early
MAX_REQUEST_TEXT_CHARS = 100_000


class SpeechRequest(BaseModel):
    """
    Synthesis request for POST /v1/tts.

    Empty or whitespace-only text is accepted by the schema and rejected
    by the service with VALIDATION_FAILED (400), so every rejection is
    reported to analytics.
    """
    text: str = Field(
        ...,
        max_length=MAX_REQUEST_TEXT_CHARS,
        description="Text to narrate; long text is truncated at a sentence boundary",
    )
    user_id: str = Field(
        ...,
        min_length=1,
        max_length=128,
        description="Caller identity used for usage accounting",
    )
    voice_id: Optional[str] = Field(
        default=None,
        description="Provider voice ID (None for the configured default)",
    )
    model_id: Optional[str] = Field(
        default=None,
        description="Provider model ID (None for the configured default)",
    )


class VoiceOut(BaseModel):
    id: str
    name: str
    category: Optional[str] = None
    preview_url: Optional[str] = None


class VoiceListResponse(BaseModel):
    ok: bool = True
    voices: List[VoiceOut] = Field(default_factory=list)


class HealthResponse(BaseModel):
    ok: bool = True
    status: str = Field(..., description="'healthy' once the service is wired")
    version: str
    default_voice_id: str
    default_model_id: str

"""
Narration API Routes.

Endpoints:
    POST /v1/tts                         - Synthesize narration (returns MP3)
    GET  /v1/voices                      - List provider voices
    GET  /v1/voices/{voice_id}           - One voice (404 if unknown)
    GET  /v1/usage/{user_id}             - Daily usage (?date=YYYY-MM-DD)
    GET  /v1/usage/{user_id}/monthly     - Monthly usage (?year=&month=)
    GET  /health                         - Health check
    GET  /metrics                        - Prometheus metrics

Error Handling:
    Errors are JSON in a standardized format:
    {
        "ok": false,
        "error": "<ERROR_CODE>",
        "message": "<human readable message>",
        "details": {...},
        "request_id": "<rid>"
    }

    HTTP status codes are mapped from ErrorCode, never from messages:
        - VALIDATION_FAILED    -> 400 Bad Request
        - TIMEOUT              -> 408 Request Timeout
        - PROVIDER_UNAVAILABLE -> 503 Service Unavailable (+ Retry-After)
        - PROVIDER_REJECTED    -> 502 Bad Gateway
        - anything else        -> 500 Internal Server Error

Example:
    curl -X POST http://localhost:8000/v1/tts \\
        -H "Content-Type: application/json" \\
        -d '{"text": "Hello world", "user_id": "u1"}' \\
        --output narration.mp3
"""
from __future__ import annotations

import math
import uuid
from datetime import date, datetime, timezone
from typing import Dict, Optional

from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import JSONResponse

from narration_ms import __version__
from narration_ms.api.dependencies import (
    get_metrics,
    get_service,
    get_usage,
    get_voice_catalog,
)
from narration_ms.api.schemas import HealthResponse, SpeechRequest, VoiceListResponse, VoiceOut
from narration_ms.core.logging import fail, get_logger, set_request_id
from narration_ms.core.metrics import NarrationMetrics
from narration_ms.services.analytics import UsageAnalyticsSink
from narration_ms.services.synthesis import ErrorCode, NarrationError, NarrationService, SynthesisRequest
from narration_ms.services.voices import VoiceCatalog

router = APIRouter()

_LOG = get_logger("narration-ms.api")

NOT_FOUND = "NOT_FOUND"

STATUS_MAP: Dict[str, int] = {
    ErrorCode.VALIDATION_FAILED: 400,
    ErrorCode.TIMEOUT: 408,
    ErrorCode.PROVIDER_UNAVAILABLE: 503,
    ErrorCode.PROVIDER_REJECTED: 502,
    ErrorCode.INTERNAL_ERROR: 500,
}


def _new_request_id() -> str:
    rid = str(uuid.uuid4())[:12]
    set_request_id(rid)
    return rid


def _error_response(error: NarrationError, rid: str, retry_after_s: Optional[int] = None) -> JSONResponse:
    status_code = STATUS_MAP.get(error.code, 500)
    content = error.to_dict()
    content["request_id"] = rid
    headers = {"X-Request-Id": rid}
    if status_code == 503 and retry_after_s is not None:
        headers["Retry-After"] = str(retry_after_s)
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def _internal_error(rid: str, exc: Exception) -> JSONResponse:
    # Details stay in the log, not in the response
    fail(_LOG, "unhandled_error", error=str(exc), error_type=type(exc).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "ok": False,
            "error": ErrorCode.INTERNAL_ERROR,
            "message": "Internal server error",
            "request_id": rid,
        },
        headers={"X-Request-Id": rid},
    )


def _not_found(message: str, rid: str) -> JSONResponse:
    return JSONResponse(
        status_code=404,
        content={"ok": False, "error": NOT_FOUND, "message": message, "request_id": rid},
        headers={"X-Request-Id": rid},
    )


def _retry_after_seconds(service: NarrationService) -> int:
    return max(1, math.ceil(service.config.retry_policy.max_delay_ms / 1000))


@router.post("/v1/tts", response_class=Response)
async def tts_v1(
    req: SpeechRequest,
    service: NarrationService = Depends(get_service),
):
    """
    Synthesize narration.

    Returns:
        audio/mpeg bytes with headers:
            - X-Request-Id: request identifier for tracing
            - X-Audio-Duration: estimated seconds
            - X-Characters-Processed: characters sent to the provider
            - X-Text-Warning: present when the text was long or truncated
    """
    rid = _new_request_id()
    try:
        audio = await service.synthesize(
            SynthesisRequest(
                text=req.text,
                user_id=req.user_id,
                voice_id=req.voice_id,
                model_id=req.model_id,
            ),
            request_id=rid,
        )
    except NarrationError as e:
        return _error_response(e, rid, retry_after_s=_retry_after_seconds(service))
    except Exception as e:
        return _internal_error(rid, e)

    headers = {
        "X-Request-Id": rid,
        "X-Audio-Duration": f"{audio.estimated_duration_seconds:.3f}",
        "X-Characters-Processed": str(audio.characters_processed),
    }
    if audio.warning:
        headers["X-Text-Warning"] = audio.warning
    return Response(content=audio.audio_bytes, media_type=audio.mime_type, headers=headers)


@router.get("/v1/voices", response_model=VoiceListResponse)
async def list_voices(
    limit: int = Query(10, ge=1, le=100, description="Maximum voices to return"),
    catalog: VoiceCatalog = Depends(get_voice_catalog),
    service: NarrationService = Depends(get_service),
):
    rid = _new_request_id()
    try:
        voices = await catalog.list_voices(limit)
    except NarrationError as e:
        return _error_response(e, rid, retry_after_s=_retry_after_seconds(service))
    except Exception as e:
        return _internal_error(rid, e)
    return VoiceListResponse(voices=[VoiceOut(**v.to_dict()) for v in voices])


@router.get("/v1/voices/{voice_id}", response_model=VoiceOut)
async def get_voice(
    voice_id: str,
    catalog: VoiceCatalog = Depends(get_voice_catalog),
    service: NarrationService = Depends(get_service),
):
    rid = _new_request_id()
    try:
        voice = await catalog.get_voice(voice_id)
    except NarrationError as e:
        return _error_response(e, rid, retry_after_s=_retry_after_seconds(service))
    except Exception as e:
        return _internal_error(rid, e)
    if voice is None:
        return _not_found(f"voice '{voice_id}' not found", rid)
    return VoiceOut(**voice.to_dict())


@router.get("/v1/usage/{user_id}")
async def daily_usage(
    user_id: str,
    day: Optional[date] = Query(None, alias="date", description="UTC day, defaults to today"),
    usage: UsageAnalyticsSink = Depends(get_usage),
):
    rid = _new_request_id()
    day = day or datetime.now(timezone.utc).date()
    stats = usage.get_daily_stats(user_id, day)
    if stats is None:
        return _not_found(f"no usage for '{user_id}' on {day.isoformat()}", rid)
    return {"ok": True, "usage": stats.to_dict()}


@router.get("/v1/usage/{user_id}/monthly")
async def monthly_usage(
    user_id: str,
    year: Optional[int] = Query(None, ge=2000, le=9999),
    month: Optional[int] = Query(None, ge=1, le=12),
    usage: UsageAnalyticsSink = Depends(get_usage),
):
    _new_request_id()
    today = datetime.now(timezone.utc).date()
    monthly = usage.get_monthly_stats(user_id, year or today.year, month or today.month)
    return {"ok": True, "usage": monthly.to_dict()}


@router.get("/health", response_model=HealthResponse)
async def health(service: NarrationService = Depends(get_service)):
    """Liveness/readiness probe; the provider itself is not called."""
    provider = service.config.provider
    return HealthResponse(
        status="healthy",
        version=__version__,
        default_voice_id=provider.default_voice_id,
        default_model_id=provider.default_model_id,
    )


@router.get("/metrics")
async def prometheus_metrics(metrics: NarrationMetrics = Depends(get_metrics)):
    content, content_type = metrics.get_metrics_response()
    return Response(content=content, media_type=content_type)

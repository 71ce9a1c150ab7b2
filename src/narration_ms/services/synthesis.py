"""
NarrationService - Speech Synthesis Pipeline.

Turns caller text into narration audio through the external
text-to-speech provider, and reports every outcome to analytics.

Pipeline:
    VALIDATING -> REQUESTING -> INTERPRETING -> PACKAGING -> REPORTING

    VALIDATING:   length policy and identifier checks; invalid input fails
                  here and no provider call is made
    REQUESTING:   POST {base_url}/text-to-speech/{voice_id} through the
                  resilient client (timeout, retry, backoff)
    INTERPRETING: permanent failures become ProviderError, exhausted
                  retries become TransportError
    PACKAGING:    read the body under the request timeout, estimate the
                  duration, build SynthesizedAudio
    REPORTING:    one SynthesisMetrics on success, one record_error on any
                  failure, always before control returns to the caller

Error Handling:
    - NarrationError: base exception with a structured ErrorCode
    - ValidationError: empty text or bad identifiers (VALIDATION_FAILED)
    - ProviderError: provider rejected the request (PROVIDER_REJECTED)
    - TransportError: provider unreachable after all retries
      (TIMEOUT if the last attempt timed out, else PROVIDER_UNAVAILABLE)

    Anything else is reported as INTERNAL_ERROR and re-raised unchanged.
    Analytics failures are logged and never replace the pipeline outcome.

Example:
    >>> async with httpx.AsyncClient() as raw:
    ...     service = NarrationService(config, ResilientHttpClient(raw), analytics=sink)
    ...     audio = await service.synthesize(SynthesisRequest(text="Hello", user_id="u1"))
    >>> audio.mime_type
    'audio/mpeg'
"""
from __future__ import annotations

import asyncio
import base64
import uuid
from dataclasses import dataclass
from enum import Enum
from time import perf_counter
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from narration_ms.core.config import NarrationServiceConfig, Settings
from narration_ms.core.logging import (
    debug,
    fail,
    get_logger,
    get_request_id,
    info,
    success,
    verbose,
    warn,
)
from narration_ms.core.metrics import NarrationMetrics
from narration_ms.core.metrics import metrics as default_metrics
from narration_ms.net.http_client import RequestOutcome, ResilientHttpClient, RetriesExhaustedError
from narration_ms.services.analytics import AnalyticsSink, LoggingAnalyticsSink, SynthesisMetrics
from narration_ms.services.provider_models import (
    UNREADABLE_BODY,
    ProviderSpeechRequest,
    error_excerpt,
    read_error_body,
)
from narration_ms.services.validators import validate_identifier, validate_text
from narration_ms.utils.audio import estimate_duration
from narration_ms.utils.timeit import timeit

_LOG = get_logger("narration-ms.service")

AUDIO_MIME_TYPE = "audio/mpeg"


# =============================================================================
# Error Codes and Exceptions
# =============================================================================

class ErrorCode:
    """
    Structured error codes.

    Routes map these to HTTP status codes; nothing dispatches on messages.
    """
    VALIDATION_FAILED = "VALIDATION_FAILED"         # Caller input unusable
    PROVIDER_REJECTED = "PROVIDER_REJECTED"         # Provider 4xx
    PROVIDER_UNAVAILABLE = "PROVIDER_UNAVAILABLE"   # 5xx/network after all retries
    TIMEOUT = "TIMEOUT"                             # Last attempt timed out
    INTERNAL_ERROR = "INTERNAL_ERROR"               # Unexpected error


class NarrationError(Exception):
    """
    Base exception for pipeline failures.

    Attributes:
        message: Human-readable error message.
        code: Error code from ErrorCode.
        details: Optional dictionary with additional context.
    """
    def __init__(self, message: str, code: str = ErrorCode.INTERNAL_ERROR, details: Optional[Dict] = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Standardized error response dict for the API."""
        result: Dict[str, Any] = {
            "ok": False,
            "error": self.code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


class ValidationError(NarrationError):
    """Input was rejected before any provider call."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.VALIDATION_FAILED, details)


class ProviderError(NarrationError):
    """The provider answered with a terminal non-success status."""
    def __init__(self, status_code: int, body_excerpt: str):
        self.status_code = status_code
        self.body_excerpt = body_excerpt
        super().__init__(
            f"provider rejected the request with status {status_code}: {body_excerpt}",
            ErrorCode.PROVIDER_REJECTED,
            {"status_code": status_code, "body": body_excerpt},
        )


class TransportError(NarrationError):
    """The provider could not be reached or kept failing transiently."""
    def __init__(
        self,
        message: str,
        attempts: int,
        timed_out: bool = False,
        status_code: Optional[int] = None,
    ):
        self.attempts = attempts
        self.timed_out = timed_out
        self.status_code = status_code
        details: Dict[str, Any] = {"attempts": attempts, "timed_out": timed_out}
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(
            message,
            ErrorCode.TIMEOUT if timed_out else ErrorCode.PROVIDER_UNAVAILABLE,
            details,
        )


# =============================================================================
# Request/Response Dataclasses
# =============================================================================

class SynthesisStage(str, Enum):
    VALIDATING = "validating"
    REQUESTING = "requesting"
    INTERPRETING = "interpreting"
    PACKAGING = "packaging"
    REPORTING = "reporting"


@dataclass(frozen=True)
class SynthesisRequest:
    """
    Caller input.

    Attributes:
        text: Text to narrate.
        user_id: Caller identity, used for analytics.
        voice_id: Provider voice (optional, uses the configured default).
        model_id: Provider model (optional, uses the configured default).
    """
    text: str
    user_id: str
    voice_id: Optional[str] = None
    model_id: Optional[str] = None

    @property
    def characters_requested(self) -> int:
        return len(self.text) if isinstance(self.text, str) else 0


@dataclass(frozen=True)
class ProcessedRequest:
    """What is actually sent to the provider, derived from a SynthesisRequest."""
    text: str
    voice_id: str
    model_id: str
    user_id: str
    characters_requested: int
    warning: Optional[str] = None
    truncated: bool = False

    @property
    def characters_processed(self) -> int:
        return len(self.text)


@dataclass(frozen=True)
class SynthesizedAudio:
    """
    Synthesis result, owned by the caller.

    Attributes:
        audio_bytes: Encoded audio (MP3).
        mime_type: Always AUDIO_MIME_TYPE.
        estimated_duration_seconds: Best-effort playback duration.
        characters_processed: Length of the text the provider narrated.
        warning: Validation warning (long or truncated text), if any.
        request_id: Request ID for tracing.
    """
    audio_bytes: bytes
    mime_type: str
    estimated_duration_seconds: float
    characters_processed: int = 0
    warning: Optional[str] = None
    request_id: str = ""

    @property
    def size_bytes(self) -> int:
        return len(self.audio_bytes)

    def to_base64(self) -> str:
        return base64.b64encode(self.audio_bytes).decode("ascii")

    def to_data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.to_base64()}"


def new_request_id() -> str:
    return uuid.uuid4().hex[:12]


# =============================================================================
# Main Service Class
# =============================================================================

class NarrationService:
    """
    Speech synthesis orchestrator.

    Collaborators are injected; the service owns no connections and keeps
    no per-request state, so one instance serves concurrent requests.

    Usage:
        config = NarrationServiceConfig.from_settings(load_settings())
        async with httpx.AsyncClient() as raw:
            service = NarrationService(config, ResilientHttpClient(raw))
            audio = await service.synthesize(SynthesisRequest(text="Hi", user_id="u1"))
    """

    def __init__(
        self,
        config: NarrationServiceConfig,
        http_client: ResilientHttpClient,
        analytics: Optional[AnalyticsSink] = None,
        metrics: Optional[NarrationMetrics] = None,
    ):
        self._config = config
        self._http = http_client
        self._analytics: AnalyticsSink = analytics if analytics is not None else LoggingAnalyticsSink()
        self._metrics = metrics or default_metrics
        self._text_preview_chars = config.logging.text_preview_chars

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        http_client: ResilientHttpClient,
        analytics: Optional[AnalyticsSink] = None,
        metrics: Optional[NarrationMetrics] = None,
    ) -> "NarrationService":
        """
        Raises:
            MissingSecretError: If no API key is configured.
            ConfigValidationError: If validation fails.
        """
        return cls(settings.get_service_config(), http_client, analytics=analytics, metrics=metrics)

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def config(self) -> NarrationServiceConfig:
        return self._config

    @property
    def analytics(self) -> AnalyticsSink:
        return self._analytics

    # =========================================================================
    # Helper Methods
    # =========================================================================

    def process_request(self, request: SynthesisRequest) -> ProcessedRequest:
        """
        Apply text limits and resolve defaults.

        Raises:
            ValidationError: Text is empty or an identifier is unusable.
        """
        limits = self._config.text
        outcome = validate_text(request.text, limits.max_length, limits.warning_length)
        if not outcome.valid:
            raise ValidationError(outcome.reason or "text required")

        for field_name, value in (("voice_id", request.voice_id), ("model_id", request.model_id)):
            reason = validate_identifier(value, field_name)
            if reason:
                raise ValidationError(reason, {"field": field_name})

        assert outcome.text is not None
        return ProcessedRequest(
            text=outcome.text,
            voice_id=request.voice_id or self._config.provider.default_voice_id,
            model_id=request.model_id or self._config.provider.default_model_id,
            user_id=request.user_id,
            characters_requested=request.characters_requested,
            warning=outcome.warning,
            truncated=outcome.truncated,
        )

    def speech_url(self, voice_id: str) -> str:
        return f"{self._config.provider.base_url}/text-to-speech/{voice_id}"

    def speech_headers(self) -> Dict[str, str]:
        provider = self._config.provider
        return {
            provider.api_key_header: provider.api_key,
            "Content-Type": "application/json",
            "Accept": AUDIO_MIME_TYPE,
        }

    async def _send(self, processed: ProcessedRequest) -> RequestOutcome:
        body = ProviderSpeechRequest(model_id=processed.model_id, text=processed.text)
        try:
            return await self._http.post(
                self.speech_url(processed.voice_id),
                headers=self.speech_headers(),
                json=body.model_dump(),
                policy=self._config.retry_policy,
                timeout_ms=self._config.timeout_ms,
            )
        except RetriesExhaustedError as e:
            raise TransportError(
                f"provider unavailable after {e.attempts} attempts: {e.last_outcome.describe()}",
                attempts=e.attempts,
                timed_out=e.timed_out,
                status_code=e.status_code,
            ) from e

    async def _provider_error(self, outcome: RequestOutcome) -> ProviderError:
        """Build a ProviderError from a terminal non-success response. Never raises."""
        response = outcome.response
        assert response is not None
        try:
            body = await asyncio.wait_for(read_error_body(response), timeout=self._config.timeout_ms / 1000.0)
        except (httpx.HTTPError, asyncio.TimeoutError) as e:
            debug(_LOG, "error_body_unreadable", error=str(e), status_code=response.status_code)
            return ProviderError(response.status_code, UNREADABLE_BODY)
        finally:
            await response.aclose()

        try:
            excerpt = error_excerpt(body)
        except Exception as e:
            # The 4xx outcome must survive whatever the body contains
            debug(_LOG, "error_body_unparsable", error=repr(e)[:200], status_code=response.status_code)
            excerpt = UNREADABLE_BODY
        return ProviderError(response.status_code, excerpt)

    async def _read_audio(self, outcome: RequestOutcome) -> bytes:
        """
        Read the full audio body under the request timeout.

        Raises:
            TransportError: The body could not be read in time.
        """
        response = outcome.response
        assert response is not None
        try:
            return await asyncio.wait_for(response.aread(), timeout=self._config.timeout_ms / 1000.0)
        except asyncio.TimeoutError as e:
            raise TransportError(
                f"timed out reading audio after {self._config.timeout_ms}ms",
                attempts=outcome.attempts,
                timed_out=True,
                status_code=response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise TransportError(
                f"failed reading audio: {e}",
                attempts=outcome.attempts,
                status_code=response.status_code,
            ) from e
        finally:
            await response.aclose()

    def _stage(self, t: timeit, **fields: Any) -> None:
        if t.timing:
            verbose(_LOG, "stage", event=t.name, seconds=round(t.timing.seconds, 4), **fields)

    # =========================================================================
    # Reporting
    # =========================================================================

    async def _call_analytics(self, operation: str, call: Callable[[], Awaitable[None]]) -> None:
        timeout_ms = self._config.analytics.timeout_ms
        try:
            await asyncio.wait_for(call(), timeout=timeout_ms / 1000.0)
        except asyncio.TimeoutError:
            self._metrics.record_analytics_failure(operation)
            warn(_LOG, "analytics_timeout", operation=operation, timeout_ms=timeout_ms)
        except Exception as e:
            self._metrics.record_analytics_failure(operation)
            warn(_LOG, "analytics_failed", operation=operation, error=str(e), error_type=type(e).__name__)

    async def _report_failure(
        self,
        exc: BaseException,
        code: str,
        request: SynthesisRequest,
        processed: Optional[ProcessedRequest],
        request_id: str,
        stage: SynthesisStage,
        elapsed_ms: float,
    ) -> None:
        context: Dict[str, Any] = {
            "error_code": code,
            "stage": stage.value,
            "user_id": request.user_id,
            "request_id": request_id,
            "characters_requested": request.characters_requested,
            "elapsed_ms": round(elapsed_ms, 1),
            "voice_id": processed.voice_id if processed else request.voice_id,
            "model_id": processed.model_id if processed else request.model_id,
        }
        for attr in ("status_code", "attempts", "timed_out"):
            value = getattr(exc, attr, None)
            if value is not None:
                context[attr] = value

        message = exc.message if isinstance(exc, NarrationError) else f"{type(exc).__name__}: {exc}"
        fail(_LOG, "request_failed", error=message, **context)
        self._metrics.record_request(status="error", duration=elapsed_ms / 1000.0, error_code=code)
        await self._call_analytics("record_error", lambda: self._analytics.record_error(message, context))

    # =========================================================================
    # Public API: synthesize()
    # =========================================================================

    async def synthesize(self, request: SynthesisRequest, request_id: Optional[str] = None) -> SynthesizedAudio:
        """
        Synthesize narration for ``request``.

        Args:
            request: Caller input.
            request_id: ID for tracing; defaults to the bound context id or a new one.

        Returns:
            SynthesizedAudio with MP3 bytes and an estimated duration.

        Raises:
            ValidationError: Input rejected; no provider call was made.
            ProviderError: Provider returned a 4xx.
            TransportError: Provider unreachable after all retries.
        """
        bound = get_request_id()
        rid = request_id or (bound if bound != "-" else new_request_id())
        started = perf_counter()
        stage = SynthesisStage.VALIDATING
        processed: Optional[ProcessedRequest] = None

        self._metrics.inc_in_flight()
        try:
            try:
                with timeit(SynthesisStage.VALIDATING.value) as t:
                    processed = self.process_request(request)
                self._stage(t, chars=processed.characters_processed)

                preview = processed.text[:self._text_preview_chars] if self._text_preview_chars > 0 else ""
                info(
                    _LOG,
                    "request",
                    chars=processed.characters_requested,
                    voice_id=processed.voice_id,
                    model_id=processed.model_id,
                    text_preview=preview,
                )
                if processed.warning:
                    warn(_LOG, "text_warning", warning=processed.warning, truncated=processed.truncated)

                stage = SynthesisStage.REQUESTING
                with timeit(stage.value) as t:
                    outcome = await self._send(processed)
                self._stage(t, attempts=outcome.attempts, status_code=outcome.status_code)

                stage = SynthesisStage.INTERPRETING
                if not outcome.ok:
                    raise await self._provider_error(outcome)

                stage = SynthesisStage.PACKAGING
                with timeit(stage.value) as t:
                    audio_bytes = await self._read_audio(outcome)
                    duration = estimate_duration(audio_bytes, AUDIO_MIME_TYPE)
                self._stage(t, bytes=len(audio_bytes), audio_s=round(duration, 3))

                processing_ms = (perf_counter() - started) * 1000.0
                audio = SynthesizedAudio(
                    audio_bytes=audio_bytes,
                    mime_type=AUDIO_MIME_TYPE,
                    estimated_duration_seconds=duration,
                    characters_processed=processed.characters_processed,
                    warning=processed.warning,
                    request_id=rid,
                )

                # ─────────────────────────────────────────────────────────────
                # Reporting (success)
                # ─────────────────────────────────────────────────────────────
                stage = SynthesisStage.REPORTING
                success(
                    _LOG,
                    "done",
                    bytes=audio.size_bytes,
                    audio_s=round(duration, 3),
                    seconds=round(processing_ms / 1000.0, 3),
                )
                self._metrics.record_request(
                    status="success",
                    duration=processing_ms / 1000.0,
                    audio_bytes=audio.size_bytes,
                    audio_seconds=duration,
                )
                self._metrics.record_characters(processed.characters_requested, processed.characters_processed)

                record = SynthesisMetrics(
                    user_id=processed.user_id,
                    request_id=rid,
                    characters_requested=processed.characters_requested,
                    characters_processed=processed.characters_processed,
                    audio_duration_seconds=duration,
                    audio_bytes=audio.size_bytes,
                    voice_id=processed.voice_id,
                    model_id=processed.model_id,
                    processing_time_ms=processing_ms,
                    warning=processed.warning,
                )
                await self._call_analytics("record_synthesis", lambda: self._analytics.record_synthesis(record))
                return audio

            except NarrationError as e:
                await self._report_failure(
                    e, e.code, request, processed, rid, stage, (perf_counter() - started) * 1000.0,
                )
                raise
            except Exception as e:
                await self._report_failure(
                    e, ErrorCode.INTERNAL_ERROR, request, processed, rid, stage,
                    (perf_counter() - started) * 1000.0,
                )
                raise
        finally:
            self._metrics.dec_in_flight()

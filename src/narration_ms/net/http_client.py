"""
Resilient outbound HTTP client.

Wraps an ``httpx.AsyncClient`` with a per-attempt timeout, retry with
exponential backoff, and a transient/permanent failure classifier.

Classification:
    - status 200-399           -> SUCCESS    (terminal)
    - status 400-499           -> PERMANENT  (terminal, never retried)
    - status >= 500            -> RETRYABLE
    - transport error/timeout  -> RETRYABLE
    - any other status         -> PERMANENT

Retry Loop:
    ``max_retries + 1`` attempts in total. Before retry *n* (0-indexed) the
    client sleeps ``min(base_delay_ms * backoff_factor**n, max_delay_ms)``.
    Terminal outcomes are returned to the caller with the response still
    open, so a large body can be read (or streamed) by the caller under its
    own deadline. Running out of attempts raises RetriesExhaustedError.

Worst-case latency of one call is bounded by worst_case_latency_ms():
every attempt hits its timeout and every backoff delay is taken.

Example:
    async with httpx.AsyncClient() as raw:
        client = ResilientHttpClient(raw)
        outcome = await client.post(url, json=body, policy=RetryPolicy(), timeout_ms=30000)
        try:
            audio = await outcome.response.aread()
        finally:
            await outcome.response.aclose()
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from narration_ms.core.logging import debug, get_logger, warn
from narration_ms.core.metrics import NarrationMetrics
from narration_ms.core.metrics import metrics as default_metrics

_LOG = get_logger("narration-ms.http")

SleepFn = Callable[[float], Awaitable[Any]]


# =============================================================================
# Policy and Outcomes
# =============================================================================

@dataclass(frozen=True)
class RetryPolicy:
    """
    Backoff schedule for transient failures.

    Raises:
        ValueError: If ``base_delay_ms > max_delay_ms``, a value is negative,
            or ``backoff_factor < 1``.
    """
    max_retries: int = 3
    base_delay_ms: int = 1000
    max_delay_ms: int = 10000
    backoff_factor: float = 2.0

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be non-negative, got {self.max_retries}")
        if self.base_delay_ms < 0:
            raise ValueError(f"base_delay_ms must be non-negative, got {self.base_delay_ms}")
        if self.base_delay_ms > self.max_delay_ms:
            raise ValueError(
                f"base_delay_ms ({self.base_delay_ms}) must not exceed max_delay_ms ({self.max_delay_ms})"
            )
        if self.backoff_factor < 1:
            raise ValueError(f"backoff_factor must be >= 1, got {self.backoff_factor}")

    @property
    def total_attempts(self) -> int:
        return self.max_retries + 1

    def delay_ms(self, retry_index: int) -> float:
        """Delay before retry ``retry_index`` (0 = first retry)."""
        return min(self.base_delay_ms * (self.backoff_factor ** retry_index), float(self.max_delay_ms))


def worst_case_latency_ms(policy: RetryPolicy, timeout_ms: int) -> float:
    """Upper bound on one execute() call: every attempt times out, every delay is slept."""
    delays = sum(policy.delay_ms(n) for n in range(policy.max_retries))
    return policy.total_attempts * timeout_ms + delays


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    RETRYABLE = "retryable"
    PERMANENT = "permanent"


def classify_status(status_code: int) -> OutcomeKind:
    """Classify an HTTP status code."""
    if 200 <= status_code < 400:
        return OutcomeKind.SUCCESS
    if 400 <= status_code < 500:
        return OutcomeKind.PERMANENT
    if status_code >= 500:
        return OutcomeKind.RETRYABLE
    # 1xx and other oddities are not something a retry will fix
    return OutcomeKind.PERMANENT


@dataclass
class RequestOutcome:
    """
    Result of one attempt, or of a whole execute() call.

    Exactly one of ``response`` and ``error`` is set. ``attempts`` counts
    every attempt made so far, including this one.
    """
    kind: OutcomeKind
    attempts: int
    response: Optional[httpx.Response] = None
    error: Optional[BaseException] = None
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.kind is OutcomeKind.SUCCESS

    @property
    def status_code(self) -> Optional[int]:
        return self.response.status_code if self.response is not None else None

    def describe(self) -> str:
        """Short human-readable cause, used in logs and error messages."""
        if self.response is not None:
            return f"status {self.response.status_code}"
        if self.timed_out:
            return "timeout"
        if self.error is not None:
            msg = str(self.error).strip()
            name = self.error.__class__.__name__
            return f"{name}: {msg}" if msg else name
        return self.kind.value


# =============================================================================
# Exceptions
# =============================================================================

class HttpClientError(Exception):
    """Base class for failures raised by ResilientHttpClient."""
    pass


class RetriesExhaustedError(HttpClientError):
    """
    Every attempt ended in a transient failure.

    Attributes:
        attempts: Total attempts made.
        last_outcome: Outcome of the final attempt (its response, if any, is closed).
    """

    def __init__(self, message: str, attempts: int, last_outcome: RequestOutcome):
        super().__init__(message)
        self.attempts = attempts
        self.last_outcome = last_outcome

    @property
    def timed_out(self) -> bool:
        return self.last_outcome.timed_out

    @property
    def status_code(self) -> Optional[int]:
        return self.last_outcome.status_code


# =============================================================================
# Client
# =============================================================================

class ResilientHttpClient:
    """
    Retry-aware executor around a shared ``httpx.AsyncClient``.

    The wrapped client is owned by the caller (process entry point). This
    class holds no per-call state, so one instance serves any number of
    concurrent calls.

    Args:
        client: Open httpx.AsyncClient used for every attempt.
        sleep: Awaitable taking seconds; replaced in tests to record delays.
        metrics: Metrics collector; defaults to the process-wide instance.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        sleep: Optional[SleepFn] = None,
        metrics: Optional[NarrationMetrics] = None,
    ) -> None:
        self._client = client
        self._sleep: SleepFn = sleep or asyncio.sleep
        self._metrics = metrics or default_metrics

    async def execute(
        self,
        request: httpx.Request,
        policy: RetryPolicy,
        timeout_ms: int,
    ) -> RequestOutcome:
        """
        Send ``request`` until it reaches a terminal outcome.

        Returns:
            A SUCCESS or PERMANENT outcome whose response is open and unread.
            The caller must close it.

        Raises:
            RetriesExhaustedError: All ``policy.total_attempts`` attempts
                were transient failures.
        """
        outcome: Optional[RequestOutcome] = None

        for attempt in range(1, policy.total_attempts + 1):
            if outcome is not None:
                delay = policy.delay_ms(attempt - 2)
                self._log_retry(request, outcome, attempt, policy, delay)
                self._metrics.record_retry()
                await self._sleep(delay / 1000.0)

            outcome = await self._attempt(request, attempt, timeout_ms)
            self._metrics.record_attempt("timeout" if outcome.timed_out else outcome.kind.value)

            if outcome.kind is not OutcomeKind.RETRYABLE:
                return outcome

            if outcome.response is not None:
                await outcome.response.aclose()

        assert outcome is not None
        raise RetriesExhaustedError(
            f"{request.method} {request.url} failed after {outcome.attempts} attempts: {outcome.describe()}",
            attempts=outcome.attempts,
            last_outcome=outcome,
        ) from outcome.error

    async def post(
        self,
        url: str,
        *,
        policy: RetryPolicy,
        timeout_ms: int,
        headers: Optional[Dict[str, str]] = None,
        json: Any = None,
    ) -> RequestOutcome:
        request = self._client.build_request(
            "POST", url, headers=headers, json=json, timeout=timeout_ms / 1000.0,
        )
        return await self.execute(request, policy, timeout_ms)

    async def get(
        self,
        url: str,
        *,
        policy: RetryPolicy,
        timeout_ms: int,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> RequestOutcome:
        request = self._client.build_request(
            "GET", url, headers=headers, params=params, timeout=timeout_ms / 1000.0,
        )
        return await self.execute(request, policy, timeout_ms)

    async def _attempt(self, request: httpx.Request, attempt: int, timeout_ms: int) -> RequestOutcome:
        debug(_LOG, "attempt", method=request.method, url=str(request.url), attempt=attempt)
        try:
            response = await asyncio.wait_for(
                self._client.send(request, stream=True),
                timeout=timeout_ms / 1000.0,
            )
        except asyncio.TimeoutError as e:
            return RequestOutcome(OutcomeKind.RETRYABLE, attempt, error=e, timed_out=True)
        except httpx.TimeoutException as e:
            return RequestOutcome(OutcomeKind.RETRYABLE, attempt, error=e, timed_out=True)
        except httpx.TransportError as e:
            return RequestOutcome(OutcomeKind.RETRYABLE, attempt, error=e)

        return RequestOutcome(classify_status(response.status_code), attempt, response=response)

    def _log_retry(
        self,
        request: httpx.Request,
        outcome: RequestOutcome,
        attempt: int,
        policy: RetryPolicy,
        delay_ms: float,
    ) -> None:
        try:
            warn(
                _LOG,
                "retrying",
                attempt=attempt,
                max_attempts=policy.total_attempts,
                delay_ms=int(delay_ms),
                cause=outcome.describe(),
                url=str(request.url),
            )
        except Exception:
            # A broken log handler never aborts the request
            pass

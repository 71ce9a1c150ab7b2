"""
Synthesis Analytics.

The synthesis pipeline reports every terminal outcome to an AnalyticsSink:

    record_synthesis(metrics)      - once per successful run
    record_error(message, context) - once per failed run

Both are coroutines. The pipeline awaits them under a deadline and logs,
but never propagates, anything they raise.

Sinks:
    LoggingAnalyticsSink   - one structured log line per call
    UsageAnalyticsSink     - per-user daily usage plus a bounded error log
    CompositeAnalyticsSink - fans out to several sinks

Usage:
    usage = UsageAnalyticsSink()
    sink = CompositeAnalyticsSink([LoggingAnalyticsSink(), usage])
    service = NarrationService(config, http_client, analytics=sink)
    ...
    usage.get_daily_stats("u1", "2026-01-15")
"""
from __future__ import annotations

import asyncio
import math
from collections import deque
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Deque, Dict, List, Optional, Protocol, Sequence, Tuple

from narration_ms.core.config import Defaults
from narration_ms.core.logging import error, get_logger, success

_LOG = get_logger("narration-ms.analytics")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_bytes(size: float) -> str:
    """
    Format a byte count for humans.

    Examples:
        >>> format_bytes(0)
        '0 Bytes'
        >>> format_bytes(1536)
        '1.5 KB'
    """
    if size <= 0:
        return "0 Bytes"
    units = ("Bytes", "KB", "MB", "GB")
    i = min(int(math.floor(math.log(size, 1024))), len(units) - 1)
    value = round(size / (1024 ** i), 2)
    return f"{value:g} {units[i]}"


# =============================================================================
# Records
# =============================================================================

@dataclass(frozen=True)
class SynthesisMetrics:
    """One successful synthesis run, as reported to analytics."""
    user_id: str
    request_id: str
    characters_requested: int
    characters_processed: int
    audio_duration_seconds: float
    audio_bytes: int
    voice_id: str
    model_id: str
    processing_time_ms: float
    timestamp: datetime = field(default_factory=utc_now)
    success: bool = True
    warning: Optional[str] = None

    @property
    def efficiency_ratio(self) -> float:
        """Processing time per second of audio; below 1.0 is faster than real time."""
        if self.audio_duration_seconds <= 0:
            return 0.0
        return self.processing_time_ms / (self.audio_duration_seconds * 1000.0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "request_id": self.request_id,
            "timestamp": self.timestamp.isoformat(),
            "characters_requested": self.characters_requested,
            "characters_processed": self.characters_processed,
            "audio_duration_seconds": round(self.audio_duration_seconds, 3),
            "audio_bytes": self.audio_bytes,
            "voice_id": self.voice_id,
            "model_id": self.model_id,
            "processing_time_ms": round(self.processing_time_ms, 1),
            "efficiency_ratio": round(self.efficiency_ratio, 4),
            "success": self.success,
            "warning": self.warning,
        }


@dataclass
class UsageStats:
    """Usage of one user on one UTC day."""
    user_id: str
    date: str  # YYYY-MM-DD
    total_requests: int = 0
    total_characters: int = 0
    total_audio_seconds: float = 0.0
    total_processing_ms: float = 0.0
    voices_used: List[str] = field(default_factory=list)
    models_used: List[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def add(self, metrics: SynthesisMetrics) -> None:
        self.total_requests += 1
        self.total_characters += metrics.characters_processed
        self.total_audio_seconds += metrics.audio_duration_seconds
        self.total_processing_ms += metrics.processing_time_ms
        if metrics.voice_id not in self.voices_used:
            self.voices_used.append(metrics.voice_id)
        if metrics.model_id not in self.models_used:
            self.models_used.append(metrics.model_id)
        self.updated_at = metrics.timestamp

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "date": self.date,
            "total_requests": self.total_requests,
            "total_characters": self.total_characters,
            "total_audio_seconds": round(self.total_audio_seconds, 3),
            "total_processing_ms": round(self.total_processing_ms, 1),
            "voices_used": list(self.voices_used),
            "models_used": list(self.models_used),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class MonthlyUsage:
    user_id: str
    year: int
    month: int
    days: List[UsageStats] = field(default_factory=list)

    @property
    def total_requests(self) -> int:
        return sum(d.total_requests for d in self.days)

    @property
    def total_characters(self) -> int:
        return sum(d.total_characters for d in self.days)

    @property
    def total_audio_seconds(self) -> float:
        return sum(d.total_audio_seconds for d in self.days)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "year": self.year,
            "month": self.month,
            "total_requests": self.total_requests,
            "total_characters": self.total_characters,
            "total_audio_seconds": round(self.total_audio_seconds, 3),
            "days": [d.to_dict() for d in self.days],
        }


@dataclass(frozen=True)
class ErrorRecord:
    timestamp: datetime
    message: str
    context: Dict[str, Any]

    @property
    def user_id(self) -> Optional[str]:
        return self.context.get("user_id")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "message": self.message,
            "context": dict(self.context),
        }


# =============================================================================
# Sinks
# =============================================================================

class AnalyticsSink(Protocol):
    async def record_synthesis(self, metrics: SynthesisMetrics) -> None: ...

    async def record_error(self, message: str, context: Dict[str, Any]) -> None: ...


class LoggingAnalyticsSink:
    """Writes each record as a structured log line."""

    async def record_synthesis(self, metrics: SynthesisMetrics) -> None:
        success(
            _LOG,
            "synthesis_recorded",
            user_id=metrics.user_id,
            chars_requested=metrics.characters_requested,
            chars_processed=metrics.characters_processed,
            audio_s=round(metrics.audio_duration_seconds, 2),
            audio_size=format_bytes(metrics.audio_bytes),
            voice_id=metrics.voice_id,
            model_id=metrics.model_id,
            processing_ms=round(metrics.processing_time_ms, 1),
            efficiency_ratio=round(metrics.efficiency_ratio, 3),
        )

    async def record_error(self, message: str, context: Dict[str, Any]) -> None:
        error(_LOG, "synthesis_error_recorded", error=message, **context)


class UsageAnalyticsSink:
    """
    In-memory usage accounting.

    Successful runs roll up into one UsageStats per (user, UTC day). Days
    older than ``retention_days`` before the newest recorded day are dropped.
    Errors go to a bounded log, oldest dropped first. All updates happen
    without awaiting, so concurrent tasks on one event loop never
    interleave inside an update.
    """

    def __init__(
        self,
        max_errors: int = Defaults.ANALYTICS_MAX_ERRORS,
        retention_days: int = Defaults.ANALYTICS_RETENTION_DAYS,
    ) -> None:
        self._daily: Dict[Tuple[str, str], UsageStats] = {}
        self._errors: Deque[ErrorRecord] = deque(maxlen=max_errors)
        self._retention_days = retention_days
        self._newest_day: Optional[date] = None

    async def record_synthesis(self, metrics: SynthesisMetrics) -> None:
        record_day = metrics.timestamp.astimezone(timezone.utc).date()
        if self._newest_day is None or record_day > self._newest_day:
            self._newest_day = record_day
            self._prune(record_day)
        day = record_day.isoformat()
        key = (metrics.user_id, day)
        stats = self._daily.get(key)
        if stats is None:
            stats = UsageStats(user_id=metrics.user_id, date=day, created_at=metrics.timestamp)
            self._daily[key] = stats
        stats.add(metrics)

    def _prune(self, newest: date) -> None:
        cutoff = (newest - timedelta(days=self._retention_days - 1)).isoformat()
        for key in [k for k in self._daily if k[1] < cutoff]:
            del self._daily[key]

    async def record_error(self, message: str, context: Dict[str, Any]) -> None:
        self._errors.append(ErrorRecord(timestamp=utc_now(), message=message, context=dict(context)))

    def get_daily_stats(self, user_id: str, day: str | date) -> Optional[UsageStats]:
        if isinstance(day, date):
            day = day.isoformat()
        return self._daily.get((user_id, day))

    def get_monthly_stats(self, user_id: str, year: int, month: int) -> MonthlyUsage:
        prefix = f"{year:04d}-{month:02d}-"
        days = sorted(
            (s for (uid, d), s in self._daily.items() if uid == user_id and d.startswith(prefix)),
            key=lambda s: s.date,
        )
        return MonthlyUsage(user_id=user_id, year=year, month=month, days=days)

    def recent_errors(self, limit: int = 50, user_id: Optional[str] = None) -> List[ErrorRecord]:
        """Newest first."""
        records = [r for r in reversed(self._errors) if user_id is None or r.user_id == user_id]
        return records[:limit]


class CompositeAnalyticsSink:
    """
    Forwards each call to every sink concurrently.

    Every sink gets the call even if another fails; the first failure is
    then re-raised to the caller.
    """

    def __init__(self, sinks: Sequence[AnalyticsSink]) -> None:
        self._sinks = list(sinks)

    @property
    def sinks(self) -> List[AnalyticsSink]:
        return list(self._sinks)

    async def record_synthesis(self, metrics: SynthesisMetrics) -> None:
        await self._fan_out([s.record_synthesis(metrics) for s in self._sinks])

    async def record_error(self, message: str, context: Dict[str, Any]) -> None:
        await self._fan_out([s.record_error(message, context) for s in self._sinks])

    @staticmethod
    async def _fan_out(calls: List[Any]) -> None:
        results = await asyncio.gather(*calls, return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException):
                raise result

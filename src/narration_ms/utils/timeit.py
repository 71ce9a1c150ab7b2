"""
Timing helpers for pipeline stages.

Example:
    with timeit("requesting") as t:
        outcome = await client.post(...)
    verbose(_LOG, "stage", event=t.name, seconds=t.timing.seconds)
"""
from __future__ import annotations

from dataclasses import dataclass
from time import perf_counter
from typing import Any, Dict, Optional


@dataclass
class Timing:
    name: str
    seconds: float
    meta: Optional[Dict[str, Any]] = None


class timeit:
    """
    Context manager measuring wall-clock time with perf_counter().

    The result is available as ``timing`` after the block exits, including
    when the block raised.
    """

    def __init__(self, name: str, meta: Optional[Dict[str, Any]] = None):
        self.name = name
        self.meta = meta
        self._t0: float | None = None
        self.timing: Timing | None = None

    def __enter__(self) -> "timeit":
        self._t0 = perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        t1 = perf_counter()
        assert self._t0 is not None
        self.timing = Timing(name=self.name, seconds=(t1 - self._t0), meta=self.meta)

    @property
    def elapsed_ms(self) -> float:
        """Milliseconds so far, or the final figure once the block has exited."""
        if self.timing is not None:
            return self.timing.seconds * 1000.0
        if self._t0 is None:
            return 0.0
        return (perf_counter() - self._t0) * 1000.0

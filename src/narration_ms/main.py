"""
FastAPI Application Entry Point.

Usage:
    uvicorn narration_ms.main:app --host 0.0.0.0 --port 8000

The provider API key must be set (ELEVENLABS_API_KEY or provider.api_key
in the settings file); startup fails otherwise.
"""

from __future__ import annotations

from typing import Optional

import httpx
from fastapi import FastAPI

from narration_ms import __version__
from narration_ms.api.dependencies import lifespan
from narration_ms.api.routes import router
from narration_ms.core.config import Settings
from narration_ms.core.logging import configure_logging
from narration_ms.core.metrics import NarrationMetrics
from narration_ms.net.http_client import SleepFn


def create_app(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    sleep: Optional[SleepFn] = None,
    metrics: Optional[NarrationMetrics] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Settings to use; loaded from disk at startup when None.
        transport: httpx transport for provider calls (tests pass a MockTransport).
        sleep: Backoff sleep override.
        metrics: Metrics collector; the process-wide one when None.
    """
    configure_logging()

    app = FastAPI(title="narration-ms", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.transport = transport
    app.state.sleep = sleep
    app.state.metrics = metrics

    app.include_router(router)
    return app


# ASGI entry point for uvicorn
app = create_app()

"""
FastAPI Dependency Injection Providers.

Everything a route needs is built once per application by lifespan() and
stored on ``app.state.services``:

    ServiceContainer
        ├── http_client   httpx.AsyncClient (closed on shutdown)
        ├── service       NarrationService
        ├── voices        VoiceCatalog
        ├── usage         UsageAnalyticsSink
        └── metrics       NarrationMetrics

Nothing is a module-level singleton, so each app (one per test, say) gets
its own client, sinks and metrics registry.

Usage in Route Handlers:
    @router.post("/v1/tts")
    async def tts_v1(req: SpeechRequest, service: NarrationService = Depends(get_service)):
        ...
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

import httpx
from fastapi import FastAPI, Request

from narration_ms.core.config import NarrationServiceConfig, Settings, load_settings_or_defaults
from narration_ms.core.logging import get_logger, info
from narration_ms.core.metrics import NarrationMetrics
from narration_ms.core.metrics import metrics as default_metrics
from narration_ms.net.http_client import ResilientHttpClient, SleepFn
from narration_ms.services.analytics import CompositeAnalyticsSink, LoggingAnalyticsSink, UsageAnalyticsSink
from narration_ms.services.synthesis import NarrationService
from narration_ms.services.voices import VoiceCatalog

_LOG = get_logger("narration-ms.api")


@dataclass
class ServiceContainer:
    config: NarrationServiceConfig
    http_client: httpx.AsyncClient
    service: NarrationService
    voices: VoiceCatalog
    usage: UsageAnalyticsSink
    metrics: NarrationMetrics


def build_container(
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    sleep: Optional[SleepFn] = None,
    metrics: Optional[NarrationMetrics] = None,
) -> ServiceContainer:
    """
    Wire the service graph.

    Raises:
        MissingSecretError: If no API key is configured.
        ConfigValidationError: If validation fails.
    """
    config = NarrationServiceConfig.from_settings(settings)
    metrics = metrics or default_metrics

    # Per-attempt deadlines come from the resilient client, not httpx defaults
    raw = httpx.AsyncClient(transport=transport, timeout=config.timeout_ms / 1000.0)
    resilient = ResilientHttpClient(raw, sleep=sleep, metrics=metrics)

    usage = UsageAnalyticsSink(
        max_errors=config.analytics.max_errors,
        retention_days=config.analytics.retention_days,
    )
    analytics = CompositeAnalyticsSink([LoggingAnalyticsSink(), usage])

    return ServiceContainer(
        config=config,
        http_client=raw,
        service=NarrationService(config, resilient, analytics=analytics, metrics=metrics),
        voices=VoiceCatalog(config, resilient),
        usage=usage,
        metrics=metrics,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the container on startup and close the HTTP client on shutdown."""
    settings: Optional[Settings] = getattr(app.state, "settings", None)
    if settings is None:
        settings = load_settings_or_defaults()

    container = build_container(
        settings,
        transport=getattr(app.state, "transport", None),
        sleep=getattr(app.state, "sleep", None),
        metrics=getattr(app.state, "metrics", None),
    )
    app.state.services = container
    info(_LOG, "startup", base_url=container.config.provider.base_url,
         default_voice_id=container.config.provider.default_voice_id)
    try:
        yield
    finally:
        await container.http_client.aclose()
        info(_LOG, "shutdown")


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.services


def get_service(request: Request) -> NarrationService:
    return get_container(request).service


def get_voice_catalog(request: Request) -> VoiceCatalog:
    return get_container(request).voices


def get_usage(request: Request) -> UsageAnalyticsSink:
    return get_container(request).usage


def get_metrics(request: Request) -> NarrationMetrics:
    return get_container(request).metrics

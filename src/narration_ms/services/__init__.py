"""
narration-ms Services Layer.

Components:
    - synthesis.py: NarrationService (synthesis pipeline) and its error taxonomy
    - validators.py: Text length policy and identifier checks
    - analytics.py: Analytics sink contract and implementations
    - voices.py: Provider voice catalog
    - provider_models.py: Provider request/response payload models
"""
from .analytics import (
    AnalyticsSink,
    CompositeAnalyticsSink,
    LoggingAnalyticsSink,
    SynthesisMetrics,
    UsageAnalyticsSink,
    UsageStats,
)
from .synthesis import (
    ErrorCode,
    NarrationError,
    NarrationService,
    ProcessedRequest,
    ProviderError,
    SynthesisRequest,
    SynthesizedAudio,
    TransportError,
    ValidationError,
)
from .validators import ValidationOutcome, validate_text
from .voices import Voice, VoiceCatalog

__all__ = [
    "NarrationService",
    "SynthesisRequest",
    "ProcessedRequest",
    "SynthesizedAudio",
    "NarrationError",
    "ValidationError",
    "ProviderError",
    "TransportError",
    "ErrorCode",
    "ValidationOutcome",
    "validate_text",
    "AnalyticsSink",
    "LoggingAnalyticsSink",
    "UsageAnalyticsSink",
    "CompositeAnalyticsSink",
    "SynthesisMetrics",
    "UsageStats",
    "Voice",
    "VoiceCatalog",
]

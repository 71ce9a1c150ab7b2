"""
Configuration Management for narration-ms.

    - Default values (Defaults class)
    - Dataclass-based configuration sections
    - YAML file loading with environment variable overrides
    - Validation with meaningful error messages

Configuration Hierarchy (highest priority first):
    1. Environment variables (ELEVENLABS_API_KEY, NARRATION_MS_LOG_LEVEL, ...)
    2. YAML config file (config/settings.yaml, or NARRATION_MS_SETTINGS)
    3. Defaults class values

Example settings.yaml:
    provider:
      base_url: https://api.elevenlabs.io/v1
      default_voice_id: 21m00Tcm4TlvDq8ikWAM

    request:
      timeout_ms: 30000
      retry:
        max_retries: 3
        base_delay_ms: 1000

    text:
      max_length: 5000
      warning_length: 4000
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from narration_ms.net.http_client import RetryPolicy

DEFAULT_SETTINGS_PATH = "config/settings.yaml"


class ConfigValidationError(Exception):
    """Raised when a configuration value is out of bounds or of the wrong type."""
    pass


class MissingSecretError(ConfigValidationError):
    """Raised when a required secret (the provider API key) is not configured."""
    pass


class Defaults:
    """
    Centralized default configuration values.

    Sections:
        - Provider: endpoint, credentials header, default voice/model
        - Request: per-attempt timeout and retry policy
        - Text: length limits enforced before any provider call
        - Analytics: how long reporting may take
        - Logging: level
    """

    # ─────────────────────────────────────────────────────────────────────────
    # Provider
    # ─────────────────────────────────────────────────────────────────────────
    PROVIDER_BASE_URL = "https://api.elevenlabs.io/v1"
    PROVIDER_VOICES_URL = "https://api.elevenlabs.io/v2/voices"
    PROVIDER_API_KEY_HEADER = "xi-api-key"
    PROVIDER_API_KEY_ENV = "ELEVENLABS_API_KEY"
    PROVIDER_DEFAULT_VOICE_ID = "21m00Tcm4TlvDq8ikWAM"
    PROVIDER_DEFAULT_MODEL_ID = "eleven_multilingual_v2"

    # ─────────────────────────────────────────────────────────────────────────
    # Outbound requests
    # ─────────────────────────────────────────────────────────────────────────
    REQUEST_TIMEOUT_MS = 30000          # Per attempt, not per call
    RETRY_MAX_RETRIES = 3               # Additional attempts after the first
    RETRY_BASE_DELAY_MS = 1000
    RETRY_MAX_DELAY_MS = 10000
    RETRY_BACKOFF_FACTOR = 2.0

    # ─────────────────────────────────────────────────────────────────────────
    # Text limits
    # ─────────────────────────────────────────────────────────────────────────
    TEXT_MAX_LENGTH = 5000
    TEXT_WARNING_LENGTH = 4000

    # ─────────────────────────────────────────────────────────────────────────
    # Analytics
    # ─────────────────────────────────────────────────────────────────────────
    ANALYTICS_TIMEOUT_MS = 2000
    ANALYTICS_MAX_ERRORS = 500          # In-memory error log size
    ANALYTICS_RETENTION_DAYS = 90       # Daily usage kept per user

    # ─────────────────────────────────────────────────────────────────────────
    # Logging
    # ─────────────────────────────────────────────────────────────────────────
    LOGGING_LEVEL = 2                   # 1=MINIMAL, 2=NORMAL, 3=VERBOSE, 4=DEBUG
    LOGGING_TEXT_PREVIEW_CHARS = 80


@dataclass(frozen=True)
class ProviderConfig:
    """Text-to-speech provider endpoint and credentials."""
    api_key: str
    base_url: str = Defaults.PROVIDER_BASE_URL
    voices_url: str = Defaults.PROVIDER_VOICES_URL
    api_key_header: str = Defaults.PROVIDER_API_KEY_HEADER
    default_voice_id: str = Defaults.PROVIDER_DEFAULT_VOICE_ID
    default_model_id: str = Defaults.PROVIDER_DEFAULT_MODEL_ID

    def __repr__(self) -> str:
        # Keep the key out of logs and tracebacks
        return (
            f"ProviderConfig(base_url={self.base_url!r}, "
            f"default_voice_id={self.default_voice_id!r}, "
            f"default_model_id={self.default_model_id!r}, api_key='***')"
        )


@dataclass(frozen=True)
class RequestConfig:
    """Per-attempt timeout and retry policy for provider calls."""
    timeout_ms: int = Defaults.REQUEST_TIMEOUT_MS
    retry: RetryPolicy = field(default_factory=RetryPolicy)


@dataclass(frozen=True)
class TextLimitsConfig:
    """
    Length policy applied before any provider call.

    ``warning_length`` above ``max_length`` is tolerated: the warning band
    is then empty and only truncation warnings are produced.
    """
    max_length: int = Defaults.TEXT_MAX_LENGTH
    warning_length: int = Defaults.TEXT_WARNING_LENGTH


@dataclass(frozen=True)
class AnalyticsConfig:
    timeout_ms: int = Defaults.ANALYTICS_TIMEOUT_MS
    max_errors: int = Defaults.ANALYTICS_MAX_ERRORS
    retention_days: int = Defaults.ANALYTICS_RETENTION_DAYS


@dataclass(frozen=True)
class LoggingConfig:
    """
    Logging configuration.

    Log levels:
        1 = MINIMAL, 2 = NORMAL (default), 3 = VERBOSE, 4 = DEBUG
    """
    level: int = Defaults.LOGGING_LEVEL
    text_preview_chars: int = Defaults.LOGGING_TEXT_PREVIEW_CHARS


@dataclass(frozen=True)
class NarrationServiceConfig:
    """
    Validated configuration for NarrationService.

    Usage:
        settings = load_settings("config/settings.yaml")
        config = NarrationServiceConfig.from_settings(settings)
        print(config.request.retry.max_retries)
    """
    provider: ProviderConfig
    request: RequestConfig = field(default_factory=RequestConfig)
    text: TextLimitsConfig = field(default_factory=TextLimitsConfig)
    analytics: AnalyticsConfig = field(default_factory=AnalyticsConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @property
    def timeout_ms(self) -> int:
        return self.request.timeout_ms

    @property
    def retry_policy(self) -> RetryPolicy:
        return self.request.retry

    @classmethod
    def from_settings(cls, settings: "Settings") -> "NarrationServiceConfig":
        """
        Create NarrationServiceConfig from Settings with validation.

        Raises:
            MissingSecretError: If no provider API key is configured.
            ConfigValidationError: If any value fails validation.
        """
        raw = settings.raw

        # ─────────────────────────────────────────────────────────────────────
        # Provider
        # ─────────────────────────────────────────────────────────────────────
        provider_raw = raw.get("provider", {}) or {}
        api_key = settings.api_key
        if not api_key:
            raise MissingSecretError(
                f"provider API key is not configured; set {Defaults.PROVIDER_API_KEY_ENV} "
                "or provider.api_key"
            )
        provider = ProviderConfig(
            api_key=api_key,
            base_url=str(provider_raw.get("base_url", Defaults.PROVIDER_BASE_URL)).rstrip("/"),
            voices_url=str(provider_raw.get("voices_url", Defaults.PROVIDER_VOICES_URL)),
            api_key_header=str(provider_raw.get("api_key_header", Defaults.PROVIDER_API_KEY_HEADER)),
            default_voice_id=str(provider_raw.get("default_voice_id", Defaults.PROVIDER_DEFAULT_VOICE_ID)),
            default_model_id=str(provider_raw.get("default_model_id", Defaults.PROVIDER_DEFAULT_MODEL_ID)),
        )
        cls._validate_not_empty("provider.base_url", provider.base_url)
        cls._validate_not_empty("provider.default_voice_id", provider.default_voice_id)
        cls._validate_not_empty("provider.default_model_id", provider.default_model_id)

        # ─────────────────────────────────────────────────────────────────────
        # Request timeout and retry policy
        # ─────────────────────────────────────────────────────────────────────
        request_raw = raw.get("request", {}) or {}
        retry_raw = request_raw.get("retry", {}) or {}
        timeout_ms = int(request_raw.get("timeout_ms", Defaults.REQUEST_TIMEOUT_MS))
        cls._validate_positive("request.timeout_ms", timeout_ms)

        max_retries = int(retry_raw.get("max_retries", Defaults.RETRY_MAX_RETRIES))
        base_delay_ms = int(retry_raw.get("base_delay_ms", Defaults.RETRY_BASE_DELAY_MS))
        max_delay_ms = int(retry_raw.get("max_delay_ms", Defaults.RETRY_MAX_DELAY_MS))
        backoff_factor = float(retry_raw.get("backoff_factor", Defaults.RETRY_BACKOFF_FACTOR))
        cls._validate_non_negative("request.retry.max_retries", max_retries)
        cls._validate_non_negative("request.retry.base_delay_ms", base_delay_ms)
        try:
            retry = RetryPolicy(
                max_retries=max_retries,
                base_delay_ms=base_delay_ms,
                max_delay_ms=max_delay_ms,
                backoff_factor=backoff_factor,
            )
        except ValueError as e:
            raise ConfigValidationError(f"request.retry: {e}") from e
        request = RequestConfig(timeout_ms=timeout_ms, retry=retry)

        # ─────────────────────────────────────────────────────────────────────
        # Text limits
        # ─────────────────────────────────────────────────────────────────────
        text = cls.text_limits_from_settings(settings)

        # ─────────────────────────────────────────────────────────────────────
        # Analytics
        # ─────────────────────────────────────────────────────────────────────
        analytics_raw = raw.get("analytics", {}) or {}
        analytics = AnalyticsConfig(
            timeout_ms=int(analytics_raw.get("timeout_ms", Defaults.ANALYTICS_TIMEOUT_MS)),
            max_errors=int(analytics_raw.get("max_errors", Defaults.ANALYTICS_MAX_ERRORS)),
            retention_days=int(analytics_raw.get("retention_days", Defaults.ANALYTICS_RETENTION_DAYS)),
        )
        cls._validate_positive("analytics.timeout_ms", analytics.timeout_ms)
        cls._validate_positive("analytics.max_errors", analytics.max_errors)
        cls._validate_positive("analytics.retention_days", analytics.retention_days)

        # ─────────────────────────────────────────────────────────────────────
        # Logging
        # ─────────────────────────────────────────────────────────────────────
        from narration_ms.core.logging.levels import coerce_level

        logging_raw = raw.get("logging", {}) or {}
        logging_cfg = LoggingConfig(
            level=int(coerce_level(logging_raw.get("level", Defaults.LOGGING_LEVEL))),
            text_preview_chars=int(logging_raw.get("text_preview_chars", Defaults.LOGGING_TEXT_PREVIEW_CHARS)),
        )
        cls._validate_non_negative("logging.text_preview_chars", logging_cfg.text_preview_chars)

        return cls(
            provider=provider,
            request=request,
            text=text,
            analytics=analytics,
            logging=logging_cfg,
        )

    @classmethod
    def text_limits_from_settings(cls, settings: "Settings") -> TextLimitsConfig:
        """
        Read only the text limits.

        Used where validation runs without a provider (CLI dry runs), so no
        API key is required.
        """
        text_raw = settings.raw.get("text", {}) or {}
        text = TextLimitsConfig(
            max_length=int(text_raw.get("max_length", Defaults.TEXT_MAX_LENGTH)),
            warning_length=int(text_raw.get("warning_length", Defaults.TEXT_WARNING_LENGTH)),
        )
        cls._validate_positive("text.max_length", text.max_length)
        cls._validate_non_negative("text.warning_length", text.warning_length)
        return text

    @staticmethod
    def _validate_positive(name: str, value: int | float) -> None:
        if value <= 0:
            raise ConfigValidationError(f"{name} must be positive, got {value}")

    @staticmethod
    def _validate_non_negative(name: str, value: int | float) -> None:
        if value < 0:
            raise ConfigValidationError(f"{name} must be non-negative, got {value}")

    @staticmethod
    def _validate_not_empty(name: str, value: str) -> None:
        if not value.strip():
            raise ConfigValidationError(f"{name} must not be empty")


@dataclass(frozen=True)
class Settings:
    """
    Immutable settings container loaded from YAML.

    This is the raw settings object before validation. Use
    get_service_config() to get a validated NarrationServiceConfig.
    """
    raw: Dict[str, Any]

    @property
    def api_key(self) -> Optional[str]:
        """Provider API key; the environment wins over the settings file."""
        env_key = os.getenv(Defaults.PROVIDER_API_KEY_ENV)
        if env_key:
            return env_key
        value = (self.raw.get("provider", {}) or {}).get("api_key")
        return str(value) if value else None

    @property
    def default_voice_id(self) -> str:
        return (self.raw.get("provider", {}) or {}).get("default_voice_id", Defaults.PROVIDER_DEFAULT_VOICE_ID)

    @property
    def default_model_id(self) -> str:
        return (self.raw.get("provider", {}) or {}).get("default_model_id", Defaults.PROVIDER_DEFAULT_MODEL_ID)

    def get_service_config(self) -> NarrationServiceConfig:
        """
        Raises:
            MissingSecretError: If no API key is configured.
            ConfigValidationError: If validation fails.
        """
        return NarrationServiceConfig.from_settings(self)


def load_settings(path: Optional[str] = None) -> Settings:
    """
    Load settings from a YAML configuration file.

    The path defaults to ``NARRATION_MS_SETTINGS`` or
    ``config/settings.yaml``.

    Raises:
        FileNotFoundError: If the settings file doesn't exist.
    """
    p = Path(path or os.getenv("NARRATION_MS_SETTINGS", DEFAULT_SETTINGS_PATH))
    if not p.exists():
        raise FileNotFoundError(f"settings file not found: {p.resolve()}")

    with p.open("r", encoding="utf-8") as f:
        raw: Dict[str, Any] = yaml.safe_load(f) or {}

    return Settings(raw=raw)


def load_settings_or_defaults(path: Optional[str] = None) -> Settings:
    """Like load_settings(), but a missing file yields built-in defaults."""
    try:
        return load_settings(path)
    except FileNotFoundError:
        return Settings(raw={})

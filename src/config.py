"""
Centralized configuration with environment variable overrides.

Business name, webhook endpoints, conversation timeouts and feature
switches are configurable here. Nothing is hardcoded in engine or
gateway logic.
"""

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

from src.logging_context import ConversationIdFilter

load_dotenv()

logger = logging.getLogger(__name__)

CATALOG_SOURCES = ("static", "dynamic")


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


def _safe_float(env_var: str, default: str) -> float:
    """Parse a float from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return float(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid float for {env_var}: {raw!r}"
        ) from None


def _safe_bool(env_var: str, default: str) -> bool:
    """Parse a boolean flag (true/false, 1/0, yes/no) from an env var."""
    raw = os.getenv(env_var, default).strip().lower()
    if raw in ("1", "true", "yes", "on"):
        return True
    if raw in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"Invalid boolean for {env_var}: {raw!r}")


@dataclass(frozen=True)
class BusinessConfig:
    """Business-specific settings loaded from environment or defaults."""

    name: str = os.getenv("BUSINESS_NAME", "Peluquería Estilo")
    fallback_phone: str = os.getenv("BUSINESS_PHONE", "el teléfono de la peluquería")


@dataclass(frozen=True)
class WebhookConfig:
    """External scheduler and document Q&A endpoints."""

    availability_url: str = os.getenv("WEBHOOK_AVAILABILITY_URL", "")
    booking_url: str = os.getenv("WEBHOOK_BOOKING_URL", "")
    qa_url: str = os.getenv("WEBHOOK_QA_URL", "")
    request_timeout_sec: float = _safe_float("WEBHOOK_TIMEOUT", "20.0")
    availability_attempts: int = _safe_int("AVAILABILITY_ATTEMPTS", "2")


@dataclass(frozen=True)
class ConversationConfig:
    """Dialogue behaviour switches and store lifecycle thresholds."""

    catalog_source: str = os.getenv("CATALOG_SOURCE", "static").lower()
    contact_from_sender: bool = _safe_bool("CONTACT_FROM_SENDER", "true")
    intent_fusion: bool = _safe_bool("INTENT_FUSION", "false")
    transcript_window: int = _safe_int("TRANSCRIPT_WINDOW", "10")
    idle_timeout_sec: float = _safe_float("IDLE_TIMEOUT", "3600")
    sweep_interval_sec: float = _safe_float("SWEEP_INTERVAL", "3600")
    max_classifier_errors: int = _safe_int("MAX_CLASSIFIER_ERRORS", "3")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    business: BusinessConfig = field(default_factory=BusinessConfig)
    webhooks: WebhookConfig = field(default_factory=WebhookConfig)
    conversation: ConversationConfig = field(default_factory=ConversationConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    if config.conversation.catalog_source not in CATALOG_SOURCES:
        raise ValueError(
            f"CATALOG_SOURCE must be one of {CATALOG_SOURCES}, "
            f"got {config.conversation.catalog_source!r}"
        )
    if config.webhooks.request_timeout_sec <= 0:
        raise ValueError(
            f"WEBHOOK_TIMEOUT must be > 0, got {config.webhooks.request_timeout_sec}"
        )
    if config.webhooks.availability_attempts < 1:
        raise ValueError(
            f"AVAILABILITY_ATTEMPTS must be >= 1, got {config.webhooks.availability_attempts}"
        )
    if config.conversation.transcript_window < 1:
        raise ValueError(
            f"TRANSCRIPT_WINDOW must be >= 1, got {config.conversation.transcript_window}"
        )
    if config.conversation.idle_timeout_sec <= 0:
        raise ValueError(
            f"IDLE_TIMEOUT must be > 0, got {config.conversation.idle_timeout_sec}"
        )
    if config.conversation.sweep_interval_sec <= 0:
        raise ValueError(
            f"SWEEP_INTERVAL must be > 0, got {config.conversation.sweep_interval_sec}"
        )
    if config.conversation.max_classifier_errors < 1:
        raise ValueError(
            "MAX_CLASSIFIER_ERRORS must be >= 1, "
            f"got {config.conversation.max_classifier_errors}"
        )


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] [%(conversation_id)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, ConversationIdFilter) for f in handler.filters):
            handler.addFilter(ConversationIdFilter())
    logger.info("Configuration loaded for '%s'", config.business.name)
    return config


# Singleton instance
settings = load_config()

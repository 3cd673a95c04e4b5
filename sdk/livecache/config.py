"""
Configuration management for LiveCache.

All configuration is done via environment variables prefixed with
LIVECACHE_. This module provides typed configuration classes with
validation.

Invariants:
    - All settings have sensible defaults for typical operator-log volumes
    - Invalid values raise ConfigurationError, never fall back silently

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Document every new variable in the class docstring
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

from .errors import ConfigurationError
from .streaming.eviction import EvictionPolicy

logger = logging.getLogger(__name__)

DEFAULT_MAX_STREAMING_ENTRIES = 500
DEFAULT_STREAMING_TTL_MS = 5 * 60 * 1000


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got '{raw}'", name)


@dataclass(frozen=True)
class StreamingConfig:
    """Streaming accumulator bounds.

    Attributes:
        max_streaming_entries: Maximum resident streaming buffers
            (LIVECACHE_MAX_STREAMING_ENTRIES)
        streaming_ttl_ms: Buffer lifetime from creation in milliseconds
            (LIVECACHE_STREAMING_TTL_MS)
    """

    max_streaming_entries: int = DEFAULT_MAX_STREAMING_ENTRIES
    streaming_ttl_ms: int = DEFAULT_STREAMING_TTL_MS

    @classmethod
    def from_env(cls) -> StreamingConfig:
        """Load configuration from environment variables."""
        return cls(
            max_streaming_entries=_int_env(
                "LIVECACHE_MAX_STREAMING_ENTRIES", DEFAULT_MAX_STREAMING_ENTRIES
            ),
            streaming_ttl_ms=_int_env("LIVECACHE_STREAMING_TTL_MS", DEFAULT_STREAMING_TTL_MS),
        )

    def eviction_policy(self) -> EvictionPolicy:
        """Build the eviction policy these bounds describe."""
        return EvictionPolicy.from_millis(self.max_streaming_entries, self.streaming_ttl_ms)


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LIVECACHE_LOG_LEVEL", "INFO"),
            log_format=os.getenv("LIVECACHE_LOG_FORMAT", "json"),
        )


@dataclass
class EngineConfig:
    """Complete engine configuration.

    Attributes:
        streaming: Streaming accumulator bounds
        observability: Logging configuration
        sweep_interval_seconds: How often the feed consumer sweeps expired
            streaming buffers (LIVECACHE_SWEEP_INTERVAL_SECONDS, 0 disables)
    """

    streaming: StreamingConfig = field(default_factory=StreamingConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)
    sweep_interval_seconds: int = 30

    @classmethod
    def from_env(cls) -> EngineConfig:
        """Load complete configuration from environment variables.

        Raises:
            ConfigurationError: If configuration is invalid.
        """
        config = cls(
            streaming=StreamingConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
            sweep_interval_seconds=_int_env("LIVECACHE_SWEEP_INTERVAL_SECONDS", 30),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ConfigurationError: If configuration is invalid.
        """
        if self.streaming.max_streaming_entries < 1:
            raise ConfigurationError(
                "LIVECACHE_MAX_STREAMING_ENTRIES must be at least 1",
                "max_streaming_entries",
            )
        if self.streaming.streaming_ttl_ms <= 0:
            raise ConfigurationError(
                "LIVECACHE_STREAMING_TTL_MS must be positive", "streaming_ttl_ms"
            )
        if self.sweep_interval_seconds < 0:
            raise ConfigurationError(
                "LIVECACHE_SWEEP_INTERVAL_SECONDS must not be negative",
                "sweep_interval_seconds",
            )
        if self.observability.log_format not in ("json", "text"):
            raise ConfigurationError(
                f"LIVECACHE_LOG_FORMAT must be json or text, got "
                f"'{self.observability.log_format}'",
                "log_format",
            )

    def log_config(self) -> None:
        """Log configuration."""
        logger.info(
            "Engine configuration loaded",
            extra={
                "max_streaming_entries": self.streaming.max_streaming_entries,
                "streaming_ttl_ms": self.streaming.streaming_ttl_ms,
                "sweep_interval_seconds": self.sweep_interval_seconds,
                "log_level": self.observability.log_level,
            },
        )

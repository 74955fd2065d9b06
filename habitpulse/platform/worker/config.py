"""Dispatcher knobs, read from ``OUTBOX_*`` settings."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Any, Mapping

# Setting name -> (field, parser)
_SETTINGS = {
    "OUTBOX_BATCH_SIZE": ("batch_size", int),
    "OUTBOX_POLL_INTERVAL": ("poll_interval", float),
    "OUTBOX_MAX_ATTEMPTS": ("max_attempts", int),
    "OUTBOX_BACKOFF_SECONDS": ("backoff_seconds", float),
    "OUTBOX_BACKOFF_MULTIPLIER": ("backoff_multiplier", float),
}


@dataclass(frozen=True)
class DispatchConfig:
    batch_size: int = 50
    poll_interval: float = 5.0
    # A coach outage longer than the whole backoff ladder marks the row failed.
    max_attempts: int = 5
    backoff_seconds: float = 5.0
    backoff_multiplier: float = 2.0

    def __post_init__(self) -> None:
        if self.batch_size < 1 or self.max_attempts < 1:
            raise ValueError("batch_size and max_attempts must be positive")
        if self.poll_interval < 0 or self.backoff_seconds < 0 or self.backoff_multiplier < 1:
            raise ValueError("invalid outbox backoff settings")

    @classmethod
    def from_mapping(cls, source: Mapping[str, Any]) -> "DispatchConfig":
        """Build from any settings mapping; missing keys keep their defaults."""
        values = {
            name: parse(source[key])
            for key, (name, parse) in _SETTINGS.items()
            if source.get(key) not in (None, "")
        }
        return cls(**values)

    @classmethod
    def from_app_config(cls, app_config: Mapping[str, Any]) -> "DispatchConfig":
        """App config first, process environment on top."""
        merged = {key: app_config.get(key) for key in _SETTINGS}
        merged.update({key: os.environ[key] for key in _SETTINGS if key in os.environ})
        return cls.from_mapping(merged)

    @classmethod
    def from_env(cls) -> "DispatchConfig":
        return cls.from_mapping(os.environ)

    def with_batch_size(self, batch_size: int) -> "DispatchConfig":
        return replace(self, batch_size=batch_size)

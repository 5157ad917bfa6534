"""
Exception types.

Only programmer and configuration errors are raised. Malformed input and
failed generations are reported as data (ValidationResult, RepairOutcome).
"""
from __future__ import annotations
from typing import Optional


class LegacyModernizerError(Exception):
    """Base class for errors raised by this package."""


class ConfigError(LegacyModernizerError, ValueError):
    """Invalid configuration file or value."""


class ChunkingConfigError(ConfigError):
    """Chunk limits that cannot produce a terminating window."""


class GenerationError(LegacyModernizerError):
    """A call to the text-generation service failed.

    ``kind`` is a hint for failure classification ("rate_limit",
    "network_failure", ...) when the adapter can tell.
    """

    def __init__(self, message: str, kind: Optional[str] = None):
        super().__init__(message)
        self.kind = kind


class StrategyError(LegacyModernizerError):
    """No repair strategy is registered for a requested kind."""

"""
Error types for LiveCache.

This module defines all exception types raised by the engine:
- LiveCacheError: Base exception
- ContractViolationError: A collaborator called the engine incorrectly
- MalformedEventError: An inbound event failed validation
- ConfigurationError: Invalid configuration values

Invariants:
    - All errors inherit from LiveCacheError
    - Errors include context for debugging
    - MalformedEventError is reported to the error sink, never raised out of route()
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class LiveCacheError(Exception):
    """Base exception for all LiveCache errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "LIVECACHE_ERROR"
        self.details = details or {}


class ContractViolationError(LiveCacheError):
    """The engine was called in a way that breaks its contract.

    Raised when:
    - write() or delete() is called without a type or id
    - A list is linked with an unknown merge policy

    These indicate a bug in the calling code, not a data anomaly.
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="CONTRACT_VIOLATION",
            details={"operation": operation},
        )
        self.operation = operation


class MalformedEventError(LiveCacheError):
    """An inbound change event could not be validated.

    Raised when:
    - id or type is missing or empty
    - kind is not one of the known event kinds
    - fields is not a mapping
    """

    def __init__(
        self,
        message: str,
        errors: Optional[List[str]] = None,
        event_kind: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="MALFORMED_EVENT",
            details={"errors": errors or [], "kind": event_kind},
        )
        self.errors = errors or []
        self.event_kind = event_kind


class ConfigurationError(LiveCacheError):
    """Configuration value is missing or out of range."""

    def __init__(
        self,
        message: str,
        setting: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="CONFIGURATION_ERROR",
            details={"setting": setting},
        )
        self.setting = setting

"""
Custom Exception Classes for Backlog Sync
==========================================

This module provides a hierarchy of custom exceptions that preserve context
through the error chain. All exceptions support:

1. Error chaining with `raise ... from e`
2. HTTP status code mapping for API responses
3. Error classification for logging
4. Original context preservation

The synchronization engine raises these at its operation boundary; the
webhook dispatcher catches the whole family and logs it, so a failed
remote call never makes Trello retry the webhook forever.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCategory(str, Enum):
    """Categories for error classification."""
    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    EXTERNAL_SERVICE = "external_service"
    CONFIGURATION = "configuration"
    INTERNAL = "internal"


# =============================================================================
# Base Exception
# =============================================================================

class BacklogSyncError(Exception):
    """
    Base exception class for all backlog sync errors.

    Provides:
    - HTTP status code for API responses
    - Error category for logging
    - Context dictionary for debugging
    - Proper error chaining support

    Usage:
        try:
            # some operation
        except SomeError as e:
            raise BacklogSyncError(
                message="Failed to process",
                status_code=500,
                category=ErrorCategory.INTERNAL,
                context={"operation": "process"},
            ) from e
    """

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        category: ErrorCategory = ErrorCategory.INTERNAL,
        context: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.category = category
        self.context = context or {}
        self.original_error = original_error

        # Build full message with context
        full_message = message
        if context:
            context_str = ", ".join(f"{k}={v}" for k, v in context.items())
            full_message = f"{message} [{context_str}]"

        super().__init__(full_message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        result = {
            "error": self.message,
            "category": self.category.value,
            "status_code": self.status_code,
        }
        if self.context:
            result["context"] = self.context
        if self.original_error:
            result["original_error"] = str(self.original_error)
        return result


# =============================================================================
# Not-Found Errors
# =============================================================================

class NotFoundError(BacklogSyncError):
    """Raised when a board entity cannot be located (404)."""

    def __init__(
        self,
        message: str = "Entity not found",
        entity: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None,
    ):
        ctx = context or {}
        if entity:
            ctx["entity"] = entity

        super().__init__(
            message=message,
            status_code=404,
            category=ErrorCategory.NOT_FOUND,
            context=ctx,
            original_error=original_error,
        )


class ListNotFoundError(NotFoundError):
    """Raised when one or more named lists are missing from a board."""

    def __init__(
        self,
        board_id: str,
        list_names: list,
        original_error: Optional[Exception] = None,
    ):
        names = ", ".join(f"'{n}'" for n in list_names)
        super().__init__(
            message=f"List not found on board: {names}",
            entity="list",
            context={"board_id": board_id, "list_names": list_names},
            original_error=original_error,
        )
        self.list_names = list_names


class CardNotFoundError(NotFoundError):
    """Raised when a card id does not resolve to a card."""

    def __init__(
        self,
        card_id: str,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            message=f"Card not found: {card_id}",
            entity="card",
            context={"card_id": card_id},
            original_error=original_error,
        )


class LinkNotFoundError(NotFoundError):
    """Raised when a proxy card carries no Link Record, or its link is dangling."""

    def __init__(
        self,
        card_id: str,
        reason: str = "Card has no link record",
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            message=reason,
            entity="link",
            context={"card_id": card_id},
            original_error=original_error,
        )


# =============================================================================
# Validation Errors
# =============================================================================

class LinkRecordDecodeError(BacklogSyncError):
    """Raised when a sentinel block is present but its payload is unreadable."""

    def __init__(
        self,
        message: str = "Malformed link record",
        payload: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        ctx = {}
        if payload is not None:
            ctx["payload"] = payload[:80]

        super().__init__(
            message=message,
            status_code=422,
            category=ErrorCategory.VALIDATION,
            context=ctx,
            original_error=original_error,
        )


# =============================================================================
# External Service Errors
# =============================================================================

class ExternalServiceError(BacklogSyncError):
    """Raised when an external service call fails."""

    def __init__(
        self,
        service: str,
        message: str = "External service call failed",
        http_status: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None,
    ):
        ctx = context or {}
        ctx["service"] = service
        if http_status:
            ctx["http_status"] = http_status

        super().__init__(
            message=f"{service}: {message}",
            status_code=502,  # Bad Gateway
            category=ErrorCategory.EXTERNAL_SERVICE,
            context=ctx,
            original_error=original_error,
        )
        self.http_status = http_status


class TrelloAPIError(ExternalServiceError):
    """Raised when Trello API calls fail."""

    def __init__(
        self,
        message: str = "Trello API call failed",
        http_status: Optional[int] = None,
        method: Optional[str] = None,
        path: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None,
    ):
        ctx = context or {}
        if method:
            ctx["method"] = method
        if path:
            ctx["path"] = path

        super().__init__(
            service="Trello",
            message=message,
            http_status=http_status,
            context=ctx,
            original_error=original_error,
        )


# =============================================================================
# Configuration Errors
# =============================================================================

class ConfigurationError(BacklogSyncError):
    """Raised when configuration is missing or invalid."""

    def __init__(
        self,
        message: str = "Configuration error",
        config_key: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None,
    ):
        ctx = context or {}
        if config_key:
            ctx["config_key"] = config_key

        super().__init__(
            message=message,
            status_code=500,
            category=ErrorCategory.CONFIGURATION,
            context=ctx,
            original_error=original_error,
        )


class MissingCredentialsError(ConfigurationError):
    """Raised when required credentials are missing."""

    def __init__(
        self,
        service: str,
        required_keys: Optional[list] = None,
        original_error: Optional[Exception] = None,
    ):
        context = {"service": service}
        if required_keys:
            context["required_keys"] = required_keys

        super().__init__(
            message=f"Missing credentials for {service}",
            context=context,
            original_error=original_error,
        )



"""
Standardized exception hierarchy for simp-tracker
Provides rich context, consistent logging, and user-friendly error messages
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any
from uuid import uuid4
import logging

import psycopg

logger = logging.getLogger(__name__)


class SimpTrackerError(Exception):
    """
    Base exception for all simp-tracker errors

    Provides:
    - Automatic timestamping
    - Request ID for tracing
    - User-friendly messages
    - Structured context
    - Automatic logging

    Example:
        raise SimpTrackerError(
            message="Failed to award XP",
            user_id="user-1",
            operation="award_xp",
            context={"source": "partner_added"}
        )
    """

    log_level = logging.ERROR

    def __init__(
        self,
        message: str,
        user_id: Optional[str] = None,
        request_id: Optional[str] = None,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        user_message: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.user_id = user_id
        self.request_id = request_id or str(uuid4())
        self.operation = operation
        self.context = context or {}
        self.cause = cause
        self.user_message = user_message or "Something went wrong. Please try again."
        self.timestamp = datetime.now(timezone.utc)

        # Auto-log on creation
        self._log_error()

    def _log_error(self) -> None:
        """Log error with full context"""
        log_data = {
            "error_type": self.__class__.__name__,
            "error_message": self.message,
            "request_id": self.request_id,
            "user_id": self.user_id,
            "operation": self.operation,
            "error_context": self.context,
            "timestamp": self.timestamp.isoformat()
        }

        if self.cause:
            log_data["cause"] = str(self.cause)
            logger.log(self.log_level, f"{self.__class__.__name__}: {self.message}", extra=log_data, exc_info=self.cause)
        else:
            logger.log(self.log_level, f"{self.__class__.__name__}: {self.message}", extra=log_data)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for API responses"""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "user_message": self.user_message,
            "request_id": self.request_id,
            "timestamp": self.timestamp.isoformat()
        }


# ==========================================
# Validation Errors (User Input)
# ==========================================

class ValidationError(SimpTrackerError):
    """
    Raised when input fails validation, before anything is written

    Examples:
    - Non-positive XP amount
    - Out-of-order streak date
    - Malformed relationship attributes
    """

    log_level = logging.WARNING

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        **kwargs
    ):
        self.field = field
        self.value = value
        super().__init__(
            message=message,
            user_message=f"Invalid {field}: {message}" if field else message,
            context={"field": field, "value": value},
            **kwargs
        )


# ==========================================
# Store Errors
# ==========================================

class NotFoundError(SimpTrackerError):
    """Requested user or relationship does not exist"""

    log_level = logging.WARNING

    def __init__(
        self,
        message: str,
        record_type: Optional[str] = None,
        record_id: Optional[str] = None,
        **kwargs
    ):
        self.record_type = record_type
        self.record_id = record_id
        super().__init__(
            message=message,
            user_message=f"{record_type or 'Record'} not found.",
            context={"record_type": record_type, "record_id": record_id},
            **kwargs
        )


class ConflictError(SimpTrackerError):
    """Concurrent write collided at the store boundary"""

    log_level = logging.WARNING

    def __init__(self, message: str = "Concurrent update conflict", **kwargs):
        super().__init__(
            message=message,
            user_message="Your progress changed while saving. Please try again.",
            **kwargs
        )


class StoreError(SimpTrackerError):
    """Collaborator store I/O failed"""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message=message,
            user_message="We encountered an issue saving your progress. Please try again.",
            **kwargs
        )


# ==========================================
# Configuration Errors
# ==========================================

class ConfigurationError(SimpTrackerError):
    """System configuration is invalid or missing"""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        **kwargs
    ):
        self.config_key = config_key
        super().__init__(
            message=message,
            user_message="The system is not properly configured. Please contact support.",
            context={"config_key": config_key},
            **kwargs
        )


# ==========================================
# Helper Functions
# ==========================================

CONFLICT_ERRORS = (
    psycopg.errors.SerializationFailure,
    psycopg.errors.DeadlockDetected,
    psycopg.errors.UniqueViolation,
    psycopg.errors.LockNotAvailable,
)


def wrap_store_exception(
    error: Exception,
    operation: str,
    user_id: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None
) -> SimpTrackerError:
    """
    Wrap psycopg exceptions into our exception hierarchy

    Args:
        error: Original exception
        operation: What operation was being performed
        user_id: User ID if applicable
        context: Additional context

    Returns:
        ConflictError for write collisions, StoreError otherwise

    Example:
        try:
            await cur.execute(query)
        except psycopg.Error as e:
            raise wrap_store_exception(e, operation="append_transaction", user_id="user-1")
    """
    if isinstance(error, SimpTrackerError):
        return error

    if isinstance(error, CONFLICT_ERRORS):
        return ConflictError(
            message=f"{operation} conflicted with a concurrent write: {error}",
            user_id=user_id,
            operation=operation,
            context=context,
            cause=error
        )

    if isinstance(error, psycopg.OperationalError):
        return StoreError(
            message=f"Database connection failed during {operation}: {error}",
            user_id=user_id,
            operation=operation,
            context=context,
            cause=error
        )

    return StoreError(
        message=f"{operation} failed: {error}",
        user_id=user_id,
        operation=operation,
        context=context,
        cause=error
    )

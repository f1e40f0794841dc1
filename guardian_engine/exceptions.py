"""
Standardized exception hierarchy for guardian-engine
Provides rich context, consistent logging, and user-friendly error messages

Expected negative outcomes (an unlock whose preconditions are not met, an
investment clamped to the spendable balance) are returned as result objects,
not raised. Exceptions here cover invalid input, storage failures and broken
configuration.
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any
from uuid import uuid4
import logging

logger = logging.getLogger(__name__)


class GuardianEngineError(Exception):
    """
    Base exception for all guardian-engine errors

    Provides:
    - Automatic timestamping
    - Request ID for tracing
    - User-friendly messages
    - Structured context
    - Automatic logging

    Example:
        raise GuardianEngineError(
            message="Failed to save guardian profile",
            user_id="user-123",
            operation="process_report",
            context={"date": "2025-01-08"}
        )
    """

    log_level: int = logging.ERROR

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
        self.user_message = user_message or "An error occurred. Please try again."
        self.timestamp = datetime.now(timezone.utc)

        # Auto-log on creation
        self._log_error()

    def _log_error(self) -> None:
        """Log error with full context"""
        log_data = {
            "error_type": self.__class__.__name__,
            "error_message": self.message,  # 'message' is reserved by logging
            "request_id": self.request_id,
            "user_id": self.user_id,
            "operation": self.operation,
            "error_context": self.context,
            "timestamp": self.timestamp.isoformat()
        }

        if self.cause:
            log_data["cause"] = str(self.cause)
            logger.log(
                self.log_level,
                f"{self.__class__.__name__}: {self.message}",
                extra=log_data,
                exc_info=self.cause
            )
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
# Validation Errors (Caller Input)
# ==========================================

class ValidationError(GuardianEngineError):
    """
    Raised when caller input fails validation

    Examples:
    - Malformed report date
    - Negative investment amount
    - Report dated before the last recorded report

    Example:
        raise ValidationError(
            message="Amount must not be negative",
            field="amount",
            value=-5,
            user_id="user-123"
        )
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
        kwargs.setdefault("user_message", f"Invalid {field}: {message}" if field else message)
        context = {"field": field, "value": value}
        context.update(kwargs.pop("context", None) or {})
        super().__init__(
            message=message,
            context=context,
            **kwargs
        )


class UnknownGuardianError(ValidationError):
    """Guardian id is not part of the catalog"""

    def __init__(self, guardian_id: Any, **kwargs):
        self.guardian_id = guardian_id
        super().__init__(
            message=f"Unknown guardian: {guardian_id}",
            field="guardian_id",
            value=guardian_id,
            user_message="That guardian does not exist.",
            **kwargs
        )


class GuardianNotUnlockedError(ValidationError):
    """Operation targets a guardian the user has not unlocked"""

    def __init__(self, guardian_id: str, **kwargs):
        self.guardian_id = guardian_id
        super().__init__(
            message=f"Guardian {guardian_id} is not unlocked",
            field="guardian_id",
            value=guardian_id,
            user_message="Unlock this guardian first.",
            **kwargs
        )


# ==========================================
# Database Errors
# ==========================================

class DatabaseError(GuardianEngineError):
    """
    Base class for storage-related errors
    """

    retryable: bool = False


class ConnectionError(DatabaseError):
    """Database connection failed"""

    retryable = True

    def __init__(self, message: str = "Database connection failed", **kwargs):
        super().__init__(
            message=message,
            user_message="We're having trouble connecting to the database. Please try again in a moment.",
            **kwargs
        )


class QueryError(DatabaseError):
    """Database query execution failed"""

    def __init__(
        self,
        message: str,
        query: Optional[str] = None,
        **kwargs
    ):
        self.query = query
        super().__init__(
            message=message,
            user_message="We encountered an issue saving your data. Please try again.",
            context={"query": query, **(kwargs.pop("context", None) or {})},
            **kwargs
        )


class RecordNotFoundError(DatabaseError):
    """Requested record does not exist"""

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
            context={
                "record_type": record_type,
                "record_id": record_id,
                **(kwargs.pop("context", None) or {}),
            },
            **kwargs
        )


class StorageConflictError(DatabaseError):
    """
    Concurrent write to the same user profile

    The engine never retries. Callers re-invoke the operation, which then
    reads the freshest profile state.
    """

    retryable = True
    log_level = logging.WARNING

    def __init__(
        self,
        message: str = "Concurrent update of user profile",
        **kwargs
    ):
        super().__init__(
            message=message,
            user_message="Your data changed while we were saving it. Please try again.",
            **kwargs
        )


# ==========================================
# Configuration Errors
# ==========================================

class ConfigurationError(GuardianEngineError):
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
            context={"config_key": config_key, **(kwargs.pop("context", None) or {})},
            **kwargs
        )


class CatalogError(ConfigurationError):
    """Static guardian catalog or tuning table breaks an ordering invariant"""
    pass


# ==========================================
# Helper Functions
# ==========================================

def wrap_external_exception(
    error: Exception,
    operation: str,
    user_id: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None
) -> GuardianEngineError:
    """
    Wrap external exceptions (psycopg, etc.) into our exception hierarchy

    Args:
        error: Original exception
        operation: What operation was being performed
        user_id: User ID if applicable
        context: Additional context

    Returns:
        Appropriate GuardianEngineError subclass

    Example:
        try:
            await cur.execute(query)
        except psycopg.Error as e:
            raise wrap_external_exception(
                e,
                operation="save_profile",
                user_id="user-123",
                context={"query": query}
            )
    """
    import psycopg
    from psycopg import errors as pg_errors

    if isinstance(error, GuardianEngineError):
        return error

    # Lost races between two writers of the same profile
    if isinstance(error, (
        pg_errors.SerializationFailure,
        pg_errors.DeadlockDetected,
        pg_errors.LockNotAvailable,
        pg_errors.UniqueViolation,
    )):
        return StorageConflictError(
            message=f"Concurrent update detected: {str(error)}",
            user_id=user_id,
            operation=operation,
            context=context,
            cause=error
        )
    elif isinstance(error, psycopg.OperationalError):
        return ConnectionError(
            message=f"Database connection failed: {str(error)}",
            user_id=user_id,
            operation=operation,
            context=context,
            cause=error
        )
    elif isinstance(error, psycopg.Error):
        return QueryError(
            message=f"Database query failed: {str(error)}",
            user_id=user_id,
            operation=operation,
            context=context,
            cause=error
        )

    # Generic fallback
    return GuardianEngineError(
        message=f"{operation} failed: {str(error)}",
        user_id=user_id,
        operation=operation,
        context=context,
        cause=error
    )

"""
Broker error hierarchy.

Every broker error carries an ErrorCode, the HTTP status it maps to, a
generated error id, the correlation id active when it was raised and
free-form context. Errors log themselves when constructed, so raising one is
enough to get it on record.
"""

import traceback
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

# Follows asyncio tasks and is copied into worker-pool threads
_correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

# Bookkeeping keys kept out of the caller-facing context
_INTERNAL_KEYS = frozenset({"cause", "error_id", "correlation_id"})


class ErrorCode(str, Enum):
    """Error codes reported with every broker error, grouped by leading digit."""

    # 1xxx: the broker and its infrastructure
    INTERNAL_ERROR = "1000"
    DATABASE_ERROR = "1001"
    CONFIGURATION_ERROR = "1003"

    # 2xxx: rejected input
    VALIDATION_FAILED = "2000"
    INVALID_FORMAT = "2001"
    MISSING_REQUIRED = "2002"

    # 3xxx: state of stored bindings
    NOT_FOUND = "3000"
    CONSTRAINT_VIOLATION = "3002"

    # 5xxx: collaborators outside the broker
    EXTERNAL_API_ERROR = "5002"


def _describe_cause(cause: BaseException) -> Dict[str, Any]:
    return {
        "type": type(cause).__name__,
        "message": str(cause),
        "traceback": traceback.format_exception(type(cause), cause, cause.__traceback__),
    }


class BrokerError(Exception):
    """
    Root of every error the broker raises.

    Args:
        message: Human-readable description
        error_code: Code reported to callers
        status_code: HTTP status the error maps to
        cause: Exception this error wraps, if any
        **context: Extra detail recorded with the error
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        cause: Optional[BaseException] = None,
        **context: Any,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.cause = cause
        self.error_id = str(uuid.uuid4())
        self.timestamp = datetime.now(timezone.utc).isoformat()

        self.context: Dict[str, Any] = {**context, "error_id": self.error_id}
        correlation_id = get_correlation_id()
        if correlation_id:
            self.context["correlation_id"] = correlation_id
        if cause is not None:
            self.context["cause"] = _describe_cause(cause)

        _log_error(self)

    @property
    def correlation_id(self) -> Optional[str]:
        return self.context.get("correlation_id")

    def public_context(self) -> Dict[str, Any]:
        """Context without the bookkeeping keys."""
        return {k: v for k, v in self.context.items() if k not in _INTERNAL_KEYS}

    def to_dict(
        self, include_cause: bool = False, include_traceback: bool = False
    ) -> Dict[str, Any]:
        """
        Render the error as a JSON-ready response body.

        The cause is left out unless include_cause is set; its traceback
        additionally needs include_traceback.
        """
        body: Dict[str, Any] = {
            "id": self.error_id,
            "code": self.error_code.value,
            "message": self.message,
            "timestamp": self.timestamp,
            "context": self.public_context(),
        }
        if self.correlation_id:
            body["correlation_id"] = self.correlation_id

        cause = self.context.get("cause")
        if include_cause and cause:
            body["cause"] = {"type": cause["type"], "message": cause["message"]}
            if include_traceback:
                body["cause"]["traceback"] = cause["traceback"]

        return {"error": body}

    def add_context(self, **kwargs: Any) -> "BrokerError":
        """Record more detail on the error and return it."""
        self.context.update(kwargs)
        return self

    @property
    def error_chain(self) -> List[BaseException]:
        """This error followed by its causes, outermost first."""
        chain: List[BaseException] = [self]
        current = self.cause
        while current is not None:
            chain.append(current)
            current = getattr(current, "cause", None)
        return chain


def _log_error(error: BrokerError) -> None:
    # Deferred import: utils.logger pulls in config
    from .utils.logger import get_logger

    log_data: Dict[str, Any] = {
        "error_id": error.error_id,
        "error_code": error.error_code.value,
        "status_code": error.status_code,
        "error_message": error.message,
        "context": {k: v for k, v in error.context.items() if k != "cause"},
    }
    if error.correlation_id:
        log_data["correlation_id"] = error.correlation_id

    logger = get_logger()
    if error.status_code >= 500:
        logger.error(
            f"Error {error.error_code.value}: {error.message}",
            extra=log_data,
            exc_info=error.cause,
        )
    elif error.status_code >= 400:
        logger.warning(f"Client error {error.error_code.value}: {error.message}", extra=log_data)
    else:
        logger.info(f"Error {error.error_code.value}: {error.message}", extra=log_data)


# ==================== LAYER ERRORS ====================


class RepositoryError(BrokerError):
    """Persistence layer failure."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.DATABASE_ERROR,
        cause: Optional[BaseException] = None,
        **context: Any,
    ):
        super().__init__(message, error_code, 500, cause, **context)


class ServiceError(BrokerError):
    """Service layer failure, optionally naming the operation that failed."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        operation: Optional[str] = None,
        cause: Optional[BaseException] = None,
        **context: Any,
    ):
        if operation:
            context["operation"] = operation
        super().__init__(message, error_code, 500, cause, **context)


class ValidationError(BrokerError):
    """Input rejected before any work was done."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        error_code: ErrorCode = ErrorCode.VALIDATION_FAILED,
        cause: Optional[BaseException] = None,
        **context: Any,
    ):
        if field:
            context["field"] = field
        super().__init__(message, error_code, 400, cause, **context)


class ExternalServiceError(BrokerError):
    """Failure of a collaborator outside the broker."""

    def __init__(
        self,
        message: str,
        service_name: str,
        error_code: ErrorCode = ErrorCode.EXTERNAL_API_ERROR,
        cause: Optional[BaseException] = None,
        **context: Any,
    ):
        context["service_name"] = service_name
        super().__init__(message, error_code, 502, cause, **context)


# ==================== BINDING ERRORS ====================


class BindingNotFoundError(BrokerError):
    """No binding record is stored for the binding id."""

    def __init__(self, binding_id: str, **context: Any):
        self.binding_id = binding_id
        super().__init__(
            f"Service binding does not exist: {binding_id}",
            error_code=ErrorCode.NOT_FOUND,
            status_code=404,
            binding_id=binding_id,
            **context,
        )


class StorageError(RepositoryError):
    """The binding store's persistence failed."""

    def __init__(self, message: str = "Binding storage failure", **kwargs: Any):
        kwargs.setdefault("error_code", ErrorCode.DATABASE_ERROR)
        super().__init__(message, **kwargs)


class IdentityIssuerError(ExternalServiceError):
    """Issuing or revoking a binding identity failed."""

    def __init__(self, message: str = "Identity issuer failure", **kwargs: Any):
        kwargs.setdefault("service_name", "identity_issuer")
        super().__init__(message, **kwargs)


def validation_failed(
    field: str, value: Any, reason: str, cause: Optional[BaseException] = None
) -> ValidationError:
    """Build the ValidationError for a field that failed a check."""
    return ValidationError(
        f"Validation failed for {field}: {reason}",
        field=field,
        cause=cause,
        value=str(value),
        reason=reason,
    )


# ==================== CORRELATION ID ====================


def set_correlation_id(correlation_id: str) -> None:
    """Set the correlation id of the current context."""
    _correlation_id.set(correlation_id)


def get_correlation_id() -> Optional[str]:
    """Correlation id of the current context, if any."""
    return _correlation_id.get()


def clear_correlation_id() -> None:
    """Clear the correlation id of the current context."""
    _correlation_id.set(None)

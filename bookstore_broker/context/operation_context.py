"""
Operation scoping for the binding lifecycle.

Every lifecycle call runs inside an operation: it gets an operation id, runs
under a correlation id (inherited from an enclosing operation or freshly
minted), logs ENTER/EXIT/ERROR lines, and stamps broker errors with where
they happened. Works for plain functions and coroutine functions alike.
"""

import inspect
import time
import uuid
from contextlib import contextmanager
from functools import wraps
from typing import Any, Callable, Dict, Iterator, Optional, TypeVar, Union, cast

from ..exceptions import BrokerError, _correlation_id, get_correlation_id
from ..utils.logger import ContextAwareLogger, get_logger


class OperationContext:
    """Identity, timing and context of one running operation."""

    def __init__(self, operation_name: str, correlation_id: Optional[str] = None, **context: Any):
        self.operation_name = operation_name
        self.operation_id = str(uuid.uuid4())
        self.started = time.perf_counter()

        # Nested operations share the outermost operation's correlation id
        inherited = get_correlation_id()
        self.correlation_id = correlation_id or inherited or str(uuid.uuid4())
        self._token = None
        if self.correlation_id != inherited:
            self._token = _correlation_id.set(self.correlation_id)

        self.context: Dict[str, Any] = {
            **context,
            "operation_id": self.operation_id,
            "correlation_id": self.correlation_id,
        }
        self.metrics: Dict[str, Union[int, float]] = {}

    @property
    def duration_ms(self) -> float:
        return (time.perf_counter() - self.started) * 1000

    def add_context(self, **kwargs: Any) -> None:
        self.context.update(kwargs)

    def add_metric(self, name: str, value: Union[int, float]) -> None:
        self.metrics[name] = value

    def log_fields(self, **extra: Any) -> Dict[str, Any]:
        """Fields attached to every log line of this operation."""
        return {**self.context, **extra, **self.metrics}

    def close(self) -> None:
        """Restore the correlation id that was active before this operation."""
        if self._token is not None:
            _correlation_id.reset(self._token)
            self._token = None


class OperationHandler:
    """Logs operation boundaries and enriches the errors raised inside them."""

    def __init__(self, logger: Optional[ContextAwareLogger] = None):
        self.logger = logger if logger is not None else get_logger()

    @contextmanager
    def operation(self, name: str, **context: Any) -> Iterator[OperationContext]:
        op_ctx = OperationContext(name, **context)
        self.logger.info(f"ENTER: {name}", extra=op_ctx.log_fields())

        try:
            yield op_ctx
        except BrokerError as e:
            # Already logged on construction; record where it surfaced
            e.add_context(
                operation_name=name,
                operation_id=op_ctx.operation_id,
                operation_duration_ms=op_ctx.duration_ms,
            )
            self.logger.error(
                f"ERROR: {name} -> {e.error_code.value}: {e.message}",
                extra=op_ctx.log_fields(
                    duration_ms=op_ctx.duration_ms,
                    error_id=e.error_id,
                    error_code=e.error_code.value,
                    status="error",
                ),
            )
            raise
        except Exception as e:
            self.logger.exception(
                f"ERROR: {name} -> {type(e).__name__}: {e}",
                extra=op_ctx.log_fields(
                    duration_ms=op_ctx.duration_ms,
                    error_type=type(e).__name__,
                    status="error",
                ),
            )
            raise
        else:
            self.logger.info(
                f"EXIT: {name}",
                extra=op_ctx.log_fields(duration_ms=op_ctx.duration_ms, status="success"),
            )
        finally:
            op_ctx.close()


F = TypeVar("F", bound=Callable[..., Any])


def _bound_class(func: Callable, args: tuple) -> Optional[str]:
    # First positional argument is self when func is a method
    if args and not inspect.isclass(args[0]) and hasattr(args[0], func.__name__):
        return args[0].__class__.__name__
    return None


def _describe(func: Callable, args: tuple, name: Optional[str]) -> tuple:
    owner = _bound_class(func, args)
    context: Dict[str, Any] = {"source_module": func.__module__}
    if owner:
        context["class"] = owner

    if name is None:
        qualified = f"{owner}.{func.__name__}" if owner else func.__name__
        name = f"{func.__module__.rsplit('.', 1)[-1]}.{qualified}"
    return name, context


def operation(name: Union[Optional[str], Callable] = None):
    """
    Run the decorated function as an operation.

    Usable bare (@operation) or with an explicit name (@operation("get_binding")).
    Without a name one is derived from module, class and function. Coroutine
    functions stay coroutine functions and the operation spans the whole
    awaited call.
    """

    def decorator(func: F) -> F:
        if inspect.iscoroutinefunction(func):

            @wraps(func)
            async def async_wrapper(*args, **kwargs) -> Any:
                op_name, context = _describe(func, args, name)
                with OperationHandler().operation(op_name, **context):
                    return await func(*args, **kwargs)

            return cast(F, async_wrapper)

        @wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            op_name, context = _describe(func, args, name)
            with OperationHandler().operation(op_name, **context):
                return func(*args, **kwargs)

        return cast(F, wrapper)

    if callable(name):
        func, name = name, None
        return decorator(func)

    return decorator

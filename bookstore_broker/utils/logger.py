"""
Console logging for the broker.

Log calls go through ContextAwareLogger, which appends the call's extras to
the message as ``key=value`` pairs separated by pipes, so they reach the
console whatever formatter the host installs. The extras stay on the record
as attributes too.
"""

import logging
import sys
from typing import Any, Dict, Optional, Union

from ..config import get_config

LevelLike = Optional[Union[int, str]]

_service_logger: Optional["ContextAwareLogger"] = None


def _resolve_level(log_level: LevelLike) -> int:
    if log_level is None:
        log_level = get_config().logging.level
    if isinstance(log_level, str):
        return getattr(logging, log_level.upper(), logging.INFO)
    return log_level


def _with_extras(msg: str, extra: Dict[str, Any]) -> str:
    if not extra:
        return msg
    pairs = " | ".join(f"{key}={value}" for key, value in extra.items())
    return f"{msg} | {pairs}"


class ContextAwareLogger:
    """
    Wraps a stdlib logger and writes extras into the message.

    Extra keys must not collide with LogRecord attributes (``message``,
    ``name``, ``module``...); the stdlib rejects those.
    """

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def _log(self, method: str, msg: str, **kwargs: Any) -> None:
        extra = kwargs.pop("extra", None) or {}
        getattr(self.logger, method)(_with_extras(msg, extra), extra=extra, **kwargs)

    def set_level(self, level: Union[int, str]) -> None:
        self.logger.setLevel(level)

    def debug(self, msg: str, **kwargs: Any) -> None:
        self._log("debug", msg, **kwargs)

    def info(self, msg: str, **kwargs: Any) -> None:
        self._log("info", msg, **kwargs)

    def warning(self, msg: str, **kwargs: Any) -> None:
        self._log("warning", msg, **kwargs)

    def error(self, msg: str, **kwargs: Any) -> None:
        self._log("error", msg, **kwargs)

    def exception(self, msg: str, **kwargs: Any) -> None:
        """Log at ERROR level with the active exception's traceback."""
        self._log("exception", msg, **kwargs)


class CorrelationIdFilter(logging.Filter):
    """Stamps the current correlation id on records that lack one."""

    def filter(self, record: logging.LogRecord) -> bool:
        # Deferred import: exceptions imports this module when errors log themselves
        from ..exceptions import get_correlation_id

        correlation_id = get_correlation_id()
        if correlation_id and not hasattr(record, "correlation_id"):
            record.correlation_id = correlation_id
        return True


def configure_logging(service_name: str, log_level: LevelLike = None) -> ContextAwareLogger:
    """
    Install the broker's stdout logger and make it the one get_logger() returns.

    Args:
        service_name: Suffix of the logger name (``service.<service_name>``)
        log_level: Level name or number; defaults to the configured level

    Returns:
        The service logger
    """
    global _service_logger

    level = _resolve_level(log_level)
    logger = logging.getLogger(f"service.{service_name}")
    logger.setLevel(level)

    # Reconfiguring replaces the previous handler instead of duplicating output
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(get_config().logging.format))
    handler.addFilter(CorrelationIdFilter())
    logger.addHandler(handler)

    _service_logger = ContextAwareLogger(logger)
    _service_logger.info(
        "Service logger configured",
        extra={"service_name": service_name, "log_level": logging.getLevelName(level)},
    )
    return _service_logger


def reset_logging() -> None:
    """Forget the service logger; get_logger() falls back to the root logger."""
    global _service_logger
    _service_logger = None


def get_logger(log_level: LevelLike = None) -> ContextAwareLogger:
    """The configured service logger, or the root logger wrapped at the configured level."""
    if _service_logger is not None:
        return _service_logger

    root = logging.getLogger()
    root.setLevel(_resolve_level(log_level))
    return ContextAwareLogger(root)

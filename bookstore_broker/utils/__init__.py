"""Utility modules for the bookstore service broker."""

# Async dispatch of blocking calls
from .concurrency import WorkerPool, default_max_workers

# Binding credential helpers
from .credential_utils import (
    build_binding_uri,
    build_credentials,
    generate_password,
    hash_password,
    verify_password,
)

# Logging utilities
from .logger import (
    ContextAwareLogger,
    CorrelationIdFilter,
    configure_logging,
    get_logger,
    reset_logging,
)

__all__ = [
    "WorkerPool",
    "default_max_workers",
    "build_binding_uri",
    "build_credentials",
    "generate_password",
    "hash_password",
    "verify_password",
    "ContextAwareLogger",
    "CorrelationIdFilter",
    "configure_logging",
    "get_logger",
    "reset_logging",
]

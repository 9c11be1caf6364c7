"""
Constants and enums for the bookstore service broker.

This module centralizes the magic strings used throughout the broker
to ensure consistency and maintainability.
"""

from enum import Enum

# Keys of the credential payload handed out for every binding
URI_KEY = "uri"
USERNAME_KEY = "username"
PASSWORD_KEY = "password"

CREDENTIAL_KEYS = (URI_KEY, USERNAME_KEY, PASSWORD_KEY)

# Path segment under which bookstore instances are served
BOOKSTORES_PATH_SEGMENT = "bookstores"

# Prefix that turns a service instance id into an identity resource tag
BOOK_STORE_ID_PREFIX = "BOOK_STORE_ID_"


class Authority(str, Enum):
    """Access levels an issued identity can be scoped with."""

    FULL_ACCESS = "FULL_ACCESS"


class LogLevel(str, Enum):
    """Standard logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class EnvironmentVariable(str, Enum):
    """Standard environment variable names."""

    APP_ENV = "APP_ENV"
    DEBUG = "DEBUG"
    LOG_LEVEL = "LOG_LEVEL"
    BROKER_BASE_URL = "BROKER_BASE_URL"
    BROKER_WORKER_POOL_SIZE = "BROKER_WORKER_POOL_SIZE"


class BindingOperation(str, Enum):
    """Lifecycle operations exposed by the binding service."""

    CREATE = "create_binding"
    GET = "get_binding"
    DELETE = "delete_binding"

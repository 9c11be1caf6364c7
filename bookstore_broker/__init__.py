"""Bookstore service broker: lifecycle of service bindings."""

from .services.binding_service import BindingService

__version__ = "0.1.0"

__all__ = ["BindingService", "__version__"]

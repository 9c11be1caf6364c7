"""Binding lifecycle and identity services."""

from .binding_service import BindingService
from .identity_service import IdentityIssuer, UserIdentityIssuer

__all__ = [
    "BindingService",
    "IdentityIssuer",
    "UserIdentityIssuer",
]

"""Pydantic schemas for bindings and identities."""

from .binding_schemas import (
    Absent,
    BindingLookup,
    CreateBindingResponse,
    Found,
    GetBindingResponse,
    ServiceBindingRecord,
)
from .identity_schemas import Identity

__all__ = [
    "Absent",
    "BindingLookup",
    "CreateBindingResponse",
    "Found",
    "GetBindingResponse",
    "Identity",
    "ServiceBindingRecord",
]

"""
Pydantic schemas for service bindings.

Defines the persisted binding record, the result of a store lookup and the
responses of the binding lifecycle operations.
"""

from typing import Any, Dict, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class ServiceBindingRecord(BaseModel):
    """A stored binding. Immutable once created; there is no update path."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    binding_id: str = Field(..., min_length=1, description="Binding identifier")
    parameters: Dict[str, Any] = Field(
        default_factory=dict, description="Caller-supplied parameters, stored verbatim"
    )
    credentials: Dict[str, Any] = Field(
        default_factory=dict, description="Credential payload produced at creation"
    )


class Found(BaseModel):
    """Store lookup result: a record exists for the binding id."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["found"] = "found"
    record: ServiceBindingRecord


class Absent(BaseModel):
    """Store lookup result: nothing is stored for the binding id."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["absent"] = "absent"
    binding_id: str


# Result of BindingStore.find, consumed with a match statement
BindingLookup = Union[Found, Absent]


class CreateBindingResponse(BaseModel):
    """Result of creating (or re-requesting) a binding."""

    credentials: Dict[str, Any] = Field(..., description="Binding credential payload")
    binding_existed: bool = Field(
        ..., description="True when the binding was already stored before this request"
    )


class GetBindingResponse(BaseModel):
    """Stored parameters and credentials of a binding."""

    parameters: Dict[str, Any] = Field(default_factory=dict)
    credentials: Dict[str, Any] = Field(default_factory=dict)

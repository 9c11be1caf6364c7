"""
Pydantic schemas for identities issued to service bindings.
"""

from typing import List

from pydantic import BaseModel, ConfigDict, Field


class Identity(BaseModel):
    """Username/password pair minted by an identity issuer."""

    model_config = ConfigDict(frozen=True)

    username: str = Field(..., min_length=1, description="Username")
    password: str = Field(..., min_length=1, description="Plaintext password, only known at issue time")
    authorities: List[str] = Field(default_factory=list, description="Granted authorities")

    def __repr__(self) -> str:
        """String representation with masked password for security."""
        return f"Identity(username='{self.username}', password='***', authorities={self.authorities})"

from __future__ import annotations

from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError, field_validator

SESSION_PRINCIPAL_KEY = "principal_id"


# PUBLIC_INTERFACE
class SessionPayload(BaseModel):
    """
    Typed contents of the signed session cookie.

    Decoded once per request by the session gate; anything that does not
    validate is treated as no session at all.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    principal_id: int = Field(..., gt=0, description="Internal id of the authenticated principal")

    @field_validator("principal_id", mode="before")
    @classmethod
    def reject_bool(cls, v: Any) -> Any:
        # bool is an int subclass; a cookie holding true/false is not a principal id
        if isinstance(v, bool):
            raise ValueError("principal_id must be an integer")
        return v

    @classmethod
    def decode(cls, session: Optional[Mapping[str, Any]]) -> Optional["SessionPayload"]:
        """Return the payload, or None for an absent or malformed session."""
        if not session:
            return None
        try:
            return cls.model_validate(dict(session))
        except (PydanticValidationError, TypeError, ValueError):
            return None

    def encode(self) -> dict:
        return {SESSION_PRINCIPAL_KEY: self.principal_id}


# PUBLIC_INTERFACE
class Identity(BaseModel):
    """Identity asserted by the identity provider at the end of the login flow."""

    external_auth_id: str = Field(..., min_length=1, description="Provider-issued subject id")
    display_name: str = Field(default="", description="Name shown in the page header")

    @field_validator("external_auth_id", "display_name", mode="before")
    @classmethod
    def strip(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

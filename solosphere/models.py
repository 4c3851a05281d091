"""Pydantic models shared across routes."""

from pydantic import BaseModel, ConfigDict, Field

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+$"


# =============================================================================
# Session Models
# =============================================================================

class SessionRequest(BaseModel):
    """Identity payload exchanged for a session cookie.

    Extra fields (name, photo, ...) are kept and carried into the token.
    """
    model_config = ConfigDict(extra="allow")

    email: str = Field(..., pattern=EMAIL_PATTERN)
    name: str | None = None
    photo: str | None = None


class SuccessResponse(BaseModel):
    """Plain acknowledgement."""
    success: bool = True


# =============================================================================
# Store Models
# =============================================================================

class OwnerInfo(BaseModel):
    """Embedded owner of a job."""
    email: str = Field(..., pattern=EMAIL_PATTERN)
    name: str | None = None
    photo: str | None = None


class DeleteResult(BaseModel):
    """Result of a delete against the store."""
    acknowledged: bool = True
    deleted_count: int

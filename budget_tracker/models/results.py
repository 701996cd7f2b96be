"""
Result Models

Gateway operations never raise. They hand back an OperationResult,
a success flag plus either a payload or a human-readable error.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from budget_tracker.models.transaction import Category, Transaction


class Principal(BaseModel):
    """
    The authenticated identity returned by the identity service.

    Tokens are kept for backend calls but never shown or serialized.
    """
    model_config = ConfigDict(frozen=True)

    uid: str = Field(..., min_length=1)
    email: Optional[str] = None
    email_verified: bool = False
    id_token: Optional[str] = Field(default=None, repr=False, exclude=True)
    refresh_token: Optional[str] = Field(default=None, repr=False, exclude=True)

    def same_identity(self, other: Optional["Principal"]) -> bool:
        """True if other is the same user in the same verification state."""
        if other is None:
            return False
        return (
            self.uid == other.uid
            and self.email_verified == other.email_verified
        )


class OperationResult(BaseModel):
    """Uniform outcome of a gateway operation."""

    success: bool
    error: Optional[str] = None
    message: Optional[str] = None
    needs_verification: bool = False

    # Payload (which fields are set depends on the operation)
    id: Optional[str] = None
    user: Optional[Principal] = None
    transactions: Optional[list[Transaction]] = None
    categories: Optional[list[Category]] = None

    @classmethod
    def ok(cls, **payload) -> "OperationResult":
        return cls(success=True, **payload)

    @classmethod
    def fail(cls, error: str, **extra) -> "OperationResult":
        return cls(success=False, error=error, **extra)


class ValidationOutcome(BaseModel):
    """Result of a pre-flight input check."""

    valid: bool
    error: Optional[str] = None

    @classmethod
    def ok(cls) -> "ValidationOutcome":
        return cls(valid=True)

    @classmethod
    def fail(cls, error: str) -> "ValidationOutcome":
        return cls(valid=False, error=error)


class RateLimitDecision(BaseModel):
    """Whether an action may proceed right now."""

    allowed: bool
    error: Optional[str] = None
    attempts: int = 0
    retry_after_ms: int = 0

"""
Audit Models for Budget Tracker

Every auth and data action is recorded as an audit event.
This provides:
1. Traceability of who changed what, and when
2. Debugging information when backend calls fail
3. A record of throttled and rejected attempts

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
Email addresses are masked before they reach an event.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def mask_email(email: Optional[str]) -> str:
    """j***@example.com style masking for logs."""
    if not email or "@" not in email:
        return "***"
    local, _, domain = email.partition("@")
    return f"{local[:1]}***@{domain}"


class AuditEventType(str, Enum):
    """
    Types of events we audit.
    """
    # Identity
    USER_SIGNED_UP = "user_signed_up"
    USER_SIGNED_IN = "user_signed_in"
    SIGN_IN_BLOCKED_UNVERIFIED = "sign_in_blocked_unverified"
    USER_SIGNED_OUT = "user_signed_out"
    PASSWORD_RESET_REQUESTED = "password_reset_requested"
    PASSWORD_CHANGED = "password_changed"
    AUTH_FAILED = "auth_failed"

    # Guards
    RATE_LIMITED = "rate_limited"
    AUTH_REQUIRED = "auth_required"
    VALIDATION_FAILED = "validation_failed"

    # Data
    TRANSACTION_ADDED = "transaction_added"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"
    CATEGORY_ADDED = "category_added"
    DATA_RELOADED = "data_reloaded"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'user', 'transaction', 'category')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="Backend ID of the entity this event relates to"
    )
    user_id: Optional[str] = Field(
        default=None,
        description="UID of the principal that acted, if any"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "user_id": self.user_id,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_document(self) -> dict:
        """
        Convert to a backend document (camelCase fields).

        userId is always present so ownership rules accept the write.
        """
        return {
            "eventId": str(self.event_id),
            "timestamp": self.timestamp,
            "eventType": self.event_type.value,
            "severity": self.severity.value,
            "entityType": self.entity_type,
            "entityId": self.entity_id,
            "userId": self.user_id,
            "description": self.description,
            "details": self.details,
            "errorCode": self.error_code,
            "errorMessage": self.error_message,
            "isUserAction": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.user_signed_in(uid)
        event = AuditEventBuilder.transaction_added(tx_id, uid, "expense", "40.00", "car")
    """

    @staticmethod
    def user_signed_up(uid: str, email: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.USER_SIGNED_UP,
            entity_type="user",
            entity_id=uid,
            user_id=uid,
            description="Account created, verification email sent",
            details={"email": mask_email(email)},
            is_user_action=True,
        )

    @staticmethod
    def user_signed_in(uid: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.USER_SIGNED_IN,
            entity_type="user",
            entity_id=uid,
            user_id=uid,
            description="User signed in",
            is_user_action=True,
        )

    @staticmethod
    def sign_in_blocked_unverified(uid: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SIGN_IN_BLOCKED_UNVERIFIED,
            severity=AuditSeverity.WARNING,
            entity_type="user",
            entity_id=uid,
            user_id=uid,
            description="Sign-in refused: email not verified",
            is_user_action=True,
        )

    @staticmethod
    def user_signed_out(uid: Optional[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.USER_SIGNED_OUT,
            entity_type="user",
            entity_id=uid,
            user_id=uid,
            description="User signed out",
            is_user_action=True,
        )

    @staticmethod
    def password_reset_requested(email: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PASSWORD_RESET_REQUESTED,
            entity_type="user",
            description="Password reset email requested",
            details={"email": mask_email(email)},
            is_user_action=True,
        )

    @staticmethod
    def password_changed(uid: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PASSWORD_CHANGED,
            entity_type="user",
            entity_id=uid,
            user_id=uid,
            description="Password changed",
            is_user_action=True,
        )

    @staticmethod
    def auth_failed(
        action: str,
        error_code: Optional[str],
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.AUTH_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="user",
            description=f"{action} failed",
            details={"action": action},
            error_code=error_code,
            error_message=error_message,
        )

    @staticmethod
    def rate_limited(action: str, attempts: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RATE_LIMITED,
            severity=AuditSeverity.WARNING,
            description=f"{action} throttled after {attempts} attempts",
            details={"action": action, "attempts": attempts},
        )

    @staticmethod
    def auth_required(action: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.AUTH_REQUIRED,
            severity=AuditSeverity.WARNING,
            description=f"{action} attempted without a signed-in user",
            details={"action": action},
        )

    @staticmethod
    def validation_failed(
        action: str,
        reason: str,
        uid: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            user_id=uid,
            description=f"{action} rejected: {reason}",
            details={"action": action, "reason": reason},
        )

    @staticmethod
    def transaction_added(
        transaction_id: str,
        uid: str,
        transaction_type: str,
        amount: str,
        category: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_ADDED,
            entity_type="transaction",
            entity_id=transaction_id,
            user_id=uid,
            description=f"Transaction added: {transaction_type} {amount}",
            details={
                "type": transaction_type,
                "amount": amount,
                "category": category,
            },
            is_user_action=True,
        )

    @staticmethod
    def transaction_updated(
        transaction_id: str,
        uid: str,
        fields: list[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_UPDATED,
            entity_type="transaction",
            entity_id=transaction_id,
            user_id=uid,
            description=f"Transaction updated ({', '.join(fields)})",
            details={"fields": fields},
            is_user_action=True,
        )

    @staticmethod
    def transaction_deleted(transaction_id: str, uid: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            entity_type="transaction",
            entity_id=transaction_id,
            user_id=uid,
            description="Transaction deleted",
            is_user_action=True,
        )

    @staticmethod
    def category_added(category_id: str, uid: str, name: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CATEGORY_ADDED,
            entity_type="category",
            entity_id=category_id,
            user_id=uid,
            description=f"Category added: {name}",
            details={"name": name},
            is_user_action=True,
        )

    @staticmethod
    def data_reloaded(uid: str, transaction_count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DATA_RELOADED,
            severity=AuditSeverity.DEBUG,
            user_id=uid,
            description=f"Reloaded {transaction_count} transactions",
            details={"transaction_count": transaction_count},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_code: Optional[str],
        error_message: str,
        uid: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            user_id=uid,
            description=f"External service error: {service}",
            error_code=error_code,
            error_message=error_message,
            details={"service": service},
        )

"""
Audit Logger

DESIGN DECISION: Every auth and data action is logged.
This provides:
1. Complete traceability
2. Debugging capability
3. A record of throttled and refused attempts

The audit logger:
- Is async so it can persist without blocking the event loop
- Gracefully handles failures (doesn't break the action if logging fails)
- Persists only events that belong to a signed-in principal, since the
  backend's rules require an owner on every document
"""

from typing import Optional

import structlog

from budget_tracker.models.audit import AuditEvent, AuditEventBuilder
from budget_tracker.models.results import Principal
from budget_tracker.services.backend import BackendError, DocumentStoreInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The document store (optional, for the user's own history)
    """

    def __init__(
        self,
        store: Optional[DocumentStoreInterface] = None,
        collection: str = "auditEvents",
    ):
        """
        Initialize audit logger.

        Args:
            store: Backend for persistence. If None, only logs locally.
            collection: Collection that receives persisted events
        """
        self._store = store
        self._collection = collection
        self._logger = structlog.get_logger("budget_tracker.audit")

    async def log(
        self,
        event: AuditEvent,
        principal: Optional[Principal] = None,
    ) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to the store if one is configured
        and the event belongs to principal.

        Returns True if the store write succeeded (or was not attempted).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        elif event.severity.value == "debug":
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._store is None or principal is None:
            return True

        if event.user_id is None:
            event = event.model_copy(update={"user_id": principal.uid})
        if event.user_id != principal.uid:
            return True

        try:
            await self._store.add_document(
                self._collection, event.to_document(), principal
            )
            return True
        except BackendError as e:
            # Log failure but don't raise
            self._logger.error(
                "audit_storage_failed",
                error=e.message,
                code=e.code,
                event_id=str(event.event_id),
            )
            return False
        except Exception as e:
            self._logger.exception(
                "audit_storage_failed",
                error=str(e),
                event_id=str(event.event_id),
            )
            return False

    async def log_backend_error(
        self,
        service: str,
        error: BackendError,
        principal: Optional[Principal] = None,
    ) -> None:
        """Log a backend failure."""
        event = AuditEventBuilder.external_service_error(
            service=service,
            error_code=error.code,
            error_message=error.message,
            uid=principal.uid if principal else None,
        )
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
    ) -> None:
        """Log an unexpected error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
        )
        await self.log(event)


"""
Audit Logger

DESIGN DECISION: Every change to the books is logged.
This provides:
1. Complete traceability of liability, income and balance changes
2. A record of partial failures (entry written, balance stale)
3. History the finance committee can review

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the flow if logging fails)
- Supports correlation IDs to tie a liability mutation to its reconciliation
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import structlog

from src.models.audit import AuditEvent, AuditEventBuilder
from src.services.storage import AuditStorageInterface


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
    2. The record store audit table (for persistence)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger(__name__)

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
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

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_liability_saved(
        self,
        liability_id: str,
        action: str,
        creditor_name: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a liability create/update/delete."""
        await self.log(AuditEventBuilder.liability_saved(
            liability_id=liability_id,
            action=action,
            creditor_name=creditor_name,
            correlation_id=correlation_id,
        ))

    async def log_payment_recorded(
        self,
        liability_id: str,
        amount: Decimal,
        expenditure_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.payment_recorded(
            liability_id=liability_id,
            amount=amount,
            expenditure_id=expenditure_id,
            correlation_id=correlation_id,
        ))

    async def log_income_entry_changed(
        self,
        income_entry_id: str,
        action: str,
        liability_id: str,
        changed_fields: Optional[list[str]] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.income_entry_changed(
            income_entry_id=income_entry_id,
            action=action,
            liability_id=liability_id,
            changed_fields=changed_fields,
            correlation_id=correlation_id,
        ))

    async def log_reconciliation_unchanged(
        self,
        liability_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a reconciliation that wrote nothing."""
        await self.log(AuditEventBuilder.reconciliation_unchanged(
            liability_id=liability_id,
            correlation_id=correlation_id,
        ))

    async def log_reconciliation_failed(
        self,
        liability_id: Optional[str],
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.reconciliation_failed(
            liability_id=liability_id,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_category_created(
        self,
        category_id: str,
        table: str,
        name: str,
    ) -> None:
        await self.log(AuditEventBuilder.category_created(
            category_id=category_id,
            table=table,
            name=name,
        ))

    async def log_ledger_delta_applied(
        self,
        account_id: str,
        signed_delta: Decimal,
        balance_after: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.ledger_delta_applied(
            account_id=account_id,
            signed_delta=signed_delta,
            balance_after=balance_after,
            correlation_id=correlation_id,
        ))

    async def log_ledger_delta_failed(
        self,
        account_id: str,
        amount: Decimal,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a balance adjustment that could not be applied."""
        await self.log(AuditEventBuilder.ledger_delta_failed(
            account_id=account_id,
            amount=amount,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_backfill_completed(
        self,
        repaired: int,
        missing: int,
        errors: int,
    ) -> None:
        await self.log(AuditEventBuilder.backfill_completed(
            repaired=repaired,
            missing=missing,
            errors=errors,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a liability mutation and pass it through
    the reconciliation that follows.
    """
    return uuid4()

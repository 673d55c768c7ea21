"""
Audit Models

Every significant action on the books is logged for audit purposes.
This provides:
1. Complete traceability of liability, income and balance changes
2. Debugging information when a reconciliation only partly succeeds
3. Accountability towards the finance committee
4. Ability to reconstruct history

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every step of the liability flows has its own event type.
    """
    # Liability mutations
    LIABILITY_CREATED = "liability_created"
    LIABILITY_UPDATED = "liability_updated"
    LIABILITY_DELETED = "liability_deleted"
    LIABILITY_PAYMENT_RECORDED = "liability_payment_recorded"

    # Derived income
    INCOME_ENTRY_CREATED = "income_entry_created"
    INCOME_ENTRY_UPDATED = "income_entry_updated"
    INCOME_ENTRY_DELETED = "income_entry_deleted"

    # Reconciliation
    RECONCILIATION_UNCHANGED = "reconciliation_unchanged"
    RECONCILIATION_FAILED = "reconciliation_failed"
    CATEGORY_CREATED = "category_created"
    BACKFILL_COMPLETED = "backfill_completed"

    # Ledger
    LEDGER_DELTA_APPLIED = "ledger_delta_applied"
    LEDGER_DELTA_FAILED = "ledger_delta_failed"

    # System events
    SYSTEM_ERROR = "system_error"


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
    Every significant action creates one of these.
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

    # Context - what record is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'liability', 'income_entry', 'account')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="Record id in the store"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one liability update and its reconciliation)"
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
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.liability_saved(liability_id, "created", creditor)
        event = AuditEventBuilder.ledger_delta_failed(account_id, "5000", error)
    """

    @staticmethod
    def liability_saved(
        liability_id: str,
        action: str,
        creditor_name: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        event_type = {
            "created": AuditEventType.LIABILITY_CREATED,
            "updated": AuditEventType.LIABILITY_UPDATED,
            "deleted": AuditEventType.LIABILITY_DELETED,
        }[action]
        return AuditEvent(
            event_type=event_type,
            entity_type="liability",
            entity_id=liability_id,
            correlation_id=correlation_id,
            description=f"Liability {action}: {creditor_name}",
            details={"creditor_name": creditor_name},
            is_user_action=True,
        )

    @staticmethod
    def payment_recorded(
        liability_id: str,
        amount: Decimal,
        expenditure_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LIABILITY_PAYMENT_RECORDED,
            entity_type="liability",
            entity_id=liability_id,
            correlation_id=correlation_id,
            description=f"Payment of {amount} recorded",
            details={
                "amount": str(amount),
                "expenditure_id": expenditure_id,
            },
            is_user_action=True,
        )

    @staticmethod
    def income_entry_changed(
        income_entry_id: str,
        action: str,
        liability_id: str,
        changed_fields: Optional[list[str]] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        event_type = {
            "created": AuditEventType.INCOME_ENTRY_CREATED,
            "updated": AuditEventType.INCOME_ENTRY_UPDATED,
            "deleted": AuditEventType.INCOME_ENTRY_DELETED,
        }[action]
        return AuditEvent(
            event_type=event_type,
            entity_type="income_entry",
            entity_id=income_entry_id,
            correlation_id=correlation_id,
            description=f"Loan income entry {action} for liability {liability_id}",
            details={
                "liability_id": liability_id,
                "changed_fields": changed_fields or [],
            },
        )

    @staticmethod
    def reconciliation_unchanged(
        liability_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECONCILIATION_UNCHANGED,
            severity=AuditSeverity.DEBUG,
            entity_type="liability",
            entity_id=liability_id,
            correlation_id=correlation_id,
            description="Loan income already consistent",
        )

    @staticmethod
    def reconciliation_failed(
        liability_id: Optional[str],
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECONCILIATION_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="liability",
            entity_id=liability_id,
            correlation_id=correlation_id,
            description="Liability saved, but related income entry failed to update",
            error_message=error_message,
        )

    @staticmethod
    def category_created(
        category_id: str,
        table: str,
        name: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CATEGORY_CREATED,
            entity_type=table,
            entity_id=category_id,
            description=f"Category created: {name}",
            details={"name": name},
        )

    @staticmethod
    def ledger_delta_applied(
        account_id: str,
        signed_delta: Decimal,
        balance_after: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_DELTA_APPLIED,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Balance adjusted by {signed_delta}",
            details={
                "signed_delta": str(signed_delta),
                "balance_after": str(balance_after),
            },
        )

    @staticmethod
    def ledger_delta_failed(
        account_id: str,
        amount: Decimal,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_DELTA_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description="Account balance may not be accurate",
            details={"amount": str(amount)},
            error_message=error_message,
        )

    @staticmethod
    def backfill_completed(
        repaired: int,
        missing: int,
        errors: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BACKFILL_COMPLETED,
            severity=AuditSeverity.WARNING if errors else AuditSeverity.INFO,
            description=f"Loan income backfill: {repaired} repaired, {missing} missing, {errors} errors",
            details={
                "repaired": repaired,
                "missing": missing,
                "errors": errors,
            },
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

"""
Locating the income entry derived from a loan liability.

The link between a loan and its income entry is not a schema-level foreign
key. It is inferred, in order of trust, from:

A. payment_details.liability_id == liability.id
B. description contains "Liability ID: {liability.id}"
C. description contains "Loan from {creditor_name}"

The first strategy that matches anything wins; within it the most recently
created entry is "the" entry.

KNOWN LIMITATION: strategy C cannot tell apart two loans from the same
creditor. It only exists for entries created before payment_details carried
the liability id, and the backfill pass repairs those so later lookups hit
strategy A. This is a best-effort heuristic, not a guarantee.
"""

from typing import Optional

from src.config import get_settings
from src.models.finance import (
    LIABILITY_ID_MARKER,
    IncomeEntry,
    LiabilityEntry,
    loan_description,
)
from src.models.reconciliation import CorrelationStrategy
from src.services.storage import RecordFilter, RecordStoreInterface


def strategy_filters(
    liability: LiabilityEntry,
    case_sensitive: bool = True,
) -> list[tuple[CorrelationStrategy, RecordFilter]]:
    """The three lookups in priority order."""
    text_filter = RecordFilter.like if case_sensitive else RecordFilter.ilike
    return [
        (
            CorrelationStrategy.PAYMENT_DETAILS,
            RecordFilter.eq("payment_details.liability_id", liability.id),
        ),
        (
            CorrelationStrategy.DESCRIPTION_LIABILITY_ID,
            text_filter("description", f"{LIABILITY_ID_MARKER}{liability.id}"),
        ),
        (
            CorrelationStrategy.DESCRIPTION_CREDITOR,
            text_filter("description", loan_description(liability.creditor_name)),
        ),
    ]


class LinkedIncomeFinder:
    """Finds income entries linked to a liability."""

    def __init__(self, store: RecordStoreInterface, table: Optional[str] = None):
        self._store = store
        self._table = table or get_settings().record_store.income_table

    async def find(
        self,
        liability: LiabilityEntry,
    ) -> tuple[Optional[IncomeEntry], Optional[CorrelationStrategy]]:
        """
        Return the most recent linked entry and the strategy that found it.

        Store failures propagate as StorageError; a matching row that
        doesn't parse as an income entry raises pydantic's ValidationError.
        """
        for strategy, flt in strategy_filters(liability):
            records = await self._store.select(self._table, [flt])
            if not records:
                continue
            entries = [IncomeEntry.model_validate(record) for record in records]
            entries.sort(key=lambda entry: entry.created_sort_key, reverse=True)
            return entries[0], strategy
        return None, None

    async def find_all(self, liability: LiabilityEntry) -> list[IncomeEntry]:
        """
        Union of every strategy, de-duplicated by id.

        Used when a liability is deleted; description matches are
        case-insensitive here so stray variants are cleaned up too.
        """
        seen: dict[str, IncomeEntry] = {}
        for _, flt in strategy_filters(liability, case_sensitive=False):
            for record in await self._store.select(self._table, [flt]):
                entry = IncomeEntry.model_validate(record)
                seen.setdefault(entry.id, entry)
        return list(seen.values())

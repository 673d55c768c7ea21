"""
Funding-account resolution for loan income.

Priority:
1. account_id on the liability passed in
2. account_id on the liability as persisted in the store
3. an injected hint provider (last resort, may know nothing)
4. none
"""

from abc import ABC, abstractmethod
from typing import Optional

import structlog

from src.config import get_settings
from src.models.finance import LiabilityEntry
from src.services.storage import RecordStoreInterface, StorageError


logger = structlog.get_logger(__name__)


class AccountHintProvider(ABC):
    """Source of remembered account choices for liabilities."""

    @abstractmethod
    async def account_for(self, liability_id: str) -> Optional[str]:
        pass

    async def remember(self, liability_id: str, account_id: str) -> None:
        """Record the account a liability was saved with. Read-only providers ignore it."""


class StaticAccountHints(AccountHintProvider):
    """Hints held in a plain mapping of liability id to account id."""

    def __init__(self, hints: Optional[dict[str, str]] = None):
        self._hints = dict(hints or {})

    async def remember(self, liability_id: str, account_id: str) -> None:
        self._hints[liability_id] = account_id

    async def account_for(self, liability_id: str) -> Optional[str]:
        return self._hints.get(liability_id)


class AccountResolver:
    def __init__(
        self,
        store: RecordStoreInterface,
        hints: Optional[AccountHintProvider] = None,
        liabilities_table: Optional[str] = None,
    ):
        self._store = store
        self._hints = hints
        self._table = liabilities_table or get_settings().record_store.liabilities_table

    async def resolve(self, liability: LiabilityEntry) -> Optional[str]:
        if liability.account_id:
            return liability.account_id

        # A failed lookup here only loses a fallback, it never aborts
        try:
            record = await self._store.get(self._table, liability.id)
        except StorageError as e:
            logger.warning(
                "persisted_liability_lookup_failed",
                liability_id=liability.id,
                error=str(e),
            )
            record = None
        if record and record.get("account_id"):
            return str(record["account_id"])

        if self._hints is not None:
            hinted = await self._hints.account_for(liability.id)
            if hinted:
                logger.debug("account_from_hint", liability_id=liability.id, account_id=hinted)
                return hinted

        return None

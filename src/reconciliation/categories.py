"""
Category resolution for system-generated entries.

Loan income and liability payments need a category even when nobody set
one up. Resolution is get-or-create:

1. Look for an existing category that fits
2. Otherwise insert the default one
3. If the insert fails, fall back to any existing category
4. If there are no categories at all, give up

Step 1 is what makes this idempotent: the category created in step 2
matches on the next call, so repeated calls never create duplicates.
"""

from typing import Callable, Optional

import structlog

from src.audit import AuditLogger
from src.config import get_settings
from src.models.finance import Category
from src.reconciliation.errors import CategoryResolutionError
from src.services.storage import RecordStoreInterface, StorageError


logger = structlog.get_logger(__name__)


class CategoryResolver:
    """Get-or-create a category in one table."""

    def __init__(
        self,
        store: RecordStoreInterface,
        table: str,
        name: str,
        description: str,
        is_match: Callable[[Category], bool],
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._table = table
        self._name = name
        self._description = description
        self._is_match = is_match
        self._audit_logger = audit_logger

    async def resolve(self) -> str:
        """
        Return the id of a usable category.

        Raises:
            CategoryResolutionError: If categories can't be read, or none
                exist and none can be created
        """
        try:
            records = await self._store.select(self._table)
        except StorageError as e:
            raise CategoryResolutionError(
                f"Failed to read categories from {self._table}: {e}"
            ) from e

        categories = [Category.model_validate(record) for record in records]
        for category in categories:
            if self._is_match(category):
                logger.debug(
                    "category_found",
                    table=self._table,
                    category_id=category.id,
                    name=category.name,
                )
                return category.id

        try:
            created = await self._store.insert(
                self._table,
                {"name": self._name, "description": self._description},
            )
        except StorageError as e:
            logger.warning(
                "category_create_failed",
                table=self._table,
                name=self._name,
                error=str(e),
            )
            if categories:
                return categories[0].id
            raise CategoryResolutionError(
                f"Failed to create or find a suitable category in {self._table}"
            ) from e

        logger.info("category_created", table=self._table, category_id=created["id"])
        if self._audit_logger:
            await self._audit_logger.log_category_created(
                category_id=created["id"],
                table=self._table,
                name=self._name,
            )
        return created["id"]


def loan_category_resolver(
    store: RecordStoreInterface,
    audit_logger: Optional[AuditLogger] = None,
) -> CategoryResolver:
    """
    Resolver for the default loan income category.

    Any income category whose name contains one of the loan keywords
    (case-insensitive substring) is reused; otherwise "Loans" is created.
    """
    settings = get_settings()
    config = settings.reconciliation
    keywords = config.loan_keywords_list

    def is_loan_category(category: Category) -> bool:
        name = category.name.lower()
        return any(keyword in name for keyword in keywords)

    return CategoryResolver(
        store=store,
        table=settings.record_store.income_categories_table,
        name=config.loan_category_name,
        description=config.loan_category_description,
        is_match=is_loan_category,
        audit_logger=audit_logger,
    )


def payment_category_resolver(
    store: RecordStoreInterface,
    audit_logger: Optional[AuditLogger] = None,
) -> CategoryResolver:
    """Resolver for the "Liability Payment" expenditure category (exact name)."""
    settings = get_settings()
    config = settings.reconciliation

    def is_payment_category(category: Category) -> bool:
        return category.name == config.payment_category_name

    return CategoryResolver(
        store=store,
        table=settings.record_store.expenditure_categories_table,
        name=config.payment_category_name,
        description=config.payment_category_description,
        is_match=is_payment_category,
        audit_logger=audit_logger,
    )

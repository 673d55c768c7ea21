"""Exceptions raised by the reconciliation flows."""


class ReconciliationError(Exception):
    """
    Reconciliation aborted.

    Raised for store failures while looking up, creating or updating the
    derived income entry. Ledger failures are not errors; they surface as
    warnings on the result.
    """

    def __init__(self, message: str, liability_id: str = None):
        super().__init__(message)
        self.liability_id = liability_id


class CategoryResolutionError(ReconciliationError):
    """No usable category could be found or created."""
    pass

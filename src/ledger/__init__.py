"""Account balance ledger package."""

from src.ledger.balance import AccountBalanceLedger, LedgerError, signed_delta

__all__ = ["AccountBalanceLedger", "LedgerError", "signed_delta"]

"""
Ledger error taxonomy.

Every domain error is raised by a pre-check before any row is mutated, so the
surrounding ledger transaction rolls back with no partial effect. Routes turn
these into typed JSON responses; see routes/common.py.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for user-presentable ledger failures."""
    code = "LEDGER_ERROR"
    http_status = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "code": self.code,
            "details": self.details,
        }


class ValidationError(LedgerError):
    """Malformed quantities or amounts (non-positive qty, partial payment outside (0, total), ...)."""
    code = "VALIDATION_ERROR"


class UnknownEntity(LedgerError):
    """Referenced product/dealer/customer/sale does not exist in this tenant."""
    code = "UNKNOWN_ENTITY"
    http_status = 404


class InsufficientStock(LedgerError):
    code = "INSUFFICIENT_STOCK"
    http_status = 409


class InsufficientDealerStock(LedgerError):
    code = "INSUFFICIENT_DEALER_STOCK"
    http_status = 409


class ExcessPayment(LedgerError):
    """Payment amount exceeds the debtor's current debt."""
    code = "EXCESS_PAYMENT"
    http_status = 409


class InsufficientDealerCustomerBalance(ExcessPayment):
    """Dealer sub-customer payment larger than what that customer owes the dealer."""
    code = "INSUFFICIENT_DEALER_CUSTOMER_BALANCE"


class InvalidTransition(LedgerError):
    code = "INVALID_TRANSITION"
    http_status = 409


class StoreUnavailable(Exception):
    """
    Infrastructure failure (lock timeout, deadlock after retries, lost connection).

    The transaction was rolled back entirely; the caller may retry.
    """
    code = "STORE_UNAVAILABLE"
    http_status = 503
    retryable = True

    def to_dict(self) -> dict:
        return {
            "error": "Ledger store temporarily unavailable",
            "code": self.code,
            "retryable": self.retryable,
        }

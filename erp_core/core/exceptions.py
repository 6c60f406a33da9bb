"""
Domain errors raised by the inventory ledger and the workflow services.

Each error carries a machine-readable ``code`` and the HTTP status the API
layer answers with. Raising any of them inside ``unit_of_work`` rolls the
whole operation back.
"""
from typing import Optional


class ERPError(Exception):
    """Base class for all domain errors."""
    code: str = "ERP_ERROR"
    status_code: int = 400

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class NotFound(ERPError):
    """Referenced header, item or inventory record is absent."""
    code = "NOT_FOUND"
    status_code = 404


class ValidationError(ERPError):
    code = "VALIDATION_ERROR"
    status_code = 400


class InvalidStatus(ERPError):
    """Workflow transition attempted from an illegal state."""
    code = "INVALID_STATUS"
    status_code = 400


class InsufficientStock(ERPError):
    """Ledger movement would drive stock negative or into reserved units."""
    code = "INSUFFICIENT_STOCK"
    status_code = 400


class InsufficientInventory(ERPError):
    """Not enough unreserved stock to place a reservation."""
    code = "INSUFFICIENT_INVENTORY"
    status_code = 400


class ExcessQuantity(ERPError):
    code = "EXCESS_QUANTITY"
    status_code = 400


class ExcessAmount(ERPError):
    code = "EXCESS_AMOUNT"
    status_code = 400


class IncompleteFulfillment(ERPError):
    code = "INCOMPLETE_FULFILLMENT"
    status_code = 400


class CreditLimitExceeded(ERPError):
    code = "CREDIT_LIMIT_EXCEEDED"
    status_code = 400


class InvoiceExists(ERPError):
    code = "INVOICE_EXISTS"
    status_code = 409


class HasPayments(ERPError):
    code = "HAS_PAYMENTS"
    status_code = 400


class HasGRN(ERPError):
    code = "HAS_GRN"
    status_code = 400


class SameWarehouse(ERPError):
    code = "SAME_WAREHOUSE"
    status_code = 400


class DuplicateError(ERPError):
    code = "DUPLICATE_ERROR"
    status_code = 409


class ForeignKeyError(ERPError):
    code = "FOREIGN_KEY_ERROR"
    status_code = 400

"""ERP core: inventory ledger, reservations and order workflows."""

__version__ = "1.0.0"

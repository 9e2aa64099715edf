"""Labor billing engine: invoices and vendor bills from approved time entries."""

__version__ = "1.0.0"

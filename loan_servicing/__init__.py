"""
Loan Servicing Back Office

Tracks clients, loans, installment schedules and payments. Schedule
generation and payment allocation use Decimal precision throughout.
"""

__version__ = "1.0.0"

"""
Pure domain layer.

This module contains pure data transfer objects and domain logic
with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O

All domain objects are immutable and deterministic.
"""

from kanzlei_kernel.domain.chain import (
    ChainBreak,
    ChainLink,
    find_chain_break,
    seal,
    verify_chain,
)
from kanzlei_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from kanzlei_kernel.domain.dtos import (
    DEFAULT_FORMAT_BY_PROVIDER,
    AccountingProvider,
    ChartOfAccounts,
    DateRange,
    Expense,
    ExpenseCategory,
    ExportFormat,
    ExportRunStatus,
    ExportScope,
    FiscalEventType,
    Invoice,
    InvoiceStatus,
    JournalStatus,
    Jurisdiction,
    OrganizationProfile,
    Payment,
    PaymentMethod,
    TimeEntry,
)

__all__ = [
    "DEFAULT_FORMAT_BY_PROVIDER",
    "AccountingProvider",
    "ChainBreak",
    "ChainLink",
    "ChartOfAccounts",
    "Clock",
    "DateRange",
    "DeterministicClock",
    "Expense",
    "ExpenseCategory",
    "ExportFormat",
    "ExportRunStatus",
    "ExportScope",
    "FiscalEventType",
    "Invoice",
    "InvoiceStatus",
    "JournalStatus",
    "Jurisdiction",
    "OrganizationProfile",
    "Payment",
    "PaymentMethod",
    "SystemClock",
    "TimeEntry",
    "find_chain_break",
    "seal",
    "verify_chain",
]

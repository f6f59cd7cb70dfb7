"""Selectors for the kanzlei kernel (read side)."""

from kanzlei_kernel.selectors.export_selector import (
    ExportDashboardStats,
    ExportJournalEntryDTO,
    ExportRunDTO,
    ExportSelector,
)
from kanzlei_kernel.selectors.ledger_selector import (
    FiscalSignatureDTO,
    FiscalSignatureSelector,
    KassenbelegDTO,
    KassenbelegSelector,
)

__all__ = [
    "ExportDashboardStats",
    "ExportJournalEntryDTO",
    "ExportRunDTO",
    "ExportSelector",
    "FiscalSignatureDTO",
    "FiscalSignatureSelector",
    "KassenbelegDTO",
    "KassenbelegSelector",
]

"""ORM models for the kanzlei kernel."""

from kanzlei_kernel.models.export import ExportConfig, ExportRun
from kanzlei_kernel.models.export_journal import ExportJournalEntry
from kanzlei_kernel.models.fiscal_signature import FiscalSignature
from kanzlei_kernel.models.kassenbeleg import KASSENBELEG_VOID_FIELDS, Kassenbeleg

__all__ = [
    "KASSENBELEG_VOID_FIELDS",
    "ExportConfig",
    "ExportJournalEntry",
    "ExportRun",
    "FiscalSignature",
    "Kassenbeleg",
]

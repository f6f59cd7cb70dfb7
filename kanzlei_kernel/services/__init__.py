"""Services for the kanzlei kernel (write side)."""

from kanzlei_kernel.services.chain_writer import ChainWriter
from kanzlei_kernel.services.export_journal_service import ExportJournalService
from kanzlei_kernel.services.fiscal_signature_service import FiscalSignatureService
from kanzlei_kernel.services.kassenbeleg_service import KassenbelegService
from kanzlei_kernel.services.scope_locks import (
    EXPORT_JOURNAL,
    FISCAL_LEDGER,
    ScopeLocks,
    default_scope_locks,
)

__all__ = [
    "EXPORT_JOURNAL",
    "FISCAL_LEDGER",
    "ChainWriter",
    "ExportJournalService",
    "FiscalSignatureService",
    "KassenbelegService",
    "ScopeLocks",
    "default_scope_locks",
]

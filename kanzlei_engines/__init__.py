"""
Pure calculation engines for the kanzlei ledger.

Engines are pure functions (no I/O, no database, no clock reads). They
receive policy tables and records as arguments and return frozen results;
kanzlei_services wires them to persistence.
"""

from kanzlei_engines.accounts import AccountMap
from kanzlei_engines.closure import DailyClosureSummary, reconcile_day
from kanzlei_engines.compliance import (
    AccountingComplianceResult,
    default_format_for,
    ensure_compliant,
    evaluate,
    provider_for,
)
from kanzlei_engines.export_formats import (
    ExportRecords,
    ExportSettings,
    GeneratedExport,
    encode_content,
    file_name_for,
    generate,
    select_records,
)

__all__ = [
    "AccountMap",
    "AccountingComplianceResult",
    "DailyClosureSummary",
    "ExportRecords",
    "ExportSettings",
    "GeneratedExport",
    "default_format_for",
    "encode_content",
    "ensure_compliant",
    "evaluate",
    "file_name_for",
    "generate",
    "provider_for",
    "reconcile_day",
    "select_records",
]

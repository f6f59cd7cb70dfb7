"""
Orchestration services for the kanzlei ledger.

Services compose kernel services, selectors and pure engines and own the
transaction boundary of each use case.
"""

from kanzlei_services.daily_closure import DailyClosureReport, DailyClosureService
from kanzlei_services.export_service import (
    ExportFile,
    ExportService,
    OneClickExportResult,
)
from kanzlei_services.invoice_events import InvoiceEventHandler

__all__ = [
    "DailyClosureReport",
    "DailyClosureService",
    "ExportFile",
    "ExportService",
    "InvoiceEventHandler",
    "OneClickExportResult",
]

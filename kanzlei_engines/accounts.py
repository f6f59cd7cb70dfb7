"""
Account mapping for the export formats.

Resolves the ledger accounts a booking line is posted to: revenue and
expense fallback come from the export config, receivables/bank/expense
category accounts and tax keys from the chart-of-accounts variant.

Pure: the chart definition is passed in.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING

from kanzlei_kernel.domain.dtos import ExpenseCategory
from kanzlei_kernel.domain.values import format_rate

if TYPE_CHECKING:
    from kanzlei_config.schema import ChartDefinition


@dataclass(frozen=True)
class AccountMap:
    """Accounts for one export run."""

    chart: ChartDefinition
    revenue_account: str
    expense_account: str

    @property
    def receivables_account(self) -> str:
        return self.chart.receivables_account

    @property
    def bank_account(self) -> str:
        return self.chart.bank_account

    def expense_account_for(self, category: ExpenseCategory | str) -> str:
        """Category account of the chart, else the configured expense account."""
        key = ExpenseCategory(category).value
        return self.chart.expense_accounts.get(key) or self.expense_account

    def tax_key_for(self, rate: Decimal) -> str:
        """DATEV BU key or BMD VAT code for a rate ('' when none applies)."""
        return self.chart.tax_keys.get(format_rate(rate), "")

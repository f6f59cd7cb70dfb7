"""
Collaborator protocols -- what the ledger/export core consumes.

Responsibility:
    Declares the read interfaces the surrounding practice-management
    application must supply: invoice, expense and time-entry queries by date
    range, the workspace organization profile, and the active jurisdiction.

Architecture position:
    Kernel > Domain -- pure interfaces, no implementations.
    Services depend on these protocols; tests supply in-memory fakes.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from typing import Protocol, runtime_checkable

from kanzlei_kernel.domain.dtos import (
    Expense,
    Invoice,
    Jurisdiction,
    OrganizationProfile,
    TimeEntry,
)


@runtime_checkable
class InvoiceSource(Protocol):
    def invoices_in_range(
        self,
        workspace_id: str,
        start: date,
        end: date,
        matter_id: str | None = None,
    ) -> Sequence[Invoice]:
        ...


@runtime_checkable
class ExpenseSource(Protocol):
    def expenses_in_range(
        self,
        workspace_id: str,
        start: date,
        end: date,
        matter_id: str | None = None,
    ) -> Sequence[Expense]:
        ...


@runtime_checkable
class TimeEntrySource(Protocol):
    def time_entries_in_range(
        self,
        workspace_id: str,
        start: date,
        end: date,
        matter_id: str | None = None,
    ) -> Sequence[TimeEntry]:
        ...


@runtime_checkable
class OrganizationProfileProvider(Protocol):
    """Returns the practice's master data, or None if none was captured yet."""

    def get_organization_profile(self, workspace_id: str) -> OrganizationProfile | None:
        ...


@runtime_checkable
class JurisdictionResolver(Protocol):
    def get_active_jurisdiction(self) -> Jurisdiction:
        ...

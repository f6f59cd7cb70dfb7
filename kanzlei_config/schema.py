"""
Policy table schema.

Typed, frozen view of the two YAML policy tables:

  jurisdictions.yaml = compliance rules per jurisdiction and provider
  charts.yaml        = chart-of-accounts variants used by the export formats

The loader parses YAML into these types; engines only ever read them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

# ---------------------------------------------------------------------------
# Compliance policies
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RequiredField:
    """A profile field that must be non-empty, with its user-facing label."""

    key: str
    label: str


@dataclass(frozen=True)
class IdentityRequirements:
    """Rule 1 of the compliance gate: who is exporting."""

    name_field: RequiredField
    tax_identity_keys: tuple[str, ...]  # any one of them suffices
    tax_identity_label: str


@dataclass(frozen=True)
class ProviderRequirements:
    """Provider-specific profile fields (rule 2)."""

    provider: str
    required_fields: tuple[RequiredField, ...] = ()
    iban_warning: str | None = None


@dataclass(frozen=True)
class JurisdictionPolicy:
    """Compliance policy of one jurisdiction."""

    jurisdiction: str
    provider: str
    allowed_tax_rates: tuple[Decimal, ...] | None = None  # None = no fixed set
    required_fields: tuple[RequiredField, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def has_fixed_rates(self) -> bool:
        return self.allowed_tax_rates is not None


# ---------------------------------------------------------------------------
# Charts of accounts
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ChartDefinition:
    """One chart-of-accounts variant (SKR03, SKR04, BMD)."""

    name: str
    receivables_account: str
    bank_account: str
    client_funds_account: str
    expense_accounts: dict[str, str] = field(default_factory=dict)
    tax_keys: dict[str, str] = field(default_factory=dict)  # rate -> BU key / VAT code


@dataclass(frozen=True)
class ProviderDefaults:
    """Defaults applied when an export config is created for a provider."""

    provider: str
    chart: str
    revenue_account: str
    expense_account: str
    vat_account: str
    encoding: str = "utf-8"
    csv_separator: str = ";"


# ---------------------------------------------------------------------------
# Loaded tables
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PolicyTables:
    """Everything loaded from the policies directory, with its checksum."""

    version: str
    checksum: str
    identity: IdentityRequirements
    no_fixed_rates_warning: str
    providers: dict[str, ProviderRequirements]
    jurisdictions: dict[str, JurisdictionPolicy]
    charts: dict[str, ChartDefinition]
    provider_defaults: dict[str, ProviderDefaults]

    def policy_for(self, jurisdiction: str) -> JurisdictionPolicy:
        """
        Raises:
            KeyError: If the jurisdiction has no policy.
        """
        return self.jurisdictions[jurisdiction]

    def chart(self, name: str) -> ChartDefinition:
        return self.charts[name]

    def requirements_for(self, provider: str) -> ProviderRequirements:
        return self.providers.get(provider) or ProviderRequirements(provider=provider)

    def defaults_for(self, provider: str) -> ProviderDefaults:
        return self.provider_defaults[provider]

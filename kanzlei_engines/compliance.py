"""
Accounting Compliance Engine (``kanzlei_engines.compliance``).

Responsibility
--------------
Pure evaluation of a (jurisdiction, provider, organization profile) triple,
plus the invoices of an export window, against the jurisdiction policy
table.  The one-click export runs this gate before anything is generated
or written.

Rules, applied in order:

1. Identity: organization name, and tax number OR VAT id.
2. Provider and jurisdiction profile fields (DATEV adviser and client
   numbers, BMD firm number, VAT id for CH/FR/IT/PT/PL).  A missing IBAN
   is only a warning.
3. Tax rates: where the jurisdiction has a fixed rate set, every
   non-voided invoice with another rate is a rule violation.  Without a
   fixed set the check is skipped and a warning says so.

Architecture position
---------------------
**Engines layer** -- pure functional core.  ZERO I/O, ZERO database,
ZERO clock reads.  The policy table is passed in by the caller.

Invariants enforced
-------------------
* ``is_compliant`` iff no missing fields and no rule violations; warnings
  never block.
* Deterministic: same inputs and tables give the same result, with
  messages in rule order.

Failure modes
-------------
* Returns results (not exceptions) for compliance gaps;
  ``ensure_compliant`` turns a failed result into ComplianceBlockedError.
* ``KeyError`` for a jurisdiction that has no policy.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from kanzlei_engines.tracer import traced_engine
from kanzlei_kernel.domain.dtos import (
    DEFAULT_FORMAT_BY_PROVIDER,
    AccountingProvider,
    ExportFormat,
    Invoice,
    Jurisdiction,
    OrganizationProfile,
)
from kanzlei_kernel.domain.values import format_rate
from kanzlei_kernel.exceptions import ComplianceBlockedError

if TYPE_CHECKING:
    from kanzlei_config.schema import JurisdictionPolicy, PolicyTables


@dataclass(frozen=True)
class AccountingComplianceResult:
    """Outcome of one compliance evaluation. Not persisted."""

    jurisdiction: Jurisdiction
    provider: AccountingProvider
    missing_fields: tuple[str, ...] = ()
    rule_violations: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def is_compliant(self) -> bool:
        return not self.missing_fields and not self.rule_violations


def provider_for(jurisdiction: Jurisdiction | str, tables: PolicyTables) -> AccountingProvider:
    """Target provider for a jurisdiction; generic CSV when it has no policy."""
    policy = tables.jurisdictions.get(Jurisdiction(jurisdiction).value)
    if policy is None:
        return AccountingProvider.CSV
    return AccountingProvider(policy.provider)


def default_format_for(provider: AccountingProvider | str) -> ExportFormat:
    return DEFAULT_FORMAT_BY_PROVIDER[AccountingProvider(provider)]


def _identity_gaps(profile: OrganizationProfile, tables: PolicyTables) -> list[str]:
    identity = tables.identity
    missing = []
    if not profile.has(identity.name_field.key):
        missing.append(identity.name_field.label)
    if not any(profile.has(key) for key in identity.tax_identity_keys):
        missing.append(identity.tax_identity_label)
    return missing


def tax_rule_violations(
    invoices: Iterable[Invoice],
    policy: JurisdictionPolicy,
) -> list[str]:
    """Rule 3. Voided invoices are never checked."""
    if not policy.has_fixed_rates:
        return []
    allowed = policy.allowed_tax_rates
    allowed_text = ", ".join(format_rate(r) for r in allowed)
    violations = []
    for invoice in invoices:
        if invoice.is_voided:
            continue
        if invoice.tax_percent not in allowed:
            violations.append(
                f"Invoice {invoice.number}: tax {format_rate(invoice.tax_percent)}% "
                f"not allowed for {policy.jurisdiction} (allowed: {allowed_text})"
            )
    return violations


def _trace_summary(result: AccountingComplianceResult) -> dict:
    return {
        "is_compliant": result.is_compliant,
        "missing_field_count": len(result.missing_fields),
        "violation_count": len(result.rule_violations),
    }


@traced_engine(
    "compliance",
    "1.0",
    fingerprint_fields=("jurisdiction", "provider"),
    summarize=_trace_summary,
)
def evaluate(
    jurisdiction: Jurisdiction | str,
    provider: AccountingProvider | str,
    profile: OrganizationProfile | None,
    invoices: Iterable[Invoice] = (),
    *,
    tables: PolicyTables,
) -> AccountingComplianceResult:
    """
    Evaluate the compliance gate.

    Args:
        jurisdiction: Active jurisdiction of the practice.
        provider: Target accounting provider.
        profile: Organization profile; None is treated as an empty profile.
        invoices: Invoices of the export window (rule 3).
        tables: Loaded policy tables (``kanzlei_config.get_policy_tables()``).
    """
    jurisdiction = Jurisdiction(jurisdiction)
    provider = AccountingProvider(provider)
    profile = profile or OrganizationProfile()
    policy = tables.policy_for(jurisdiction.value)
    requirements = tables.requirements_for(provider.value)

    missing = _identity_gaps(profile, tables)
    warnings: list[str] = []

    for required in requirements.required_fields:
        if not profile.has(required.key):
            missing.append(required.label)
    if requirements.iban_warning and not profile.has("iban"):
        warnings.append(requirements.iban_warning)

    for required in policy.required_fields:
        if not profile.has(required.key) and required.label not in missing:
            missing.append(required.label)

    warnings.extend(policy.warnings)
    if not policy.has_fixed_rates:
        warnings.append(tables.no_fixed_rates_warning.format(jurisdiction=jurisdiction.value))

    return AccountingComplianceResult(
        jurisdiction=jurisdiction,
        provider=provider,
        missing_fields=tuple(missing),
        rule_violations=tuple(tax_rule_violations(invoices, policy)),
        warnings=tuple(warnings),
    )


def ensure_compliant(result: AccountingComplianceResult) -> AccountingComplianceResult:
    """
    Fail closed on a non-compliant result.

    Raises:
        ComplianceBlockedError: listing missing fields, then violations.
    """
    if not result.is_compliant:
        raise ComplianceBlockedError(
            result.jurisdiction.value,
            result.provider.value,
            result.missing_fields,
            result.rule_violations,
        )
    return result

"""
Policy Loader (``kanzlei_config.loader``).

Responsibility
--------------
Loads the YAML policy files and parses them into the frozen
``kanzlei_config.schema`` dataclasses.  Runtime callers go through
``kanzlei_config.get_policy_tables()``; this module is the tooling
underneath it.

Architecture position
---------------------
**Config layer**.  Depends only on PyYAML and the schema; never on
engines or services.

Invariants enforced
-------------------
* Missing required keys raise ``KeyError``; no silent defaults for
  required fields.
* Tax rates are parsed to ``Decimal`` from their string form, never via
  float.
* ``compute_checksum`` is deterministic for identical YAML content.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown provider referenced by a jurisdiction  -> ``ValueError``.

Audit relevance
---------------
The checksum identifies which policy version gated an export; it is
logged on every load.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

from kanzlei_config.schema import (
    ChartDefinition,
    IdentityRequirements,
    JurisdictionPolicy,
    PolicyTables,
    ProviderDefaults,
    ProviderRequirements,
    RequiredField,
)

JURISDICTIONS_FILE = "jurisdictions.yaml"
CHARTS_FILE = "charts.yaml"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def parse_rate(value: Any) -> Decimal:
    """Parse a tax rate from YAML ('19', 5.5, 0) into a Decimal."""
    if isinstance(value, bool):
        raise ValueError(f"Cannot parse tax rate from {value!r}")
    return Decimal(str(value))


def rate_key(value: Any) -> str:
    """Normalized string key for a tax rate ('19', '5.5')."""
    return format(parse_rate(value).normalize(), "f")


def parse_required_field(data: dict[str, Any]) -> RequiredField:
    return RequiredField(key=data["key"], label=data["label"])


def parse_identity(data: dict[str, Any]) -> IdentityRequirements:
    tax = data["tax_identity"]
    return IdentityRequirements(
        name_field=parse_required_field(data["name_field"]),
        tax_identity_keys=tuple(tax["keys"]),
        tax_identity_label=tax["label"],
    )


def parse_provider(provider: str, data: dict[str, Any]) -> ProviderRequirements:
    return ProviderRequirements(
        provider=provider,
        required_fields=tuple(
            parse_required_field(f) for f in data.get("required_fields", [])
        ),
        iban_warning=data.get("iban_warning"),
    )


def parse_jurisdiction(jurisdiction: str, data: dict[str, Any]) -> JurisdictionPolicy:
    """
    Parse one jurisdiction policy.

    ``allowed_tax_rates`` absent or null means the jurisdiction has no fixed
    rate set; the tax-rate rule is then skipped with a warning.
    """
    rates_raw = data.get("allowed_tax_rates")
    rates = None if rates_raw is None else tuple(parse_rate(r) for r in rates_raw)
    return JurisdictionPolicy(
        jurisdiction=jurisdiction,
        provider=data["provider"],
        allowed_tax_rates=rates,
        required_fields=tuple(
            parse_required_field(f) for f in data.get("required_fields", [])
        ),
        warnings=tuple(data.get("warnings", [])),
    )


def parse_chart(name: str, data: dict[str, Any]) -> ChartDefinition:
    return ChartDefinition(
        name=name,
        receivables_account=str(data["receivables_account"]),
        bank_account=str(data["bank_account"]),
        client_funds_account=str(data["client_funds_account"]),
        expense_accounts={k: str(v) for k, v in (data.get("expense_accounts") or {}).items()},
        tax_keys={rate_key(k): str(v) for k, v in (data.get("tax_keys") or {}).items()},
    )


def parse_provider_defaults(provider: str, data: dict[str, Any]) -> ProviderDefaults:
    return ProviderDefaults(
        provider=provider,
        chart=data["chart"],
        revenue_account=str(data["revenue_account"]),
        expense_account=str(data["expense_account"]),
        vat_account=str(data["vat_account"]),
        encoding=data.get("encoding", "utf-8"),
        csv_separator=data.get("csv_separator", ";"),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 over the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def load_policy_tables(config_dir: Path) -> PolicyTables:
    """
    Load both policy files from ``config_dir``.

    Postconditions:
        - Every jurisdiction references a known provider.
        - Every provider default references a known chart.

    Raises:
        FileNotFoundError, yaml.YAMLError, KeyError, ValueError.
    """
    jurisdictions_raw = load_yaml_file(config_dir / JURISDICTIONS_FILE)
    charts_raw = load_yaml_file(config_dir / CHARTS_FILE)

    providers = {
        name: parse_provider(name, data or {})
        for name, data in jurisdictions_raw["providers"].items()
    }
    jurisdictions = {
        str(code): parse_jurisdiction(str(code), data)
        for code, data in jurisdictions_raw["jurisdictions"].items()
    }
    for policy in jurisdictions.values():
        if policy.provider not in providers:
            raise ValueError(
                f"Jurisdiction {policy.jurisdiction} references unknown provider "
                f"{policy.provider!r}"
            )

    charts = {name: parse_chart(name, data) for name, data in charts_raw["charts"].items()}
    provider_defaults = {
        name: parse_provider_defaults(name, data)
        for name, data in charts_raw["provider_defaults"].items()
    }
    for defaults in provider_defaults.values():
        if defaults.chart not in charts:
            raise ValueError(
                f"Provider {defaults.provider} defaults to unknown chart {defaults.chart!r}"
            )

    return PolicyTables(
        version=str(jurisdictions_raw.get("version", "0")),
        checksum=compute_checksum(
            {"jurisdictions": jurisdictions_raw, "charts": charts_raw}
        ),
        identity=parse_identity(jurisdictions_raw["identity"]),
        no_fixed_rates_warning=jurisdictions_raw["no_fixed_rates_warning"],
        providers=providers,
        jurisdictions=jurisdictions,
        charts=charts,
        provider_defaults=provider_defaults,
    )

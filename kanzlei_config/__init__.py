"""
kanzlei_config -- single public entrypoint for export policy tables.

Responsibility:
    Provides the ONLY way to obtain the compliance policy table and the
    chart-of-accounts mappings at runtime through ``get_policy_tables()``.
    New jurisdictions are added to ``policies/jurisdictions.yaml``, not to
    code.

Architecture position:
    Configuration -- sits above ``kanzlei_kernel`` and below
    ``kanzlei_services``.  Engines receive the loaded tables as arguments
    and never read files themselves.

Invariants enforced:
    - Single entrypoint: all runtime policy flows through
      ``get_policy_tables()``.
    - Deterministic: same YAML always yields the same checksum.

Failure modes:
    - ``FileNotFoundError`` -- policies directory or file missing.
    - ``ValueError`` / ``KeyError`` -- structurally invalid policy files.

Audit relevance:
    Every load emits a ``KANZLEI_CONFIG_TRACE`` log entry with the policy
    version and checksum, tying each compliance decision to the exact
    table that produced it.
"""

from __future__ import annotations

import functools
import logging
from pathlib import Path

from kanzlei_config.loader import load_policy_tables
from kanzlei_config.schema import (
    ChartDefinition,
    JurisdictionPolicy,
    PolicyTables,
    ProviderDefaults,
    ProviderRequirements,
    RequiredField,
)

_logger = logging.getLogger("kanzlei_kernel.config")

_DEFAULT_CONFIG_DIR = Path(__file__).parent / "policies"


@functools.lru_cache(maxsize=8)
def get_policy_tables(config_dir: Path | None = None) -> PolicyTables:
    """The ONLY public policy entrypoint.

    Loads are cached per directory; call ``get_policy_tables.cache_clear()``
    after editing the YAML in a running process.

    Args:
        config_dir: Override path to the policies directory.
            Defaults to kanzlei_config/policies/.

    Raises:
        FileNotFoundError: If the directory or a policy file is missing.
        ValueError: If the policy files are inconsistent.
    """
    policies_dir = Path(config_dir) if config_dir is not None else _DEFAULT_CONFIG_DIR
    if not policies_dir.is_dir():
        raise FileNotFoundError(f"Policies directory not found: {policies_dir}")

    tables = load_policy_tables(policies_dir)

    _logger.info(
        "KANZLEI_CONFIG_TRACE",
        extra={
            "trace_type": "KANZLEI_CONFIG_TRACE",
            "policy_version": tables.version,
            "checksum": tables.checksum,
            "jurisdiction_count": len(tables.jurisdictions),
            "chart_count": len(tables.charts),
            "config_dir": str(policies_dir),
        },
    )
    return tables


__all__ = [
    "ChartDefinition",
    "JurisdictionPolicy",
    "PolicyTables",
    "ProviderDefaults",
    "ProviderRequirements",
    "RequiredField",
    "get_policy_tables",
]

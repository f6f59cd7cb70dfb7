"""
Canonical JSON and SHA-256 sealing shared by both hash chains.

The fiscal signature ledger and the export journal seal entries the same
way::

    payload_hash = sha256(canonical_json(payload))
    chain_hash   = sha256(previous_hash + ":" + payload_hash)

with ``previous_hash = "GENESIS"`` for the first entry of a workspace.
Canonical JSON sorts keys, has no whitespace and renders Decimals in plain
fixed-point without trailing zeros, so ``Decimal("119.00")`` and
``Decimal("119")`` seal identically no matter how a database round-trips
the column scale.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from kanzlei_kernel.exceptions import CryptoUnavailableError

HASH_ALGORITHM = "sha256"
GENESIS_HASH = "GENESIS"


def _encode_scalar(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        return format(obj.normalize(), "f")
    if isinstance(obj, Enum):
        return obj.value
    # datetime before date: datetime is a date subclass
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    raise TypeError(f"{type(obj).__name__} has no canonical JSON form")


def canonicalize_json(data: Any) -> str:
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=_encode_scalar)


def sha256_hex(text: str) -> str:
    """
    Hex SHA-256 of ``text`` (UTF-8).

    Raises:
        CryptoUnavailableError: The interpreter refuses SHA-256 (for example
            a restricted OpenSSL build).  Nothing may be appended unsealed,
            so callers let this abort the transaction.
    """
    try:
        digest = hashlib.new(HASH_ALGORITHM, text.encode("utf-8"))
    except (ValueError, AttributeError) as exc:
        raise CryptoUnavailableError(HASH_ALGORITHM, str(exc)) from exc
    return digest.hexdigest()


def hash_payload(payload: dict) -> str:
    return sha256_hex(canonicalize_json(payload))


def hash_chain_link(previous_hash: str | None, payload_hash: str) -> str:
    """Chain hash of an entry; ``None`` means the entry opens the chain."""
    return sha256_hex(f"{previous_hash or GENESIS_HASH}:{payload_hash}")

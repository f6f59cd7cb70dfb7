"""
ORM-Level Append-Only Enforcement (Layer 1 of 2).

===============================================================================
WHY THIS EXISTS
===============================================================================

Fiscal signatures and export journal entries are hash-chained evidence.
Editing one silently breaks (or worse, forges) the chain.  Corrections are
made by appending a compensating entry, never by rewriting history.

  Layer 1: THIS FILE (ORM event listeners)
    - Catches modifications through Python/SQLAlchemy code
    - Fires BEFORE the SQL is sent to the database

  Layer 2: db/triggers.py (database triggers)
    - Catches raw SQL, bulk UPDATE statements, direct database access

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity              | Rule
--------------------|-------------------------------------------------------
FiscalSignature     | Immutable from creation; never deleted
ExportJournalEntry  | Immutable from creation; never deleted
Kassenbeleg         | Only the one-way flip to voided (plus its new
                    | signature link fields); never un-voided, never deleted

===============================================================================
USAGE
===============================================================================

    from kanzlei_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
    # ... tamper ...
    register_immutability_listeners()
"""

from sqlalchemy import event, inspect

from kanzlei_kernel.exceptions import ImmutabilityViolationError
from kanzlei_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _block(entity_type: str, target, operation: str, reason: str, field: str | None = None):
    extra = {
        "entity_type": entity_type,
        "entity_id": str(target.id),
        "operation": operation,
    }
    if field is not None:
        extra["field"] = field
    logger.error("immutability_violation_blocked", extra=extra)
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


# =============================================================================
# Chained ledgers: always immutable
# =============================================================================


def _check_fiscal_signature_update(mapper, connection, target):
    """Fiscal signatures are never modified."""
    _block("FiscalSignature", target, "UPDATE", "Fiscal signatures are append-only")


def _check_fiscal_signature_delete(mapper, connection, target):
    """Fiscal signatures are never deleted."""
    _block("FiscalSignature", target, "DELETE", "Fiscal signatures cannot be deleted")


def _check_export_journal_update(mapper, connection, target):
    _block("ExportJournalEntry", target, "UPDATE", "Export journal entries are append-only")


def _check_export_journal_delete(mapper, connection, target):
    _block("ExportJournalEntry", target, "DELETE", "Export journal entries cannot be deleted")


# =============================================================================
# Kassenbeleg: one-way void flip only
# =============================================================================


def _check_kassenbeleg_update(mapper, connection, target):
    """
    Allow exactly one transition: voided False -> True together with the
    void metadata and the new signature link.  Everything else is frozen.
    """
    from kanzlei_kernel.models.kassenbeleg import KASSENBELEG_VOID_FIELDS

    insp = inspect(target)
    voided_hist = insp.attrs.voided.history

    if voided_hist.deleted and voided_hist.deleted[0]:
        _block("Kassenbeleg", target, "UPDATE", "A voided receipt cannot be reinstated", "voided")

    flipping_to_void = bool(voided_hist.added and voided_hist.added[0]) and not (
        voided_hist.deleted and voided_hist.deleted[0]
    )
    was_voided = bool(voided_hist.unchanged and voided_hist.unchanged[0])

    for attr in insp.attrs:
        if not attr.history.has_changes() or attr.key == "updated_at":
            continue
        if flipping_to_void and attr.key in KASSENBELEG_VOID_FIELDS:
            continue
        reason = (
            "Voided receipts are frozen"
            if was_voided
            else f"Cannot modify field '{attr.key}' on a cash receipt"
        )
        _block("Kassenbeleg", target, "UPDATE", reason, attr.key)


def _check_kassenbeleg_delete(mapper, connection, target):
    _block("Kassenbeleg", target, "DELETE", "Cash receipts are retained, never deleted")


# =============================================================================
# Registration
# =============================================================================


def _listeners():
    from kanzlei_kernel.models.export_journal import ExportJournalEntry
    from kanzlei_kernel.models.fiscal_signature import FiscalSignature
    from kanzlei_kernel.models.kassenbeleg import Kassenbeleg

    return [
        (FiscalSignature, "before_update", _check_fiscal_signature_update),
        (FiscalSignature, "before_delete", _check_fiscal_signature_delete),
        (ExportJournalEntry, "before_update", _check_export_journal_update),
        (ExportJournalEntry, "before_delete", _check_export_journal_delete),
        (Kassenbeleg, "before_update", _check_kassenbeleg_update),
        (Kassenbeleg, "before_delete", _check_kassenbeleg_delete),
    ]


def register_immutability_listeners():
    """
    Register all append-only enforcement listeners.

    Idempotent; call once after models are imported and before any
    database operations begin.
    """
    for target, event_name, fn in _listeners():
        if not event.contains(target, event_name, fn):
            event.listen(target, event_name, fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove append-only enforcement listeners.

    WARNING: Only use this in tests that intentionally violate the rules
    to verify detection.
    """
    for target, event_name, fn in _listeners():
        _safe_remove_listener(target, event_name, fn)

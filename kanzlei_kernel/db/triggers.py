"""
Module: kanzlei_kernel.db.triggers
Responsibility: Installing, removing and verifying database-level
    append-only triggers (Layer 2 of 2).  This is the database complement to
    the ORM listeners in db/immutability.py.
Architecture position: Kernel > DB.  May import from db/ only.  MUST NOT
    import from models/, services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - fiscal_signatures rows: no UPDATE, no DELETE.
    - export_journal rows: no UPDATE, no DELETE.
    - kassenbelege rows: no DELETE; no UPDATE once voided; amount, receipt
      number, booking date and invoice are never rewritten.

    Both PostgreSQL (plpgsql) and SQLite trigger dialects are provided.

Failure modes:
    - PostgreSQL RAISE EXCEPTION / SQLite RAISE(ABORT) on violation,
      surfaced by SQLAlchemy as IntegrityError or DatabaseError.
    - NotImplementedError for any other dialect.

Audit relevance:
    Raw SQL, bulk statements and direct database access bypass the ORM
    listeners; these triggers still reject them.
"""

from sqlalchemy import text
from sqlalchemy.engine import Engine

ALL_TRIGGER_NAMES = [
    "trg_fiscal_signature_no_update",
    "trg_fiscal_signature_no_delete",
    "trg_export_journal_no_update",
    "trg_export_journal_no_delete",
    "trg_kassenbeleg_guard_update",
    "trg_kassenbeleg_no_delete",
]

_KASSENBELEG_FROZEN_SQLITE = (
    "OLD.voided = 1 OR NEW.voided = 0 AND OLD.voided = 0 AND ("
    "NEW.fiscal_signature_hash IS NOT OLD.fiscal_signature_hash) "
    "OR NEW.gross_amount IS NOT OLD.gross_amount "
    "OR NEW.receipt_number IS NOT OLD.receipt_number "
    "OR NEW.booking_date IS NOT OLD.booking_date "
    "OR NEW.invoice_id IS NOT OLD.invoice_id"
)

_SQLITE_INSTALL = [
    """
    CREATE TRIGGER IF NOT EXISTS trg_fiscal_signature_no_update
    BEFORE UPDATE ON fiscal_signatures
    BEGIN
        SELECT RAISE(ABORT, 'fiscal_signatures is append-only: UPDATE rejected');
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS trg_fiscal_signature_no_delete
    BEFORE DELETE ON fiscal_signatures
    BEGIN
        SELECT RAISE(ABORT, 'fiscal_signatures is append-only: DELETE rejected');
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS trg_export_journal_no_update
    BEFORE UPDATE ON export_journal
    BEGIN
        SELECT RAISE(ABORT, 'export_journal is append-only: UPDATE rejected');
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS trg_export_journal_no_delete
    BEFORE DELETE ON export_journal
    BEGIN
        SELECT RAISE(ABORT, 'export_journal is append-only: DELETE rejected');
    END
    """,
    f"""
    CREATE TRIGGER IF NOT EXISTS trg_kassenbeleg_guard_update
    BEFORE UPDATE ON kassenbelege
    WHEN {_KASSENBELEG_FROZEN_SQLITE}
    BEGIN
        SELECT RAISE(ABORT, 'kassenbelege: only the one-way void flip is allowed');
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS trg_kassenbeleg_no_delete
    BEFORE DELETE ON kassenbelege
    BEGIN
        SELECT RAISE(ABORT, 'kassenbelege cannot be deleted');
    END
    """,
]

_POSTGRES_INSTALL = [
    """
    CREATE OR REPLACE FUNCTION kanzlei_reject_mutation() RETURNS trigger AS $$
    BEGIN
        RAISE EXCEPTION '% is append-only: % rejected', TG_TABLE_NAME, TG_OP;
    END;
    $$ LANGUAGE plpgsql
    """,
    """
    CREATE OR REPLACE FUNCTION kanzlei_guard_kassenbeleg() RETURNS trigger AS $$
    BEGIN
        IF TG_OP = 'DELETE' THEN
            RAISE EXCEPTION 'kassenbelege cannot be deleted';
        END IF;
        IF OLD.voided
           OR NOT NEW.voided AND NEW.fiscal_signature_hash IS DISTINCT FROM OLD.fiscal_signature_hash
           OR NEW.gross_amount IS DISTINCT FROM OLD.gross_amount
           OR NEW.receipt_number IS DISTINCT FROM OLD.receipt_number
           OR NEW.booking_date IS DISTINCT FROM OLD.booking_date
           OR NEW.invoice_id IS DISTINCT FROM OLD.invoice_id THEN
            RAISE EXCEPTION 'kassenbelege: only the one-way void flip is allowed';
        END IF;
        RETURN NEW;
    END;
    $$ LANGUAGE plpgsql
    """,
    "DROP TRIGGER IF EXISTS trg_fiscal_signature_no_update ON fiscal_signatures",
    """
    CREATE TRIGGER trg_fiscal_signature_no_update BEFORE UPDATE ON fiscal_signatures
    FOR EACH ROW EXECUTE FUNCTION kanzlei_reject_mutation()
    """,
    "DROP TRIGGER IF EXISTS trg_fiscal_signature_no_delete ON fiscal_signatures",
    """
    CREATE TRIGGER trg_fiscal_signature_no_delete BEFORE DELETE ON fiscal_signatures
    FOR EACH ROW EXECUTE FUNCTION kanzlei_reject_mutation()
    """,
    "DROP TRIGGER IF EXISTS trg_export_journal_no_update ON export_journal",
    """
    CREATE TRIGGER trg_export_journal_no_update BEFORE UPDATE ON export_journal
    FOR EACH ROW EXECUTE FUNCTION kanzlei_reject_mutation()
    """,
    "DROP TRIGGER IF EXISTS trg_export_journal_no_delete ON export_journal",
    """
    CREATE TRIGGER trg_export_journal_no_delete BEFORE DELETE ON export_journal
    FOR EACH ROW EXECUTE FUNCTION kanzlei_reject_mutation()
    """,
    "DROP TRIGGER IF EXISTS trg_kassenbeleg_guard_update ON kassenbelege",
    """
    CREATE TRIGGER trg_kassenbeleg_guard_update BEFORE UPDATE ON kassenbelege
    FOR EACH ROW EXECUTE FUNCTION kanzlei_guard_kassenbeleg()
    """,
    "DROP TRIGGER IF EXISTS trg_kassenbeleg_no_delete ON kassenbelege",
    """
    CREATE TRIGGER trg_kassenbeleg_no_delete BEFORE DELETE ON kassenbelege
    FOR EACH ROW EXECUTE FUNCTION kanzlei_guard_kassenbeleg()
    """,
]

_POSTGRES_TABLE_BY_TRIGGER = {
    "trg_fiscal_signature_no_update": "fiscal_signatures",
    "trg_fiscal_signature_no_delete": "fiscal_signatures",
    "trg_export_journal_no_update": "export_journal",
    "trg_export_journal_no_delete": "export_journal",
    "trg_kassenbeleg_guard_update": "kassenbelege",
    "trg_kassenbeleg_no_delete": "kassenbelege",
}


def _install_statements(engine: Engine) -> list[str]:
    if engine.dialect.name == "sqlite":
        return _SQLITE_INSTALL
    if engine.dialect.name == "postgresql":
        return _POSTGRES_INSTALL
    raise NotImplementedError(f"No immutability triggers for dialect {engine.dialect.name}")


def _drop_statements(engine: Engine) -> list[str]:
    if engine.dialect.name == "sqlite":
        return [f"DROP TRIGGER IF EXISTS {name}" for name in ALL_TRIGGER_NAMES]
    if engine.dialect.name == "postgresql":
        return [
            f"DROP TRIGGER IF EXISTS {name} ON {_POSTGRES_TABLE_BY_TRIGGER[name]}"
            for name in ALL_TRIGGER_NAMES
        ] + [
            "DROP FUNCTION IF EXISTS kanzlei_reject_mutation()",
            "DROP FUNCTION IF EXISTS kanzlei_guard_kassenbeleg()",
        ]
    raise NotImplementedError(f"No immutability triggers for dialect {engine.dialect.name}")


def install_immutability_triggers(engine: Engine) -> None:
    """
    Install database-level append-only triggers.

    Preconditions: Tables must exist (call after create_all).
    Postconditions: All triggers in ALL_TRIGGER_NAMES are installed.
        Installation is idempotent.
    """
    with engine.connect() as conn:
        for statement in _install_statements(engine):
            conn.execute(text(statement))
        conn.commit()


def uninstall_immutability_triggers(engine: Engine) -> None:
    """
    Remove database-level append-only triggers.

    WARNING: Only for tests that must tamper with stored rows to prove
    verification detects it.  Re-install immediately afterwards.
    """
    with engine.connect() as conn:
        for statement in _drop_statements(engine):
            conn.execute(text(statement))
        conn.commit()


def get_installed_triggers(engine: Engine) -> list[str]:
    """List which of the append-only triggers are currently installed."""
    names = ", ".join(f"'{name}'" for name in ALL_TRIGGER_NAMES)
    if engine.dialect.name == "sqlite":
        sql = f"SELECT name FROM sqlite_master WHERE type = 'trigger' AND name IN ({names}) ORDER BY name"
    else:
        sql = f"SELECT tgname FROM pg_trigger WHERE tgname IN ({names}) ORDER BY tgname"
    with engine.connect() as conn:
        return [row[0] for row in conn.execute(text(sql))]


def triggers_installed(engine: Engine) -> bool:
    """True iff every append-only trigger is installed."""
    return len(get_installed_triggers(engine)) == len(ALL_TRIGGER_NAMES)

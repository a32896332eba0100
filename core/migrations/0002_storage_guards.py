"""Storage-level guards that hold even when the ORM is bypassed.

- wallet_ledger rejects UPDATE and DELETE
- submissions/withdrawals reject status changes outside their transition tables

SQLite (dev/tests) and PostgreSQL get the same rules in their own trigger dialect.
"""

from django.db import migrations

LEDGER_MESSAGE = "Wallet ledger entries are immutable and cannot be modified"

SUBMISSION_EDGES = "(OLD.status = 'pending' AND NEW.status = 'under_review') OR (OLD.status = 'under_review' AND NEW.status IN ('approved', 'rejected'))"

WITHDRAWAL_EDGES = "(OLD.status = 'pending' AND NEW.status IN ('processing', 'cancelled')) OR (OLD.status = 'processing' AND NEW.status IN ('completed', 'failed'))"


SQLITE_FORWARD = [
    f"""
    CREATE TRIGGER wallet_ledger_no_update BEFORE UPDATE ON wallet_ledger
    BEGIN
        SELECT RAISE(ABORT, '{LEDGER_MESSAGE}');
    END
    """,
    f"""
    CREATE TRIGGER wallet_ledger_no_delete BEFORE DELETE ON wallet_ledger
    BEGIN
        SELECT RAISE(ABORT, '{LEDGER_MESSAGE}');
    END
    """,
    f"""
    CREATE TRIGGER submissions_status_transition BEFORE UPDATE OF status ON submissions
    WHEN OLD.status <> NEW.status AND NOT ({SUBMISSION_EDGES})
    BEGIN
        SELECT RAISE(ABORT, 'Invalid submission status transition');
    END
    """,
    f"""
    CREATE TRIGGER withdrawals_status_transition BEFORE UPDATE OF status ON withdrawals
    WHEN OLD.status <> NEW.status AND NOT ({WITHDRAWAL_EDGES})
    BEGIN
        SELECT RAISE(ABORT, 'Invalid withdrawal status transition');
    END
    """,
]

SQLITE_BACKWARD = [
    "DROP TRIGGER IF EXISTS withdrawals_status_transition",
    "DROP TRIGGER IF EXISTS submissions_status_transition",
    "DROP TRIGGER IF EXISTS wallet_ledger_no_delete",
    "DROP TRIGGER IF EXISTS wallet_ledger_no_update",
]


# ERRCODE 23000 so drivers surface these as IntegrityError, same as on SQLite.
POSTGRES_FORWARD = [
    f"""
    CREATE OR REPLACE FUNCTION prevent_ledger_modification() RETURNS trigger AS $$
    BEGIN
        RAISE EXCEPTION USING MESSAGE = '{LEDGER_MESSAGE}', ERRCODE = 'integrity_constraint_violation';
    END;
    $$ LANGUAGE plpgsql
    """,
    """
    CREATE TRIGGER wallet_ledger_no_update BEFORE UPDATE ON wallet_ledger
    FOR EACH ROW EXECUTE FUNCTION prevent_ledger_modification()
    """,
    """
    CREATE TRIGGER wallet_ledger_no_delete BEFORE DELETE ON wallet_ledger
    FOR EACH ROW EXECUTE FUNCTION prevent_ledger_modification()
    """,
    f"""
    CREATE OR REPLACE FUNCTION validate_submission_status_transition() RETURNS trigger AS $$
    BEGIN
        IF NEW.status IS DISTINCT FROM OLD.status AND NOT ({SUBMISSION_EDGES}) THEN
            RAISE EXCEPTION USING
                MESSAGE = 'Invalid submission status transition from ' || OLD.status || ' to ' || NEW.status,
                ERRCODE = 'integrity_constraint_violation';
        END IF;
        RETURN NEW;
    END;
    $$ LANGUAGE plpgsql
    """,
    """
    CREATE TRIGGER submissions_status_transition BEFORE UPDATE ON submissions
    FOR EACH ROW EXECUTE FUNCTION validate_submission_status_transition()
    """,
    f"""
    CREATE OR REPLACE FUNCTION validate_withdrawal_status_transition() RETURNS trigger AS $$
    BEGIN
        IF NEW.status IS DISTINCT FROM OLD.status AND NOT ({WITHDRAWAL_EDGES}) THEN
            RAISE EXCEPTION USING
                MESSAGE = 'Invalid withdrawal status transition from ' || OLD.status || ' to ' || NEW.status,
                ERRCODE = 'integrity_constraint_violation';
        END IF;
        RETURN NEW;
    END;
    $$ LANGUAGE plpgsql
    """,
    """
    CREATE TRIGGER withdrawals_status_transition BEFORE UPDATE ON withdrawals
    FOR EACH ROW EXECUTE FUNCTION validate_withdrawal_status_transition()
    """,
]

POSTGRES_BACKWARD = [
    "DROP TRIGGER IF EXISTS withdrawals_status_transition ON withdrawals",
    "DROP TRIGGER IF EXISTS submissions_status_transition ON submissions",
    "DROP TRIGGER IF EXISTS wallet_ledger_no_delete ON wallet_ledger",
    "DROP TRIGGER IF EXISTS wallet_ledger_no_update ON wallet_ledger",
    "DROP FUNCTION IF EXISTS validate_withdrawal_status_transition()",
    "DROP FUNCTION IF EXISTS validate_submission_status_transition()",
    "DROP FUNCTION IF EXISTS prevent_ledger_modification()",
]


def _run(schema_editor, statements_by_vendor):
    statements = statements_by_vendor.get(schema_editor.connection.vendor)
    if statements is None:
        raise RuntimeError(f"No storage guards for database vendor {schema_editor.connection.vendor!r}")
    for sql in statements:
        schema_editor.execute(sql, params=None)


def forwards(apps, schema_editor):
    _run(schema_editor, {"sqlite": SQLITE_FORWARD, "postgresql": POSTGRES_FORWARD})


def backwards(apps, schema_editor):
    _run(schema_editor, {"sqlite": SQLITE_BACKWARD, "postgresql": POSTGRES_BACKWARD})


class Migration(migrations.Migration):

    dependencies = [
        ("core", "0001_initial"),
    ]

    operations = [
        migrations.RunPython(forwards, backwards),
    ]

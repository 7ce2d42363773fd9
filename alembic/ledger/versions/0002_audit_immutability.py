"""protect audit rows from mutation

gateway_order_messages and order_timeline are append-only; gateway_orders
rows may be overwritten by re-initiation but never deleted.

Revision ID: 0002_audit_immutability
Revises: 0001_ledger
Create Date: 2026-10-19
"""

from alembic import op


revision = "0002_audit_immutability"
down_revision = "0001_ledger"
branch_labels = None
depends_on = None

# table -> operations rejected by the trigger
PROTECTED = {
    "gateway_order_messages": "UPDATE OR DELETE",
    "order_timeline": "UPDATE OR DELETE",
    "gateway_orders": "DELETE",
}


def upgrade() -> None:
    op.execute(
        """
        CREATE OR REPLACE FUNCTION reject_audit_mutation()
        RETURNS trigger
        LANGUAGE plpgsql
        AS $$
        BEGIN
            RAISE EXCEPTION '% on % is not allowed', TG_OP, TG_TABLE_NAME;
        END;
        $$;
        """
    )
    for table, operations in PROTECTED.items():
        op.execute(
            f"CREATE TRIGGER trg_{table}_protected BEFORE {operations} ON {table} "
            "FOR EACH ROW EXECUTE FUNCTION reject_audit_mutation();"
        )


def downgrade() -> None:
    for table in PROTECTED:
        op.execute(f"DROP TRIGGER IF EXISTS trg_{table}_protected ON {table};")
    op.execute("DROP FUNCTION IF EXISTS reject_audit_mutation();")

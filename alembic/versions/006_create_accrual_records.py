"""006: create accrual_records table

Revision ID: 006
Revises: 005
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "006"
down_revision: Union[str, None] = "005"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE accrual_records (
            id              BIGSERIAL       PRIMARY KEY,
            position_id     UUID            NOT NULL REFERENCES positions (id),
            period_index    INT             NOT NULL,
            amount          BIGINT          NOT NULL,
            period_at       TIMESTAMPTZ     NOT NULL,
            credited_at     TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_accrual_records_position_period UNIQUE (position_id, period_index),
            CONSTRAINT ck_accrual_records_period_gte_1    CHECK (period_index >= 1),
            CONSTRAINT ck_accrual_records_amount_gte_0    CHECK (amount >= 0)
        );
    """)
    op.execute("CREATE INDEX idx_accrual_records_credited_at ON accrual_records (credited_at);")
    op.execute("""
        CREATE TRIGGER trg_accrual_records_append_only
            BEFORE UPDATE OR DELETE ON accrual_records
            FOR EACH ROW EXECUTE FUNCTION fn_forbid_mutation();
    """)
    op.execute(
        "COMMENT ON TABLE accrual_records IS "
        "'One credited period per position; the unique key is the exactly-once boundary';"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS accrual_records CASCADE;")

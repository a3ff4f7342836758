"""007: create transactions table

Revision ID: 007
Revises: 006
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "007"
down_revision: Union[str, None] = "006"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE transactions (
            id              BIGSERIAL       PRIMARY KEY,
            user_id         UUID            NOT NULL REFERENCES users (id),
            tx_type         VARCHAR(32)     NOT NULL,
            amount          BIGINT          NOT NULL,
            balance_type    VARCHAR(20)     NOT NULL,
            description     TEXT,
            reference_type  VARCHAR(32),
            reference_id    VARCHAR(64),
            status          VARCHAR(20)     NOT NULL DEFAULT 'completed',
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_transactions_tx_type CHECK (tx_type IN (
                'investment', 'live_trade_investment', 'profit', 'live_trade_profit',
                'principal_return', 'principal_refund', 'referral_commission'
            )),
            CONSTRAINT ck_transactions_balance_type CHECK (
                balance_type IN ('deposit', 'profit', 'bonus', 'card')
            ),
            CONSTRAINT ck_transactions_status CHECK (status IN ('pending', 'completed', 'failed'))
        );
    """)
    op.execute("CREATE INDEX idx_transactions_user_id ON transactions (user_id, id DESC);")
    op.execute(
        "CREATE INDEX idx_transactions_reference ON transactions (reference_type, reference_id);"
    )
    op.execute("""
        CREATE TRIGGER trg_transactions_append_only
            BEFORE UPDATE OR DELETE ON transactions
            FOR EACH ROW EXECUTE FUNCTION fn_forbid_mutation();
    """)
    op.execute(
        "COMMENT ON TABLE transactions IS 'Append-only journal; amount signed, in cents';"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS transactions CASCADE;")

"""003: create user_balances table

Revision ID: 003
Revises: 002
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE user_balances (
            id                      UUID        PRIMARY KEY DEFAULT gen_random_uuid(),
            user_id                 UUID        NOT NULL REFERENCES users (id),
            deposit_balance         BIGINT      NOT NULL DEFAULT 0,
            profit_balance          BIGINT      NOT NULL DEFAULT 0,
            bonus_balance           BIGINT      NOT NULL DEFAULT 0,
            card_balance            BIGINT      NOT NULL DEFAULT 0,
            total_balance           BIGINT      NOT NULL DEFAULT 0,
            credit_score_balance    BIGINT      NOT NULL DEFAULT 0,
            version                 BIGINT      NOT NULL DEFAULT 0,
            created_at              TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at              TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_user_balances_user_id     UNIQUE (user_id),
            CONSTRAINT ck_user_balances_deposit     CHECK (deposit_balance >= 0),
            CONSTRAINT ck_user_balances_profit      CHECK (profit_balance >= 0),
            CONSTRAINT ck_user_balances_bonus       CHECK (bonus_balance >= 0),
            CONSTRAINT ck_user_balances_card        CHECK (card_balance >= 0),
            CONSTRAINT ck_user_balances_total       CHECK (
                total_balance = deposit_balance + profit_balance + bonus_balance + card_balance
            )
        );
    """)
    op.execute("""
        CREATE TRIGGER trg_user_balances_updated_at
            BEFORE UPDATE ON user_balances
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)
    op.execute(
        "COMMENT ON TABLE user_balances IS "
        "'Per-user sub-balances in cents; credit_score_balance is not money and not in total';"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS user_balances CASCADE;")

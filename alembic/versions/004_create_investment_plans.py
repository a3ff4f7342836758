"""004: create investment_plans table

Revision ID: 004
Revises: 003
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "004"
down_revision: Union[str, None] = "003"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE investment_plans (
            id                  UUID            PRIMARY KEY DEFAULT gen_random_uuid(),
            product_type        VARCHAR(20)     NOT NULL,
            name                VARCHAR(128)    NOT NULL,
            min_amount          BIGINT          NOT NULL DEFAULT 0,
            max_amount          BIGINT,
            period_profit_rate  NUMERIC(8, 6)   NOT NULL,
            duration_periods    INT             NOT NULL,
            is_active           BOOLEAN         NOT NULL DEFAULT TRUE,
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_plans_product_type    CHECK (product_type IN ('standard', 'live_trade')),
            CONSTRAINT ck_plans_rate            CHECK (period_profit_rate >= 0),
            CONSTRAINT ck_plans_duration        CHECK (duration_periods >= 1),
            CONSTRAINT ck_plans_amount_range    CHECK (
                min_amount >= 0 AND (max_amount IS NULL OR max_amount >= min_amount)
            )
        );
    """)
    op.execute("""
        CREATE TRIGGER trg_investment_plans_updated_at
            BEFORE UPDATE ON investment_plans
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS investment_plans CASCADE;")

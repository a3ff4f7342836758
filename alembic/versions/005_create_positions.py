"""005: create positions table

Revision ID: 005
Revises: 004
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "005"
down_revision: Union[str, None] = "004"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE positions (
            id                  UUID            PRIMARY KEY DEFAULT gen_random_uuid(),
            user_id             UUID            NOT NULL REFERENCES users (id),
            plan_id             UUID            NOT NULL REFERENCES investment_plans (id),
            product_type        VARCHAR(20)     NOT NULL,
            principal           BIGINT          NOT NULL,
            period_profit_rate  NUMERIC(8, 6)   NOT NULL,
            duration_periods    INT             NOT NULL,
            start_at            TIMESTAMPTZ     NOT NULL,
            end_at              TIMESTAMPTZ,
            cumulative_profit   BIGINT          NOT NULL DEFAULT 0,
            status              VARCHAR(20)     NOT NULL DEFAULT 'active',
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_positions_product_type    CHECK (product_type IN ('standard', 'live_trade')),
            CONSTRAINT ck_positions_principal       CHECK (principal > 0),
            CONSTRAINT ck_positions_duration        CHECK (duration_periods >= 1),
            CONSTRAINT ck_positions_profit_gte_0    CHECK (cumulative_profit >= 0),
            CONSTRAINT ck_positions_status          CHECK (
                status IN ('active', 'expired_pending', 'completed', 'deactivated', 'deleted')
            ),
            CONSTRAINT ck_positions_end_at_terminal CHECK (
                (end_at IS NULL) = (status IN ('active', 'expired_pending'))
            )
        );
    """)
    # Eligibility scan: one product, open statuses
    op.execute(
        "CREATE INDEX idx_positions_product_status ON positions (product_type, status, start_at);"
    )
    op.execute("CREATE INDEX idx_positions_user ON positions (user_id, start_at DESC);")
    op.execute("""
        CREATE TRIGGER trg_positions_updated_at
            BEFORE UPDATE ON positions
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)
    op.execute(
        "COMMENT ON TABLE positions IS "
        "'Standard investments and live trades; rate and duration snapshotted from the plan';"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS positions CASCADE;")

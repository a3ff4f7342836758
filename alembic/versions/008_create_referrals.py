"""008: create referrals and referral_commissions tables

Revision ID: 008
Revises: 007
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "008"
down_revision: Union[str, None] = "007"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE referrals (
            id                  UUID            PRIMARY KEY DEFAULT gen_random_uuid(),
            referrer_id         UUID            NOT NULL REFERENCES users (id),
            referred_id         UUID            NOT NULL REFERENCES users (id),
            commission_rate     NUMERIC(8, 6),
            commission_earned   BIGINT          NOT NULL DEFAULT 0,
            status              VARCHAR(20)     NOT NULL DEFAULT 'active',
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_referrals_referred    UNIQUE (referred_id),
            CONSTRAINT ck_referrals_not_self    CHECK (referrer_id <> referred_id),
            CONSTRAINT ck_referrals_status      CHECK (status IN ('active', 'inactive'))
        );
    """)
    op.execute("""
        CREATE TRIGGER trg_referrals_updated_at
            BEFORE UPDATE ON referrals
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)
    op.execute("""
        CREATE TABLE referral_commissions (
            id              BIGSERIAL       PRIMARY KEY,
            referral_id     UUID            NOT NULL REFERENCES referrals (id),
            position_id     UUID            NOT NULL REFERENCES positions (id),
            transaction_id  BIGINT          REFERENCES transactions (id),
            amount          BIGINT          NOT NULL,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_referral_commissions_position UNIQUE (referral_id, position_id),
            CONSTRAINT ck_referral_commissions_amount   CHECK (amount > 0)
        );
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS referral_commissions CASCADE;")
    op.execute("DROP TABLE IF EXISTS referrals CASCADE;")

"""initial schema

Revision ID: 2026_10_19_0000
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import ARRAY, UUID


# revision identifiers, used by Alembic.
revision: str = '2026_10_19_0000'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


# Locks (or creates) the subscriber row, applies the lazy monthly reset, charges a
# scan only for identified products, and reports what is left of the free quota.
INCREMENT_SCAN_USAGE_SQL = """
CREATE OR REPLACE FUNCTION increment_scan_usage(
    p_user_id UUID,
    p_product_identified BOOLEAN DEFAULT FALSE,
    p_free_limit INTEGER DEFAULT 5
)
RETURNS TABLE(scans_remaining INTEGER, is_subscribed BOOLEAN)
LANGUAGE plpgsql
AS $$
DECLARE
    v_row subscribers%ROWTYPE;
    v_next_reset TIMESTAMPTZ :=
        (date_trunc('month', now() AT TIME ZONE 'UTC') + INTERVAL '1 month') AT TIME ZONE 'UTC';
BEGIN
    INSERT INTO subscribers (user_id, scans_used_this_month, scans_reset_at)
    VALUES (p_user_id, 0, v_next_reset)
    ON CONFLICT (user_id) DO NOTHING;

    SELECT * INTO v_row FROM subscribers WHERE user_id = p_user_id FOR UPDATE;

    IF v_row.scans_reset_at IS NULL OR v_row.scans_reset_at <= now() THEN
        UPDATE subscribers
           SET scans_used_this_month = 0, scans_reset_at = v_next_reset, updated_at = now()
         WHERE id = v_row.id;
        v_row.scans_used_this_month := 0;
    END IF;

    IF p_product_identified THEN
        UPDATE subscribers
           SET scans_used_this_month = scans_used_this_month + 1, updated_at = now()
         WHERE id = v_row.id;
        v_row.scans_used_this_month := v_row.scans_used_this_month + 1;
    END IF;

    scans_remaining := GREATEST(p_free_limit - v_row.scans_used_this_month, 0);
    is_subscribed := COALESCE(v_row.subscribed, FALSE);
    RETURN NEXT;
END;
$$;
"""


def upgrade() -> None:
    """Create subscribers, medications, history and the scan usage procedure."""

    # ========================================================================
    # Create subscribers table
    # ========================================================================
    op.create_table(
        'subscribers',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('user_id', UUID(as_uuid=False), nullable=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('stripe_customer_id', sa.String(255), nullable=True),
        sa.Column('subscribed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('subscription_tier', sa.String(50), nullable=True),
        sa.Column('subscription_end', sa.DateTime(timezone=True), nullable=True),
        sa.Column('scans_used_this_month', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('scans_reset_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        # Constraints
        sa.CheckConstraint('scans_used_this_month >= 0', name='ck_scans_used_non_negative'),
        sa.UniqueConstraint('user_id', name='uq_subscribers_user_id'),
        sa.UniqueConstraint('email', name='uq_subscribers_email'),
    )
    op.create_index('idx_subscribers_stripe_customer_id', 'subscribers', ['stripe_customer_id'])

    # ========================================================================
    # Create user_medications table
    # ========================================================================
    op.create_table(
        'user_medications',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('user_id', UUID(as_uuid=False), nullable=False),
        sa.Column('medication_name', sa.String(255), nullable=False),
        sa.Column('dosage', sa.String(255), nullable=True),
        sa.Column('frequency', sa.String(255), nullable=True),
        sa.Column('purpose', sa.String(255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_index('idx_user_medications_user_id', 'user_medications', ['user_id'])

    # ========================================================================
    # Create food_analysis_history table
    # ========================================================================
    op.create_table(
        'food_analysis_history',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('user_id', UUID(as_uuid=False), nullable=False),
        sa.Column('product_name', sa.String(500), nullable=False),
        sa.Column('analysis_type', sa.String(50), nullable=False),
        sa.Column('compatibility_score', sa.Integer(), nullable=True),
        sa.Column('interaction_level', sa.String(20), nullable=False),
        sa.Column('warnings', ARRAY(sa.Text()), nullable=False, server_default='{}'),
        sa.Column('recommendations', ARRAY(sa.Text()), nullable=False, server_default='{}'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        sa.CheckConstraint(
            'compatibility_score IS NULL OR (compatibility_score BETWEEN 0 AND 100)',
            name='ck_history_score_range',
        ),
    )
    op.create_index(
        'idx_food_analysis_history_user_created',
        'food_analysis_history',
        ['user_id', 'created_at'],
    )

    # ========================================================================
    # Scan usage procedure
    # ========================================================================
    op.execute(INCREMENT_SCAN_USAGE_SQL)


def downgrade() -> None:
    """Drop everything created in upgrade."""
    op.execute('DROP FUNCTION IF EXISTS increment_scan_usage(UUID, BOOLEAN, INTEGER)')

    op.drop_index('idx_food_analysis_history_user_created', table_name='food_analysis_history')
    op.drop_table('food_analysis_history')

    op.drop_index('idx_user_medications_user_id', table_name='user_medications')
    op.drop_table('user_medications')

    op.drop_index('idx_subscribers_stripe_customer_id', table_name='subscribers')
    op.drop_table('subscribers')

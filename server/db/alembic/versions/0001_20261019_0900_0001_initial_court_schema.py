"""Initial court booking schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Upgrade database schema."""
    # Create holds table
    op.create_table('holds',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('court_id', sa.Integer(), nullable=False),
        sa.Column('start', sa.String(length=5), nullable=False),
        sa.Column('client_id', sa.String(length=128), nullable=False),
        sa.Column('user_id', sa.String(length=128), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('court_id > 0', name='ck_hold_court_positive'),
        sa.CheckConstraint('length(client_id) > 0', name='ck_hold_client_id_not_empty'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('date', 'court_id', 'start', name='uq_hold_cell')
    )
    op.create_index(op.f('ix_holds_date'), 'holds', ['date'], unique=False)
    op.create_index(op.f('ix_holds_client_id'), 'holds', ['client_id'], unique=False)
    op.create_index(op.f('ix_holds_expires_at'), 'holds', ['expires_at'], unique=False)

    # Create memberships table
    op.create_table('memberships',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('order_id', sa.String(length=64), nullable=False),
        sa.Column('user_id', sa.String(length=128), nullable=False),
        sa.Column('user_name', sa.String(length=255), nullable=True),
        sa.Column('user_email', sa.String(length=255), nullable=False),
        sa.Column('plan_id', sa.String(length=8), nullable=False),
        sa.Column('plan_name', sa.String(length=64), nullable=False),
        sa.Column('duration_months', sa.Integer(), nullable=False),
        sa.Column('total_games', sa.Integer(), nullable=False),
        sa.Column('games_used', sa.Integer(), server_default='0', nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), server_default='INR', nullable=False),
        sa.Column('status', sa.String(length=10), nullable=False),
        sa.Column('payment_raw', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('games_used >= 0', name='ck_membership_games_used_non_negative'),
        sa.CheckConstraint('games_used <= total_games', name='ck_membership_games_used_lte_total'),
        sa.CheckConstraint('total_games > 0', name='ck_membership_total_games_positive'),
        sa.CheckConstraint('duration_months > 0', name='ck_membership_duration_positive'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_memberships_order_id'), 'memberships', ['order_id'], unique=True)
    op.create_index(op.f('ix_memberships_user_id'), 'memberships', ['user_id'], unique=False)
    op.create_index(op.f('ix_memberships_status'), 'memberships', ['status'], unique=False)
    op.create_index(op.f('ix_memberships_created_at'), 'memberships', ['created_at'], unique=False)

    # Create bookings table
    op.create_table('bookings',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('order_id', sa.String(length=64), nullable=False),
        sa.Column('payer_kind', sa.String(length=10), nullable=False),
        sa.Column('user_id', sa.String(length=128), nullable=True),
        sa.Column('payer_name', sa.String(length=255), server_default='', nullable=False),
        sa.Column('payer_email', sa.String(length=255), nullable=True),
        sa.Column('payer_phone', sa.String(length=32), nullable=True),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), server_default='INR', nullable=False),
        sa.Column('status', sa.String(length=10), nullable=False),
        sa.Column('funding', sa.String(length=12), nullable=False),
        sa.Column('payment_ref', sa.String(length=64), nullable=True),
        sa.Column('payment_raw', sa.JSON(), nullable=True),
        sa.Column('membership_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('amount >= 0', name='ck_booking_amount_non_negative'),
        sa.CheckConstraint('length(order_id) > 0', name='ck_booking_order_id_not_empty'),
        sa.CheckConstraint('length(currency) = 3', name='ck_booking_currency_length'),
        sa.CheckConstraint("payer_kind != 'MEMBER' OR user_id IS NOT NULL", name='ck_booking_member_has_user'),
        sa.ForeignKeyConstraint(['membership_id'], ['memberships.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_bookings_order_id'), 'bookings', ['order_id'], unique=True)
    op.create_index(op.f('ix_bookings_user_id'), 'bookings', ['user_id'], unique=False)
    op.create_index(op.f('ix_bookings_payer_email'), 'bookings', ['payer_email'], unique=False)
    op.create_index(op.f('ix_bookings_date'), 'bookings', ['date'], unique=False)
    op.create_index(op.f('ix_bookings_status'), 'bookings', ['status'], unique=False)
    op.create_index(op.f('ix_bookings_created_at'), 'bookings', ['created_at'], unique=False)

    # Create booking_slots table; the cell constraint forbids double booking
    op.create_table('booking_slots',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('booking_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('court_id', sa.Integer(), nullable=False),
        sa.Column('start', sa.String(length=5), nullable=False),
        sa.Column('end', sa.String(length=5), nullable=False),
        sa.CheckConstraint('court_id > 0', name='ck_booking_slot_court_positive'),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('date', 'court_id', 'start', name='uq_booking_slot_cell')
    )
    op.create_index(op.f('ix_booking_slots_booking_id'), 'booking_slots', ['booking_id'], unique=False)

    # Create refunds table
    op.create_table('refunds',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('source', sa.String(length=10), nullable=False),
        sa.Column('booking_id', sa.String(length=64), nullable=False),
        sa.Column('order_id', sa.String(length=64), nullable=True),
        sa.Column('slot_index', sa.Integer(), nullable=True),
        sa.Column('user_id', sa.String(length=128), nullable=False),
        sa.Column('amount', sa.Integer(), server_default='0', nullable=False),
        sa.Column('currency', sa.String(length=3), server_default='INR', nullable=False),
        sa.Column('gateway', sa.String(length=10), nullable=False),
        sa.Column('refund_id', sa.String(length=128), nullable=True),
        sa.Column('gateway_response', sa.JSON(), nullable=True),
        sa.Column('status', sa.String(length=12), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('amount_before', sa.Integer(), nullable=False),
        sa.Column('amount_after', sa.Integer(), nullable=False),
        sa.Column('slots_before', sa.Integer(), nullable=False),
        sa.Column('slots_after', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('amount >= 0', name='ck_refund_amount_non_negative'),
        sa.CheckConstraint('amount_after >= 0', name='ck_refund_amount_after_non_negative'),
        sa.CheckConstraint('slots_after = slots_before - 1', name='ck_refund_one_slot_per_record'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_refunds_booking_id'), 'refunds', ['booking_id'], unique=False)
    op.create_index(op.f('ix_refunds_user_id'), 'refunds', ['user_id'], unique=False)
    op.create_index(op.f('ix_refunds_order_id'), 'refunds', ['order_id'], unique=False)
    op.create_index(op.f('ix_refunds_created_at'), 'refunds', ['created_at'], unique=False)

    # Create settlement_followups table
    op.create_table('settlement_followups',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('kind', sa.String(length=20), nullable=False),
        sa.Column('status', sa.String(length=10), nullable=False),
        sa.Column('booking_id', sa.String(length=64), nullable=True),
        sa.Column('order_id', sa.String(length=64), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('attempts', sa.Integer(), server_default='0', nullable=False),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_settlement_followups_kind'), 'settlement_followups', ['kind'], unique=False)
    op.create_index(op.f('ix_settlement_followups_status'), 'settlement_followups', ['status'], unique=False)
    op.create_index(op.f('ix_settlement_followups_booking_id'), 'settlement_followups', ['booking_id'], unique=False)
    op.create_index(op.f('ix_settlement_followups_order_id'), 'settlement_followups', ['order_id'], unique=False)
    op.create_index(op.f('ix_settlement_followups_created_at'), 'settlement_followups', ['created_at'], unique=False)

    # Create idempotency_records table
    op.create_table('idempotency_records',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('idempotency_key', sa.String(length=255), nullable=False),
        sa.Column('method', sa.String(length=100), nullable=False),
        sa.Column('user_id', sa.String(length=128), server_default='', nullable=False),
        sa.Column('request_body_hash', sa.String(length=64), nullable=False),
        sa.Column('response_status_code', sa.Integer(), nullable=False),
        sa.Column('response_body', sa.Text(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('length(idempotency_key) > 0', name='ck_idempotency_key_not_empty'),
        sa.CheckConstraint('length(method) > 0', name='ck_idempotency_method_not_empty'),
        sa.CheckConstraint('length(request_body_hash) = 64', name='ck_idempotency_hash_length'),
        sa.CheckConstraint('response_status_code >= 100', name='ck_idempotency_status_code_valid'),
        sa.CheckConstraint('response_status_code <= 599', name='ck_idempotency_status_code_max'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('idempotency_key', 'method', 'user_id', name='uq_idempotency_key_method_user')
    )
    op.create_index(op.f('ix_idempotency_records_expires_at'), 'idempotency_records', ['expires_at'], unique=False)
    op.create_index(op.f('ix_idempotency_records_idempotency_key'), 'idempotency_records', ['idempotency_key'], unique=False)
    op.create_index(op.f('ix_idempotency_records_method'), 'idempotency_records', ['method'], unique=False)


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_table('idempotency_records')
    op.drop_table('settlement_followups')
    op.drop_table('refunds')
    op.drop_table('booking_slots')
    op.drop_table('bookings')
    op.drop_table('memberships')
    op.drop_table('holds')

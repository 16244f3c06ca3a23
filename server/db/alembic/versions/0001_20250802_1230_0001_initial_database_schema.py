"""Initial database schema

Revision ID: 0001
Revises:
Create Date: 2025-08-02 12:30:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Upgrade database schema."""
    # Create plans table
    op.create_table('plans',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('vendor_id', sa.String(length=128), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price_amount', sa.Integer(), nullable=False),
        sa.Column('price_currency', sa.String(length=3), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('price_amount >= 0', name='ck_plan_price_amount_non_negative'),
        sa.CheckConstraint('length(name) > 0', name='ck_plan_name_not_empty'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_plans_vendor_id'), 'plans', ['vendor_id'], unique=False)

    # Create departures table
    op.create_table('departures',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('plan_id', sa.Uuid(), nullable=False),
        sa.Column('departure_date', sa.Date(), nullable=False),
        sa.Column('pickup_location', sa.String(length=255), nullable=False),
        sa.Column('pickup_time', sa.String(length=5), nullable=False),
        sa.Column('total_capacity', sa.Integer(), nullable=False),
        sa.Column('booked_seats', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('total_capacity > 0', name='ck_departure_total_capacity_positive'),
        sa.CheckConstraint('booked_seats >= 0', name='ck_departure_booked_seats_non_negative'),
        sa.CheckConstraint('booked_seats <= total_capacity', name='ck_departure_booked_seats_lte_capacity'),
        sa.CheckConstraint(
            "status IN ('scheduled', 'confirmed', 'cancelled', 'completed')",
            name='ck_departure_status_valid'
        ),
        sa.ForeignKeyConstraint(['plan_id'], ['plans.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_departures_plan_id'), 'departures', ['plan_id'], unique=False)
    op.create_index(op.f('ix_departures_departure_date'), 'departures', ['departure_date'], unique=False)
    op.create_index(op.f('ix_departures_status'), 'departures', ['status'], unique=False)

    # Create bookings table
    op.create_table('bookings',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('plan_id', sa.Uuid(), nullable=False),
        sa.Column('departure_id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.String(length=128), nullable=False),
        sa.Column('num_people', sa.Integer(), nullable=False),
        sa.Column('payment_status', sa.String(length=20), nullable=False),
        sa.Column('booking_status', sa.String(length=20), nullable=False),
        sa.Column('payment_reference', sa.String(length=128), nullable=True),
        sa.Column('payment_attempts', sa.Integer(), server_default='0', nullable=False),
        sa.Column('trip_cost', sa.Integer(), nullable=False),
        sa.Column('platform_fee', sa.Integer(), nullable=False),
        sa.Column('total_amount', sa.Integer(), nullable=False),
        sa.Column('refund_status', sa.String(length=20), nullable=False),
        sa.Column('refund_percentage', sa.Integer(), nullable=True),
        sa.Column('refund_amount', sa.Integer(), nullable=True),
        sa.Column('refund_reference', sa.String(length=128), nullable=True),
        sa.Column('refund_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('vendor_payout_status', sa.String(length=20), nullable=False),
        sa.Column('vendor_payout_amount', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('num_people > 0', name='ck_booking_num_people_positive'),
        sa.CheckConstraint('trip_cost >= 0', name='ck_booking_trip_cost_non_negative'),
        sa.CheckConstraint('platform_fee >= 0', name='ck_booking_platform_fee_non_negative'),
        sa.CheckConstraint(
            'refund_percentage IS NULL OR (refund_percentage >= 0 AND refund_percentage <= 100)',
            name='ck_booking_refund_percentage_range'
        ),
        sa.CheckConstraint('length(user_id) > 0', name='ck_booking_user_id_not_empty'),
        sa.ForeignKeyConstraint(['departure_id'], ['departures.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_bookings_plan_id'), 'bookings', ['plan_id'], unique=False)
    op.create_index(op.f('ix_bookings_departure_id'), 'bookings', ['departure_id'], unique=False)
    op.create_index(op.f('ix_bookings_user_id'), 'bookings', ['user_id'], unique=False)
    op.create_index(op.f('ix_bookings_payment_status'), 'bookings', ['payment_status'], unique=False)
    op.create_index(op.f('ix_bookings_booking_status'), 'bookings', ['booking_status'], unique=False)

    # Eligible-booking scan during departure cancellation
    op.create_index(
        'ix_bookings_departure_status',
        'bookings',
        ['departure_id', 'booking_status', 'payment_status'],
        unique=False
    )


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_index('ix_bookings_departure_status', table_name='bookings')
    op.drop_index(op.f('ix_bookings_booking_status'), table_name='bookings')
    op.drop_index(op.f('ix_bookings_payment_status'), table_name='bookings')
    op.drop_index(op.f('ix_bookings_user_id'), table_name='bookings')
    op.drop_index(op.f('ix_bookings_departure_id'), table_name='bookings')
    op.drop_index(op.f('ix_bookings_plan_id'), table_name='bookings')
    op.drop_table('bookings')

    op.drop_index(op.f('ix_departures_status'), table_name='departures')
    op.drop_index(op.f('ix_departures_departure_date'), table_name='departures')
    op.drop_index(op.f('ix_departures_plan_id'), table_name='departures')
    op.drop_table('departures')

    op.drop_index(op.f('ix_plans_vendor_id'), table_name='plans')
    op.drop_table('plans')

"""Initial database schema

Revision ID: 0001
Revises:
Create Date: 2025-10-17 09:00:00.000000

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
    # Create departures table
    op.create_table('departures',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('code', sa.String(length=64), nullable=False),
        sa.Column('departure_date', sa.Date(), nullable=False),
        sa.Column('return_date', sa.Date(), nullable=False),
        sa.Column('quota', sa.Integer(), nullable=False),
        sa.Column('reserved_seats', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('price_quad', sa.BigInteger(), nullable=True),
        sa.Column('price_triple', sa.BigInteger(), nullable=True),
        sa.Column('price_double', sa.BigInteger(), nullable=True),
        sa.Column('price_single', sa.BigInteger(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('quota >= 0', name='ck_departure_quota_non_negative'),
        sa.CheckConstraint('reserved_seats >= 0', name='ck_departure_reserved_non_negative'),
        sa.CheckConstraint('reserved_seats <= quota', name='ck_departure_reserved_lte_quota'),
        sa.CheckConstraint('return_date >= departure_date', name='ck_departure_dates_ordered'),
        sa.CheckConstraint('price_quad IS NULL OR price_quad >= 0', name='ck_departure_price_quad_non_negative'),
        sa.CheckConstraint('price_triple IS NULL OR price_triple >= 0', name='ck_departure_price_triple_non_negative'),
        sa.CheckConstraint('price_double IS NULL OR price_double >= 0', name='ck_departure_price_double_non_negative'),
        sa.CheckConstraint('price_single IS NULL OR price_single >= 0', name='ck_departure_price_single_non_negative'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code')
    )
    op.create_index(op.f('ix_departures_code'), 'departures', ['code'], unique=False)
    op.create_index(op.f('ix_departures_departure_date'), 'departures', ['departure_date'], unique=False)
    op.create_index(op.f('ix_departures_status'), 'departures', ['status'], unique=False)

    # Create seat_reservations table
    op.create_table('seat_reservations',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('departure_id', sa.Uuid(), nullable=False),
        sa.Column('seats', sa.Integer(), nullable=False),
        sa.Column('customer_ref', sa.String(length=128), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('released_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('seats > 0', name='ck_reservation_seats_positive'),
        sa.CheckConstraint('length(customer_ref) > 0', name='ck_reservation_customer_ref_not_empty'),
        sa.ForeignKeyConstraint(['departure_id'], ['departures.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_seat_reservations_customer_ref'), 'seat_reservations', ['customer_ref'], unique=False)
    op.create_index(op.f('ix_seat_reservations_departure_id'), 'seat_reservations', ['departure_id'], unique=False)
    op.create_index(op.f('ix_seat_reservations_status'), 'seat_reservations', ['status'], unique=False)

    # Create bookings table
    op.create_table('bookings',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('reservation_id', sa.Uuid(), nullable=False),
        sa.Column('departure_id', sa.Uuid(), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('customer_ref', sa.String(length=128), nullable=False),
        sa.Column('quad_pax', sa.Integer(), nullable=False),
        sa.Column('triple_pax', sa.Integer(), nullable=False),
        sa.Column('double_pax', sa.Integer(), nullable=False),
        sa.Column('single_pax', sa.Integer(), nullable=False),
        sa.Column('total_pax', sa.Integer(), nullable=False),
        sa.Column('total_price', sa.BigInteger(), nullable=False),
        sa.Column('paid_amount', sa.BigInteger(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint(
            'quad_pax >= 0 AND triple_pax >= 0 AND double_pax >= 0 AND single_pax >= 0',
            name='ck_booking_pax_non_negative'
        ),
        sa.CheckConstraint('total_pax > 0', name='ck_booking_total_pax_positive'),
        sa.CheckConstraint(
            'total_pax = quad_pax + triple_pax + double_pax + single_pax',
            name='ck_booking_total_pax_consistency'
        ),
        sa.CheckConstraint('total_price >= 0', name='ck_booking_total_price_non_negative'),
        sa.CheckConstraint('paid_amount >= 0', name='ck_booking_paid_non_negative'),
        sa.CheckConstraint('paid_amount <= total_price', name='ck_booking_paid_lte_total'),
        sa.CheckConstraint('length(customer_ref) > 0', name='ck_booking_customer_ref_not_empty'),
        sa.CheckConstraint('length(code) > 0', name='ck_booking_code_not_empty'),
        sa.ForeignKeyConstraint(['departure_id'], ['departures.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['reservation_id'], ['seat_reservations.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code'),
        sa.UniqueConstraint('reservation_id')
    )
    op.create_index(op.f('ix_bookings_code'), 'bookings', ['code'], unique=False)
    op.create_index(op.f('ix_bookings_customer_ref'), 'bookings', ['customer_ref'], unique=False)
    op.create_index(op.f('ix_bookings_departure_id'), 'bookings', ['departure_id'], unique=False)
    op.create_index(op.f('ix_bookings_reservation_id'), 'bookings', ['reservation_id'], unique=False)
    op.create_index(op.f('ix_bookings_status'), 'bookings', ['status'], unique=False)

    # Create payments table
    op.create_table('payments',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('booking_id', sa.Uuid(), nullable=False),
        sa.Column('amount', sa.BigInteger(), nullable=False),
        sa.Column('kind', sa.String(length=20), nullable=False),
        sa.Column('method', sa.String(length=64), nullable=True),
        sa.Column('reference', sa.String(length=255), nullable=True),
        sa.Column('recorded_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('amount != 0', name='ck_payment_amount_nonzero'),
        sa.CheckConstraint("kind != 'PAYMENT' OR amount > 0", name='ck_payment_amount_positive'),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_payments_booking_id'), 'payments', ['booking_id'], unique=False)
    op.create_index(op.f('ix_payments_recorded_at'), 'payments', ['recorded_at'], unique=False)

    # Create vendor_costs table
    op.create_table('vendor_costs',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('departure_id', sa.Uuid(), nullable=False),
        sa.Column('vendor_ref', sa.String(length=128), nullable=False),
        sa.Column('cost_type', sa.String(length=64), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('amount', sa.BigInteger(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('amount >= 0', name='ck_vendor_cost_amount_non_negative'),
        sa.CheckConstraint('length(vendor_ref) > 0', name='ck_vendor_cost_vendor_ref_not_empty'),
        sa.CheckConstraint('length(cost_type) > 0', name='ck_vendor_cost_type_not_empty'),
        sa.ForeignKeyConstraint(['departure_id'], ['departures.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_vendor_costs_departure_id'), 'vendor_costs', ['departure_id'], unique=False)
    op.create_index(op.f('ix_vendor_costs_status'), 'vendor_costs', ['status'], unique=False)
    op.create_index(op.f('ix_vendor_costs_vendor_ref'), 'vendor_costs', ['vendor_ref'], unique=False)

    # Create idempotency_records table
    op.create_table('idempotency_records',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('idempotency_key', sa.String(length=255), nullable=False),
        sa.Column('operation', sa.String(length=100), nullable=False),
        sa.Column('request_body_hash', sa.String(length=64), nullable=False),
        sa.Column('response_status_code', sa.Integer(), nullable=True),
        sa.Column('response_body', sa.Text(), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('length(idempotency_key) > 0', name='ck_idempotency_key_not_empty'),
        sa.CheckConstraint('length(operation) > 0', name='ck_idempotency_operation_not_empty'),
        sa.CheckConstraint('length(request_body_hash) = 64', name='ck_idempotency_hash_length'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('idempotency_key', 'operation', name='uq_idempotency_key_operation')
    )
    op.create_index(op.f('ix_idempotency_records_expires_at'), 'idempotency_records', ['expires_at'], unique=False)
    op.create_index(op.f('ix_idempotency_records_idempotency_key'), 'idempotency_records', ['idempotency_key'], unique=False)
    op.create_index(op.f('ix_idempotency_records_operation'), 'idempotency_records', ['operation'], unique=False)


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_table('idempotency_records')
    op.drop_table('vendor_costs')
    op.drop_table('payments')
    op.drop_table('bookings')
    op.drop_table('seat_reservations')
    op.drop_table('departures')

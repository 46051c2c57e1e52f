"""initial_reservation_schema

Revision ID: 3f9b2c7d1e40
Revises:
Create Date: 2026-10-19 09:12:44.518203

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f9b2c7d1e40'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

USER_ROLES = ('USER', 'EMPLOYEE', 'MANAGER', 'ADMIN', 'SUPER_ADMIN')
RESERVATION_STATUSES = ('PENDING', 'CONFIRMED', 'CANCELLED', 'CHECKED_IN', 'IN_PROGRESS', 'COMPLETED')
PAYMENT_STATUSES = ('PENDING', 'COMPLETED', 'FAILED', 'REFUNDED')


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    """
    Create the reservation schema.

    Creates:
    - users, venues, services
    - reservations
    - payments (optimistic lock column: version)
    - gateway_events (processed webhook ledger)
    """
    # 1. Users
    op.create_table(
        'users',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=True),
        sa.Column('last_name', sa.String(length=100), nullable=True),
        sa.Column('role', sa.Enum(*USER_ROLES, name='userrole', native_enum=False), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    # 2. Venues and their services
    op.create_table(
        'venues',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('address', sa.String(length=500), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_table(
        'services',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('venue_id', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('duration_minutes', sa.Integer(), nullable=True),
        sa.Column('capacity', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['venue_id'], ['venues.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_services_venue_id', 'services', ['venue_id'])

    # 3. Reservations
    op.create_table(
        'reservations',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('user_id', sa.String(length=32), nullable=False),
        sa.Column('service_id', sa.String(length=32), nullable=False),
        sa.Column('check_in_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('check_out_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('guest_count', sa.Integer(), nullable=False),
        sa.Column('total_amount', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column(
            'status',
            sa.Enum(*RESERVATION_STATUSES, name='reservationstatus', native_enum=False),
            nullable=False,
        ),
        sa.Column('special_requests', sa.Text(), nullable=True),
        sa.Column(
            'cancellation_source',
            sa.Enum('PAYMENT', 'REFUND', 'REQUEST', name='cancellationsource', native_enum=False),
            nullable=True,
        ),
        *_timestamps(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['service_id'], ['services.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_reservations_user_id', 'reservations', ['user_id'])
    op.create_index('ix_reservations_service_id', 'reservations', ['service_id'])
    op.create_index('ix_reservations_status', 'reservations', ['status'])
    op.create_index(
        'ix_reservations_service_dates',
        'reservations',
        ['service_id', 'check_in_date', 'check_out_date'],
    )

    # 4. Payments
    op.create_table(
        'payments',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('reservation_id', sa.String(length=32), nullable=False),
        sa.Column('user_id', sa.String(length=32), nullable=False),
        sa.Column('amount', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column(
            'status',
            sa.Enum(*PAYMENT_STATUSES, name='paymentstatus', native_enum=False),
            nullable=False,
        ),
        sa.Column('gateway_payment_id', sa.String(length=255), nullable=True),
        sa.Column('gateway_payment_method_id', sa.String(length=255), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=False),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('refunded_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['reservation_id'], ['reservations.id']),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_payments_reservation_id', 'payments', ['reservation_id'])
    op.create_index('ix_payments_user_id', 'payments', ['user_id'])
    op.create_index('ix_payments_status', 'payments', ['status'])
    op.create_index('ix_payments_gateway_payment_id', 'payments', ['gateway_payment_id'], unique=True)

    # 5. Processed gateway events
    op.create_table(
        'gateway_events',
        sa.Column('event_id', sa.String(length=255), nullable=False),
        sa.Column('event_type', sa.String(length=100), nullable=False),
        sa.Column('payment_id', sa.String(length=32), nullable=True),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['payment_id'], ['payments.id']),
        sa.PrimaryKeyConstraint('event_id'),
    )
    op.create_index('ix_gateway_events_payment_id', 'gateway_events', ['payment_id'])


def downgrade() -> None:
    """Drop the reservation schema, dependents first."""
    op.drop_index('ix_gateway_events_payment_id', table_name='gateway_events')
    op.drop_table('gateway_events')

    op.drop_index('ix_payments_gateway_payment_id', table_name='payments')
    op.drop_index('ix_payments_status', table_name='payments')
    op.drop_index('ix_payments_user_id', table_name='payments')
    op.drop_index('ix_payments_reservation_id', table_name='payments')
    op.drop_table('payments')

    op.drop_index('ix_reservations_service_dates', table_name='reservations')
    op.drop_index('ix_reservations_status', table_name='reservations')
    op.drop_index('ix_reservations_service_id', table_name='reservations')
    op.drop_index('ix_reservations_user_id', table_name='reservations')
    op.drop_table('reservations')

    op.drop_index('ix_services_venue_id', table_name='services')
    op.drop_table('services')
    op.drop_table('venues')

    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')

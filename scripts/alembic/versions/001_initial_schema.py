"""Initial schema with users, hotels, yachts, reservations, reviews

Revision ID: 001_initial_schema
Revises: 
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create initial database schema."""
    # Create enum types
    op.execute("CREATE TYPE userrole AS ENUM ('user', 'admin')")
    op.execute("CREATE TYPE resourcekind AS ENUM ('hotel', 'yacht')")
    op.execute("CREATE TYPE reservationstatus AS ENUM ('pending', 'confirmed', 'cancelled')")
    op.execute("CREATE TYPE paymentstatus AS ENUM ('pending', 'paid', 'failed', 'refunded')")

    resource_kind = postgresql.ENUM('hotel', 'yacht', name='resourcekind', create_type=False)

    # Create users table; phone and address hold Fernet ciphertext
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.Text(), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('role', postgresql.ENUM('user', 'admin', name='userrole', create_type=False), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email')
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    # Create hotels table
    op.create_table(
        'hotels',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('city', sa.String(length=100), nullable=False),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('price_per_night', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('stars', sa.Integer(), nullable=False, server_default='3'),
        sa.Column('capacity', sa.Integer(), nullable=False, server_default='2'),
        sa.Column('rating', sa.Numeric(precision=2, scale=1), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('price_per_night >= 0', name='check_hotel_nonnegative_price'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_hotels_city_active', 'hotels', ['city', 'is_active'])
    op.create_index('ix_hotels_rating_active', 'hotels', ['rating', 'is_active'])

    # Create yachts table
    op.create_table(
        'yachts',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('location', sa.String(length=100), nullable=False),
        sa.Column('price_per_day', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('capacity', sa.Integer(), nullable=False),
        sa.Column('crew_size', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('rating', sa.Numeric(precision=2, scale=1), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('price_per_day >= 0', name='check_yacht_nonnegative_price'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_yachts_location_active', 'yachts', ['location', 'is_active'])
    op.create_index('ix_yachts_capacity_active', 'yachts', ['capacity', 'is_active'])

    # Create reservations table; special_requests and payment_method hold ciphertext
    op.create_table(
        'reservations',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('resource_kind', resource_kind, nullable=False),
        sa.Column('resource_id', sa.Integer(), nullable=False),
        sa.Column('check_in', sa.Date(), nullable=False),
        sa.Column('check_out', sa.Date(), nullable=False),
        sa.Column('total_price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('status', postgresql.ENUM('pending', 'confirmed', 'cancelled', name='reservationstatus', create_type=False), nullable=False),
        sa.Column('guest_count', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('special_requests', sa.Text(), nullable=True),
        sa.Column('payment_method', sa.Text(), nullable=True),
        sa.Column('payment_status', postgresql.ENUM('pending', 'paid', 'failed', 'refunded', name='paymentstatus', create_type=False), nullable=False),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('check_out > check_in', name='check_valid_dates'),
        sa.CheckConstraint('guest_count > 0', name='check_positive_guest_count'),
        sa.CheckConstraint('total_price >= 0', name='check_nonnegative_total_price'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_reservations_user_status', 'reservations', ['user_id', 'status'])
    op.create_index('ix_reservations_resource', 'reservations', ['resource_kind', 'resource_id'])
    op.create_index(
        'ix_reservations_resource_dates',
        'reservations',
        ['resource_kind', 'resource_id', 'check_in', 'check_out'],
    )
    op.create_index('ix_reservations_status_created', 'reservations', ['status', 'created_at'])

    # Create reviews table
    op.create_table(
        'reviews',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('resource_kind', resource_kind, nullable=False),
        sa.Column('resource_id', sa.Integer(), nullable=False),
        sa.Column('reservation_id', sa.Integer(), nullable=True),
        sa.Column('rating', sa.Integer(), nullable=False),
        sa.Column('comment', sa.Text(), nullable=False, server_default=''),
        sa.Column('is_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('rating >= 1 AND rating <= 5', name='check_rating_range'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['reservation_id'], ['reservations.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'resource_kind', 'resource_id', name='uq_reviews_user_resource')
    )
    op.create_index('ix_reviews_resource', 'reviews', ['resource_kind', 'resource_id'])
    op.create_index('ix_reviews_user_created', 'reviews', ['user_id', 'created_at'])


def downgrade() -> None:
    """Drop all tables and types."""
    op.drop_table('reviews')
    op.drop_table('reservations')
    op.drop_table('yachts')
    op.drop_table('hotels')
    op.drop_table('users')

    op.execute('DROP TYPE IF EXISTS paymentstatus')
    op.execute('DROP TYPE IF EXISTS reservationstatus')
    op.execute('DROP TYPE IF EXISTS resourcekind')
    op.execute('DROP TYPE IF EXISTS userrole')

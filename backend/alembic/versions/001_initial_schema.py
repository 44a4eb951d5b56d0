"""Initial schema

Revision ID: 001_initial
Revises: 
Create Date: 2025-04-11 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_users_id'), 'users', ['id'], unique=False)
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)

    op.create_table(
        'metering_points',
        sa.Column('gsrn', sa.String(length=64), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('gsrn'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE')
    )
    op.create_index(op.f('ix_metering_points_user_id'), 'metering_points', ['user_id'], unique=False)

    op.create_table(
        'meter_readings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('value', sa.Numeric(precision=18, scale=6), nullable=False),
        sa.Column('reading_type_code', sa.String(length=100), nullable=False),
        sa.Column('quality', sa.JSON(), nullable=True),
        sa.Column('metering_point_id', sa.String(length=64), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['metering_point_id'], ['metering_points.gsrn'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.UniqueConstraint(
            'metering_point_id', 'reading_type_code', 'timestamp',
            name='uq_meter_readings_point_type_timestamp'
        )
    )
    op.create_index(op.f('ix_meter_readings_id'), 'meter_readings', ['id'], unique=False)
    op.create_index(op.f('ix_meter_readings_reading_type_code'), 'meter_readings', ['reading_type_code'], unique=False)
    op.create_index(op.f('ix_meter_readings_metering_point_id'), 'meter_readings', ['metering_point_id'], unique=False)
    op.create_index(op.f('ix_meter_readings_user_id'), 'meter_readings', ['user_id'], unique=False)
    op.create_index('idx_meter_readings_timestamp', 'meter_readings', ['timestamp'], unique=False)


def downgrade() -> None:
    op.drop_index('idx_meter_readings_timestamp', table_name='meter_readings')
    op.drop_index(op.f('ix_meter_readings_user_id'), table_name='meter_readings')
    op.drop_index(op.f('ix_meter_readings_metering_point_id'), table_name='meter_readings')
    op.drop_index(op.f('ix_meter_readings_reading_type_code'), table_name='meter_readings')
    op.drop_index(op.f('ix_meter_readings_id'), table_name='meter_readings')
    op.drop_table('meter_readings')

    op.drop_index(op.f('ix_metering_points_user_id'), table_name='metering_points')
    op.drop_table('metering_points')

    op.drop_index(op.f('ix_users_email'), table_name='users')
    op.drop_index(op.f('ix_users_id'), table_name='users')
    op.drop_table('users')

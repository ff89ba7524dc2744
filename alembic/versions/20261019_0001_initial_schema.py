"""Initial schema: users, reports, media, upvotes and history

Revision ID: 0001
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

user_role = sa.Enum('user', 'admin', name='userrole')
report_category = sa.Enum(
    'sanitation', 'public_works', 'transportation', 'parks_recreation', 'water_sewer', 'other',
    name='reportcategory',
)
report_severity = sa.Enum('low', 'medium', 'high', 'critical', name='reportseverity')
report_status = sa.Enum(
    'reported', 'acknowledged', 'in_progress', 'resolved', 'closed', 'rejected', name='reportstatus',
)
media_type = sa.Enum('image', 'video', 'audio', name='mediatype')
# reporthistory reuses the type created with the report table
existing_report_status = postgresql.ENUM(
    'reported', 'acknowledged', 'in_progress', 'resolved', 'closed', 'rejected',
    name='reportstatus', create_type=False,
)


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'user',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('hashed_password', sa.String(), nullable=False),
        sa.Column('role', user_role, nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('is_verified', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_user_id', 'user', ['id'])
    op.create_index('ix_user_email', 'user', ['email'], unique=True)
    op.create_index('ix_user_created_at', 'user', ['created_at'])

    op.create_table(
        'report',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('category', report_category, nullable=False),
        sa.Column('severity', report_severity, nullable=False),
        sa.Column('status', report_status, nullable=False),
        sa.Column('location_lat', sa.Float(), nullable=False),
        sa.Column('location_lng', sa.Float(), nullable=False),
        sa.Column('location_address', sa.String(255), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['user_id'], ['user.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_report_id', 'report', ['id'])
    op.create_index('ix_report_category', 'report', ['category'])
    op.create_index('ix_report_status', 'report', ['status'])
    op.create_index('ix_report_user_id', 'report', ['user_id'])
    op.create_index('ix_report_created_at', 'report', ['created_at'])
    op.create_index('ix_report_location', 'report', ['location_lat', 'location_lng'])

    op.create_table(
        'reportmedia',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('type', media_type, nullable=False),
        sa.Column('url', sa.String(512), nullable=False),
        sa.Column('storage_key', sa.String(255), nullable=False),
        sa.Column('mime_type', sa.String(100), nullable=False),
        sa.Column('file_size', sa.Integer(), nullable=False),
        sa.Column('report_id', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['report_id'], ['report.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('storage_key'),
    )
    op.create_index('ix_reportmedia_id', 'reportmedia', ['id'])
    op.create_index('ix_reportmedia_report_id', 'reportmedia', ['report_id'])
    op.create_index('ix_reportmedia_created_at', 'reportmedia', ['created_at'])

    op.create_table(
        'reportupvote',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('report_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['report_id'], ['report.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['user.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('report_id', 'user_id', name='uq_reportupvote_report_user'),
    )
    op.create_index('ix_reportupvote_id', 'reportupvote', ['id'])
    op.create_index('ix_reportupvote_report_id', 'reportupvote', ['report_id'])
    op.create_index('ix_reportupvote_user_id', 'reportupvote', ['user_id'])
    op.create_index('ix_reportupvote_created_at', 'reportupvote', ['created_at'])

    op.create_table(
        'reporthistory',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('status', existing_report_status, nullable=False),
        sa.Column('notes', sa.Text(), nullable=False),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.Column('report_id', sa.Integer(), nullable=False),
        sa.Column('updated_by_id', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['report_id'], ['report.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['updated_by_id'], ['user.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_reporthistory_id', 'reporthistory', ['id'])
    op.create_index('ix_reporthistory_report_id', 'reporthistory', ['report_id'])
    op.create_index('ix_reporthistory_created_at', 'reporthistory', ['created_at'])


def downgrade() -> None:
    op.drop_table('reporthistory')
    op.drop_table('reportupvote')
    op.drop_table('reportmedia')
    op.drop_table('report')
    op.drop_table('user')
    for enum_type in (media_type, report_status, report_severity, report_category, user_role):
        enum_type.drop(op.get_bind(), checkfirst=True)

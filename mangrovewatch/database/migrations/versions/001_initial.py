"""
Initial migration - Create all tables

Revision ID: 001_initial
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa
from geoalchemy2 import Geography

# Revision identifiers
revision = '001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create all tables."""

    # Enable PostGIS extension
    op.execute("CREATE EXTENSION IF NOT EXISTS postgis")

    # Create users table
    op.create_table(
        'users',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('role', sa.String(30), nullable=False, server_default='citizen'),
        sa.Column('name', sa.String(100)),
        sa.Column('alerts_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('points', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('reports_submitted', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('reports_validated', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.CheckConstraint('points >= 0', name='ck_user_points_non_negative'),
    )

    op.create_index('idx_user_role_alerts', 'users', ['role', 'alerts_enabled'])
    op.create_index('idx_user_points', 'users', ['points'])

    # Create badges table
    op.create_table(
        'badges',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False, unique=True),
        sa.Column('description', sa.String(500), nullable=False),
        sa.Column('icon', sa.String(200), nullable=False),
        sa.Column('category', sa.String(30), nullable=False),
        sa.Column('tier', sa.String(30), nullable=False),
        sa.Column('criterion_kind', sa.String(30), nullable=False),
        sa.Column('threshold', sa.Integer(), nullable=False),
        sa.Column('timeframe', sa.String(30), nullable=False, server_default='all_time'),
        sa.Column('points', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('rarity', sa.String(30), nullable=False, server_default='common'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('times_earned', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_earned_at', sa.DateTime()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.CheckConstraint('threshold >= 1', name='ck_badge_threshold_positive'),
    )

    op.create_index('idx_badge_criterion', 'badges', ['criterion_kind', 'threshold'])
    op.create_index('idx_badge_active', 'badges', ['is_active'])

    # Create user_badges table
    op.create_table(
        'user_badges',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('badge_id', sa.String(36), sa.ForeignKey('badges.id', ondelete='CASCADE'), nullable=False),
        sa.Column('earned_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('user_id', 'badge_id', name='uq_user_badge'),
    )

    # Create reports table
    op.create_table(
        'reports',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('incident_type', sa.String(30), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('severity', sa.String(20), nullable=False, server_default='medium'),
        sa.Column('longitude', sa.Float(), nullable=False),
        sa.Column('latitude', sa.Float(), nullable=False),
        sa.Column('reporter_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('validated_by', sa.String(36)),
        sa.Column('validated_at', sa.DateTime()),
        sa.Column('validation_notes', sa.Text()),
        sa.Column('view_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )

    op.create_index('idx_report_status', 'reports', ['status'])
    op.create_index('idx_report_reporter', 'reports', ['reporter_id'])
    op.create_index('idx_report_created_at', 'reports', ['created_at'])

    # Create report_photos table
    op.create_table(
        'report_photos',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('report_id', sa.String(36), sa.ForeignKey('reports.id', ondelete='CASCADE'), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('filename', sa.String(200), nullable=False),
        sa.Column('original_name', sa.String(255), nullable=False),
        sa.Column('path', sa.String(500), nullable=False),
        sa.Column('thumbnail_path', sa.String(500), nullable=False),
        sa.Column('size', sa.Integer(), nullable=False),
        sa.Column('mime_type', sa.String(50), nullable=False),
        sa.Column('exif', sa.JSON()),
        sa.Column('uploaded_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )

    op.create_index('idx_photo_report', 'report_photos', ['report_id', 'position'])

    # Create report_comments table
    op.create_table(
        'report_comments',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('report_id', sa.String(36), sa.ForeignKey('reports.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('text', sa.String(1000), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )

    op.create_index('idx_comment_report', 'report_comments', ['report_id', 'created_at'])

    # Create report_upvotes table
    op.create_table(
        'report_upvotes',
        sa.Column('report_id', sa.String(36), sa.ForeignKey('reports.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('user_id', sa.String(36), primary_key=True),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )

    op.create_index('idx_upvote_active', 'report_upvotes', ['report_id', 'active'])

    # Create report_locations table
    op.create_table(
        'report_locations',
        sa.Column('report_id', sa.String(36), primary_key=True),
        sa.Column('location', Geography('POINT', srid=4326, spatial_index=False), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_index('idx_report_location', 'report_locations', ['location'], postgresql_using='gist')

    # Create notifications table
    op.create_table(
        'notifications',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('recipient_id', sa.String(36), nullable=False),
        sa.Column('type', sa.String(30), nullable=False),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('message', sa.String(1000), nullable=False),
        sa.Column('related_report_id', sa.String(36)),
        sa.Column('related_user_id', sa.String(36)),
        sa.Column('related_badge_id', sa.String(36)),
        sa.Column('priority', sa.String(20), nullable=False, server_default='normal'),
        sa.Column('channels', sa.JSON(), nullable=False, server_default='["in_app"]'),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('read_at', sa.DateTime()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('expires_at', sa.DateTime()),
    )

    op.create_index('idx_notification_recipient_created', 'notifications', ['recipient_id', 'created_at'])
    op.create_index('idx_notification_recipient_read', 'notifications', ['recipient_id', 'is_read'])
    op.create_index('idx_notification_expires_at', 'notifications', ['expires_at'])

    # Create admin_activity table
    op.create_table(
        'admin_activity',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('actor_id', sa.String(36), nullable=False),
        sa.Column('action', sa.String(50), nullable=False),
        sa.Column('target_type', sa.String(30), nullable=False),
        sa.Column('target_id', sa.String(36), nullable=False),
        sa.Column('details', sa.Text(), server_default=''),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )

    op.create_index('idx_audit_target', 'admin_activity', ['target_id', 'created_at'])
    op.create_index('idx_audit_actor', 'admin_activity', ['actor_id'])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table('admin_activity')
    op.drop_table('notifications')
    op.drop_table('report_locations')
    op.drop_table('report_upvotes')
    op.drop_table('report_comments')
    op.drop_table('report_photos')
    op.drop_table('reports')
    op.drop_table('user_badges')
    op.drop_table('badges')
    op.drop_table('users')

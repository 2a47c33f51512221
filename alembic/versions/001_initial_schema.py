"""Initial schema with containers, members, work items and their threads.

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

json_list = sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')


def upgrade() -> None:
    # Create containers table (projects and sprints, single-table)
    op.create_table(
        'containers',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column('kind', sa.Enum('project', 'sprint', name='containerkind'), nullable=False),
        sa.Column('number', sa.String(20), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text, nullable=False, server_default=''),
        sa.Column('department', sa.String(100), nullable=False),
        sa.Column('status', sa.Enum('active', 'completed', 'archived', 'closed', name='containerstatus'), nullable=False, server_default='active'),
        sa.Column('health', sa.Enum('healthy', 'at-risk', 'delayed', 'critical', name='health'), nullable=False, server_default='healthy'),
        sa.Column('start_date', sa.DateTime, nullable=False),
        sa.Column('end_date', sa.DateTime),
        sa.Column('completed_at', sa.DateTime),
        sa.Column('project_id', sa.Uuid(as_uuid=True), sa.ForeignKey('containers.id', ondelete='SET NULL')),
        sa.Column('project_number', sa.String(20)),
        sa.Column('created_by', sa.String(255), nullable=False),
        sa.Column('created_by_name', sa.String(255), nullable=False),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('version', sa.Integer, nullable=False),
        sa.CheckConstraint('end_date IS NULL OR end_date > start_date', name='chk_container_dates'),
    )
    op.create_index('ix_containers_kind', 'containers', ['kind'])
    op.create_index('ix_containers_number', 'containers', ['number'], unique=True)
    op.create_index('ix_containers_department', 'containers', ['department'])
    op.create_index('ix_containers_status', 'containers', ['status'])
    op.create_index('ix_containers_project_id', 'containers', ['project_id'])
    op.create_index('ix_containers_created_at', 'containers', ['created_at'])

    # Create container_members table
    op.create_table(
        'container_members',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('container_id', sa.Uuid(as_uuid=True), sa.ForeignKey('containers.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('role', sa.Enum('lead', 'member', name='memberrole'), nullable=False, server_default='member'),
        sa.Column('joined_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('left_at', sa.DateTime),
    )
    op.create_index('ix_container_members_container_id', 'container_members', ['container_id'])
    op.create_index('ix_container_members_user_id', 'container_members', ['user_id'])

    # Create work_items table (deliverables and actions)
    op.create_table(
        'work_items',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column('container_id', sa.Uuid(as_uuid=True), sa.ForeignKey('containers.id', ondelete='CASCADE'), nullable=False),
        sa.Column('position', sa.Integer, nullable=False, server_default='0'),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text, nullable=False, server_default=''),
        sa.Column('assigned_to', json_list, nullable=False),
        sa.Column('status', sa.Enum('pending', 'in-progress', 'in-review', 'done', name='workitemstatus'), nullable=False, server_default='pending'),
        sa.Column('due_date', sa.DateTime),
        sa.Column('attachments', json_list, nullable=False),
        sa.Column('submission_note', sa.Text),
        sa.Column('submission_attachments', json_list, nullable=False),
        sa.Column('submitted_by', sa.String(255)),
        sa.Column('submitted_by_name', sa.String(255)),
        sa.Column('submitted_at', sa.DateTime),
        sa.Column('completed_at', sa.DateTime),
        sa.Column('created_by', sa.String(255)),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_work_items_container_id', 'work_items', ['container_id'])
    op.create_index('ix_work_items_status', 'work_items', ['status'])

    # Create work_item_blockers table
    op.create_table(
        'work_item_blockers',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('work_item_id', sa.Uuid(as_uuid=True), sa.ForeignKey('work_items.id', ondelete='CASCADE'), nullable=False),
        sa.Column('description', sa.Text, nullable=False),
        sa.Column('reported_by', sa.String(255), nullable=False),
        sa.Column('reported_by_name', sa.String(255)),
        sa.Column('reported_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('is_resolved', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('resolved_by', sa.String(255)),
        sa.Column('resolved_at', sa.DateTime),
        sa.Column('attachments', json_list, nullable=False),
    )
    op.create_index('ix_work_item_blockers_work_item_id', 'work_item_blockers', ['work_item_id'])

    # Create work_item_comments table
    op.create_table(
        'work_item_comments',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('work_item_id', sa.Uuid(as_uuid=True), sa.ForeignKey('work_items.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('user_name', sa.String(255), nullable=False),
        sa.Column('message', sa.Text, nullable=False),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_work_item_comments_work_item_id', 'work_item_comments', ['work_item_id'])

    # Create container_chat table
    op.create_table(
        'container_chat',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('container_id', sa.Uuid(as_uuid=True), sa.ForeignKey('containers.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('user_name', sa.String(255), nullable=False),
        sa.Column('message', sa.Text, nullable=False),
        sa.Column('timestamp', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('attachments', json_list, nullable=False),
    )
    op.create_index('ix_container_chat_container_id', 'container_chat', ['container_id'])

    # Create work_item_history table
    op.create_table(
        'work_item_history',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('work_item_id', sa.Uuid(as_uuid=True), sa.ForeignKey('work_items.id', ondelete='CASCADE'), nullable=False),
        sa.Column('action', sa.String(50), nullable=False),
        sa.Column('performed_by', sa.String(255), nullable=False),
        sa.Column('performed_by_name', sa.String(255), nullable=False),
        sa.Column('timestamp', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('details', sa.Text),
    )
    op.create_index('ix_work_item_history_work_item_id', 'work_item_history', ['work_item_id'])

    # Create id_sequences table for PRJ-/SPR- numbering
    op.create_table(
        'id_sequences',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('kind', sa.String(20), nullable=False),
        sa.Column('next_number', sa.Integer, nullable=False, server_default='1'),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('kind', name='unique_sequence_kind'),
        sa.CheckConstraint('next_number > 0', name='chk_next_number_positive'),
    )


def downgrade() -> None:
    # Drop tables
    op.drop_table('id_sequences')
    op.drop_table('work_item_history')
    op.drop_table('container_chat')
    op.drop_table('work_item_comments')
    op.drop_table('work_item_blockers')
    op.drop_table('work_items')
    op.drop_table('container_members')
    op.drop_table('containers')

    # Drop enums (Postgres only; other backends store them inline)
    if op.get_bind().dialect.name != 'postgresql':
        return
    op.execute('DROP TYPE IF EXISTS workitemstatus')
    op.execute('DROP TYPE IF EXISTS memberrole')
    op.execute('DROP TYPE IF EXISTS health')
    op.execute('DROP TYPE IF EXISTS containerstatus')
    op.execute('DROP TYPE IF EXISTS containerkind')

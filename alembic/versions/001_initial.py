"""Initial migration

Revision ID: 001
Revises:
Create Date: 2024-01-01 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Folders table
    op.create_table('folders',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('user_id', sa.String(length=36), nullable=False),
    sa.Column('title', sa.String(length=256), nullable=False),
    sa.Column('folder_type', sa.Enum('folder', 'project', 'space', name='folder_type'), nullable=False),
    sa.Column('view_type', sa.Enum('public', 'private', 'archived', name='folder_view_type'), nullable=True),
    sa.Column('description', sa.String(length=512), nullable=True),
    sa.Column('color', sa.String(length=32), nullable=True),
    sa.Column('archived_at', sa.DateTime(), nullable=True),
    sa.Column('archived_by', sa.String(length=36), nullable=True),
    sa.Column('archived_why', sa.String(length=512), nullable=True),
    sa.Column('deleted_at', sa.DateTime(), nullable=True),
    sa.Column('deleted_by', sa.String(length=36), nullable=True),
    sa.Column('deleted_why', sa.Text(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_folders_user_id'), 'folders', ['user_id'])

    # Folder relations (graph edges)
    op.create_table('folder_relations',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('parent_folder_id', sa.Integer(), nullable=True),
    sa.Column('child_folder_id', sa.Integer(), nullable=False),
    sa.Column('is_bind', sa.Boolean(), nullable=False),
    sa.Column('path_ids', postgresql.ARRAY(sa.Integer()), nullable=False),
    sa.Column('path_str', postgresql.ARRAY(sa.Text()), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.CheckConstraint('parent_folder_id <> child_folder_id', name='ck_folder_relation_no_self_loop'),
    sa.ForeignKeyConstraint(['child_folder_id'], ['folders.id'], ondelete='CASCADE'),
    sa.ForeignKeyConstraint(['parent_folder_id'], ['folders.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('parent_folder_id', 'child_folder_id', name='uq_folder_relation_parent_child')
    )
    op.create_index(op.f('ix_folder_relations_parent_folder_id'), 'folder_relations', ['parent_folder_id'])
    op.create_index('ix_folder_relations_child', 'folder_relations', ['child_folder_id'])
    # containment lookups (:id = ANY(path_ids)) during path repair
    op.create_index('ix_folder_relations_path_ids', 'folder_relations', ['path_ids'], postgresql_using='gin')

    # Per-user sibling order
    op.create_table('folder_positions',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('folder_relation_id', sa.Integer(), nullable=False),
    sa.Column('user_id', sa.String(length=36), nullable=False),
    sa.Column('view', sa.String(length=32), nullable=False),
    sa.Column('index', sa.Integer(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(['folder_relation_id'], ['folder_relations.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('user_id', 'view', 'folder_relation_id', name='uq_folder_position_user_view_relation')
    )
    op.create_index(op.f('ix_folder_positions_folder_relation_id'), 'folder_positions', ['folder_relation_id'])

    # Favourites
    op.create_table('folder_favourites',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('folder_id', sa.Integer(), nullable=False),
    sa.Column('user_id', sa.String(length=36), nullable=False),
    sa.Column('index', sa.Integer(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(['folder_id'], ['folders.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('folder_id', 'user_id', name='uq_folder_favourite_folder_user')
    )
    op.create_index(op.f('ix_folder_favourites_user_id'), 'folder_favourites', ['user_id'])

    # Followers
    op.create_table('folder_followers',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('folder_id', sa.Integer(), nullable=False),
    sa.Column('user_id', sa.String(length=36), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(['folder_id'], ['folders.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('folder_id', 'user_id', name='uq_folder_follower_folder_user')
    )
    op.create_index(op.f('ix_folder_followers_user_id'), 'folder_followers', ['user_id'])

    # Tasks attached to folders
    op.create_table('folder_tasks',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('folder_id', sa.Integer(), nullable=False),
    sa.Column('task_id', sa.Integer(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(['folder_id'], ['folders.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('folder_id', 'task_id', name='uq_folder_task_folder_task')
    )
    op.create_index(op.f('ix_folder_tasks_folder_id'), 'folder_tasks', ['folder_id'])
    op.create_index(op.f('ix_folder_tasks_task_id'), 'folder_tasks', ['task_id'])


def downgrade() -> None:
    op.drop_table('folder_tasks')
    op.drop_table('folder_followers')
    op.drop_table('folder_favourites')
    op.drop_table('folder_positions')
    op.drop_table('folder_relations')
    op.drop_table('folders')
    sa.Enum(name='folder_view_type').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='folder_type').drop(op.get_bind(), checkfirst=True)

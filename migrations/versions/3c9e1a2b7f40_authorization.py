"""authorization tables

Revision ID: 3c9e1a2b7f40
Revises: 
Create Date: 2026-10-18 09:12:41.118204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from authz.core.auth.permissions import DEFAULT_ROLE_PERMISSIONS

# revision identifiers, used by Alembic.
revision: str = '3c9e1a2b7f40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Role assignments
    op.create_table('role_assignments',
    sa.Column('user_id', sa.String(length=255), nullable=False),
    sa.Column('role', sa.String(length=32), nullable=False),
    sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('assigned_by', sa.String(length=255), nullable=True),
    sa.Column('assigned_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.Column('id', sa.UUID(), nullable=False),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('user_id', 'role', name='uq_role_assignments_user_role')
    )
    op.create_index(op.f('ix_role_assignments_user_id'), 'role_assignments', ['user_id'], unique=False)
    op.create_index(op.f('ix_role_assignments_expires_at'), 'role_assignments', ['expires_at'], unique=False)

    # Direct permission grants
    op.create_table('permission_grants',
    sa.Column('user_id', sa.String(length=255), nullable=False),
    sa.Column('permission_id', sa.String(length=100), nullable=False),
    sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('granted_by', sa.String(length=255), nullable=True),
    sa.Column('granted_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.Column('id', sa.UUID(), nullable=False),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('user_id', 'permission_id', name='uq_permission_grants_user_permission')
    )
    op.create_index(op.f('ix_permission_grants_user_id'), 'permission_grants', ['user_id'], unique=False)
    op.create_index(op.f('ix_permission_grants_expires_at'), 'permission_grants', ['expires_at'], unique=False)

    # Role default permissions
    role_defaults = op.create_table('role_default_permissions',
    sa.Column('role', sa.String(length=32), nullable=False),
    sa.Column('permission_id', sa.String(length=100), nullable=False),
    sa.PrimaryKeyConstraint('role', 'permission_id')
    )

    # Resource policies
    op.create_table('resource_policies',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('resource', sa.String(length=100), nullable=False),
    sa.Column('resource_id', sa.String(length=255), nullable=True),
    sa.Column('priority', sa.Integer(), nullable=False),
    sa.Column('effect', sa.String(length=8), nullable=False),
    sa.Column('roles', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column('actions', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column('conditions', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column('description', sa.Text(), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_resource_policies_resource_instance', 'resource_policies', ['resource', 'resource_id'], unique=False)

    # Authorization audit log
    op.create_table('authorization_audit_logs',
    sa.Column('event_type', sa.String(length=50), nullable=False),
    sa.Column('user_id', sa.String(length=255), nullable=False),
    sa.Column('actor_ip', sa.String(length=45), nullable=True),
    sa.Column('resource', sa.String(length=100), nullable=False),
    sa.Column('resource_id', sa.String(length=255), nullable=True),
    sa.Column('action', sa.String(length=50), nullable=False),
    sa.Column('verdict', sa.String(length=8), nullable=False),
    sa.Column('reason', sa.String(length=50), nullable=False),
    sa.Column('policy_id', sa.String(length=36), nullable=True),
    sa.Column('detail', sa.Text(), nullable=True),
    sa.Column('extra_data', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column('request_id', sa.String(length=100), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.Column('id', sa.UUID(), nullable=False),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_authorization_audit_logs_event_type'), 'authorization_audit_logs', ['event_type'], unique=False)
    op.create_index(op.f('ix_authorization_audit_logs_user_id'), 'authorization_audit_logs', ['user_id'], unique=False)
    op.create_index(op.f('ix_authorization_audit_logs_created_at'), 'authorization_audit_logs', ['created_at'], unique=False)

    # Seed the static default table
    op.bulk_insert(role_defaults, [
        {'role': role.value, 'permission_id': permission_id}
        for role, permission_ids in DEFAULT_ROLE_PERMISSIONS.items()
        for permission_id in sorted(permission_ids)
    ])


def downgrade() -> None:
    op.drop_index(op.f('ix_authorization_audit_logs_created_at'), table_name='authorization_audit_logs')
    op.drop_index(op.f('ix_authorization_audit_logs_user_id'), table_name='authorization_audit_logs')
    op.drop_index(op.f('ix_authorization_audit_logs_event_type'), table_name='authorization_audit_logs')
    op.drop_table('authorization_audit_logs')
    op.drop_index('ix_resource_policies_resource_instance', table_name='resource_policies')
    op.drop_table('resource_policies')
    op.drop_table('role_default_permissions')
    op.drop_index(op.f('ix_permission_grants_expires_at'), table_name='permission_grants')
    op.drop_index(op.f('ix_permission_grants_user_id'), table_name='permission_grants')
    op.drop_table('permission_grants')
    op.drop_index(op.f('ix_role_assignments_expires_at'), table_name='role_assignments')
    op.drop_index(op.f('ix_role_assignments_user_id'), table_name='role_assignments')
    op.drop_table('role_assignments')

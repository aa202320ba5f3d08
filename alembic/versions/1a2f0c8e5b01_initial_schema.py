"""initial schema

Revision ID: 1a2f0c8e5b01
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '1a2f0c8e5b01'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

network = sa.Enum('MAINNET', 'TESTNET', name='network')
projectstatus = sa.Enum('ACTIVE', 'DELETING', name='projectstatus')
deploymentstatus = sa.Enum(
    'CREATED', 'UPLOADING', 'VALIDATING', 'BUILDING', 'PROVISIONING', 'ROLLED_OUT', 'FAILED',
    name='deploymentstatus'
)
transactiontype = sa.Enum('DEBIT', 'CREDIT', name='transactiontype')
loglevel = sa.Enum('INFO', 'WARN', 'ERROR', name='loglevel')


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('identity_key', sa.String(length=66), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_users')),
    )
    op.create_index(op.f('ix_users_identity_key'), 'users', ['identity_key'], unique=True)
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=False)

    op.create_table(
        'projects',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('uuid', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('network', network, nullable=False),
        sa.Column('balance', sa.BigInteger(), nullable=False),
        sa.Column('funding_key', sa.String(length=64), nullable=True),
        sa.Column('requires_funding', sa.Boolean(), nullable=False),
        sa.Column('agent_config', sa.JSON(), nullable=False),
        sa.Column('frontend_custom_domain', sa.String(length=255), nullable=True),
        sa.Column('agent_custom_domain', sa.String(length=255), nullable=True),
        sa.Column('status', projectstatus, nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_projects')),
    )
    op.create_index(op.f('ix_projects_uuid'), 'projects', ['uuid'], unique=True)
    op.create_index(op.f('ix_projects_status'), 'projects', ['status'], unique=False)

    op.create_table(
        'project_admins',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('project_id', sa.Integer(), nullable=False),
        sa.Column('identity_key', sa.String(length=66), nullable=False),
        sa.Column('added_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['project_id'], ['projects.id'], name=op.f('fk_project_admins_project_id_projects'), ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['identity_key'], ['users.identity_key'], name=op.f('fk_project_admins_identity_key_users'), ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_project_admins')),
        sa.UniqueConstraint('project_id', 'identity_key', name='uq_project_admin'),
    )
    op.create_index(op.f('ix_project_admins_project_id'), 'project_admins', ['project_id'], unique=False)
    op.create_index(op.f('ix_project_admins_identity_key'), 'project_admins', ['identity_key'], unique=False)

    op.create_table(
        'deployments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('uuid', sa.String(length=32), nullable=False),
        sa.Column('project_id', sa.Integer(), nullable=False),
        sa.Column('creator_identity_key', sa.String(length=66), nullable=False),
        sa.Column('artifact_path', sa.String(length=1024), nullable=True),
        sa.Column('service_name', sa.String(length=255), nullable=True),
        sa.Column('status', deploymentstatus, nullable=False),
        sa.Column('agent_image', sa.String(length=512), nullable=True),
        sa.Column('frontend_image', sa.String(length=512), nullable=True),
        sa.Column('spec_snapshot', sa.JSON(), nullable=True),
        sa.Column('error_summary', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['project_id'], ['projects.id'], name=op.f('fk_deployments_project_id_projects'), ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_deployments')),
    )
    op.create_index(op.f('ix_deployments_uuid'), 'deployments', ['uuid'], unique=True)
    op.create_index(op.f('ix_deployments_project_id'), 'deployments', ['project_id'], unique=False)
    op.create_index(op.f('ix_deployments_status'), 'deployments', ['status'], unique=False)

    op.create_table(
        'releases',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('project_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=63), nullable=False),
        sa.Column('namespace', sa.String(length=63), nullable=False),
        sa.Column('revision', sa.Integer(), nullable=False),
        sa.Column('digest', sa.String(length=64), nullable=True),
        sa.Column('documents', sa.JSON(), nullable=False),
        sa.Column('deployment_id', sa.Integer(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['project_id'], ['projects.id'], name=op.f('fk_releases_project_id_projects'), ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['deployment_id'], ['deployments.id'], name=op.f('fk_releases_deployment_id_deployments'), ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_releases')),
        sa.UniqueConstraint('project_id', name=op.f('uq_releases_project_id')),
    )

    op.create_table(
        'project_ledger',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('project_id', sa.Integer(), nullable=False),
        sa.Column('type', transactiontype, nullable=False),
        sa.Column('amount', sa.BigInteger(), nullable=False),
        sa.Column('balance_after', sa.BigInteger(), nullable=False),
        sa.Column('reason', sa.JSON(), nullable=True),
        sa.Column('timestamp', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('amount > 0', name=op.f('ck_project_ledger_positive_amount')),
        sa.ForeignKeyConstraint(['project_id'], ['projects.id'], name=op.f('fk_project_ledger_project_id_projects'), ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_project_ledger')),
    )
    op.create_index(op.f('ix_project_ledger_project_id'), 'project_ledger', ['project_id'], unique=False)
    op.create_index(op.f('ix_project_ledger_type'), 'project_ledger', ['type'], unique=False)
    op.create_index(op.f('ix_project_ledger_timestamp'), 'project_ledger', ['timestamp'], unique=False)

    op.create_table(
        'project_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('project_id', sa.Integer(), nullable=False),
        sa.Column('deployment_id', sa.Integer(), nullable=True),
        sa.Column('level', loglevel, nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('timestamp', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['project_id'], ['projects.id'], name=op.f('fk_project_logs_project_id_projects'), ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['deployment_id'], ['deployments.id'], name=op.f('fk_project_logs_deployment_id_deployments'), ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_project_logs')),
    )
    op.create_index(op.f('ix_project_logs_project_id'), 'project_logs', ['project_id'], unique=False)
    op.create_index(op.f('ix_project_logs_deployment_id'), 'project_logs', ['deployment_id'], unique=False)
    op.create_index(op.f('ix_project_logs_timestamp'), 'project_logs', ['timestamp'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('project_logs')
    op.drop_table('project_ledger')
    op.drop_table('releases')
    op.drop_table('deployments')
    op.drop_table('project_admins')
    op.drop_table('projects')
    op.drop_table('users')
    for enum_type in (loglevel, transactiontype, deploymentstatus, projectstatus, network):
        enum_type.drop(op.get_bind(), checkfirst=True)

"""initial

Revision ID: 001_initial
Revises:
Create Date: 2026-01-12 10:00:00.000000

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
    # Condominium structure
    op.create_table('condominiums',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_table('blocks',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('condominium_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.ForeignKeyConstraint(['condominium_id'], ['condominiums.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_table('apartments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('block_id', sa.Integer(), nullable=False),
        sa.Column('number', sa.String(), nullable=False),
        sa.ForeignKeyConstraint(['block_id'], ['blocks.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_table('residents',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('apartment_id', sa.Integer(), nullable=False),
        sa.Column('full_name', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=True),
        sa.Column('phone', sa.String(), nullable=True),
        sa.Column('user_id', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['apartment_id'], ['apartments.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_residents_user_id'), 'residents', ['user_id'], unique=True)

    # Notifications with secure links
    op.create_table('notifications_sent',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('resident_id', sa.Integer(), nullable=False),
        sa.Column('occurrence_id', sa.String(length=64), nullable=True),
        sa.Column('message_content', sa.Text(), nullable=True),
        sa.Column('sent_via', sa.String(), nullable=False),
        sa.Column('secure_link', sa.String(), nullable=True),
        sa.Column('secure_link_token', sa.String(length=36), nullable=False),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('provider_message_id', sa.String(), nullable=True),
        sa.Column('delivery_status', sa.String(), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('ip_address', sa.String(), nullable=True),
        sa.Column('user_agent', sa.String(), nullable=True),
        sa.Column('acknowledged_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['resident_id'], ['residents.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_notifications_sent_secure_link_token'), 'notifications_sent', ['secure_link_token'], unique=True)
    op.create_index(op.f('ix_notifications_sent_provider_message_id'), 'notifications_sent', ['provider_message_id'], unique=False)

    # WhatsApp configuration and templates
    op.create_table('whatsapp_config',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('provider', sa.String(), nullable=False),
        sa.Column('api_url', sa.String(), nullable=False),
        sa.Column('api_key', sa.String(), nullable=False),
        sa.Column('instance_id', sa.String(), nullable=True),
        sa.Column('app_url', sa.String(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_table('whatsapp_templates',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('slug', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('variables', sa.JSON(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_whatsapp_templates_slug'), 'whatsapp_templates', ['slug'], unique=True)
    op.create_table('condominium_whatsapp_templates',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('condominium_id', sa.Integer(), nullable=False),
        sa.Column('template_slug', sa.String(), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['condominium_id'], ['condominiums.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('condominium_id', 'template_slug', name='uq_condominium_template_slug')
    )

    # Audit logs
    op.create_table('whatsapp_notification_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('function_name', sa.String(), nullable=False),
        sa.Column('resident_id', sa.Integer(), nullable=True),
        sa.Column('phone', sa.String(), nullable=True),
        sa.Column('template_name', sa.String(), nullable=True),
        sa.Column('template_language', sa.String(), nullable=True),
        sa.Column('request_payload', sa.JSON(), nullable=True),
        sa.Column('response_status', sa.Integer(), nullable=True),
        sa.Column('response_body', sa.Text(), nullable=True),
        sa.Column('success', sa.Boolean(), nullable=False),
        sa.Column('message_id', sa.String(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('debug_info', sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_whatsapp_logs_created_at', 'whatsapp_notification_logs', ['created_at'], unique=False)
    op.create_table('magic_link_access_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('token_id', sa.String(length=64), nullable=False),
        sa.Column('resident_id', sa.Integer(), nullable=True),
        sa.Column('occurrence_id', sa.String(length=64), nullable=True),
        sa.Column('user_id', sa.String(length=64), nullable=True),
        sa.Column('ip_address', sa.String(), nullable=True),
        sa.Column('user_agent', sa.String(), nullable=True),
        sa.Column('access_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('success', sa.Boolean(), nullable=False),
        sa.Column('is_new_user', sa.Boolean(), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('redirect_url', sa.String(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_magic_link_access_logs_token_id'), 'magic_link_access_logs', ['token_id'], unique=False)

    # Roles
    op.create_table('user_roles',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('role', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_user_roles_user_id'), 'user_roles', ['user_id'], unique=True)

    # Scheduled jobs
    op.create_table('cron_job_controls',
        sa.Column('function_name', sa.String(), nullable=False),
        sa.Column('paused', sa.Boolean(), nullable=False),
        sa.Column('paused_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paused_by', sa.String(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('function_name')
    )
    op.create_table('edge_function_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('function_name', sa.String(), nullable=False),
        sa.Column('trigger_type', sa.String(), nullable=False),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('finished_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('duration_ms', sa.Integer(), nullable=True),
        sa.Column('result', sa.JSON(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_edge_function_logs_function_name'), 'edge_function_logs', ['function_name'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_edge_function_logs_function_name'), table_name='edge_function_logs')
    op.drop_table('edge_function_logs')
    op.drop_table('cron_job_controls')
    op.drop_index(op.f('ix_user_roles_user_id'), table_name='user_roles')
    op.drop_table('user_roles')
    op.drop_index(op.f('ix_magic_link_access_logs_token_id'), table_name='magic_link_access_logs')
    op.drop_table('magic_link_access_logs')
    op.drop_index('ix_whatsapp_logs_created_at', table_name='whatsapp_notification_logs')
    op.drop_table('whatsapp_notification_logs')
    op.drop_table('condominium_whatsapp_templates')
    op.drop_index(op.f('ix_whatsapp_templates_slug'), table_name='whatsapp_templates')
    op.drop_table('whatsapp_templates')
    op.drop_table('whatsapp_config')
    op.drop_index(op.f('ix_notifications_sent_provider_message_id'), table_name='notifications_sent')
    op.drop_index(op.f('ix_notifications_sent_secure_link_token'), table_name='notifications_sent')
    op.drop_table('notifications_sent')
    op.drop_index(op.f('ix_residents_user_id'), table_name='residents')
    op.drop_table('residents')
    op.drop_table('apartments')
    op.drop_table('blocks')
    op.drop_table('condominiums')

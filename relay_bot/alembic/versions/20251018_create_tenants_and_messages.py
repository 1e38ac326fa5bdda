# alembic revision: create tenants and messages
from alembic import op
import sqlalchemy as sa

revision = '20251018_tenants_messages'
down_revision = None
branch_labels = None
depends_on = None

def upgrade():
    op.create_table(
        'tenants',
        sa.Column('key', sa.String(64), primary_key=True),
        sa.Column('name', sa.String(150), nullable=False),
        sa.Column('routing_number', sa.String(32), nullable=False),
        sa.Column('instructions', sa.Text(), nullable=True),
        sa.Column('language', sa.String(8), nullable=False, server_default='en'),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('open_hour', sa.Integer(), nullable=True),
        sa.Column('close_hour', sa.Integer(), nullable=True),
        sa.Column('daily_summary_time', sa.String(5), nullable=True),
        sa.Column('timezone', sa.String(64), nullable=True),
        sa.Column('broadcast_message', sa.Text(), nullable=True),
        sa.Column('broadcast_time', sa.String(5), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.CheckConstraint('open_hour IS NULL OR (open_hour >= 0 AND open_hour <= 23)', name='ck_tenant_open_hour'),
        sa.CheckConstraint('close_hour IS NULL OR (close_hour >= 1 AND close_hour <= 24)', name='ck_tenant_close_hour'),
    )
    op.create_index('ix_tenants_routing_number', 'tenants', ['routing_number'])

    op.create_table(
        'messages',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('tenant_key', sa.String(64), sa.ForeignKey('tenants.key', ondelete='RESTRICT'), nullable=False),
        sa.Column('sender_id', sa.String(32), nullable=False),
        sa.Column('direction', sa.String(10), nullable=False),
        sa.Column('body', sa.Text(), nullable=False),
        sa.Column('language', sa.String(8), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.CheckConstraint("direction IN ('inbound','outbound')", name='ck_message_direction'),
    )
    op.create_index(
        'ix_messages_tenant_sender_created',
        'messages',
        ['tenant_key', 'sender_id', 'created_at']
    )

def downgrade():
    op.drop_index('ix_messages_tenant_sender_created', table_name='messages')
    op.drop_table('messages')
    op.drop_index('ix_tenants_routing_number', table_name='tenants')
    op.drop_table('tenants')

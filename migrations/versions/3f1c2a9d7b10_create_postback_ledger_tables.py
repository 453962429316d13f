"""Create partner houses, affiliates and postback ledger tables"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3f1c2a9d7b10'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'partner_houses',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('identifier', sa.String(length=80), nullable=False),
        sa.Column('base_url', sa.String(length=500), nullable=False),
        sa.Column('commission_model', sa.String(length=20), nullable=False),
        sa.Column('commission_value', sa.Numeric(precision=18, scale=2), nullable=True),
        sa.Column('cpa_value', sa.Numeric(precision=18, scale=2), nullable=True),
        sa.Column('revshare_value', sa.Numeric(precision=5, scale=2), nullable=True),
        sa.Column('security_token', sa.String(length=64), nullable=False),
        sa.Column('enabled_postbacks', sa.JSON(), nullable=False),
        sa.Column('parameter_mapping', sa.JSON(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('security_token'),
    )
    op.create_index('ix_partner_houses_identifier', 'partner_houses', ['identifier'], unique=True)

    op.create_table(
        'affiliates',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('username', sa.String(length=80), nullable=False),
        sa.Column('email', sa.String(length=120), nullable=True),
        sa.Column('full_name', sa.String(length=150), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('email'),
    )
    op.create_index('ix_affiliates_username', 'affiliates', ['username'], unique=True)

    op.create_table(
        'affiliate_links',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('affiliate_id', sa.Integer(), sa.ForeignKey('affiliates.id'), nullable=False),
        sa.Column('house_id', sa.Integer(), sa.ForeignKey('partner_houses.id'), nullable=False),
        sa.Column('generated_url', sa.String(length=600), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('affiliate_id', 'house_id', name='uq_affiliate_link_house'),
    )
    op.create_index('ix_affiliate_links_affiliate_id', 'affiliate_links', ['affiliate_id'])
    op.create_index('ix_affiliate_links_house_id', 'affiliate_links', ['house_id'])
    op.create_index('ix_affiliate_links_created_at', 'affiliate_links', ['created_at'])

    op.create_table(
        'conversion_events',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('affiliate_id', sa.Integer(), sa.ForeignKey('affiliates.id'), nullable=False),
        sa.Column('house_id', sa.Integer(), sa.ForeignKey('partner_houses.id'), nullable=False),
        sa.Column('affiliate_link_id', sa.Integer(), sa.ForeignKey('affiliate_links.id'), nullable=True),
        sa.Column('event_kind', sa.String(length=32), nullable=False),
        sa.Column('amount', sa.Numeric(precision=18, scale=2), nullable=True),
        sa.Column('customer_id', sa.String(length=128), nullable=True),
        sa.Column('extra_params', sa.JSON(), nullable=False),
        sa.Column('idempotency_key', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_conversion_events_idempotency_key', 'conversion_events', ['idempotency_key'])
    op.create_index('ix_conversion_events_created_at', 'conversion_events', ['created_at'])
    op.create_index('idx_event_affiliate_created', 'conversion_events', ['affiliate_id', 'created_at'])
    op.create_index('idx_event_house_created', 'conversion_events', ['house_id', 'created_at'])

    op.create_table(
        'commission_records',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('event_id', sa.Integer(), sa.ForeignKey('conversion_events.id'), nullable=False),
        sa.Column('affiliate_id', sa.Integer(), sa.ForeignKey('affiliates.id'), nullable=False),
        sa.Column('house_id', sa.Integer(), sa.ForeignKey('partner_houses.id'), nullable=False),
        sa.Column('commission_type', sa.String(length=20), nullable=False),
        sa.Column('value', sa.Numeric(precision=18, scale=2), nullable=False),
        sa.Column('is_paid', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('event_id'),
        sa.CheckConstraint('value > 0', name='chk_commission_positive'),
    )
    op.create_index('ix_commission_records_created_at', 'commission_records', ['created_at'])
    op.create_index('idx_commission_affiliate_created', 'commission_records', ['affiliate_id', 'created_at'])
    op.create_index('idx_commission_house_created', 'commission_records', ['house_id', 'created_at'])

    op.create_table(
        'postback_audit_log',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('house_slug', sa.String(length=120), nullable=False),
        sa.Column('event_kind', sa.String(length=64), nullable=False),
        sa.Column('subid', sa.String(length=255), nullable=True),
        sa.Column('raw_params', sa.JSON(), nullable=False),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.Column('user_agent', sa.String(length=255), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('error', sa.String(length=255), nullable=True),
        sa.Column('commission', sa.Numeric(precision=18, scale=2), nullable=False),
        sa.Column('event_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_postback_audit_log_house_slug', 'postback_audit_log', ['house_slug'])
    op.create_index('ix_postback_audit_log_subid', 'postback_audit_log', ['subid'])
    op.create_index('ix_postback_audit_log_status', 'postback_audit_log', ['status'])
    op.create_index('ix_postback_audit_log_created_at', 'postback_audit_log', ['created_at'])


def downgrade():
    op.drop_table('postback_audit_log')
    op.drop_table('commission_records')
    op.drop_table('conversion_events')
    op.drop_table('affiliate_links')
    op.drop_table('affiliates')
    op.drop_table('partner_houses')

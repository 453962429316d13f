"""Add dedup window bucket and unique key per bucket on conversion events"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '7a2e5c41d9b3'
down_revision = '3f1c2a9d7b10'
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table('conversion_events', schema=None) as batch_op:
        batch_op.add_column(sa.Column('dedup_bucket', sa.BigInteger(), nullable=True))
        batch_op.create_unique_constraint('uq_event_idempotency_bucket', ['idempotency_key', 'dedup_bucket'])


def downgrade():
    with op.batch_alter_table('conversion_events', schema=None) as batch_op:
        batch_op.drop_constraint('uq_event_idempotency_bucket', type_='unique')
        batch_op.drop_column('dedup_bucket')

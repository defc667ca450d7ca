from alembic import op
import sqlalchemy as sa

revision = "0002"
down_revision = "0001"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "availability_rules",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("provider_id", sa.String(), nullable=False),
        sa.Column("day_of_week", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_availability_rules_day_of_week"),
        sa.CheckConstraint("start_time < end_time", name="ck_availability_rules_window"),
    )
    op.create_index(
        "ix_availability_rules_provider_id", "availability_rules", ["provider_id"], unique=False
    )


def downgrade():
    op.drop_index("ix_availability_rules_provider_id", table_name="availability_rules")
    op.drop_table("availability_rules")

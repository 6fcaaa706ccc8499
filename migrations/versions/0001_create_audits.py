"""create audits table

Revision ID: 0001_audits
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa

revision = "0001_audits"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "audits",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("auditable_id", sa.String(length=64), nullable=False),
        sa.Column("auditable_type", sa.String(length=100), nullable=False),
        sa.Column("owner_id", sa.String(length=64), nullable=False),
        sa.Column("owner_type", sa.String(length=100), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=True),
        sa.Column("user_type", sa.String(length=100), nullable=True),
        sa.Column(
            "action",
            sa.Enum("create", "update", "destroy", "find", name="audit_action_enum"),
            nullable=False,
        ),
        sa.Column("changes", sa.JSON(), nullable=False),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint(
            "auditable_type", "auditable_id", "version",
            name="uq_audits_auditable_version",
        ),
    )
    op.create_index("ix_audits_owner", "audits", ["owner_type", "owner_id"])


def downgrade() -> None:
    op.drop_index("ix_audits_owner", table_name="audits")
    op.drop_table("audits")
    sa.Enum(name="audit_action_enum").drop(op.get_bind(), checkfirst=True)

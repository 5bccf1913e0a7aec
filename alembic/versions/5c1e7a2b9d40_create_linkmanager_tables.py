"""Create link, placement, placement_link and log tables

Revision ID: 5c1e7a2b9d40
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "5c1e7a2b9d40"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "linkmanager_link",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("url", sa.String(2048), nullable=False, server_default=""),
        sa.Column("link_type", sa.String(20), nullable=False, server_default="custom"),
        sa.Column("cms_page_id", sa.Integer, nullable=True),
        sa.Column("position", sa.Integer, nullable=False, server_default="0"),
        sa.Column("active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_linkmanager_link_name_position", "linkmanager_link", ["name", "position"])
    op.create_index("ix_linkmanager_link_active", "linkmanager_link", ["active"])

    op.create_table(
        "linkmanager_placement",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("identifier", sa.String(50), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "linkmanager_placement_link",
        sa.Column(
            "placement_id", sa.Integer,
            sa.ForeignKey("linkmanager_placement.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "link_id", sa.Integer,
            sa.ForeignKey("linkmanager_link.id", ondelete="CASCADE"),
            primary_key=True,
        ),
    )
    op.create_index(
        "ix_linkmanager_placement_link_link", "linkmanager_placement_link", ["link_id"]
    )

    op.create_table(
        "linkmanager_log",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("employee_id", sa.Integer, nullable=True),
        sa.Column("employee_name", sa.String(255), nullable=True),
        sa.Column("severity", sa.String(20), nullable=False, server_default="info"),
        sa.Column("resource_type", sa.String(20), nullable=False),
        sa.Column("resource_id", sa.Integer, nullable=True),
        sa.Column("action", sa.String(20), nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("details", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_linkmanager_log_created", "linkmanager_log", ["created_at"])
    op.create_index(
        "ix_linkmanager_log_resource", "linkmanager_log", ["resource_type", "resource_id"]
    )
    op.create_index("ix_linkmanager_log_severity", "linkmanager_log", ["severity"])


def downgrade() -> None:
    op.drop_table("linkmanager_log")
    op.drop_table("linkmanager_placement_link")
    op.drop_table("linkmanager_placement")
    op.drop_table("linkmanager_link")

"""initial registry schema

Revision ID: 202610170001
Revises:
Create Date: 2026-10-17
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "202610170001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "tenants",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_tenants_name", "tenants", ["name"])
    op.create_index("ix_tenants_active", "tenants", ["active"])
    op.create_index("ix_tenants_created_at", "tenants", ["created_at"])

    op.create_table(
        "persons",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("tenant_id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("identifier", sa.String(), nullable=False),
        sa.Column("phone", sa.String(), nullable=True),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_persons_tenant_id", "persons", ["tenant_id"])
    op.create_index("ix_persons_name", "persons", ["name"])
    op.create_index("ix_persons_identifier", "persons", ["identifier"], unique=True)
    op.create_index("ix_persons_active", "persons", ["active"])
    op.create_index("ix_persons_created_at", "persons", ["created_at"])

    op.create_table(
        "devices",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("person_id", sa.String(), nullable=False),
        sa.Column("imei", sa.String(), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False),
        sa.Column("registered_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["person_id"], ["persons.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_devices_person_id", "devices", ["person_id"])
    op.create_index("ix_devices_imei", "devices", ["imei"], unique=True)
    op.create_index("ix_devices_active", "devices", ["active"])
    op.create_index("ix_devices_registered_at", "devices", ["registered_at"])

    op.create_table(
        "accounts",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("tenant_id", sa.String(), nullable=True),
        sa.Column("username", sa.String(), nullable=False),
        sa.Column("password_hash", sa.String(), nullable=False),
        sa.Column("role", sa.String(), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_accounts_tenant_id", "accounts", ["tenant_id"])
    op.create_index("ix_accounts_username", "accounts", ["username"], unique=True)
    op.create_index("ix_accounts_role", "accounts", ["role"])
    op.create_index("ix_accounts_active", "accounts", ["active"])
    op.create_index("ix_accounts_created_at", "accounts", ["created_at"])


def downgrade() -> None:
    for index_name in (
        "ix_accounts_created_at",
        "ix_accounts_active",
        "ix_accounts_role",
        "ix_accounts_username",
        "ix_accounts_tenant_id",
    ):
        op.drop_index(index_name, table_name="accounts")
    op.drop_table("accounts")

    for index_name in ("ix_devices_registered_at", "ix_devices_active", "ix_devices_imei", "ix_devices_person_id"):
        op.drop_index(index_name, table_name="devices")
    op.drop_table("devices")

    for index_name in (
        "ix_persons_created_at",
        "ix_persons_active",
        "ix_persons_identifier",
        "ix_persons_name",
        "ix_persons_tenant_id",
    ):
        op.drop_index(index_name, table_name="persons")
    op.drop_table("persons")

    for index_name in ("ix_tenants_created_at", "ix_tenants_active", "ix_tenants_name"):
        op.drop_index(index_name, table_name="tenants")
    op.drop_table("tenants")

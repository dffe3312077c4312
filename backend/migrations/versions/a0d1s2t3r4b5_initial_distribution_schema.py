"""Initial distribution workflow schema

Revision ID: a0d1s2t3r4b5
Revises:
Create Date: 2026-10-16 09:00:00.000000
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "a0d1s2t3r4b5"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "departments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("location_code", sa.String(length=32), nullable=False),
        sa.Column("project", sa.String(length=32), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_departments_location_code", "departments", ["location_code"], unique=True)
    op.create_index("ix_departments_is_active", "departments", ["is_active"], unique=False)

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("username", sa.String(length=64), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("department_id", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["department_id"], ["departments.id"]),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_users_username", "users", ["username"], unique=True)
    op.create_index("ix_users_department_id", "users", ["department_id"], unique=False)

    op.create_table(
        "distribution_types",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("code", sa.String(length=16), nullable=False),
        sa.Column("color", sa.String(length=16), nullable=True),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("description", sa.Text(), nullable=True),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_distribution_types_code", "distribution_types", ["code"], unique=True)

    op.create_table(
        "invoices",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("invoice_number", sa.String(length=64), nullable=False),
        sa.Column("supplier_name", sa.String(length=255), nullable=True),
        sa.Column("invoice_date", sa.Date(), nullable=True),
        sa.Column("amount", sa.Numeric(18, 2), nullable=True),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="IDR"),
        sa.Column("cur_loc", sa.String(length=32), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_invoices_invoice_number", "invoices", ["invoice_number"], unique=False)
    op.create_index("ix_invoices_cur_loc", "invoices", ["cur_loc"], unique=False)

    op.create_table(
        "additional_documents",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("document_number", sa.String(length=64), nullable=False),
        sa.Column("document_type", sa.String(length=32), nullable=False),
        sa.Column("document_date", sa.Date(), nullable=True),
        sa.Column("cur_loc", sa.String(length=32), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_additional_documents_document_number", "additional_documents", ["document_number"], unique=False)
    op.create_index("ix_additional_documents_cur_loc", "additional_documents", ["cur_loc"], unique=False)

    op.create_table(
        "invoice_additional_documents",
        sa.Column("invoice_id", sa.Integer(), nullable=False),
        sa.Column("additional_document_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["invoice_id"], ["invoices.id"]),
        sa.ForeignKeyConstraint(["additional_document_id"], ["additional_documents.id"]),
        sa.PrimaryKeyConstraint("invoice_id", "additional_document_id"),
    )

    op.create_table(
        "distributions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("distribution_number", sa.String(length=64), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("type_id", sa.Integer(), nullable=False),
        sa.Column("document_type", sa.String(length=32), nullable=False),
        sa.Column("origin_department_id", sa.Integer(), nullable=False),
        sa.Column("destination_department_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="draft"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("sender_verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sender_verified_by", sa.Integer(), nullable=True),
        sa.Column("sender_verification_notes", sa.Text(), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("receiver_verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("receiver_verified_by", sa.Integer(), nullable=True),
        sa.Column("receiver_verification_notes", sa.Text(), nullable=True),
        sa.Column("has_discrepancies", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        sa.ForeignKeyConstraint(["type_id"], ["distribution_types.id"]),
        sa.ForeignKeyConstraint(["origin_department_id"], ["departments.id"]),
        sa.ForeignKeyConstraint(["destination_department_id"], ["departments.id"]),
        sa.ForeignKeyConstraint(["sender_verified_by"], ["users.id"]),
        sa.ForeignKeyConstraint(["receiver_verified_by"], ["users.id"]),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"]),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_distributions_distribution_number", "distributions", ["distribution_number"], unique=True)
    op.create_index("ix_distributions_type_id", "distributions", ["type_id"], unique=False)
    op.create_index("ix_distributions_origin_department_id", "distributions", ["origin_department_id"], unique=False)
    op.create_index("ix_distributions_destination_department_id", "distributions", ["destination_department_id"], unique=False)
    op.create_index("ix_distributions_status", "distributions", ["status"], unique=False)
    op.create_index("ix_distributions_created_by", "distributions", ["created_by"], unique=False)
    op.create_index("ix_distributions_created_at", "distributions", ["created_at"], unique=False)
    op.create_index("ix_distributions_deleted_at", "distributions", ["deleted_at"], unique=False)
    op.create_index(
        "ix_distributions_origin_status_created",
        "distributions",
        ["origin_department_id", "status", "created_at"],
        unique=False,
    )
    op.create_index(
        "ix_distributions_destination_status",
        "distributions",
        ["destination_department_id", "status"],
        unique=False,
    )

    op.create_table(
        "distribution_documents",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("distribution_id", sa.Integer(), nullable=False),
        sa.Column("document_type", sa.String(length=32), nullable=False),
        sa.Column("document_id", sa.Integer(), nullable=False),
        sa.Column("is_companion", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("parent_document_id", sa.Integer(), nullable=True),
        sa.Column("sender_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("sender_verification_status", sa.String(length=16), nullable=True),
        sa.Column("sender_verification_notes", sa.Text(), nullable=True),
        sa.Column("receiver_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("receiver_verification_status", sa.String(length=16), nullable=True),
        sa.Column("receiver_verification_notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["distribution_id"], ["distributions.id"]),
        sa.UniqueConstraint("distribution_id", "document_type", "document_id", name="uq_distribution_documents_ref"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_distribution_documents_distribution_id", "distribution_documents", ["distribution_id"], unique=False)
    op.create_index("ix_distribution_documents_ref", "distribution_documents", ["document_type", "document_id"], unique=False)

    op.create_table(
        "distribution_histories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("distribution_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("action", sa.String(length=32), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("action_metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["distribution_id"], ["distributions.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_distribution_histories_distribution_id", "distribution_histories", ["distribution_id"], unique=False)
    op.create_index("ix_distribution_histories_user_id", "distribution_histories", ["user_id"], unique=False)
    op.create_index("ix_distribution_histories_action", "distribution_histories", ["action"], unique=False)
    op.create_index(
        "ix_distribution_histories_dist_created",
        "distribution_histories",
        ["distribution_id", "created_at"],
        unique=False,
    )

    op.create_table(
        "distribution_sequences",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("department_id", sa.Integer(), nullable=False),
        sa.Column("type_id", sa.Integer(), nullable=False),
        sa.Column("last_number", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["department_id"], ["departments.id"]),
        sa.ForeignKeyConstraint(["type_id"], ["distribution_types.id"]),
        sa.UniqueConstraint("year", "department_id", "type_id", name="uq_distribution_sequences_scope"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_distribution_sequences_department_id", "distribution_sequences", ["department_id"], unique=False)
    op.create_index("ix_distribution_sequences_type_id", "distribution_sequences", ["type_id"], unique=False)

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(length=64), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("data", sa.JSON(), nullable=True),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"], unique=False)
    op.create_index("ix_notifications_user_read", "notifications", ["user_id", "read_at"], unique=False)


def downgrade():
    op.drop_table("notifications")
    op.drop_table("distribution_sequences")
    op.drop_table("distribution_histories")
    op.drop_table("distribution_documents")
    op.drop_table("distributions")
    op.drop_table("invoice_additional_documents")
    op.drop_table("additional_documents")
    op.drop_table("invoices")
    op.drop_table("distribution_types")
    op.drop_table("users")
    op.drop_table("departments")

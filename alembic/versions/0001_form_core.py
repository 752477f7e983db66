"""Forms, fields, submissions, and responses

Revision ID: 0001_form_core
Revises:
Create Date: 2026-10-19

Tables:
- forms: form metadata and lifecycle status
- form_fields: ordered questions of a form
- form_submissions: one row per submit action
- form_responses: one answer per field, with label/kind snapshot
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_form_core"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "forms",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("slug", sa.String(150), nullable=False, unique=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("body", sa.Text, nullable=True),
        sa.Column("cover_image", sa.String(1000), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="draft"),  # draft, published, closed
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("idx_forms_status", "forms", ["status"])

    op.create_table(
        "form_fields",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column(
            "form_id",
            sa.String(64),
            sa.ForeignKey("forms.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("kind", sa.String(20), nullable=False),
        sa.Column("label", sa.String(200), nullable=False),
        sa.Column("placeholder", sa.Text, nullable=True),
        sa.Column("help_text", sa.Text, nullable=True),
        sa.Column("required", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("options", sa.JSON, nullable=False),
        sa.Column("field_order", sa.Integer, nullable=False),
        sa.Column("validation", sa.JSON, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("form_id", "field_order", name="uq_form_field_order"),
    )
    op.create_index("idx_form_fields_form", "form_fields", ["form_id"])

    op.create_table(
        "form_submissions",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column(
            "form_id",
            sa.String(64),
            sa.ForeignKey("forms.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("submitted_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("user_agent", sa.Text, nullable=True),
    )
    op.create_index("idx_form_submissions_form", "form_submissions", ["form_id"])
    op.create_index(
        "idx_form_submissions_submitted", "form_submissions", ["form_id", "submitted_at"]
    )

    op.create_table(
        "form_responses",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column(
            "submission_id",
            sa.String(64),
            sa.ForeignKey("form_submissions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "field_id",
            sa.String(64),
            sa.ForeignKey("form_fields.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("field_label", sa.String(200), nullable=True),
        sa.Column("field_kind", sa.String(20), nullable=True),
        sa.Column("value", sa.Text, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("idx_form_responses_submission", "form_responses", ["submission_id"])
    op.create_index("idx_form_responses_field", "form_responses", ["field_id"])


def downgrade() -> None:
    op.drop_table("form_responses")
    op.drop_table("form_submissions")
    op.drop_table("form_fields")
    op.drop_table("forms")

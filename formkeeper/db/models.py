"""SQLAlchemy ORM models for forms, fields, submissions, and responses."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from formkeeper.db.base import Base
from formkeeper.db.enums import FormStatus


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Form(Base):
    """A form definition: metadata plus an ordered list of fields."""

    __tablename__ = "forms"
    __table_args__ = (Index("idx_forms_status", "status"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    slug: Mapped[str] = mapped_column(String(150), nullable=False, unique=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    body: Mapped[str | None] = mapped_column(Text, nullable=True)
    cover_image: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), default=FormStatus.DRAFT.value, nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), onupdate=_utcnow, nullable=False
    )

    fields: Mapped[list["FormField"]] = relationship(
        back_populates="form",
        cascade="all, delete-orphan",
        order_by="FormField.order",
    )
    submissions: Mapped[list["FormSubmission"]] = relationship(
        back_populates="form",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class FormField(Base):
    """One question of a form. Owned by its form."""

    __tablename__ = "form_fields"
    __table_args__ = (
        UniqueConstraint("form_id", "field_order", name="uq_form_field_order"),
        Index("idx_form_fields_form", "form_id"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    form_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("forms.id", ondelete="CASCADE"), nullable=False
    )
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    label: Mapped[str] = mapped_column(String(200), nullable=False)
    placeholder: Mapped[str | None] = mapped_column(Text, nullable=True)
    help_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    required: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    options: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    order: Mapped[int] = mapped_column("field_order", Integer, nullable=False)
    validation: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), nullable=False
    )

    form: Mapped["Form"] = relationship(back_populates="fields")


class FormSubmission(Base):
    """One end-user submit action. Immutable apart from its responses."""

    __tablename__ = "form_submissions"
    __table_args__ = (
        Index("idx_form_submissions_form", "form_id"),
        Index("idx_form_submissions_submitted", "form_id", "submitted_at"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    form_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("forms.id", ondelete="CASCADE"), nullable=False
    )
    submitted_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), nullable=False
    )
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)

    form: Mapped["Form"] = relationship(back_populates="submissions")
    responses: Mapped[list["FormResponse"]] = relationship(
        back_populates="submission",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="FormResponse.created_at",
    )


class FormResponse(Base):
    """One answer to one field.

    ``field_label`` / ``field_kind`` record what was asked at submission time
    and are never rewritten by field edits. ``field_id`` is a weak link: it
    is nulled when the field is deleted and may be repopulated by
    reconciliation.
    """

    __tablename__ = "form_responses"
    __table_args__ = (
        Index("idx_form_responses_submission", "submission_id"),
        Index("idx_form_responses_field", "field_id"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    submission_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("form_submissions.id", ondelete="CASCADE"),
        nullable=False,
    )
    field_id: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("form_fields.id", ondelete="SET NULL"), nullable=True
    )
    # Nullable only for rows written before snapshots existed; see
    # reconciliation_service.backfill_label_snapshots.
    field_label: Mapped[str | None] = mapped_column(String(200), nullable=True)
    field_kind: Mapped[str | None] = mapped_column(String(20), nullable=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), nullable=False
    )

    submission: Mapped["FormSubmission"] = relationship(back_populates="responses")
    field: Mapped["FormField | None"] = relationship()

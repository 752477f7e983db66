"""Form definition CRUD. Field edits never rewrite stored responses."""

import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from formkeeper.core.structured_logging import build_log_context
from formkeeper.db.enums import FormStatus
from formkeeper.db.models import Form, FormField, FormResponse, FormSubmission
from formkeeper.schemas.forms import (
    FieldDefinition,
    FormCreate,
    FormUpdate,
    field_definition_from_model,
)

logger = logging.getLogger(__name__)


class FormServiceError(Exception):
    """Base exception for form service errors."""

    pass


class FormNotFoundError(FormServiceError):
    """Form not found."""

    pass


class DuplicateFormSlugError(FormServiceError):
    """Another form already uses this slug."""

    pass


class FormNotAcceptingSubmissionsError(FormServiceError):
    """Form is not published."""

    pass


# =============================================================================
# Reads
# =============================================================================


def list_forms(db: Session) -> list[tuple[Form, int]]:
    """Forms with their submission counts, most recently updated first."""
    counts = (
        db.query(FormSubmission.form_id, func.count(FormSubmission.id).label("n"))
        .group_by(FormSubmission.form_id)
        .subquery()
    )
    rows = (
        db.query(Form, func.coalesce(counts.c.n, 0))
        .outerjoin(counts, counts.c.form_id == Form.id)
        .order_by(Form.updated_at.desc(), Form.id.asc())
        .all()
    )
    return [(form, int(count)) for form, count in rows]


def get_form(db: Session, form_id: str) -> Form | None:
    return db.get(Form, form_id)


def get_form_by_slug(db: Session, slug: str, *, published_only: bool = False) -> Form | None:
    query = db.query(Form).filter(Form.slug == slug)
    if published_only:
        query = query.filter(Form.status == FormStatus.PUBLISHED.value)
    return query.first()


def require_form(db: Session, form_id: str) -> Form:
    form = get_form(db, form_id)
    if not form:
        raise FormNotFoundError(f"Form not found: {form_id}")
    return form


def form_field_definitions(form: Form) -> list[FieldDefinition]:
    return [field_definition_from_model(field) for field in form.fields]


# =============================================================================
# Writes
# =============================================================================


def _ensure_slug_available(db: Session, slug: str, *, exclude_form_id: str | None = None) -> None:
    query = db.query(Form.id).filter(Form.slug == slug)
    if exclude_form_id:
        query = query.filter(Form.id != exclude_form_id)
    if query.first():
        raise DuplicateFormSlugError(f"Slug already in use: {slug}")


def _apply_definition(field: FormField, definition: FieldDefinition, order: int) -> None:
    field.kind = definition.kind
    field.label = definition.label
    field.placeholder = definition.placeholder
    field.help_text = definition.help_text
    field.required = definition.required
    field.options = list(definition.options)
    field.order = order
    field.validation = (
        definition.validation.model_dump(mode="json") if definition.validation else None
    )


def _new_field(db: Session, definition: FieldDefinition, order: int) -> FormField:
    field = FormField()
    # Field ids are global; a supplied id is honoured only while unused.
    if definition.id and db.get(FormField, definition.id) is None:
        field.id = definition.id
    _apply_definition(field, definition, order)
    return field


def create_form(db: Session, data: FormCreate) -> Form:
    _ensure_slug_available(db, data.slug)

    form = Form(
        slug=data.slug,
        title=data.title,
        description=data.description,
        body=data.body,
        cover_image=data.cover_image,
        status=data.status.value,
    )
    for index, definition in enumerate(data.fields):
        form.fields.append(_new_field(db, definition, index))

    db.add(form)
    db.commit()
    db.refresh(form)
    logger.info("Form created", extra=build_log_context(form_id=form.id, operation="create_form"))
    return form


def update_form(db: Session, form: Form, data: FormUpdate) -> Form:
    """Replace a form's metadata and field list.

    Fields whose id is supplied keep that id, so existing responses stay
    linked. Removed fields are deleted and their responses are unlinked; the
    responses keep their label/kind snapshot.
    """
    _ensure_slug_available(db, data.slug, exclude_form_id=form.id)

    existing = {field.id: field for field in form.fields}
    keep_ids = {d.id for d in data.fields if d.id and d.id in existing}
    removed = [field for field_id, field in existing.items() if field_id not in keep_ids]

    if removed:
        removed_ids = [field.id for field in removed]
        db.query(FormResponse).filter(FormResponse.field_id.in_(removed_ids)).update(
            {FormResponse.field_id: None}, synchronize_session=False
        )
        for field in removed:
            form.fields.remove(field)

    # Park kept fields on negative orders so reordering never collides with
    # the unique (form_id, order) constraint mid-flush.
    for index, field_id in enumerate(sorted(keep_ids)):
        existing[field_id].order = -(index + 1)
    db.flush()

    for index, definition in enumerate(data.fields):
        if definition.id and definition.id in existing and definition.id in keep_ids:
            _apply_definition(existing[definition.id], definition, index)
        else:
            form.fields.append(_new_field(db, definition, index))

    form.slug = data.slug
    form.title = data.title
    form.description = data.description
    form.body = data.body
    form.cover_image = data.cover_image
    form.status = data.status.value

    db.commit()
    db.refresh(form)
    logger.info(
        "Form updated (%d fields removed)",
        len(removed),
        extra=build_log_context(form_id=form.id, operation="update_form"),
    )
    return form


def set_form_status(db: Session, form: Form, status: FormStatus) -> Form:
    form.status = FormStatus(status).value
    db.commit()
    db.refresh(form)
    return form


def delete_form(db: Session, form: Form) -> None:
    """Delete a form with its fields, submissions, and responses."""
    form_id = form.id
    db.delete(form)
    db.commit()
    logger.info("Form deleted", extra=build_log_context(form_id=form_id, operation="delete_form"))

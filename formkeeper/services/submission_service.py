"""Record form submissions with a label/kind snapshot on every response."""

import json
import logging
from typing import Any, Mapping, Sequence

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from formkeeper.core.structured_logging import build_log_context
from formkeeper.db.enums import FormStatus
from formkeeper.db.models import Form, FormResponse, FormSubmission
from formkeeper.schemas.forms import FieldDefinition, SubmissionMetadata
from formkeeper.services.form_service import (
    FormNotAcceptingSubmissionsError,
    FormServiceError,
    form_field_definitions,
)
from formkeeper.services.schema_compiler import AnswerValue, compile_validator

logger = logging.getLogger(__name__)


class SubmissionValidationError(FormServiceError):
    """The payload violated one or more field rules. Nothing was stored."""

    def __init__(self, errors: dict[str, list[str]]):
        super().__init__("Submission failed validation")
        self.errors = errors


class SubmissionStorageError(FormServiceError):
    """The submission could not be written. Nothing was stored."""

    pass


def serialize_answer(value: AnswerValue) -> str:
    """Store list answers as a JSON array, everything else as text."""
    if isinstance(value, (list, tuple)):
        return json.dumps(list(value), ensure_ascii=False)
    return str(value)


def record_submission(
    db: Session,
    form: Form,
    fields: Sequence[FieldDefinition],
    values: Mapping[str, AnswerValue],
    metadata: SubmissionMetadata | None = None,
) -> FormSubmission:
    """Persist one submission and its responses in a single transaction.

    ``values`` must already be normalized by the form's validator. Each
    response copies the field's current label and kind.
    """
    metadata = metadata or SubmissionMetadata()
    submission = FormSubmission(
        form_id=form.id,
        ip_address=metadata.ip_address,
        user_agent=metadata.user_agent,
    )
    for definition in sorted(fields, key=lambda f: f.order):
        if definition.id not in values:
            continue
        submission.responses.append(
            FormResponse(
                field_id=definition.id,
                field_label=definition.label,
                field_kind=definition.kind,
                value=serialize_answer(values[definition.id]),
            )
        )

    try:
        db.add(submission)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception(
            "Submission write failed",
            extra=build_log_context(form_id=form.id, operation="record_submission"),
        )
        raise SubmissionStorageError("Submission could not be saved") from exc

    db.refresh(submission)
    logger.info(
        "Submission recorded with %d responses",
        len(submission.responses),
        extra=build_log_context(form_id=form.id, submission_id=submission.id),
    )
    return submission


def submit_form(
    db: Session,
    form: Form,
    answers: Mapping[str, Any],
    metadata: SubmissionMetadata | None = None,
) -> FormSubmission:
    """Validate a raw payload against the form's current fields and record it."""
    if form.status != FormStatus.PUBLISHED.value:
        raise FormNotAcceptingSubmissionsError(f"Form is {form.status}")

    fields = form_field_definitions(form)
    result = compile_validator(fields).validate(answers)
    if not result.is_valid:
        raise SubmissionValidationError(result.errors)
    return record_submission(db, form, fields, result.values, metadata)


def list_form_submissions(db: Session, form_id: str) -> list[FormSubmission]:
    """All submissions of a form with responses, newest first."""
    return (
        db.query(FormSubmission)
        .options(selectinload(FormSubmission.responses))
        .filter(FormSubmission.form_id == form_id)
        .order_by(FormSubmission.submitted_at.desc(), FormSubmission.id.asc())
        .all()
    )


def get_submission(db: Session, form_id: str, submission_id: str) -> FormSubmission | None:
    return (
        db.query(FormSubmission)
        .options(selectinload(FormSubmission.responses))
        .filter(FormSubmission.form_id == form_id, FormSubmission.id == submission_id)
        .first()
    )


def count_submissions(db: Session, form_id: str) -> int:
    return (
        db.query(func.count(FormSubmission.id))
        .filter(FormSubmission.form_id == form_id)
        .scalar()
        or 0
    )

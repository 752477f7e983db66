"""Replay submissions and responses from a point-in-time copy into the live store.

Recovery is strictly additive: rows are matched by id, missing rows are
inserted with their original ids and timestamps, and nothing that already
exists in the target is touched. The differences are recomputed on every
run, so a partial run can be repeated until it reports nothing left to do.
"""

import logging
from typing import Iterable

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from formkeeper.core.structured_logging import build_log_context
from formkeeper.db.models import Form, FormResponse, FormSubmission
from formkeeper.schemas.forms import FormHealthReport, RecoveryReport
from formkeeper.services.form_service import FormNotFoundError
from formkeeper.services.reconciliation_service import PROGRESS_EVERY, build_label_index

logger = logging.getLogger(__name__)

ID_CHUNK_SIZE = 500


def _find_form(db: Session, form_slug: str, store: str) -> Form:
    form = db.query(Form).filter(Form.slug == form_slug).first()
    if not form:
        raise FormNotFoundError(f"Form '{form_slug}' not found in {store} store")
    return form


def _chunks(ids: list[str], size: int = ID_CHUNK_SIZE) -> Iterable[list[str]]:
    for start in range(0, len(ids), size):
        yield ids[start : start + size]


def _existing_ids(db: Session, column, ids: list[str], *criteria) -> set[str]:
    found: set[str] = set()
    for chunk in _chunks(ids):
        query = db.query(column).filter(column.in_(chunk), *criteria)
        found.update(row[0] for row in query.all())
    return found


class _ResponseCopier:
    """Build target-side copies of source responses.

    A copy keeps its field reference only if that field exists in the target
    form; otherwise it is relinked by label, or left null for the
    reconciliation pass.
    """

    def __init__(self, target_form: Form):
        self.target_field_ids = {field.id for field in target_form.fields}
        self.label_index = build_label_index(target_form.fields)

    def copy(self, source: FormResponse, submission_id: str) -> FormResponse:
        label = source.field_label
        kind = source.field_kind
        if source.field is not None:
            label = label if label is not None else source.field.label
            kind = kind if kind is not None else source.field.kind

        field_id = None
        if source.field_id and source.field_id in self.target_field_ids:
            field_id = source.field_id
        elif label:
            field_id = self.label_index.get(label.strip())

        return FormResponse(
            id=source.id,
            submission_id=submission_id,
            field_id=field_id,
            field_label=label,
            field_kind=kind,
            value=source.value,
            created_at=source.created_at,
        )


def recover_form(source_db: Session, target_db: Session, form_slug: str) -> RecoveryReport:
    """Copy submissions/responses of one form that the target store is missing."""
    source_form = _find_form(source_db, form_slug, "source")
    target_form = _find_form(target_db, form_slug, "target")
    context = build_log_context(form_id=target_form.id, operation="recover")

    source_submissions = (
        source_db.query(FormSubmission)
        .options(selectinload(FormSubmission.responses).selectinload(FormResponse.field))
        .filter(FormSubmission.form_id == source_form.id)
        .order_by(FormSubmission.submitted_at.asc(), FormSubmission.id.asc())
        .all()
    )
    source_response_ids = [r.id for s in source_submissions for r in s.responses]
    # A submission id owned by another target form is not "existing" here;
    # inserting it fails and is reported like any other row failure.
    existing_submission_ids = _existing_ids(
        target_db,
        FormSubmission.id,
        [s.id for s in source_submissions],
        FormSubmission.form_id == target_form.id,
    )
    existing_response_ids = _existing_ids(target_db, FormResponse.id, source_response_ids)

    missing_submissions = [s for s in source_submissions if s.id not in existing_submission_ids]
    missing_responses = [
        (submission, response)
        for submission in source_submissions
        if submission.id in existing_submission_ids
        for response in submission.responses
        if response.id not in existing_response_ids
    ]
    logger.info(
        "Source has %d submissions; target is missing %d submissions and %d responses",
        len(source_submissions),
        len(missing_submissions),
        len(missing_responses),
        extra=context,
    )

    copier = _ResponseCopier(target_form)
    target_form_id = target_form.id
    report = RecoveryReport()

    for source in missing_submissions:
        submission = FormSubmission(
            id=source.id,
            form_id=target_form_id,
            submitted_at=source.submitted_at,
            ip_address=source.ip_address,
            user_agent=source.user_agent,
        )
        responses = [
            copier.copy(response, source.id)
            for response in source.responses
            if response.id not in existing_response_ids
        ]
        submission.responses.extend(responses)
        try:
            target_db.add(submission)
            target_db.commit()
        except SQLAlchemyError as exc:
            target_db.rollback()
            logger.warning(
                "Failed to recover submission: %s",
                exc,
                extra=build_log_context(
                    form_id=target_form_id, submission_id=source.id, operation="recover"
                ),
            )
            report.failures.append(f"submission {source.id}: {exc}")
            continue
        report.recovered_submissions += 1
        report.recovered_responses += len(responses)
        if report.recovered_submissions % PROGRESS_EVERY == 0:
            logger.info(
                "Recovered %d/%d submissions",
                report.recovered_submissions,
                len(missing_submissions),
                extra=context,
            )

    for submission, source in missing_responses:
        try:
            target_db.add(copier.copy(source, submission.id))
            target_db.commit()
        except SQLAlchemyError as exc:
            target_db.rollback()
            logger.warning(
                "Failed to recover response: %s",
                exc,
                extra=build_log_context(
                    form_id=target_form_id,
                    submission_id=submission.id,
                    response_id=source.id,
                    operation="recover",
                ),
            )
            report.failures.append(f"response {source.id}: {exc}")
            continue
        report.recovered_responses += 1

    logger.info(
        "Recovery done: %d submissions, %d responses, %d failures",
        report.recovered_submissions,
        report.recovered_responses,
        len(report.failures),
        extra=context,
    )
    return report


def inspect_form(db: Session, form_slug: str) -> FormHealthReport:
    """Summarize how complete a form's stored data is."""
    form = _find_form(db, form_slug, "target")

    submission_count = (
        db.query(func.count(FormSubmission.id)).filter(FormSubmission.form_id == form.id).scalar()
    )
    responses = (
        db.query(FormResponse.field_id, FormResponse.field_label)
        .join(FormSubmission, FormSubmission.id == FormResponse.submission_id)
        .filter(FormSubmission.form_id == form.id)
        .all()
    )
    empty_submissions = (
        db.query(FormSubmission.id)
        .outerjoin(FormResponse, FormResponse.submission_id == FormSubmission.id)
        .filter(FormSubmission.form_id == form.id)
        .group_by(FormSubmission.id)
        .having(func.count(FormResponse.id) == 0)
        .all()
    )

    return FormHealthReport(
        form_id=form.id,
        slug=form.slug,
        field_count=len(form.fields),
        submission_count=submission_count or 0,
        response_count=len(responses),
        submissions_without_responses=[row[0] for row in empty_submissions],
        unlinked_response_count=sum(1 for field_id, _ in responses if field_id is None),
        missing_snapshot_count=sum(1 for _, label in responses if label is None),
    )

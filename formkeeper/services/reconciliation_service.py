"""Relink responses that lost their field reference, by label snapshot."""

import logging
from typing import Iterable

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from formkeeper.core.structured_logging import build_log_context
from formkeeper.db.models import FormField, FormResponse, FormSubmission
from formkeeper.schemas.forms import BackfillReport, ReconciliationReport
from formkeeper.services.form_service import require_form

logger = logging.getLogger(__name__)

PROGRESS_EVERY = 10


def build_label_index(fields: Iterable) -> dict[str, str]:
    """Map trimmed label -> field id. On a shared label the lowest order wins."""
    index: dict[str, str] = {}
    for field in sorted(fields, key=lambda f: f.order):
        label = field.label.strip()
        if label in index:
            logger.warning(
                "Fields %s and %s share label %r; keeping the first",
                index[label],
                field.id,
                label,
            )
            continue
        index[label] = field.id
    return index


def reconcile_form(db: Session, form_id: str) -> ReconciliationReport:
    """Link this form's unlinked responses to current fields by label.

    Only ``field_id`` is ever written, and only while it is still null. Each
    row is committed on its own, so an interrupted run can simply be re-run.
    """
    form = require_form(db, form_id)
    label_index = build_label_index(form.fields)
    context = build_log_context(form_id=form_id, operation="reconcile")

    unlinked = (
        db.query(FormResponse.id, FormResponse.field_label)
        .join(FormSubmission, FormSubmission.id == FormResponse.submission_id)
        .filter(FormSubmission.form_id == form_id, FormResponse.field_id.is_(None))
        .order_by(FormSubmission.submitted_at.asc(), FormResponse.created_at.asc())
        .all()
    )
    logger.info("Reconciling %d unlinked responses", len(unlinked), extra=context)

    report = ReconciliationReport()
    unmatched: dict[str, None] = {}
    unlabeled = 0
    for response_id, stored_label in unlinked:
        label = (stored_label or "").strip()
        if not label:
            unlabeled += 1
            continue
        field_id = label_index.get(label)
        if field_id is None:
            unmatched.setdefault(label, None)
            continue

        try:
            updated = (
                db.query(FormResponse)
                .filter(FormResponse.id == response_id, FormResponse.field_id.is_(None))
                .update({FormResponse.field_id: field_id}, synchronize_session=False)
            )
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.exception(
                "Failed to relink response",
                extra=build_log_context(
                    form_id=form_id, response_id=response_id, operation="reconcile"
                ),
            )
            continue

        if updated:
            report.migrated_count += 1
            if report.migrated_count % PROGRESS_EVERY == 0:
                logger.info("Relinked %d responses so far", report.migrated_count, extra=context)

    if unlabeled:
        logger.warning("%d unlinked responses have no label snapshot", unlabeled, extra=context)

    report.unmatched_labels = list(unmatched)
    logger.info(
        "Reconciliation done: %d relinked, %d labels unmatched",
        report.migrated_count,
        len(report.unmatched_labels),
        extra=context,
    )
    return report


def backfill_label_snapshots(db: Session, form_id: str | None = None) -> BackfillReport:
    """Fill missing label/kind snapshots from the still-linked field.

    Only null snapshot columns are written; an existing snapshot is never
    replaced.
    """
    query = (
        db.query(
            FormResponse.id,
            FormResponse.field_label,
            FormResponse.field_kind,
            FormField.label,
            FormField.kind,
        )
        .join(FormField, FormField.id == FormResponse.field_id)
        .filter(or_(FormResponse.field_label.is_(None), FormResponse.field_kind.is_(None)))
    )
    if form_id:
        require_form(db, form_id)
        query = query.filter(FormField.form_id == form_id)
    rows = query.all()

    report = BackfillReport()
    for response_id, stored_label, stored_kind, field_label, field_kind in rows:
        updated = 0
        try:
            if stored_label is None:
                updated += (
                    db.query(FormResponse)
                    .filter(FormResponse.id == response_id, FormResponse.field_label.is_(None))
                    .update({FormResponse.field_label: field_label}, synchronize_session=False)
                )
            if stored_kind is None:
                updated += (
                    db.query(FormResponse)
                    .filter(FormResponse.id == response_id, FormResponse.field_kind.is_(None))
                    .update({FormResponse.field_kind: field_kind}, synchronize_session=False)
                )
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.exception(
                "Failed to backfill snapshot",
                extra=build_log_context(response_id=response_id, operation="backfill"),
            )
            continue
        if updated:
            report.updated_count += 1

    logger.info(
        "Backfilled %d response snapshots",
        report.updated_count,
        extra=build_log_context(form_id=form_id, operation="backfill"),
    )
    return report

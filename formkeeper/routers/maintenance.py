"""Operator endpoints for reconciliation, snapshot backfill, and recovery."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from formkeeper.core.deps import get_db, get_snapshot_db, require_operator_secret
from formkeeper.schemas.forms import (
    BackfillReport,
    FormHealthReport,
    ReconciliationReport,
    RecoveryReport,
)
from formkeeper.services import reconciliation_service, recovery_service
from formkeeper.services.form_service import FormNotFoundError

router = APIRouter(
    prefix="/maintenance",
    tags=["maintenance"],
    dependencies=[Depends(require_operator_secret)],
)


@router.post("/forms/{form_id}/reconcile", response_model=ReconciliationReport)
def reconcile_form(form_id: str, db: Session = Depends(get_db)):
    """Relink unlinked responses to the form's current fields by label."""
    try:
        return reconciliation_service.reconcile_form(db, form_id)
    except FormNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/backfill-labels", response_model=BackfillReport)
def backfill_labels(form_id: str | None = None, db: Session = Depends(get_db)):
    try:
        return reconciliation_service.backfill_label_snapshots(db, form_id)
    except FormNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/forms/by-slug/{slug}/health", response_model=FormHealthReport)
def inspect_form(slug: str, db: Session = Depends(get_db)):
    try:
        return recovery_service.inspect_form(db, slug)
    except FormNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/forms/by-slug/{slug}/recover", response_model=RecoveryReport)
def recover_form(
    slug: str,
    db: Session = Depends(get_db),
    snapshot_db: Session = Depends(get_snapshot_db),
):
    """Copy submissions missing from the live store out of the snapshot store."""
    try:
        return recovery_service.recover_form(snapshot_db, db, slug)
    except FormNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

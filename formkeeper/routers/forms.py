"""Form administration, submission listing, and exports."""

from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from formkeeper.core.deps import get_db, require_operator_secret
from formkeeper.schemas.forms import (
    FormCreate,
    FormRead,
    FormResponseRead,
    FormStatusUpdate,
    FormSubmissionRead,
    FormSummary,
    FormUpdate,
)
from formkeeper.services import export_service, form_service, submission_service

router = APIRouter(
    prefix="/forms",
    tags=["forms"],
    dependencies=[Depends(require_operator_secret)],
)

EXPORT_MEDIA_TYPES = {
    "csv": "text/csv; charset=utf-8",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}


def _form_read(form) -> FormRead:
    return FormRead(
        id=form.id,
        slug=form.slug,
        title=form.title,
        description=form.description,
        body=form.body,
        cover_image=form.cover_image,
        status=form.status,
        fields=form_service.form_field_definitions(form),
        created_at=form.created_at,
        updated_at=form.updated_at,
    )


def _submission_read(submission) -> FormSubmissionRead:
    return FormSubmissionRead(
        id=submission.id,
        form_id=submission.form_id,
        submitted_at=submission.submitted_at,
        ip_address=submission.ip_address,
        user_agent=submission.user_agent,
        responses=[
            FormResponseRead(
                id=r.id,
                field_id=r.field_id,
                field_label=r.field_label,
                field_kind=r.field_kind,
                value=r.value,
            )
            for r in submission.responses
        ],
    )


def _get_form_or_404(db: Session, form_id: str):
    form = form_service.get_form(db, form_id)
    if not form:
        raise HTTPException(status_code=404, detail="Form not found")
    return form


# =============================================================================
# Form CRUD
# =============================================================================


@router.get("", response_model=list[FormSummary])
def list_forms(db: Session = Depends(get_db)):
    return [
        FormSummary(
            id=form.id,
            slug=form.slug,
            title=form.title,
            status=form.status,
            submission_count=count,
            created_at=form.created_at,
            updated_at=form.updated_at,
        )
        for form, count in form_service.list_forms(db)
    ]


@router.post("", response_model=FormRead)
def create_form(data: FormCreate, db: Session = Depends(get_db)):
    try:
        form = form_service.create_form(db, data)
    except form_service.DuplicateFormSlugError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _form_read(form)


@router.get("/{form_id}", response_model=FormRead)
def get_form(form_id: str, db: Session = Depends(get_db)):
    return _form_read(_get_form_or_404(db, form_id))


@router.put("/{form_id}", response_model=FormRead)
def update_form(form_id: str, data: FormUpdate, db: Session = Depends(get_db)):
    form = _get_form_or_404(db, form_id)
    try:
        form = form_service.update_form(db, form, data)
    except form_service.DuplicateFormSlugError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _form_read(form)


@router.patch("/{form_id}/status", response_model=FormRead)
def set_form_status(form_id: str, data: FormStatusUpdate, db: Session = Depends(get_db)):
    form = _get_form_or_404(db, form_id)
    return _form_read(form_service.set_form_status(db, form, data.status))


@router.delete("/{form_id}", status_code=204)
def delete_form(form_id: str, db: Session = Depends(get_db)):
    form = _get_form_or_404(db, form_id)
    form_service.delete_form(db, form)
    return Response(status_code=204)


# =============================================================================
# Submissions
# =============================================================================


@router.get("/{form_id}/submissions", response_model=list[FormSubmissionRead])
def list_submissions(form_id: str, db: Session = Depends(get_db)):
    _get_form_or_404(db, form_id)
    submissions = submission_service.list_form_submissions(db, form_id)
    return [_submission_read(s) for s in submissions]


@router.get("/{form_id}/submissions/{submission_id}", response_model=FormSubmissionRead)
def get_submission(form_id: str, submission_id: str, db: Session = Depends(get_db)):
    submission = submission_service.get_submission(db, form_id, submission_id)
    if not submission:
        raise HTTPException(status_code=404, detail="Submission not found")
    return _submission_read(submission)


@router.get("/{form_id}/export")
def export_submissions(
    form_id: str,
    format: Literal["csv", "xlsx"] = Query("csv"),
    db: Session = Depends(get_db),
):
    form = _get_form_or_404(db, form_id)
    submissions = submission_service.list_form_submissions(db, form_id)
    table = export_service.build_submission_table(form.fields, submissions)

    if format == "xlsx":
        content: bytes | str = export_service.render_xlsx(table)
    else:
        content = export_service.render_csv(table)

    filename = export_service.export_filename(form, format)
    return Response(
        content=content,
        media_type=EXPORT_MEDIA_TYPES[format],
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )

"""Public form endpoints for respondents."""

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from formkeeper.core.deps import get_db
from formkeeper.core.rate_limit import SUBMIT_LIMIT, limiter
from formkeeper.db.enums import FormStatus
from formkeeper.schemas.forms import (
    FormPublicRead,
    SubmissionAccepted,
    SubmissionCreate,
    SubmissionMetadata,
)
from formkeeper.services import form_service, submission_service

router = APIRouter(prefix="/forms/public", tags=["forms-public"])

GENERIC_SUBMIT_FAILURE = "Your response could not be saved. Please try again."


def _client_metadata(request: Request) -> SubmissionMetadata:
    user_agent = request.headers.get("user-agent")
    ip_address = request.client.host if request.client else None
    return SubmissionMetadata(ip_address=ip_address, user_agent=user_agent)


@router.get("/{slug}", response_model=FormPublicRead)
def get_public_form(slug: str, db: Session = Depends(get_db)):
    form = form_service.get_form_by_slug(db, slug, published_only=True)
    if not form:
        raise HTTPException(status_code=404, detail="Form not found")
    return FormPublicRead(
        id=form.id,
        slug=form.slug,
        title=form.title,
        description=form.description,
        body=form.body,
        cover_image=form.cover_image,
        fields=form_service.form_field_definitions(form),
    )


@router.post("/{slug}/submit", response_model=SubmissionAccepted)
@limiter.limit(SUBMIT_LIMIT)
def submit_form(
    request: Request,
    slug: str,
    data: SubmissionCreate,
    db: Session = Depends(get_db),
):
    form = form_service.get_form_by_slug(db, slug)
    if not form or form.status == FormStatus.DRAFT.value:
        raise HTTPException(status_code=404, detail="Form not found")

    try:
        submission = submission_service.submit_form(
            db, form, data.answers, _client_metadata(request)
        )
    except form_service.FormNotAcceptingSubmissionsError:
        raise HTTPException(status_code=409, detail="This form is no longer accepting responses")
    except submission_service.SubmissionValidationError as e:
        raise HTTPException(status_code=422, detail={"errors": e.errors})
    except submission_service.SubmissionStorageError:
        raise HTTPException(status_code=500, detail=GENERIC_SUBMIT_FAILURE)

    return SubmissionAccepted(submission_id=submission.id)

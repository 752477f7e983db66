"""Tests for copying missing submissions from a snapshot store."""
import pytest
from sqlalchemy import event
from sqlalchemy.exc import IntegrityError

from formkeeper.db.models import FormResponse, FormSubmission
from formkeeper.schemas.forms import FormCreate
from formkeeper.services import form_service, recovery_service


def _snapshot_form(snapshot_db, fields=None):
    data = FormCreate(
        slug="contact",
        title="Contact us",
        status="published",
        fields=fields
        or [
            {"id": "f-name", "kind": "text", "label": "Name"},
            {"id": "f-email", "kind": "email", "label": "Email"},
            {"id": "f-old", "kind": "text", "label": "Referral"},
        ],
    )
    return form_service.create_form(snapshot_db, data)


def _add_submission(session, form, submission_id, answers):
    submission = FormSubmission(id=submission_id, form_id=form.id, ip_address="198.51.100.7")
    for response_id, (field_id, label, value) in answers.items():
        submission.responses.append(
            FormResponse(
                id=response_id,
                field_id=field_id,
                field_label=label,
                field_kind="text",
                value=value,
            )
        )
    session.add(submission)
    session.commit()
    return submission


def test_copies_missing_submissions_with_ids(db, snapshot_db, contact_form):
    source_form = _snapshot_form(snapshot_db)
    _add_submission(snapshot_db, source_form, "s1", {"r1": ("f-name", "Name", "Kim")})
    _add_submission(snapshot_db, source_form, "s2", {"r2": ("f-email", "Email", "lee@example.com")})
    _add_submission(db, contact_form, "s1", {"r1": ("f-name", "Name", "Kim")})

    report = recovery_service.recover_form(snapshot_db, db, "contact")

    assert report.recovered_submissions == 1
    assert report.recovered_responses == 1
    assert report.failures == []
    recovered = db.get(FormSubmission, "s2")
    assert recovered.form_id == contact_form.id
    assert recovered.ip_address == "198.51.100.7"
    assert [r.id for r in recovered.responses] == ["r2"]
    assert recovered.responses[0].field_id == "f-email"


def test_second_run_is_a_noop(db, snapshot_db, contact_form):
    source_form = _snapshot_form(snapshot_db)
    _add_submission(snapshot_db, source_form, "s1", {"r1": ("f-name", "Name", "Kim")})

    recovery_service.recover_form(snapshot_db, db, "contact")
    report = recovery_service.recover_form(snapshot_db, db, "contact")

    assert report.recovered_submissions == 0
    assert report.recovered_responses == 0
    assert db.query(FormSubmission).count() == 1
    assert db.query(FormResponse).count() == 1


def test_missing_responses_added_to_existing_submission(db, snapshot_db, contact_form):
    source_form = _snapshot_form(snapshot_db)
    _add_submission(
        snapshot_db,
        source_form,
        "s1",
        {"r1": ("f-name", "Name", "Kim"), "r2": ("f-email", "Email", "kim@example.com")},
    )
    _add_submission(db, contact_form, "s1", {"r1": ("f-name", "Name", "Kim")})

    report = recovery_service.recover_form(snapshot_db, db, "contact")

    assert report.recovered_submissions == 0
    assert report.recovered_responses == 1
    assert db.get(FormResponse, "r2").submission_id == "s1"


def test_field_missing_from_target_is_unlinked(db, snapshot_db, contact_form):
    source_form = _snapshot_form(snapshot_db)
    _add_submission(snapshot_db, source_form, "s1", {"r1": ("f-old", "Referral", "a friend")})

    recovery_service.recover_form(snapshot_db, db, "contact")

    response = db.get(FormResponse, "r1")
    assert response.field_id is None
    assert response.field_label == "Referral"
    assert response.value == "a friend"


def test_field_with_new_id_is_relinked_by_label(db, snapshot_db, contact_form):
    source_form = _snapshot_form(
        snapshot_db, fields=[{"id": "legacy-name", "kind": "text", "label": "Name"}]
    )
    _add_submission(snapshot_db, source_form, "s1", {"r1": ("legacy-name", " Name ", "Kim")})

    recovery_service.recover_form(snapshot_db, db, "contact")

    assert db.get(FormResponse, "r1").field_id == "f-name"


def test_label_snapshot_taken_from_source_field_when_missing(db, snapshot_db, contact_form):
    source_form = _snapshot_form(snapshot_db)
    submission = FormSubmission(id="s1", form_id=source_form.id)
    submission.responses.append(FormResponse(id="r1", field_id="f-email", value="kim@example.com"))
    snapshot_db.add(submission)
    snapshot_db.commit()

    recovery_service.recover_form(snapshot_db, db, "contact")

    response = db.get(FormResponse, "r1")
    assert (response.field_label, response.field_kind) == ("Email", "email")
    assert response.field_id == "f-email"


def test_failed_submission_does_not_stop_the_run(db, snapshot_db, contact_form):
    source_form = _snapshot_form(snapshot_db)
    _add_submission(snapshot_db, source_form, "s1", {"r1": ("f-name", "Name", "Kim")})
    _add_submission(snapshot_db, source_form, "s2", {"r2": ("f-name", "Name", "Lee")})

    def reject_s1(mapper, connection, target):
        if target.id == "s1":
            raise IntegrityError("INSERT INTO form_submissions", {}, Exception("constraint"))

    event.listen(FormSubmission, "before_insert", reject_s1)
    try:
        report = recovery_service.recover_form(snapshot_db, db, "contact")
    finally:
        event.remove(FormSubmission, "before_insert", reject_s1)

    assert report.recovered_submissions == 1
    assert len(report.failures) == 1
    assert report.failures[0].startswith("submission s1:")
    assert db.get(FormSubmission, "s1") is None
    assert db.get(FormSubmission, "s2") is not None


def test_failed_response_does_not_stop_the_run(db, snapshot_db, contact_form):
    source_form = _snapshot_form(snapshot_db)
    _add_submission(
        snapshot_db,
        source_form,
        "s1",
        {
            "r0": ("f-name", "Name", "Kim"),
            "r1": ("f-email", "Email", "kim@example.com"),
            "r2": ("f-old", "Referral", "a friend"),
        },
    )
    _add_submission(db, contact_form, "s1", {"r0": ("f-name", "Name", "Kim")})

    def reject_r1(mapper, connection, target):
        if target.id == "r1":
            raise IntegrityError("INSERT INTO form_responses", {}, Exception("constraint"))

    event.listen(FormResponse, "before_insert", reject_r1)
    try:
        report = recovery_service.recover_form(snapshot_db, db, "contact")
    finally:
        event.remove(FormResponse, "before_insert", reject_r1)

    assert report.recovered_submissions == 0
    assert report.recovered_responses == 1
    assert len(report.failures) == 1
    assert report.failures[0].startswith("response r1:")
    assert db.get(FormResponse, "r1") is None
    assert db.get(FormResponse, "r2").submission_id == "s1"


def test_submission_id_of_another_form_is_not_reused(db, snapshot_db, contact_form, form_factory):
    other = form_factory(slug="other", fields=[{"kind": "text", "label": "Q"}])
    _add_submission(db, other, "s1", {})
    source_form = _snapshot_form(snapshot_db)
    _add_submission(snapshot_db, source_form, "s1", {"r1": ("f-name", "Name", "Kim")})

    report = recovery_service.recover_form(snapshot_db, db, "contact")

    assert report.recovered_responses == 0
    assert report.failures[0].startswith("submission s1:")
    assert db.get(FormResponse, "r1") is None
    assert db.get(FormSubmission, "s1").form_id == other.id


def test_form_missing_from_either_store(db, snapshot_db, contact_form):
    with pytest.raises(form_service.FormNotFoundError):
        recovery_service.recover_form(snapshot_db, db, "contact")


# =============================================================================
# Diagnostics
# =============================================================================


def test_inspect_form_counts(db, contact_form):
    _add_submission(db, contact_form, "s1", {"r1": ("f-name", "Name", "Kim")})
    _add_submission(db, contact_form, "s2", {"r2": (None, "Old label", "x")})
    db.add(FormSubmission(id="s3", form_id=contact_form.id))
    db.commit()

    report = recovery_service.inspect_form(db, "contact")

    assert report.field_count == 4
    assert report.submission_count == 3
    assert report.response_count == 2
    assert report.unlinked_response_count == 1
    assert report.missing_snapshot_count == 0
    assert report.submissions_without_responses == ["s3"]

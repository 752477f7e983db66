"""CLI tools for form data maintenance."""

import sys

import click

from formkeeper.core.config import settings
from formkeeper.db.session import SessionLocal, build_engine, build_sessionmaker
from formkeeper.services import reconciliation_service, recovery_service
from formkeeper.services.form_service import FormNotFoundError


@click.group()
def cli():
    """Formkeeper CLI tools."""
    pass


@cli.command()
@click.option("--form-id", required=True, help="Form whose unlinked responses to relink")
def reconcile(form_id: str):
    """
    Relink responses that lost their field reference.

    Matches each unlinked response's stored label against the form's current
    field labels. Safe to re-run.

    Example:
        python -m formkeeper.cli reconcile --form-id 3f2a...
    """
    db = SessionLocal()
    try:
        report = reconciliation_service.reconcile_form(db, form_id)
    except FormNotFoundError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    finally:
        db.close()

    click.echo(f"Relinked {report.migrated_count} responses")
    if report.unmatched_labels:
        click.echo("Labels with no current field:")
        for label in report.unmatched_labels:
            click.echo(f"  - {label}")


@cli.command("backfill-labels")
@click.option("--form-id", default=None, help="Limit to one form (default: all forms)")
def backfill_labels(form_id: str | None):
    """Fill missing label/kind snapshots from the linked field."""
    db = SessionLocal()
    try:
        report = reconciliation_service.backfill_label_snapshots(db, form_id)
    except FormNotFoundError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    finally:
        db.close()

    click.echo(f"Backfilled {report.updated_count} responses")


@cli.command()
@click.option("--form-slug", required=True, help="Slug of the form to recover")
@click.option(
    "--source-url",
    default=None,
    help="Database URL of the snapshot store (default: SNAPSHOT_DATABASE_URL)",
)
def recover(form_slug: str, source_url: str | None):
    """
    Copy submissions missing from the live store out of a snapshot store.

    Existing rows are never modified; re-running only copies what is still
    missing.

    Example:
        python -m formkeeper.cli recover --form-slug survey-2024 \\
            --source-url postgresql+psycopg://.../backup
    """
    source_url = source_url or settings.SNAPSHOT_DATABASE_URL
    if not source_url:
        click.echo("Error: pass --source-url or set SNAPSHOT_DATABASE_URL", err=True)
        sys.exit(2)
    if source_url == settings.DATABASE_URL:
        click.echo("Error: source and target database are the same", err=True)
        sys.exit(2)

    source_engine = build_engine(source_url)
    source_db = build_sessionmaker(source_engine)()
    target_db = SessionLocal()
    try:
        report = recovery_service.recover_form(source_db, target_db, form_slug)
    except FormNotFoundError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    finally:
        source_db.close()
        target_db.close()
        source_engine.dispose()

    click.echo(f"Recovered {report.recovered_submissions} submissions")
    click.echo(f"Recovered {report.recovered_responses} responses")
    if report.failures:
        click.echo(f"{len(report.failures)} failures:")
        for failure in report.failures:
            click.echo(f"  - {failure}")


@cli.command()
@click.option("--form-slug", required=True, help="Slug of the form to inspect")
def inspect(form_slug: str):
    """Print stored-data diagnostics for one form."""
    db = SessionLocal()
    try:
        report = recovery_service.inspect_form(db, form_slug)
    except FormNotFoundError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    finally:
        db.close()

    click.echo(f"Form {report.slug} ({report.form_id})")
    click.echo(f"  Fields: {report.field_count}")
    click.echo(f"  Submissions: {report.submission_count}")
    click.echo(f"  Responses: {report.response_count}")
    click.echo(f"  Unlinked responses: {report.unlinked_response_count}")
    click.echo(f"  Responses without label snapshot: {report.missing_snapshot_count}")
    if report.submissions_without_responses:
        click.echo(f"  Submissions without responses: {len(report.submissions_without_responses)}")
        for submission_id in report.submissions_without_responses:
            click.echo(f"    - {submission_id}")


if __name__ == "__main__":
    cli()

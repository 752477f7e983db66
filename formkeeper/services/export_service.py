"""Flatten a form's submissions into a label-keyed table and render it.

Columns come from the form's *current* fields, but cells are matched on each
response's stored label snapshot, not on its field reference. A response is
therefore shown as long as a current field carries the label it was
answered under, linked or not; answers to deleted or renamed fields do not
appear in the export.
"""

from __future__ import annotations

import csv
import io
import json
from dataclasses import dataclass, field as dataclass_field
from datetime import date, datetime, timezone
from typing import Any, Iterable, Sequence

from openpyxl import Workbook
from openpyxl.utils import get_column_letter

from formkeeper.core.config import settings
from formkeeper.db.enums import FieldKind, is_list_kind
from formkeeper.db.models import Form, FormSubmission

SUBMITTED_AT_HEADER = "Submitted At"
METADATA_HEADERS = ("IP Address", "User Agent")
CSV_DANGEROUS_PREFIXES = ("=", "+", "-", "@")
XLSX_COLUMN_WIDTH = 50
XLSX_SHEET_TITLE = "Responses"


@dataclass
class SubmissionTable:
    headers: list[str]
    rows: list[list[str]] = dataclass_field(default_factory=list)


def format_answer(value: str, kind: str | None) -> str:
    """Display text for a stored answer; list answers are comma-joined."""
    looks_like_list = value.startswith("[") and (
        kind is None or not FieldKind.has_value(kind) or is_list_kind(kind)
    )
    if not looks_like_list:
        return value
    try:
        items = json.loads(value)
    except ValueError:
        return value
    if not isinstance(items, list):
        return value
    return ", ".join(str(item) for item in items)


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def _column_headers(labels: Sequence[str]) -> list[str]:
    totals: dict[str, int] = {}
    for label in labels:
        totals[label] = totals.get(label, 0) + 1
    seen: dict[str, int] = {}
    headers = []
    for label in labels:
        seen[label] = seen.get(label, 0) + 1
        if totals[label] > 1 and seen[label] > 1:
            headers.append(f"{label} ({seen[label]})")
        else:
            headers.append(label)
    return headers


def build_submission_table(
    fields: Iterable[Any],
    submissions: Iterable[FormSubmission],
    placeholder: str | None = None,
) -> SubmissionTable:
    """One row per submission, newest first.

    ``fields`` are the form's current fields (ORM rows or definitions); only
    their ``label`` and ``order`` are used.
    """
    placeholder = settings.EXPORT_PLACEHOLDER if placeholder is None else placeholder
    labels = [f.label for f in sorted(fields, key=lambda f: f.order)]
    table = SubmissionTable(
        headers=[SUBMITTED_AT_HEADER, *_column_headers(labels), *METADATA_HEADERS]
    )

    ordered = sorted(submissions, key=lambda s: (s.submitted_at, s.id), reverse=True)
    for submission in ordered:
        by_label: dict[str, list[str]] = {}
        for response in submission.responses:
            if response.field_label is None:
                continue
            by_label.setdefault(response.field_label, []).append(
                format_answer(response.value, response.field_kind)
            )

        row = [format_timestamp(submission.submitted_at)]
        used: dict[str, int] = {}
        for label in labels:
            position = used.get(label, 0)
            used[label] = position + 1
            answers = by_label.get(label, [])
            row.append(answers[position] if position < len(answers) else placeholder)
        row.append(submission.ip_address or placeholder)
        row.append(submission.user_agent or placeholder)
        table.rows.append(row)
    return table


def _csv_safe(value: str) -> str:
    # A lone "-" is the empty-cell placeholder, not a formula.
    if len(value) > 1 and value.startswith(CSV_DANGEROUS_PREFIXES):
        return f"'{value}"
    return value


def render_csv(table: SubmissionTable) -> str:
    """CSV text with a UTF-8 BOM so spreadsheet apps detect the encoding."""
    output = io.StringIO()
    output.write("\ufeff")
    writer = csv.writer(output)
    writer.writerow(table.headers)
    for row in table.rows:
        writer.writerow([_csv_safe(value) for value in row])
    return output.getvalue()


def render_xlsx(table: SubmissionTable, sheet_title: str = XLSX_SHEET_TITLE) -> bytes:
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = sheet_title[:31]
    sheet.append(table.headers)
    for row in table.rows:
        sheet.append([_csv_safe(value) for value in row])
    for index in range(1, len(table.headers) + 1):
        sheet.column_dimensions[get_column_letter(index)].width = XLSX_COLUMN_WIDTH

    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def export_filename(form: Form, extension: str, today: date | None = None) -> str:
    today = today or datetime.now(timezone.utc).date()
    return f"{form.slug}_responses_{today.isoformat()}.{extension}"

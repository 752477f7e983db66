"""Structured logging helpers."""

from typing import Any


def build_log_context(
    *,
    form_id: str | None = None,
    submission_id: str | None = None,
    response_id: str | None = None,
    operation: str | None = None,
    route: str | None = None,
) -> dict[str, Any]:
    """Return a log context dict for ``extra=``.

    Answer values are never included; they may contain personal data.
    """
    context: dict[str, Any] = {}
    if form_id:
        context["form_id"] = form_id
    if submission_id:
        context["submission_id"] = submission_id
    if response_id:
        context["response_id"] = response_id
    if operation:
        context["operation"] = operation
    if route:
        context["route"] = route
    return context

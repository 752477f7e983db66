"""Compile a form's field list into a submission validator.

The validator is a pure function of the field definitions: it keeps no other
state, so callers rebuild it per request from the form's current fields.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field as dataclass_field
from datetime import date
from typing import Any, Callable, Mapping, Sequence

from pydantic import AnyUrl, EmailStr, TypeAdapter, ValidationError

from formkeeper.db.enums import FieldKind
from formkeeper.schemas.forms import (
    ChoiceFieldDefinition,
    DateFieldDefinition,
    FieldDefinition,
    MultiChoiceFieldDefinition,
    NumberFieldDefinition,
    TextFieldDefinition,
    check_field_list,
)

# Mobile numbers: 010-1234-5678, 01012345678, 011-123-4567
PHONE_PATTERN = re.compile(r"^01[0-9]-?[0-9]{3,4}-?[0-9]{4}$")
DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$", re.ASCII)
# Plain ASCII decimal or exponent literal; no digit separators
NUMBER_PATTERN = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$", re.ASCII)

_EMAIL_ADAPTER = TypeAdapter(EmailStr)
_URL_ADAPTER = TypeAdapter(AnyUrl)

AnswerValue = str | int | float | list[str]

MSG_INVALID_EMAIL = "invalid email"
MSG_INVALID_PHONE = "invalid phone number"
MSG_INVALID_URL = "invalid url"
MSG_INVALID_NUMBER = "invalid number"
MSG_INVALID_DATE = "invalid date"
MSG_EXPECTED_SCALAR = "expected a single value"
MSG_EXPECTED_LIST = "expected a list of values"
MSG_NOT_AN_OPTION = "not one of the available options"


@dataclass(frozen=True)
class ValidationResult:
    """Either normalized values or per-field violations, never both."""

    values: dict[str, AnswerValue] = dataclass_field(default_factory=dict)
    errors: dict[str, list[str]] = dataclass_field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return not self.errors


class _ShapeError(Exception):
    pass


def _coerce_scalar(raw: Any) -> str | None:
    """Return the trimmed string, or None when the answer is absent."""
    if raw is None:
        return None
    if isinstance(raw, bool):
        raise _ShapeError(MSG_EXPECTED_SCALAR)
    if isinstance(raw, (int, float)):
        raw = str(raw)
    if not isinstance(raw, str):
        raise _ShapeError(MSG_EXPECTED_SCALAR)
    text = raw.strip()
    return text or None


def _coerce_list(raw: Any) -> list[str]:
    """Return the non-blank items in order; absent means an empty list."""
    if raw is None:
        return []
    if not isinstance(raw, (list, tuple)):
        raise _ShapeError(MSG_EXPECTED_LIST)
    items: list[str] = []
    for item in raw:
        if not isinstance(item, str):
            raise _ShapeError(MSG_EXPECTED_LIST)
        if item.strip():
            items.append(item.strip())
    return items


# =============================================================================
# Per-variant checks: (field, present value) -> (normalized value, messages)
# =============================================================================


def _check_text(field: TextFieldDefinition, text: str) -> tuple[AnswerValue, list[str]]:
    kind = FieldKind(field.kind)
    if kind == FieldKind.EMAIL:
        try:
            _EMAIL_ADAPTER.validate_python(text)
        except ValidationError:
            return text, [MSG_INVALID_EMAIL]
    elif kind == FieldKind.PHONE:
        if PHONE_PATTERN.fullmatch(text) is None:
            return text, [MSG_INVALID_PHONE]
    elif kind == FieldKind.URL:
        try:
            _URL_ADAPTER.validate_python(text)
        except ValidationError:
            return text, [MSG_INVALID_URL]

    messages: list[str] = []
    rules = field.validation
    if rules:
        if rules.min_length is not None and len(text) < rules.min_length:
            messages.append(f"must be at least {rules.min_length} characters")
        if rules.max_length is not None and len(text) > rules.max_length:
            messages.append(f"must be at most {rules.max_length} characters")
        if rules.pattern and re.fullmatch(rules.pattern, text) is None:
            messages.append("does not match the required format")
    return text, messages


def _parse_number(text: str) -> int | float | None:
    if NUMBER_PATTERN.fullmatch(text) is None:
        return None
    try:
        return int(text)
    except ValueError:
        pass
    try:
        number = float(text)
    except ValueError:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _check_number(field: NumberFieldDefinition, text: str) -> tuple[AnswerValue, list[str]]:
    number = _parse_number(text)
    if number is None:
        return text, [MSG_INVALID_NUMBER]
    messages: list[str] = []
    rules = field.validation
    if rules:
        if rules.min_value is not None and number < rules.min_value:
            messages.append(f"must be at least {rules.min_value:g}")
        if rules.max_value is not None and number > rules.max_value:
            messages.append(f"must be at most {rules.max_value:g}")
    return number, messages


def _check_date(field: DateFieldDefinition, text: str) -> tuple[AnswerValue, list[str]]:
    if DATE_PATTERN.fullmatch(text) is None:
        return text, [MSG_INVALID_DATE]
    try:
        parsed = date.fromisoformat(text)
    except ValueError:
        return text, [MSG_INVALID_DATE]
    messages: list[str] = []
    rules = field.validation
    if rules:
        if rules.min_date is not None and parsed < rules.min_date:
            messages.append(f"must be on or after {rules.min_date.isoformat()}")
        if rules.max_date is not None and parsed > rules.max_date:
            messages.append(f"must be on or before {rules.max_date.isoformat()}")
    return text, messages


def _check_choice(field: ChoiceFieldDefinition, text: str) -> tuple[AnswerValue, list[str]]:
    rules = field.validation
    if rules and rules.restrict_to_options and field.options and text not in field.options:
        return text, [MSG_NOT_AN_OPTION]
    return text, []


def _check_multi_choice(
    field: MultiChoiceFieldDefinition, items: list[str]
) -> tuple[AnswerValue, list[str]]:
    messages: list[str] = []
    rules = field.validation
    if rules:
        if rules.min_selected is not None and len(items) < rules.min_selected:
            messages.append(f"select at least {rules.min_selected} options")
        if rules.max_selected is not None and len(items) > rules.max_selected:
            messages.append(f"select at most {rules.max_selected} options")
        if rules.restrict_to_options and field.options:
            for item in items:
                if item not in field.options:
                    messages.append(f"'{item}' is {MSG_NOT_AN_OPTION}")
    return items, messages


_SCALAR_CHECKS: dict[type, Callable[[Any, str], tuple[AnswerValue, list[str]]]] = {
    TextFieldDefinition: _check_text,
    NumberFieldDefinition: _check_number,
    DateFieldDefinition: _check_date,
    ChoiceFieldDefinition: _check_choice,
}
_LIST_CHECKS: dict[type, Callable[[Any, list[str]], tuple[AnswerValue, list[str]]]] = {
    MultiChoiceFieldDefinition: _check_multi_choice,
}


def required_message(field: FieldDefinition) -> str:
    if isinstance(field, MultiChoiceFieldDefinition):
        return f"{field.label.strip()}: select at least one option"
    return f"{field.label.strip()} is required"


def _validate_field(field: FieldDefinition, raw: Any) -> tuple[AnswerValue | None, list[str]]:
    variant = type(field)
    if variant in _LIST_CHECKS:
        items = _coerce_list(raw)
        if not items:
            return None, [required_message(field)] if field.required else []
        return _LIST_CHECKS[variant](field, items)

    if variant in _SCALAR_CHECKS:
        text = _coerce_scalar(raw)
        if text is None:
            return None, [required_message(field)] if field.required else []
        return _SCALAR_CHECKS[variant](field, text)

    raise TypeError(f"No validation rule for field kind {field.kind!r}")


class FormValidator:
    """Validates raw submission payloads against a fixed field list."""

    def __init__(self, fields: Sequence[FieldDefinition]):
        check_field_list(list(fields))
        for definition in fields:
            if not definition.id:
                raise ValueError(f"Field '{definition.label}' has no id")
        self.fields: tuple[FieldDefinition, ...] = tuple(
            sorted(fields, key=lambda f: f.order)
        )

    def validate(self, payload: Mapping[str, Any]) -> ValidationResult:
        values: dict[str, AnswerValue] = {}
        errors: dict[str, list[str]] = {}
        for definition in self.fields:
            try:
                value, messages = _validate_field(definition, payload.get(definition.id))
            except _ShapeError as exc:
                errors[definition.id] = [str(exc)]
                continue
            if messages:
                errors[definition.id] = messages
            elif value is not None:
                values[definition.id] = value

        if errors:
            return ValidationResult(errors=errors)
        return ValidationResult(values=values)


def compile_validator(fields: Sequence[FieldDefinition]) -> FormValidator:
    return FormValidator(fields)

"""Enum definitions for form constants."""

from enum import Enum


class FormStatus(str, Enum):
    """Lifecycle of a form."""

    DRAFT = "draft"
    PUBLISHED = "published"
    CLOSED = "closed"


class FieldKind(str, Enum):
    """Kinds of question a form field can ask."""

    TEXT = "text"
    TEXTAREA = "textarea"
    SELECT = "select"
    MULTISELECT = "multiselect"
    RADIO = "radio"
    CHECKBOX = "checkbox"
    DATE = "date"
    EMAIL = "email"
    PHONE = "phone"
    URL = "url"
    FILE = "file"
    NUMBER = "number"

    @classmethod
    def has_value(cls, value: str) -> bool:
        """Check if value is a valid field kind."""
        return value in cls._value2member_map_


LIST_FIELD_KINDS = frozenset({FieldKind.CHECKBOX, FieldKind.MULTISELECT})


def is_list_kind(kind: FieldKind | str) -> bool:
    """Whether answers to this kind are an ordered list of strings."""
    return FieldKind(kind) in LIST_FIELD_KINDS

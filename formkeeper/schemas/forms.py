"""Schemas for forms, field definitions, submissions, and batch reports."""

from datetime import date, datetime
import re
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator, model_validator

from formkeeper.db.enums import FieldKind, FormStatus


SLUG_PATTERN = r"^[a-z0-9]+(?:-[a-z0-9]+)*$"


# =============================================================================
# Constraint records (one per field-kind family)
# =============================================================================


class TextConstraints(BaseModel):
    schema_version: Literal[1] = 1
    min_length: int | None = Field(None, ge=0)
    max_length: int | None = Field(None, ge=0)
    pattern: str | None = None

    @field_validator("pattern")
    @classmethod
    def _pattern_compiles(cls, value: str | None) -> str | None:
        if value is None:
            return value
        try:
            re.compile(value)
        except re.error as exc:
            raise ValueError(f"Invalid validation pattern: {exc}") from exc
        return value


class NumberConstraints(BaseModel):
    schema_version: Literal[1] = 1
    min_value: float | None = None
    max_value: float | None = None


class DateConstraints(BaseModel):
    schema_version: Literal[1] = 1
    min_date: date | None = None
    max_date: date | None = None


class ChoiceConstraints(BaseModel):
    schema_version: Literal[1] = 1
    restrict_to_options: bool = False


class MultiChoiceConstraints(BaseModel):
    schema_version: Literal[1] = 1
    min_selected: int | None = Field(None, ge=0)
    max_selected: int | None = Field(None, ge=0)
    restrict_to_options: bool = False


# =============================================================================
# Field definitions (tagged union on ``kind``)
# =============================================================================


class _FieldDefinitionBase(BaseModel):
    id: str | None = Field(None, min_length=1, max_length=64)
    label: str = Field(..., min_length=1, max_length=200)
    placeholder: str | None = None
    help_text: str | None = None
    required: bool = False
    options: list[str] = Field(default_factory=list)
    order: int = 0

    @field_validator("label")
    @classmethod
    def _label_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Field label must not be blank")
        return value


class TextFieldDefinition(_FieldDefinitionBase):
    kind: Literal["text", "textarea", "email", "phone", "url", "file"]
    validation: TextConstraints | None = None


class NumberFieldDefinition(_FieldDefinitionBase):
    kind: Literal["number"]
    validation: NumberConstraints | None = None


class DateFieldDefinition(_FieldDefinitionBase):
    kind: Literal["date"]
    validation: DateConstraints | None = None


class ChoiceFieldDefinition(_FieldDefinitionBase):
    kind: Literal["select", "radio"]
    validation: ChoiceConstraints | None = None


class MultiChoiceFieldDefinition(_FieldDefinitionBase):
    """Checkbox / multiselect: the only list-valued kinds."""

    kind: Literal["checkbox", "multiselect"]
    validation: MultiChoiceConstraints | None = None


FieldDefinition = Annotated[
    Union[
        TextFieldDefinition,
        NumberFieldDefinition,
        DateFieldDefinition,
        ChoiceFieldDefinition,
        MultiChoiceFieldDefinition,
    ],
    Field(discriminator="kind"),
]

FIELD_DEFINITION_ADAPTER: TypeAdapter[FieldDefinition] = TypeAdapter(FieldDefinition)


def field_definition_from_model(field) -> FieldDefinition:
    """Build a field definition from a ``FormField`` row."""
    return FIELD_DEFINITION_ADAPTER.validate_python(
        {
            "id": field.id,
            "kind": field.kind,
            "label": field.label,
            "placeholder": field.placeholder,
            "help_text": field.help_text,
            "required": field.required,
            "options": list(field.options or []),
            "order": field.order,
            "validation": field.validation or None,
        }
    )


def check_field_list(fields: list[FieldDefinition]) -> None:
    """Raise ValueError if ids or orders repeat within one form."""
    seen_ids: set[str] = set()
    seen_orders: set[int] = set()
    for field in fields:
        if field.id is not None:
            if field.id in seen_ids:
                raise ValueError(f"Duplicate field id: {field.id}")
            seen_ids.add(field.id)
        if field.order in seen_orders:
            raise ValueError(f"Duplicate field order: {field.order}")
        seen_orders.add(field.order)


# =============================================================================
# Form payloads
# =============================================================================


class FormCreate(BaseModel):
    slug: str = Field(..., min_length=1, max_length=150, pattern=SLUG_PATTERN)
    title: str = Field(..., min_length=1, max_length=200)
    description: str | None = None
    body: str | None = None
    cover_image: str | None = Field(None, max_length=1000)
    status: FormStatus = FormStatus.DRAFT
    fields: list[FieldDefinition] = Field(..., min_length=1)

    @model_validator(mode="after")
    def _unique_field_ids(self) -> "FormCreate":
        ids = [f.id for f in self.fields if f.id is not None]
        if len(ids) != len(set(ids)):
            raise ValueError("Field ids must be unique within a form")
        return self


class FormUpdate(FormCreate):
    """Full replacement of a form. Fields keep their id when it is supplied."""


class FormStatusUpdate(BaseModel):
    status: FormStatus


class FormSummary(BaseModel):
    id: str
    slug: str
    title: str
    status: str
    submission_count: int
    created_at: datetime
    updated_at: datetime


class FormRead(BaseModel):
    id: str
    slug: str
    title: str
    description: str | None
    body: str | None
    cover_image: str | None
    status: str
    fields: list[FieldDefinition]
    created_at: datetime
    updated_at: datetime


class FormPublicRead(BaseModel):
    id: str
    slug: str
    title: str
    description: str | None
    body: str | None
    cover_image: str | None
    fields: list[FieldDefinition]


# =============================================================================
# Submissions
# =============================================================================


AnswerPayload = str | int | float | list[str] | None


class SubmissionCreate(BaseModel):
    answers: dict[str, AnswerPayload]


class SubmissionMetadata(BaseModel):
    ip_address: str | None = Field(None, max_length=64)
    user_agent: str | None = None


class FormResponseRead(BaseModel):
    id: str
    field_id: str | None
    field_label: str | None
    field_kind: str | None
    value: str


class FormSubmissionRead(BaseModel):
    id: str
    form_id: str
    submitted_at: datetime
    ip_address: str | None
    user_agent: str | None
    responses: list[FormResponseRead]


class SubmissionAccepted(BaseModel):
    status: Literal["ok"] = "ok"
    submission_id: str


# =============================================================================
# Batch reports
# =============================================================================


class ReconciliationReport(BaseModel):
    migrated_count: int = 0
    unmatched_labels: list[str] = Field(default_factory=list)


class RecoveryReport(BaseModel):
    recovered_submissions: int = 0
    recovered_responses: int = 0
    failures: list[str] = Field(default_factory=list)


class BackfillReport(BaseModel):
    updated_count: int = 0


class FormHealthReport(BaseModel):
    form_id: str
    slug: str
    field_count: int
    submission_count: int
    response_count: int
    submissions_without_responses: list[str]
    unlinked_response_count: int
    missing_snapshot_count: int

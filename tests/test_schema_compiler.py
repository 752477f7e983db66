"""Tests for compiling field definitions into a submission validator."""
import pytest

from formkeeper.db.enums import FieldKind, is_list_kind
from formkeeper.schemas.forms import FIELD_DEFINITION_ADAPTER
from formkeeper.services import schema_compiler
from formkeeper.services.schema_compiler import compile_validator


def _fields(*raw):
    return [FIELD_DEFINITION_ADAPTER.validate_python(item) for item in raw]


def _one(kind, required=False, **extra):
    return _fields({"id": "f1", "kind": kind, "label": "Answer", "required": required, **extra})


# =============================================================================
# Required / optional
# =============================================================================


def test_required_text_missing_reports_label():
    result = compile_validator(_one("text", required=True)).validate({})
    assert not result.is_valid
    assert result.errors == {"f1": ["Answer is required"]}


def _absent_payloads(kind):
    empty = [] if is_list_kind(kind) else "   "
    return [{}, {"f1": None}, {"f1": empty}]


@pytest.mark.parametrize("kind", [k.value for k in FieldKind])
def test_required_absent_is_a_violation_for_every_kind(kind):
    if is_list_kind(kind):
        expected = "Answer: select at least one option"
    else:
        expected = "Answer is required"
    validator = compile_validator(_one(kind, required=True))
    for payload in _absent_payloads(kind):
        assert validator.validate(payload).errors == {"f1": [expected]}


@pytest.mark.parametrize("kind", [k.value for k in FieldKind])
def test_optional_absent_is_omitted_for_every_kind(kind):
    validator = compile_validator(_one(kind))
    for payload in _absent_payloads(kind):
        result = validator.validate(payload)
        assert result.is_valid
        assert result.values == {}


def test_required_text_whitespace_counts_as_absent():
    result = compile_validator(_one("text", required=True)).validate({"f1": "   "})
    assert result.errors == {"f1": ["Answer is required"]}


def test_required_checkbox_empty_list():
    fields = _one("checkbox", required=True, options=["a", "b"])
    result = compile_validator(fields).validate({"f1": []})
    assert result.errors == {"f1": ["Answer: select at least one option"]}


def test_optional_absent_field_is_omitted_from_values():
    result = compile_validator(_one("email")).validate({})
    assert result.is_valid
    assert result.values == {}


def test_optional_empty_checkbox_is_omitted():
    result = compile_validator(_one("checkbox", options=["a"])).validate({"f1": []})
    assert result.is_valid
    assert "f1" not in result.values


def test_invalid_optional_email_is_rejected():
    """A present-but-wrong optional answer still fails its kind rule."""
    result = compile_validator(_one("email")).validate({"f1": "not-an-email"})
    assert result.errors == {"f1": ["invalid email"]}


def test_unknown_keys_are_ignored():
    result = compile_validator(_one("text")).validate({"f1": "hi", "other": "x"})
    assert result.values == {"f1": "hi"}


def test_values_and_errors_never_both_set():
    fields = _fields(
        {"id": "a", "kind": "text", "label": "A", "required": True, "order": 0},
        {"id": "b", "kind": "number", "label": "B", "order": 1},
    )
    result = compile_validator(fields).validate({"a": "ok", "b": "twelve"})
    assert result.values == {}
    assert result.errors == {"b": ["invalid number"]}


# =============================================================================
# Kind rules
# =============================================================================


@pytest.mark.parametrize("value", ["010-1234-5678", "01012345678", "011-123-4567"])
def test_phone_accepts_mobile_formats(value):
    assert compile_validator(_one("phone")).validate({"f1": value}).is_valid


@pytest.mark.parametrize("value", ["02-123-4567", "phone", "010-12-5678"])
def test_phone_rejects_other_formats(value):
    result = compile_validator(_one("phone")).validate({"f1": value})
    assert result.errors == {"f1": ["invalid phone number"]}


def test_email_value_is_trimmed():
    result = compile_validator(_one("email")).validate({"f1": "  user@example.com "})
    assert result.values == {"f1": "user@example.com"}


def test_url_validation():
    validator = compile_validator(_one("url"))
    assert validator.validate({"f1": "https://example.com/page"}).is_valid
    assert validator.validate({"f1": "not a url"}).errors == {"f1": ["invalid url"]}


def test_number_is_normalized():
    validator = compile_validator(_one("number"))
    assert validator.validate({"f1": "42"}).values == {"f1": 42}
    assert validator.validate({"f1": 2.5}).values == {"f1": 2.5}


@pytest.mark.parametrize("value", ["abc", "nan", "inf", "1_000", "\u0663", "1e999"])
def test_number_rejects_non_finite_or_text(value):
    result = compile_validator(_one("number")).validate({"f1": value})
    assert result.errors == {"f1": ["invalid number"]}


def test_number_bounds():
    fields = _one("number", validation={"min_value": 1, "max_value": 10})
    validator = compile_validator(fields)
    assert validator.validate({"f1": "0"}).errors == {"f1": ["must be at least 1"]}
    assert validator.validate({"f1": "11"}).errors == {"f1": ["must be at most 10"]}
    assert validator.validate({"f1": "5"}).is_valid


@pytest.mark.parametrize("value", ["2024/01/01", "2024-1-1", "2024-02-30"])
def test_date_rejects_bad_values(value):
    result = compile_validator(_one("date")).validate({"f1": value})
    assert result.errors == {"f1": ["invalid date"]}


def test_date_accepts_calendar_date():
    result = compile_validator(_one("date")).validate({"f1": "2024-02-29"})
    assert result.values == {"f1": "2024-02-29"}


def test_text_length_constraints():
    fields = _one("text", validation={"min_length": 2, "max_length": 4})
    validator = compile_validator(fields)
    assert validator.validate({"f1": "a"}).errors == {"f1": ["must be at least 2 characters"]}
    assert validator.validate({"f1": "abcde"}).errors == {"f1": ["must be at most 4 characters"]}


def test_select_is_not_restricted_by_default():
    fields = _one("select", options=["Red", "Blue"])
    assert compile_validator(fields).validate({"f1": "Green"}).is_valid


def test_select_restricted_to_options():
    fields = _one("select", options=["Red", "Blue"], validation={"restrict_to_options": True})
    result = compile_validator(fields).validate({"f1": "Green"})
    assert result.errors == {"f1": ["not one of the available options"]}


def test_checkbox_keeps_selection_order():
    fields = _one("checkbox", options=["a", "b", "c"])
    result = compile_validator(fields).validate({"f1": ["c", " a "]})
    assert result.values == {"f1": ["c", "a"]}


def test_shape_mismatch():
    validator = compile_validator(
        _fields(
            {"id": "t", "kind": "text", "label": "T", "order": 0},
            {"id": "c", "kind": "checkbox", "label": "C", "order": 1},
        )
    )
    result = validator.validate({"t": ["a"], "c": "a"})
    assert result.errors == {
        "t": ["expected a single value"],
        "c": ["expected a list of values"],
    }


# =============================================================================
# Compilation
# =============================================================================


@pytest.mark.parametrize("kind", [k.value for k in FieldKind])
def test_every_field_kind_has_a_rule(kind):
    """Each kind parses to a variant the compiler can check."""
    definition = FIELD_DEFINITION_ADAPTER.validate_python(
        {"id": "f1", "kind": kind, "label": "Answer"}
    )
    variant = type(definition)
    assert variant in schema_compiler._SCALAR_CHECKS or variant in schema_compiler._LIST_CHECKS


def test_unknown_kind_is_rejected_at_definition_time():
    with pytest.raises(ValueError):
        FIELD_DEFINITION_ADAPTER.validate_python({"id": "f1", "kind": "signature", "label": "X"})


def test_duplicate_field_ids_rejected():
    fields = _fields(
        {"id": "f1", "kind": "text", "label": "A", "order": 0},
        {"id": "f1", "kind": "text", "label": "B", "order": 1},
    )
    with pytest.raises(ValueError):
        compile_validator(fields)


def test_validator_is_rebuilt_from_current_fields():
    """Editing a field changes the rules applied on the next compile."""
    before = compile_validator(_one("text"))
    after = compile_validator(_one("text", required=True))
    assert before.validate({}).is_valid
    assert not after.validate({}).is_valid

# backend/tests/unit/test_validation.py
import pytest

from convoflow.models.workflow import Branch, Step, StepType, ValidationRule, WorkflowDefinition
from convoflow.workflows.validator import ValidationEngine, validate_definition

engine = ValidationEngine()


def test_no_rule_accepts_and_trims():
    result = engine.validate("  hello  ", None)
    assert result["is_valid"] is True
    assert result["sanitized_value"] == "hello"


def test_required_fails_on_blank_input():
    result = engine.validate("   ", ValidationRule(required=True))
    assert result["is_valid"] is False
    assert result["error_code"] == "required"


def test_optional_blank_input_is_valid():
    result = engine.validate("", ValidationRule(required=False, min_length=5))
    assert result["is_valid"] is True
    assert result["sanitized_value"] == ""


def test_length_bounds():
    rule = ValidationRule(min_length=2, max_length=4)
    assert engine.validate("a", rule)["error_code"] == "too_short"
    assert engine.validate("abcde", rule)["error_code"] == "too_long"
    assert engine.validate("abc", rule)["is_valid"] is True
    assert engine.validate("a", rule)["params"] == {"min_length": 2}


def test_pattern_mismatch():
    result = engine.validate("abc", ValidationRule(pattern=r"^\d+$"))
    assert result["is_valid"] is False
    assert result["error_code"] == "invalid_format"


def test_checks_short_circuit_in_order():
    """Length is checked before the pattern, so a short non-digit answer reports length."""
    rule = ValidationRule(min_length=3, pattern=r"^\d+$", type="number", min_value=100)
    assert engine.validate("ab", rule)["error_code"] == "too_short"
    assert engine.validate("abc", rule)["error_code"] == "invalid_format"
    assert engine.validate("050", rule)["error_code"] == "too_small"


def test_number_is_normalized():
    result = engine.validate("1 500 000", ValidationRule(type="number"))
    assert result["is_valid"] is True
    assert result["sanitized_value"] == "1500000"

    result = engine.validate("12,5", ValidationRule(type="number"))
    assert result["sanitized_value"] == "12.5"

    assert engine.validate("douze", ValidationRule(type="number"))["error_code"] == "invalid_number"


def test_numeric_bounds():
    rule = ValidationRule(type="number", min_value=10, max_value=20)
    low = engine.validate("5", rule)
    assert low["error_code"] == "too_small"
    assert low["params"] == {"min_value": "10"}
    assert engine.validate("25", rule)["error_code"] == "too_large"
    assert engine.validate("15", rule)["is_valid"] is True


def test_email_is_lowercased():
    rule = ValidationRule(type="email")
    assert engine.validate("Jean@Example.CM", rule)["sanitized_value"] == "jean@example.cm"
    assert engine.validate("jean@", rule)["error_code"] == "invalid_email"


@pytest.mark.parametrize("raw,expected", [
    ("670000000", "670000000"),
    ("6 70 00 00 00", "670000000"),
    ("+237 670-000-000", "+237670000000"),
])
def test_phone_accepts_cameroon_numbers(raw, expected):
    result = engine.validate(raw, ValidationRule(type="phone"))
    assert result["is_valid"] is True
    assert result["sanitized_value"] == expected


def test_phone_rejects_landline_shape():
    assert engine.validate("222000000", ValidationRule(type="phone"))["error_code"] == "invalid_phone"


def test_custom_predicate_bool_and_message():
    assert engine.validate("x", ValidationRule(custom=lambda v: False))["error_code"] == "invalid_format"

    result = engine.validate("x", ValidationRule(custom=lambda v: "Must be uppercase"))
    assert result["error_code"] == "custom"
    assert result["message"] == "Must be uppercase"

    assert engine.validate("X", ValidationRule(custom=lambda v: v.isupper()))["is_valid"] is True


def test_custom_runs_last():
    calls = []
    rule = ValidationRule(pattern=r"^\d+$", custom=lambda v: calls.append(v) or True)
    engine.validate("abc", rule)
    assert calls == []


@pytest.mark.parametrize("raw,rule", [
    ("1 500 000", ValidationRule(type="number", min_value=0)),
    ("Jean@Example.CM", ValidationRule(type="email")),
    ("6 70 00 00 00", ValidationRule(type="phone")),
    ("  Akwa  ", ValidationRule(min_length=2, max_length=100)),
])
def test_revalidating_a_sanitized_value_stays_valid(raw, rule):
    first = engine.validate(raw, rule)
    second = engine.validate(first["sanitized_value"], rule)
    assert first["is_valid"] and second["is_valid"]
    assert second["sanitized_value"] == first["sanitized_value"]


# --- Definition checks ---

def test_sound_definition_has_no_problems():
    definition = WorkflowDefinition(id="wf", name="wf", steps=[
        Step(id="a", type=StepType.INPUT, prompt="A?", next="b"),
        Step(id="b", type=StepType.MESSAGE, prompt="Bye"),
    ])
    assert validate_definition(definition) == []


def test_definition_defects_are_reported():
    definition = WorkflowDefinition(id="wf", name="wf", steps=[
        Step(id="a", type=StepType.INPUT, prompt="A?", next="missing"),
        Step(id="a", type=StepType.CHOICE, prompt="Pick"),
        Step(id="c", type=StepType.SERVICE, next=[Branch("x >", "a")]),
        Step(id="d", type=StepType.INPUT, restart_value="restart"),
    ])
    problems = "\n".join(validate_definition(definition))
    assert "duplicate step ids" in problems
    assert "unknown step 'missing'" in problems
    assert "declares no choices" in problems
    assert "declares no service" in problems
    assert "step 'c'" in problems
    assert "step 'd' has no prompt" in problems
    assert "restart value" in problems


def test_empty_definition():
    assert validate_definition(WorkflowDefinition(id="empty", name="empty", steps=[])) == [
        "workflow 'empty' has no steps"
    ]

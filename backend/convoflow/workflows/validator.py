# backend/convoflow/workflows/validator.py

"""
Pure validation functions.

`ValidationEngine.validate` checks one raw user answer against a step's
ValidationRule. Checks run in a fixed order and the first failure wins:

    required -> length bounds -> pattern -> semantic type -> numeric bounds -> custom

`validate_definition` checks a WorkflowDefinition for authoring defects
before it is registered.

Nothing here logs, raises for bad input, or touches session state.
"""

import re
from typing import Any, Dict, List, Optional, TypedDict

from convoflow.models.workflow import Step, StepType, ValidationRule, WorkflowDefinition
from convoflow.workflows.conditions import parse_condition
from convoflow.workflows.errors import ConditionParseError

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
# Cameroon mobile numbers, with or without the 237 country code
PHONE_RE = re.compile(r"^(\+?237)?[6-7]\d{8}$")
NUMBER_RE = re.compile(r"^-?\d+(\.\d+)?$")
PHONE_SEPARATORS_RE = re.compile(r"[\s\-.()]")


class ValidationResult(TypedDict):
    """Result of a validation check."""
    is_valid: bool
    error_code: Optional[str]
    message: Optional[str]
    params: Dict[str, Any]
    sanitized_value: Optional[str]


def _ok(value: Optional[str]) -> ValidationResult:
    return {
        "is_valid": True,
        "error_code": None,
        "message": None,
        "params": {},
        "sanitized_value": value,
    }


def _fail(error_code: str, message: Optional[str] = None, **params) -> ValidationResult:
    return {
        "is_valid": False,
        "error_code": error_code,
        "message": message,
        "params": params,
        "sanitized_value": None,
    }


def _normalize_number(value: str) -> str:
    return value.replace(" ", "").replace("\u00a0", "").replace(",", ".")


class ValidationEngine:
    """Validates raw answers. Stateless; safe to share across sessions."""

    def validate(self, raw_input: Optional[str], rule: Optional[ValidationRule]) -> ValidationResult:
        """
        Validate a raw answer against a rule.

        Args:
            raw_input: The text the user sent (may be None)
            rule: The step's rule; None accepts anything

        Returns:
            ValidationResult with the trimmed (or canonicalized) value on success.
            `message` is only set when a custom predicate supplied its own text.
        """
        value = (raw_input or "").strip()
        if rule is None:
            return _ok(value)

        if not value:
            if rule.required:
                return _fail("required")
            return _ok(value)

        if rule.min_length is not None and len(value) < rule.min_length:
            return _fail("too_short", min_length=rule.min_length)
        if rule.max_length is not None and len(value) > rule.max_length:
            return _fail("too_long", max_length=rule.max_length)

        if rule.pattern and not re.search(rule.pattern, value):
            return _fail("invalid_format")

        sanitized = value
        if rule.type == "number":
            sanitized = _normalize_number(value)
            if not NUMBER_RE.match(sanitized):
                return _fail("invalid_number")
        elif rule.type == "email":
            if not EMAIL_RE.match(value):
                return _fail("invalid_email")
            sanitized = value.lower()
        elif rule.type == "phone":
            sanitized = PHONE_SEPARATORS_RE.sub("", value)
            if not PHONE_RE.match(sanitized):
                return _fail("invalid_phone")

        if rule.min_value is not None or rule.max_value is not None:
            try:
                number = float(_normalize_number(sanitized))
            except ValueError:
                return _fail("invalid_number")
            if rule.min_value is not None and number < rule.min_value:
                return _fail("too_small", min_value=_display_number(rule.min_value))
            if rule.max_value is not None and number > rule.max_value:
                return _fail("too_large", max_value=_display_number(rule.max_value))

        if rule.custom is not None:
            outcome = rule.custom(sanitized)
            if isinstance(outcome, str):
                return _fail("custom", message=outcome)
            if not outcome:
                return _fail("invalid_format")

        return _ok(sanitized)


def _display_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def _referenced_steps(step: Step) -> List[str]:
    refs = []
    if isinstance(step.next, str):
        refs.append(step.next)
    elif step.next is not None:
        refs.extend(branch.step for branch in step.next)
    if step.error_step:
        refs.append(step.error_step)
    return refs


def validate_definition(definition: WorkflowDefinition) -> List[str]:
    """
    Check a workflow definition for authoring defects.

    Args:
        definition: The definition to check

    Returns:
        A list of human-readable problems; empty when the definition is sound.
    """
    problems = []
    if not definition.steps:
        return [f"workflow '{definition.id}' has no steps"]

    step_ids = [step.id for step in definition.steps]
    duplicates = {sid for sid in step_ids if step_ids.count(sid) > 1}
    if duplicates:
        problems.append(f"duplicate step ids: {sorted(duplicates)}")

    known = set(step_ids)
    for step in definition.steps:
        for ref in _referenced_steps(step):
            if ref not in known:
                problems.append(f"step '{step.id}' references unknown step '{ref}'")

        if step.next is not None and not isinstance(step.next, str):
            for branch in step.next:
                try:
                    parse_condition(branch.condition)
                except ConditionParseError as e:
                    problems.append(f"step '{step.id}': {e}")

        if step.type == StepType.SERVICE and step.service is None:
            problems.append(f"service step '{step.id}' declares no service")
        if step.type == StepType.CHOICE and not step.choices:
            problems.append(f"choice step '{step.id}' declares no choices")
        if step.type in (StepType.INPUT, StepType.CHOICE, StepType.MESSAGE) and step.prompt is None:
            problems.append(f"step '{step.id}' has no prompt")
        if step.restart_value is not None and step.type != StepType.CHOICE:
            problems.append(f"step '{step.id}' declares a restart value but is not a choice step")

    return problems

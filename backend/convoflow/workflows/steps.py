# backend/convoflow/workflows/steps.py

"""
Step-type behaviors.

Each step type has a handler with two operations:
- render: produce the StepResult shown when the step becomes current
- accept: turn a raw user answer into the value stored in the data bag, or a
  ValidationErrorResult when the answer is rejected

StepProcessor dispatches a step to the handler registered for its type.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Union

from convoflow.models.results import (
    CallServiceResult,
    SendMessageResult,
    StepResult,
    ValidationErrorResult,
)
from convoflow.models.workflow import Choice, DynamicText, Step, StepType, Text, ValidationRule
from convoflow.services.string_service import StringService
from convoflow.workflows.context import WorkflowContext
from convoflow.workflows.transitions import TransitionResolver
from convoflow.workflows.validator import ValidationEngine

logger = logging.getLogger(__name__)


@dataclass
class StepAnswer:
    """A validated answer, ready to be stored under the step id."""
    value: Any
    choice: Optional[Choice] = None


class StepHandler:
    step_type: StepType

    def __init__(self, processor: "StepProcessor"):
        self.processor = processor

    def render(self, step: Step, ctx: WorkflowContext, language: str) -> StepResult:
        raise NotImplementedError

    def accept(self, step: Step, ctx: WorkflowContext, raw: str, language: str) -> Union[StepAnswer, ValidationErrorResult]:
        raise NotImplementedError


class MessageStepHandler(StepHandler):
    step_type = StepType.MESSAGE

    def render(self, step, ctx, language):
        return SendMessageResult(
            content=self.processor.render_text(step.prompt, ctx, language),
            auto_advance=True,
        )

    def accept(self, step, ctx, raw, language):
        # Message steps never wait for input; any text simply moves on.
        return StepAnswer(value=None)


class InputStepHandler(StepHandler):
    step_type = StepType.INPUT

    def render(self, step, ctx, language):
        return SendMessageResult(content=self.processor.render_prompt(step, ctx, language))

    def accept(self, step, ctx, raw, language):
        result = self.processor.validation.validate(raw, step.validation or ValidationRule())
        if not result["is_valid"]:
            return self.processor.validation_error(step, ctx, language, result["error_code"], result["message"], result["params"])
        return StepAnswer(value=result["sanitized_value"])


class ChoiceStepHandler(StepHandler):
    step_type = StepType.CHOICE

    def render(self, step, ctx, language):
        return SendMessageResult(
            content=self.processor.render_prompt(step, ctx, language),
            menu=self.processor.render_choices(step, ctx, language),
        )

    def accept(self, step, ctx, raw, language):
        rule = step.validation or ValidationRule()
        result = self.processor.validation.validate(raw, ValidationRule(required=rule.required))
        if not result["is_valid"]:
            return self.processor.validation_error(step, ctx, language, result["error_code"], result["message"], result["params"])

        value = result["sanitized_value"]
        if not value and not rule.required:
            return StepAnswer(value=None)

        choice = match_choice(value, self.processor.resolve_choices(step, ctx))
        if choice is None:
            return self.processor.validation_error(step, ctx, language, "invalid_choice", None, {})
        return StepAnswer(value=choice.value, choice=choice)


class ServiceStepHandler(StepHandler):
    step_type = StepType.SERVICE

    def render(self, step, ctx, language):
        call = step.service
        params = call.params(ctx) if callable(call.params) else dict(call.params or {})
        progress = None
        if call.progress_message:
            progress = self.processor.render_text(call.progress_message, ctx, language)
        return CallServiceResult(
            step_id=step.id,
            service=call.service,
            method=call.method,
            params=params,
            progress_message=progress,
        )

    def accept(self, step, ctx, raw, language):
        # Text received while parked on a service step means "try again".
        return StepAnswer(value=None)


def match_choice(value: str, choices: Sequence[Choice]) -> Optional[Choice]:
    """Match by stored value (case-insensitive) first, then by 1-based position."""
    normalized = value.strip().lower()
    for choice in choices:
        if choice.value.lower() == normalized:
            return choice
    if normalized.isdigit():
        index = int(normalized)
        if 1 <= index <= len(choices):
            return choices[index - 1]
    return None


class StepProcessor:
    """Dispatches steps to their type's handler and renders text for them."""

    def __init__(
        self,
        strings: StringService,
        validation: Optional[ValidationEngine] = None,
        resolver: Optional[TransitionResolver] = None,
    ):
        self.strings = strings
        self.validation = validation or ValidationEngine()
        self.resolver = resolver or TransitionResolver()
        self._handlers: Dict[StepType, StepHandler] = {}
        for handler_cls in (MessageStepHandler, InputStepHandler, ChoiceStepHandler, ServiceStepHandler):
            self.register_handler(handler_cls(self))

    def register_handler(self, handler: StepHandler) -> None:
        self._handlers[handler.step_type] = handler

    def handler_for(self, step: Step) -> StepHandler:
        try:
            return self._handlers[step.type]
        except KeyError:
            raise ValueError(f"No handler registered for step type '{step.type}'")

    def render(self, step: Step, ctx: WorkflowContext, language: str) -> StepResult:
        return self.handler_for(step).render(step, ctx, language)

    def accept(self, step: Step, ctx: WorkflowContext, raw: str, language: str) -> Union[StepAnswer, ValidationErrorResult]:
        return self.handler_for(step).accept(step, ctx, raw, language)

    # ---------------- Rendering helpers ---------------- #

    def render_text(self, text: Optional[Text], ctx: WorkflowContext, language: str) -> str:
        if text is None:
            return ""
        key = text.render(ctx) if isinstance(text, DynamicText) else text.key
        template = self.strings.get_string(key, language, default=key)
        values = ctx.template_values()
        values["labels"] = self.choice_labels(ctx, language)
        return self.strings.format(template, values)

    def render_prompt(self, step: Step, ctx: WorkflowContext, language: str) -> str:
        """A step prompt, under its progress header when the workflow tracks one."""
        prompt = self.render_text(step.prompt, ctx, language)
        progress = ctx.definition.progress if ctx.definition is not None else None
        position = progress.position(step.id) if progress else None
        if position is None:
            return prompt
        header = self.strings.render(
            "progress_header",
            language,
            label=self.strings.get_string(progress.label, language, default=progress.label),
            current=position,
            total=progress.total,
        )
        return f"{header}\n{prompt}"

    def choice_labels(self, ctx: WorkflowContext, language: str) -> Dict[str, str]:
        """Localized label of every answered choice step, keyed by step id."""
        labels = {}
        if ctx.definition is None:
            return labels
        for step in ctx.definition.steps:
            if step.type != StepType.CHOICE or step.id not in ctx.data:
                continue
            for choice in self.resolve_choices(step, ctx):
                if choice.value == ctx.data[step.id]:
                    labels[step.id] = self.strings.get_string(choice.label, language, default=choice.label)
                    break
        return labels

    def resolve_choices(self, step: Step, ctx: WorkflowContext) -> List[Choice]:
        choices = step.choices(ctx) if callable(step.choices) else step.choices
        return list(choices or [])

    def render_choices(self, step: Step, ctx: WorkflowContext, language: str) -> str:
        lines = []
        for index, choice in enumerate(self.resolve_choices(step, ctx), start=1):
            label = self.strings.get_string(choice.label, language, default=choice.label)
            lines.append(f"{index}. {label}")
        return "\n".join(lines)

    def validation_error(
        self,
        step: Step,
        ctx: WorkflowContext,
        language: str,
        error_code: Optional[str],
        custom_message: Optional[str],
        params: Dict[str, Any],
    ) -> ValidationErrorResult:
        """Builds the re-prompt shown when an answer is rejected; the step stays current."""
        reason = custom_message or self.strings.render(f"validation_{error_code}", language, params)
        prompt = self.render(step, ctx, language)
        return ValidationErrorResult(
            message=f"❌ {reason}\n\n{prompt.text}",
            step_id=step.id,
            error_code=error_code,
        )

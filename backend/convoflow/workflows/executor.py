# backend/convoflow/workflows/executor.py

"""
Runs one workflow activation for one session.

The executor owns the activation's WorkflowContext and drives it step by step:
it validates answers, stores them under the step id, resolves the next step,
renders prompts and performs service calls. Every public operation returns
exactly one StepResult.

Service steps are executed inline: the executor checkpoints the context
(through the `checkpoint` callback) before dispatching the call, so a crash
mid-call leaves the session parked on the service step, ready to retry.
"""

import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional

from convoflow.models.results import (
    CallServiceResult,
    CompleteResult,
    ServiceFailureResult,
    ServiceResult,
    StepResult,
    ValidationErrorResult,
)
from convoflow.models.session import NavigationFrame
from convoflow.models.workflow import Step, StepType, WorkflowDefinition
from convoflow.services.service_registry import ServiceRegistry
from convoflow.utils.metrics import validation_failure_counter, workflow_event_counter
from convoflow.workflows.context import WorkflowContext
from convoflow.workflows.errors import ServiceCallError, StepNotFoundError
from convoflow.workflows.navigation import NavigationStack
from convoflow.workflows.steps import StepProcessor

logger = logging.getLogger(__name__)

Checkpoint = Callable[[WorkflowContext], Awaitable[None]]
ProgressSink = Callable[[str], Awaitable[None]]


class WorkflowExecutor:
    def __init__(
        self,
        definition: WorkflowDefinition,
        processor: StepProcessor,
        services: ServiceRegistry,
        navigation: Optional[NavigationStack] = None,
        language: str = "fr",
        context: Optional[WorkflowContext] = None,
        session_data: Optional[Dict[str, Any]] = None,
        restart_mode: str = "full",
        checkpoint: Optional[Checkpoint] = None,
        on_progress: Optional[ProgressSink] = None,
    ):
        self.definition = definition
        self.processor = processor
        self.services = services
        self.navigation = navigation if navigation is not None else NavigationStack()
        self.language = language
        self.session_data = session_data or {}
        self.restart_mode = restart_mode
        self.checkpoint = checkpoint
        self.on_progress = on_progress
        self.context = None
        if context is not None:
            self._bind(context)

    @property
    def current_step(self) -> Step:
        if self.context is None:
            raise RuntimeError(f"Workflow '{self.definition.id}' has not been started")
        return self._step(self.context.current_step_id)

    def _bind(self, context: WorkflowContext) -> None:
        context.session_data = self.session_data
        context.definition = self.definition
        self.context = context

    def _step(self, step_id: str) -> Step:
        step = self.definition.get_step(step_id)
        if step is None:
            raise StepNotFoundError(self.definition.id, step_id)
        return step

    def is_timed_out(self, now: datetime, default_timeout_seconds: int) -> bool:
        if self.context is None:
            return False
        timeout = self.definition.config.timeout_seconds or default_timeout_seconds
        return self.context.is_timed_out(now, timeout)

    # ---------------- Public operations ---------------- #

    async def start(self, now: Optional[datetime] = None) -> StepResult:
        """Creates a fresh context at the first step and renders it."""
        now = now or datetime.utcnow()
        first = self.definition.first_step_id
        self._bind(WorkflowContext(
            workflow_id=self.definition.id,
            current_step_id=first,
            started_at=now,
        ))
        workflow_event_counter.labels(workflow_id=self.definition.id, event="started").inc()
        logger.info(f"Workflow '{self.definition.id}' started at step '{first}'")
        return await self._enter(first, now)

    async def process_input(self, raw: str, now: Optional[datetime] = None) -> StepResult:
        """
        Feeds one user answer to the current step.

        Returns:
            ValidationErrorResult (step unchanged) when the answer is rejected,
            otherwise the result of entering the next step, or CompleteResult.
        """
        now = now or datetime.utcnow()
        step = self.current_step
        self.context.touch(now)

        if step.type == StepType.SERVICE:
            logger.info(f"Retrying service step '{step.id}' of workflow '{self.definition.id}'")
            return await self._enter(step.id, now)
        if step.type == StepType.MESSAGE:
            return await self.advance(now)

        snapshot = self.context.to_snapshot()
        outcome = self.processor.accept(step, self.context, raw, self.language)
        if isinstance(outcome, ValidationErrorResult):
            logger.debug(f"Answer rejected at step '{step.id}': {outcome.error_code}")
            validation_failure_counter.labels(workflow_id=self.definition.id, error_code=outcome.error_code or "unknown").inc()
            return outcome

        if step.restart_value is not None and outcome.value == step.restart_value:
            return await self.restart(now)

        self.context.set(step.id, outcome.value)
        return await self._transition(step, snapshot, now)

    async def advance(self, now: Optional[datetime] = None) -> StepResult:
        """Moves past the current step without input (used after message steps)."""
        now = now or datetime.utcnow()
        step = self.current_step
        return await self._transition(step, self.context.to_snapshot(), now)

    async def handle_service_result(self, result: ServiceResult, now: Optional[datetime] = None) -> StepResult:
        """
        Feeds a service outcome back into the current service step.

        A successful result is stored under the step id and the workflow
        moves on. A failure moves to the step's declared error step, or else
        leaves the context untouched and returns a ServiceFailureResult.
        """
        now = now or datetime.utcnow()
        step = self.current_step
        if step.type != StepType.SERVICE:
            logger.warning(f"Ignoring service result: step '{step.id}' is not a service step")
            return await self._enter(step.id, now)

        if result.ok:
            snapshot = self.context.to_snapshot()
            self.context.set(step.id, result.model_dump(mode="json"))
            return await self._transition(step, snapshot, now)

        logger.error(
            f"Service step '{step.id}' of workflow '{self.definition.id}' failed: {result.message}"
        )
        if step.error_step:
            self.context.set(step.id, result.model_dump(mode="json"))
            self.context.move_to(step.error_step, now)
            return await self._enter(step.error_step, now)

        return ServiceFailureResult(
            message=self.processor.strings.get_string("technical_error", self.language),
            step_id=step.id,
            error=result.message or "unknown error",
            retry=True,
        )

    async def go_back(self, now: Optional[datetime] = None) -> Optional[StepResult]:
        """
        Restores the top navigation frame of this workflow.

        Returns:
            The re-rendered step, or None when there is nothing to go back to.
        """
        now = now or datetime.utcnow()
        if not self.definition.config.allow_back:
            return None
        frame = self.navigation.peek()
        if frame is None or frame.workflow_id != self.definition.id or not frame.can_return:
            return None

        self.navigation.pop()
        self._bind(WorkflowContext.restore(frame.context))
        self.context.touch(now)
        logger.info(f"Workflow '{self.definition.id}' went back to step '{frame.step_id}'")
        return await self._enter(self.context.current_step_id, now)

    async def restart(self, now: Optional[datetime] = None) -> StepResult:
        """
        Clears collected answers and rewinds to the first step.

        In "full" mode the whole data bag is cleared; in "inputs_only" mode only
        the answers of input and choice steps are removed.
        """
        now = now or datetime.utcnow()
        if self.restart_mode == "inputs_only":
            for step_id in self.definition.input_step_ids():
                self.context.remove(step_id)
        else:
            self.context.data.clear()

        self.navigation.discard_workflow(self.definition.id)
        self.context.history = []
        self.context.move_to(self.definition.first_step_id, now)
        workflow_event_counter.labels(workflow_id=self.definition.id, event="restarted").inc()
        logger.info(f"Workflow '{self.definition.id}' restarted ({self.restart_mode})")
        return await self._enter(self.definition.first_step_id, now)

    async def render_current(self, now: Optional[datetime] = None) -> StepResult:
        """Re-renders the current step, e.g. after a language change."""
        return await self._enter(self.context.current_step_id, now or datetime.utcnow())

    # ---------------- Internals ---------------- #

    async def _enter(self, step_id: str, now: datetime) -> StepResult:
        step = self._step(step_id)
        result = self.processor.render(step, self.context, self.language)
        if isinstance(result, CallServiceResult):
            return await self._dispatch(result, now)
        return result

    async def _transition(self, step: Step, snapshot: Dict[str, Any], now: datetime) -> StepResult:
        resolver = self.processor.resolver
        next_id = resolver.resolve(step.next, self.context.data, step.id)
        if next_id is None:
            return self._complete(step, unresolved=resolver.is_unresolved(step.next, next_id))

        if step.type in (StepType.INPUT, StepType.CHOICE):
            self.navigation.push(NavigationFrame(
                workflow_id=self.definition.id,
                step_id=step.id,
                context=snapshot,
                timestamp=now,
                can_return=step.can_go_back and self.definition.config.allow_back,
            ))
        self.context.move_to(next_id, now)
        return await self._enter(next_id, now)

    async def _dispatch(self, call: CallServiceResult, now: datetime) -> StepResult:
        if call.progress_message and self.on_progress:
            await self.on_progress(call.progress_message)
        if self.checkpoint:
            await self.checkpoint(self.context)

        try:
            outcome = await self.services.call(call.service, call.method, call.params)
        except ServiceCallError as e:
            logger.error(f"Service call {call.service}.{call.method} raised: {e}")
            outcome = ServiceResult(status="error", message=str(e))
        return await self.handle_service_result(outcome, now)

    def _complete(self, last_step: Step, unresolved: bool = False) -> CompleteResult:
        strings = self.processor.strings
        if unresolved:
            message = strings.get_string("workflow_unresolved", self.language)
            workflow_event_counter.labels(workflow_id=self.definition.id, event="unresolved").inc()
        elif last_step.type == StepType.MESSAGE:
            # The final message step already said goodbye.
            message = ""
        elif self.definition.completion_message is not None:
            message = self.processor.render_text(self.definition.completion_message, self.context, self.language)
        else:
            message = strings.get_string("workflow_completed", self.language)

        self.navigation.clear()
        workflow_event_counter.labels(workflow_id=self.definition.id, event="completed").inc()
        logger.info(f"Workflow '{self.definition.id}' completed (unresolved={unresolved})")
        return CompleteResult(message=message, data=dict(self.context.data), unresolved=unresolved)

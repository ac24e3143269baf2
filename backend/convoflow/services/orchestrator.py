# backend/convoflow/services/orchestrator.py

"""
Top-level bot state machine.

Each inbound message is processed exactly once, under a per-session lock, in
this priority order:

1. unverified sessions go straight into the onboarding system workflow
2. system commands get first refusal
3. an active workflow receives the text as an answer
4. a displayed menu interprets the text as a selection
5. idle sessions talk to the AI collaborator, which may propose a workflow
6. anything else gets a generic "didn't understand"

State is persisted before any outbound message is delivered. This module is
the only place that catches unexpected exceptions: on failure the session is
restored to its pre-message record and the user gets a generic apology.
"""

import asyncio
import logging
from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, List, Optional

from convoflow.config import commands as command_config
from convoflow.models.api import InboundMessage, OutboundMessage
from convoflow.models.results import (
    CompleteResult,
    SendMessageResult,
    ServiceFailureResult,
    StepResult,
    ValidationErrorResult,
)
from convoflow.models.session import BotState, NavigationFrame, Session
from convoflow.models.workflow import StepType, WorkflowDefinition, WorkflowKind
from convoflow.services.ai_service import AIService
from convoflow.services.channel_service import ChannelAdapter
from convoflow.services.command_router import CommandDecision, CommandRouter, DetectedCommand
from convoflow.services.service_registry import ServiceRegistry
from convoflow.services.session_store import SessionStore
from convoflow.services.state_controller import StateController
from convoflow.services.string_service import StringService
from convoflow.utils.metrics import message_counter, message_processing_histogram, workflow_event_counter
from convoflow.workflows.context import WorkflowContext
from convoflow.workflows.executor import WorkflowExecutor
from convoflow.workflows.navigation import NavigationStack
from convoflow.workflows.registry import WorkflowRegistry
from convoflow.workflows.steps import StepProcessor

logger = logging.getLogger(__name__)

ONBOARDING_WORKFLOW_ID = "onboarding"
CONFIRM_WORDS = {word for words in command_config.CONFIRM_WORDS.values() for word in words}
DENY_WORDS = {word for words in command_config.DENY_WORDS.values() for word in words}


class _Turn:
    """Per-message scratchpad: the session being mutated and the replies collected so far."""

    def __init__(self, session: Session, now: datetime):
        self.session = session
        self.now = now
        self.outbox: List[str] = []

    def say(self, text: Optional[str]) -> None:
        if text:
            self.outbox.append(text)

    async def say_async(self, text: str) -> None:
        self.say(text)


class BotOrchestrator:
    def __init__(
        self,
        sessions: SessionStore,
        workflows: WorkflowRegistry,
        services: ServiceRegistry,
        processor: StepProcessor,
        strings: StringService,
        commands: Optional[CommandRouter] = None,
        states: Optional[StateController] = None,
        ai: Optional[AIService] = None,
        channel: Optional[ChannelAdapter] = None,
        ai_confidence_threshold: float = 0.8,
        navigation_max_depth: int = 50,
        session_timeout_minutes: int = 60,
        session_expiry_hours: int = 24,
        auto_advance_delay_ms: int = 0,
        restart_mode: str = "full",
    ):
        self.sessions = sessions
        self.workflows = workflows
        self.services = services
        self.processor = processor
        self.strings = strings
        self.commands = commands or CommandRouter()
        self.states = states or StateController()
        self.ai = ai
        self.channel = channel
        self.ai_confidence_threshold = ai_confidence_threshold
        self.navigation_max_depth = navigation_max_depth
        self.session_timeout_seconds = session_timeout_minutes * 60
        self.session_expiry_hours = session_expiry_hours
        self.auto_advance_delay_ms = auto_advance_delay_ms
        self.restart_mode = restart_mode
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_holders: Dict[str, int] = defaultdict(int)
        self._command_handlers = {
            command_config.LANGUAGE_FR: self._cmd_language,
            command_config.LANGUAGE_EN: self._cmd_language,
            command_config.HELP: self._cmd_help,
            command_config.MENU: self._cmd_menu,
            command_config.BACK: self._cmd_back,
            command_config.CANCEL: self._cmd_cancel,
            command_config.RESTART: self._cmd_restart,
            command_config.PROFILE: self._cmd_profile,
        }

    # ---------------- Entry point ---------------- #

    async def process_message(self, message: InboundMessage) -> List[OutboundMessage]:
        """
        Processes one inbound message and returns the replies that were delivered.

        Messages for the same (channel, user) are serialized; different users
        are processed concurrently.
        """
        key = f"{message.channel}:{message.external_user_id}"
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_holders[key] += 1
        try:
            async with lock:
                with message_processing_histogram.time():
                    replies = await self._process_locked(message)
        finally:
            # Drop the lock once no message for this user is running or queued.
            self._lock_holders[key] -= 1
            if not self._lock_holders[key]:
                del self._lock_holders[key]
                self._locks.pop(key, None)
        return replies

    async def _process_locked(self, message: InboundMessage) -> List[OutboundMessage]:
        now = datetime.utcnow()
        try:
            session = await self.sessions.get_or_create(message.channel, message.external_user_id, now)
        except Exception:
            logger.error(f"Could not load the session for {message.channel} user {message.external_user_id[:4]}...", exc_info=True)
            message_counter.labels(channel=message.channel, outcome="error").inc()
            replies = [OutboundMessage(
                destination=message.external_user_id,
                text=self.strings.get_string("generic_error"),
                channel=message.channel,
            )]
            await self._deliver(replies)
            return replies

        original = session.model_copy(deep=True)
        turn = _Turn(session, now)

        try:
            session.touch(now, self.session_expiry_hours)
            await self._route(turn, message.text or "")
            await self.sessions.save(session)
            message_counter.labels(channel=message.channel, outcome="ok").inc()
        except Exception:
            logger.error(
                f"Unhandled error while processing a message for session {session.id} "
                f"(state={original.bot_state.value}, workflow={original.current_workflow_id}, "
                f"step={original.current_step_id})",
                exc_info=True,
            )
            message_counter.labels(channel=message.channel, outcome="error").inc()
            await self._restore(original)
            turn.outbox = [self.strings.get_string("generic_error", original.language)]

        replies = [
            OutboundMessage(destination=message.external_user_id, text=text, channel=message.channel)
            for text in turn.outbox
        ]
        await self._deliver(replies)
        return replies

    async def _restore(self, original: Session) -> None:
        """Puts back the pre-message record, undoing any checkpoint written mid-message."""
        try:
            await self.sessions.save(original)
        except Exception:
            logger.error(f"Could not restore session {original.id} after a failure", exc_info=True)

    async def _deliver(self, replies: List[OutboundMessage]) -> None:
        if self.channel is None:
            return
        for index, reply in enumerate(replies):
            if index and self.auto_advance_delay_ms:
                await asyncio.sleep(self.auto_advance_delay_ms / 1000)
            try:
                await self.channel.send_message(reply.destination, reply.text)
            except Exception:
                logger.error(f"Failed to deliver a reply to {reply.destination[:4]}...", exc_info=True)

    # ---------------- Routing ---------------- #

    async def _route(self, turn: _Turn, text: str) -> None:
        session = turn.session
        self._discard_stale_workflow(turn)

        if session.bot_state == BotState.UNVERIFIED:
            await self._start_workflow(turn, self.workflows.system_workflow(ONBOARDING_WORKFLOW_ID))
            return

        command = self.commands.detect(text)
        if command is not None:
            decision = self.commands.check_eligibility(command, session.bot_state, self._active_definition(session))
            if decision == CommandDecision.REJECT:
                turn.say(self._t(session, "command_not_allowed"))
                return
            if decision == CommandDecision.EXECUTE:
                await self._command_handlers[command.type](turn, command)
                return

        if session.bot_state in (BotState.USER_WORKFLOW, BotState.SYSTEM_WORKFLOW):
            if session.has_active_workflow:
                await self._continue_workflow(turn, text)
                return
            logger.warning(f"Session {session.id} is in {session.bot_state.value} without a workflow; resetting")
            self.states.transition(session, self._resting_state(session), "orphaned_workflow_state")
            turn.say(self._t(session, "not_understood"))
            return

        if session.bot_state == BotState.MENU_DISPLAYED:
            await self._handle_menu_selection(turn, text)
        elif session.bot_state == BotState.AI_WAITING_CONFIRM:
            await self._handle_ai_confirmation(turn, text)
        elif session.bot_state == BotState.IDLE:
            await self._handle_free_conversation(turn, text)
        else:
            turn.say(self._t(session, "not_understood"))

    def _discard_stale_workflow(self, turn: _Turn) -> None:
        session = turn.session
        if not session.has_active_workflow or not session.workflow_context:
            return
        definition = self._active_definition(session)
        if definition is not None:
            executor = self._build_executor(turn, definition, resume=True)
            if not executor.is_timed_out(turn.now, self.session_timeout_seconds):
                return

        workflow_id = session.current_workflow_id
        logger.info(f"Discarding stale workflow '{workflow_id}' for session {session.id}")
        workflow_event_counter.labels(workflow_id=workflow_id, event="timed_out").inc()
        session.clear_workflow()
        self.states.transition(session, self._resting_state(session), f"workflow_timeout:{workflow_id}")
        turn.say(self._t(session, "workflow_timed_out"))

    # ---------------- Workflows ---------------- #

    def _active_definition(self, session: Session) -> Optional[WorkflowDefinition]:
        if not session.current_workflow_id or not self.workflows.has(session.current_workflow_id):
            return None
        return self.workflows.get(session.current_workflow_id)

    def _resting_state(self, session: Session) -> BotState:
        return BotState.IDLE if session.is_verified else BotState.UNVERIFIED

    def _session_data(self, session: Session) -> Dict[str, Any]:
        return {**session.data_bag, "language": session.language, "user_id": session.user_id}

    def _build_executor(self, turn: _Turn, definition: WorkflowDefinition, resume: bool) -> WorkflowExecutor:
        session = turn.session
        context = WorkflowContext.restore(session.workflow_context) if resume and session.workflow_context else None
        executor = WorkflowExecutor(
            definition=definition,
            processor=self.processor,
            services=self.services,
            navigation=NavigationStack(session.navigation_stack, self.navigation_max_depth),
            language=session.language,
            context=context,
            session_data=self._session_data(session),
            restart_mode=self.restart_mode,
            on_progress=turn.say_async,
        )

        async def checkpoint(_ctx: WorkflowContext) -> None:
            self._sync(session, executor)
            await self.sessions.save(session)

        if definition.config.persist_progress:
            executor.checkpoint = checkpoint
        return executor

    def _sync(self, session: Session, executor: WorkflowExecutor) -> None:
        """Copies the executor's live state into the session record."""
        session.current_workflow_id = executor.definition.id
        session.current_step_id = executor.context.current_step_id
        session.workflow_context = executor.context.to_snapshot()
        session.navigation_stack = executor.navigation.to_list()

    async def _start_workflow(self, turn: _Turn, definition: WorkflowDefinition) -> None:
        session = turn.session
        target = BotState.SYSTEM_WORKFLOW if definition.kind == WorkflowKind.SYSTEM else BotState.USER_WORKFLOW
        self.states.transition(session, target, f"start:{definition.id}")
        # Frames of an interrupted workflow stay on the stack so `back` can resume it.
        session.current_workflow_id = definition.id
        session.current_step_id = None
        session.workflow_context = None
        executor = self._build_executor(turn, definition, resume=False)
        result = await executor.start(turn.now)
        await self._run(turn, executor, result)

    async def _continue_workflow(self, turn: _Turn, text: str) -> None:
        definition = self.workflows.get(turn.session.current_workflow_id)
        executor = self._build_executor(turn, definition, resume=True)
        result = await executor.process_input(text, turn.now)
        await self._run(turn, executor, result)

    async def _run(self, turn: _Turn, executor: WorkflowExecutor, result: StepResult) -> None:
        """Turns step results into replies, following auto-advancing steps."""
        while True:
            if isinstance(result, SendMessageResult):
                turn.say(result.text)
                if result.auto_advance:
                    result = await executor.advance(turn.now)
                    continue
                break
            if isinstance(result, (ValidationErrorResult, ServiceFailureResult)):
                turn.say(result.message)
                break
            if isinstance(result, CompleteResult):
                self._finish_workflow(turn, executor, result)
                return
            raise TypeError(f"Unexpected step result '{result.kind}' from workflow '{executor.definition.id}'")
        self._sync(turn.session, executor)

    async def _rerender(self, turn: _Turn, executor: WorkflowExecutor) -> None:
        """Shows the current step again. A service step is not re-run; the user is asked to retry."""
        if executor.current_step.type == StepType.SERVICE:
            turn.say(self._t(turn.session, "service_retry"))
            self._sync(turn.session, executor)
            return
        await self._run(turn, executor, await executor.render_current(turn.now))

    def _finish_workflow(self, turn: _Turn, executor: WorkflowExecutor, result: CompleteResult) -> None:
        session = turn.session
        definition = executor.definition
        turn.say(result.message)

        if definition.on_complete is not None:
            produced = definition.on_complete(executor.context) or {}
            session.data_bag.update({k: v for k, v in produced.items() if v is not None})
        if definition.config.verifies_session:
            session.is_verified = True
            session.user_id = session.data_bag.get("user_id", session.user_id)

        session.workflow_history.append(definition.id)
        session.clear_workflow()
        self.states.transition(session, BotState.IDLE, f"completed:{definition.id}")

    # ---------------- Menu ---------------- #

    def _render_menu(self, session: Session) -> str:
        available = self.workflows.list_available(session)
        session.state_data["menu_options"] = [definition.id for definition in available]
        if not available:
            return self._t(session, "menu_empty")
        lines = [self._t(session, "menu_header")]
        for index, definition in enumerate(available, start=1):
            name = self.strings.get_string(definition.name, session.language, default=definition.name)
            lines.append(self.strings.render("menu_item", session.language, index=index, name=name))
        lines.append("")
        lines.append(self._t(session, "menu_footer"))
        return "\n".join(lines)

    async def _handle_menu_selection(self, turn: _Turn, text: str) -> None:
        session = turn.session
        options = session.state_data.get("menu_options", [])
        selection = text.strip()
        if selection.isdigit() and 1 <= int(selection) <= len(options):
            workflow_id = options[int(selection) - 1]
            if self.workflows.is_enabled(workflow_id):
                await self._start_workflow(turn, self.workflows.get(workflow_id))
                return

        session.navigation_stack = []
        self.states.transition(session, BotState.IDLE, "menu_closed")
        turn.say(self._t(session, "menu_closed" if selection == "0" else "not_understood"))

    # ---------------- AI conversation ---------------- #

    async def _handle_free_conversation(self, turn: _Turn, text: str) -> None:
        session = turn.session
        if self.ai is None or not self.ai.is_configured:
            turn.say(self._t(session, "ai_unavailable"))
            return

        available = self.workflows.list_available(session)
        self.states.transition(session, BotState.AI_PROCESSING, "free_conversation")
        response = await self.ai.generate_response(text, {
            "language": session.language,
            "user": {"name": session.data_bag.get("user_name")},
            "workflows": [
                {
                    "id": d.id,
                    "name": self.strings.get_string(d.name, session.language, default=d.name),
                    "description": d.description,
                }
                for d in available
            ],
        })

        if response is None:
            self.states.transition(session, BotState.IDLE, "ai_unavailable")
            turn.say(self._t(session, "ai_unavailable"))
            return

        intent = response.intents[0] if response.intents else None
        available_ids = {d.id for d in available}
        if intent and intent.confidence >= self.ai_confidence_threshold and intent.workflow_id in available_ids:
            definition = self.workflows.get(intent.workflow_id)
            self.states.transition(
                session,
                BotState.AI_WAITING_CONFIRM,
                f"ai_intent:{intent.workflow_id}",
                data={"pending_workflow_id": intent.workflow_id, "confidence": intent.confidence},
            )
            name = self.strings.get_string(definition.name, session.language, default=definition.name)
            turn.say(response.message)
            turn.say(self.strings.render("ai_confirm_workflow", session.language, workflow_name=name))
            return

        self.states.transition(session, BotState.IDLE, "ai_reply")
        turn.say(response.message or self._t(session, "not_understood"))

    async def _handle_ai_confirmation(self, turn: _Turn, text: str) -> None:
        session = turn.session
        answer = self.commands.normalize(text)
        pending = session.state_data.get("pending_workflow_id")

        if answer in CONFIRM_WORDS and pending and self.workflows.is_enabled(pending):
            await self._start_workflow(turn, self.workflows.get(pending))
            return
        if answer in DENY_WORDS:
            self.states.transition(session, BotState.IDLE, "ai_intent_declined")
            turn.say(self._t(session, "ai_declined"))
            return

        # Neither yes nor no: treat it as a new free-conversation turn.
        self.states.transition(session, BotState.IDLE, "ai_intent_ambiguous")
        await self._handle_free_conversation(turn, text)

    # ---------------- Commands ---------------- #

    async def _cmd_language(self, turn: _Turn, command: DetectedCommand) -> None:
        session = turn.session
        session.language = command.spec["target_language"]
        turn.say(self._t(session, "language_changed"))

        if session.has_active_workflow:
            executor = self._build_executor(turn, self._active_definition(session), resume=True)
            await self._rerender(turn, executor)
        elif session.bot_state == BotState.MENU_DISPLAYED:
            turn.say(self._render_menu(session))

    async def _cmd_help(self, turn: _Turn, command: DetectedCommand) -> None:
        session = turn.session
        definition = self._active_definition(session)
        if definition is None:
            turn.say(self._t(session, "help_idle"))
            return
        name = self.strings.get_string(definition.name, session.language, default=definition.name)
        turn.say(self.strings.render("help_workflow", session.language, workflow_name=name))

    async def _cmd_menu(self, turn: _Turn, command: DetectedCommand) -> None:
        session = turn.session
        definition = self._active_definition(session)
        if definition is not None and session.workflow_context:
            navigation = NavigationStack(session.navigation_stack, self.navigation_max_depth)
            navigation.push(NavigationFrame(
                workflow_id=definition.id,
                step_id=session.current_step_id,
                context=session.workflow_context,
                timestamp=turn.now,
                can_return=definition.config.allow_back,
            ))
            workflow_event_counter.labels(workflow_id=definition.id, event="interrupted").inc()
            session.current_workflow_id = None
            session.current_step_id = None
            session.workflow_context = None
            session.navigation_stack = navigation.to_list()

        self.states.transition(session, BotState.MENU_DISPLAYED, "menu_command")
        turn.say(self._render_menu(session))

    async def _cmd_back(self, turn: _Turn, command: DetectedCommand) -> None:
        session = turn.session
        definition = self._active_definition(session)
        navigation = NavigationStack(session.navigation_stack, self.navigation_max_depth)
        frame = navigation.peek()

        # At the start of a workflow opened from the menu, `back` resumes the interrupted one.
        if (
            frame is not None
            and frame.can_return
            and frame.workflow_id != definition.id
            and self.workflows.is_enabled(frame.workflow_id)
        ):
            navigation.pop()
            workflow_event_counter.labels(workflow_id=definition.id, event="abandoned").inc()
            session.workflow_history.append(definition.id)
            session.current_workflow_id = frame.workflow_id
            session.current_step_id = frame.step_id
            session.workflow_context = frame.context
            session.navigation_stack = navigation.to_list()
            resumed = self.workflows.get(frame.workflow_id)
            logger.info(f"Session {session.id} resumed workflow '{resumed.id}' at step '{frame.step_id}'")
            executor = self._build_executor(turn, resumed, resume=True)
            executor.context.touch(turn.now)
            await self._rerender(turn, executor)
            return

        executor = self._build_executor(turn, definition, resume=True)
        result = await executor.go_back(turn.now)
        if result is None:
            turn.say(self._t(session, "back_unavailable"))
            return
        await self._run(turn, executor, result)

    async def _cmd_cancel(self, turn: _Turn, command: DetectedCommand) -> None:
        session = turn.session
        workflow_id = session.current_workflow_id
        workflow_event_counter.labels(workflow_id=workflow_id, event="abandoned").inc()
        logger.info(f"Session {session.id} cancelled workflow '{workflow_id}'")
        session.workflow_history.append(workflow_id)
        session.clear_workflow()
        self.states.transition(session, self._resting_state(session), f"cancel:{workflow_id}")
        turn.say(self._t(session, "cancel_done"))

    async def _cmd_restart(self, turn: _Turn, command: DetectedCommand) -> None:
        executor = self._build_executor(turn, self._active_definition(turn.session), resume=True)
        turn.say(self._t(turn.session, "restart_done"))
        await self._run(turn, executor, await executor.restart(turn.now))

    async def _cmd_profile(self, turn: _Turn, command: DetectedCommand) -> None:
        session = turn.session
        unknown = self._t(session, "profile_unknown")
        turn.say(self.strings.render(
            "profile_summary",
            session.language,
            user_name=session.data_bag.get("user_name") or unknown,
            niu=session.data_bag.get("niu") or unknown,
            lang=session.language.upper(),
            verified="✅" if session.is_verified else "❌",
        ))

    def _t(self, session: Session, key: str) -> str:
        return self.strings.get_string(key, session.language)

# backend/convoflow/utils/dependencies.py

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from fastapi import Request

from convoflow.config.settings import Settings
from convoflow.config.strings import STRINGS
from convoflow.services.ai_service import AIService
from convoflow.services.channel_service import ChannelAdapter, OutboxChannelAdapter
from convoflow.services.command_router import CommandRouter
from convoflow.services.igs_service import IgsService
from convoflow.services.niu_service import NiuService
from convoflow.services.onboarding_service import OnboardingService
from convoflow.services.orchestrator import BotOrchestrator
from convoflow.services.service_registry import ServiceRegistry
from convoflow.services.session_store import InMemorySessionStore, MongoSessionStore, SessionStore
from convoflow.services.state_controller import StateController
from convoflow.services.string_service import StringService
from convoflow.workflows.definitions import BUILTIN_WORKFLOWS
from convoflow.workflows.registry import WorkflowRegistry
from convoflow.workflows.steps import StepProcessor

# Builds the application-scoped object graph once at startup. Nothing in the
# engine is a module-level singleton: the container is stored on
# `app.state.container` and routes reach it through the getters below.

logger = logging.getLogger(__name__)


@dataclass
class Container:
    settings: Settings
    strings: StringService
    services: ServiceRegistry
    workflows: WorkflowRegistry
    processor: StepProcessor
    commands: CommandRouter
    states: StateController
    sessions: SessionStore
    channel: ChannelAdapter
    ai: Optional[AIService]
    orchestrator: BotOrchestrator


def build_session_store(settings_obj: Settings) -> SessionStore:
    if settings_obj.session_backend == "mongo":
        return MongoSessionStore(
            settings_obj.mongo_uri,
            database=settings_obj.mongo_database,
            default_language=settings_obj.default_language,
            expiry_hours=settings_obj.session_expiry_hours,
            max_pool_size=settings_obj.max_pool_size,
            min_pool_size=settings_obj.min_pool_size,
        )
    return InMemorySessionStore(settings_obj.default_language, settings_obj.session_expiry_hours)


def build_container(
    settings_obj: Settings,
    ai: Optional[AIService] = None,
    channel: Optional[ChannelAdapter] = None,
    sessions: Optional[SessionStore] = None,
    taxpayer_directory: Optional[Iterable[dict]] = None,
) -> Container:
    """
    Wires every collaborator from settings.

    Args:
        ai: overrides the AI collaborator (tests pass a fake); by default one
            is built from the configured API keys.
        channel: overrides the outbound channel adapter.
        sessions: overrides the session store chosen by `session_backend`.
        taxpayer_directory: records served by the NIU finder.
    """
    strings = StringService(STRINGS, default_language=settings_obj.default_language)
    sessions = sessions or build_session_store(settings_obj)

    mongo_db = getattr(sessions, "db", None)
    services = ServiceRegistry(
        retry_attempts=settings_obj.service_retry_attempts,
        max_wait=settings_obj.service_retry_max_wait,
    )
    services.register("onboarding_service", OnboardingService(mongo_db.users if mongo_db is not None else None))
    services.register("igs_service", IgsService(mongo_db.companies if mongo_db is not None else None))
    services.register("niu_service", NiuService(taxpayer_directory))

    workflows = WorkflowRegistry(service_names=set(services.names))
    for definition in BUILTIN_WORKFLOWS:
        workflows.register(definition)

    if ai is None:
        ai = AIService(
            gemini_api_key=settings_obj.gemini_api_key,
            openai_api_key=settings_obj.openai_api_key,
            gemini_model=settings_obj.gemini_model,
            openai_model=settings_obj.openai_model,
        )
    if not ai.is_configured:
        logger.warning("No AI provider is configured; idle messages will get the 'AI unavailable' reply.")

    channel = channel or OutboxChannelAdapter()
    processor = StepProcessor(strings)
    commands = CommandRouter()
    states = StateController()
    orchestrator = BotOrchestrator(
        sessions=sessions,
        workflows=workflows,
        services=services,
        processor=processor,
        strings=strings,
        commands=commands,
        states=states,
        ai=ai,
        channel=channel,
        ai_confidence_threshold=settings_obj.ai_confidence_threshold,
        navigation_max_depth=settings_obj.navigation_max_depth,
        session_timeout_minutes=settings_obj.session_timeout_minutes,
        session_expiry_hours=settings_obj.session_expiry_hours,
        auto_advance_delay_ms=settings_obj.auto_advance_delay_ms,
        restart_mode=settings_obj.restart_mode,
    )
    channel.on_message_received(orchestrator.process_message)
    logger.info(f"Container built: {len(workflows.all())} workflows, backend={settings_obj.session_backend}")
    return Container(
        settings=settings_obj,
        strings=strings,
        services=services,
        workflows=workflows,
        processor=processor,
        commands=commands,
        states=states,
        sessions=sessions,
        channel=channel,
        ai=ai,
        orchestrator=orchestrator,
    )


def get_container(request: Request) -> Container:
    return request.app.state.container


def get_orchestrator(request: Request) -> BotOrchestrator:
    return request.app.state.container.orchestrator


def get_workflow_registry(request: Request) -> WorkflowRegistry:
    return request.app.state.container.workflows

# backend/tests/conftest.py
import pytest
from fastapi.testclient import TestClient
from dotenv import load_dotenv
from unittest.mock import AsyncMock, MagicMock

# Load the test environment FIRST, before any convoflow imports, so the
# module-level Settings instance is built from it.
load_dotenv(dotenv_path="backend/.env.test")

from convoflow.config.settings import settings  # noqa: E402
from convoflow.main import app  # noqa: E402
from convoflow.models.api import InboundMessage  # noqa: E402
from convoflow.services.ai_service import AIResponse  # noqa: E402
from convoflow.services.channel_service import OutboxChannelAdapter  # noqa: E402
from convoflow.services.session_store import InMemorySessionStore  # noqa: E402
from convoflow.utils.dependencies import build_container  # noqa: E402

USER = "237670000001"

TAXPAYERS = [
    {"name": "Boulangerie Étoile", "niu": "P012345678901A", "city": "Douala"},
    {"name": "Garage Mbarga et Fils", "niu": "M098765432109B", "city": "Yaoundé"},
    {"name": "Ets Mballa Paul", "niu": "P111222333444C", "city": "Bafoussam"},
]


@pytest.fixture
def fake_ai():
    """
    An AI collaborator that answers with no intent unless a test says otherwise.
    Set `fake_ai.generate_response.return_value` to script a reply.
    """
    ai = MagicMock()
    ai.is_configured = True
    ai.generate_response = AsyncMock(return_value=AIResponse(message="Je suis là pour vous aider.", intents=[]))
    return ai


@pytest.fixture
def outbox():
    return OutboxChannelAdapter()


@pytest.fixture
def container(fake_ai, outbox):
    """A fully wired engine with in-memory sessions and a fake AI provider."""
    return build_container(
        settings,
        ai=fake_ai,
        channel=outbox,
        sessions=InMemorySessionStore(settings.default_language, settings.session_expiry_hours),
        taxpayer_directory=TAXPAYERS,
    )


@pytest.fixture
def orchestrator(container):
    return container.orchestrator


@pytest.fixture
def send(orchestrator):
    """Sends one message as a user and returns the reply texts."""
    async def _send(text, user=USER, channel="whatsapp"):
        replies = await orchestrator.process_message(
            InboundMessage(channel=channel, external_user_id=user, text=text)
        )
        return [reply.text for reply in replies]
    return _send


@pytest.fixture
def load_session(container):
    async def _load(user=USER, channel="whatsapp"):
        return await container.sessions.get_active(channel, user)
    return _load


@pytest.fixture
def onboard(send):
    """Runs the mandatory onboarding so the user lands verified and IDLE."""
    async def _onboard(user=USER, name="Jean Dupont"):
        await send("bonjour", user=user)
        return await send(name, user=user)
    return _onboard


@pytest.fixture(scope="function")
def test_client(mocker, fake_ai):
    """
    Provides a TestClient for API integration tests.
    The session-expiry scheduler is not started.
    """
    mocker.patch("convoflow.utils.lifecycle.AsyncIOScheduler")
    app.state.container = build_container(
        settings,
        ai=fake_ai,
        sessions=InMemorySessionStore(settings.default_language, settings.session_expiry_hours),
        taxpayer_directory=TAXPAYERS,
    )

    # The app's lifespan (startup/shutdown events) is managed by the TestClient
    with TestClient(app) as client:
        yield client
    del app.state.container

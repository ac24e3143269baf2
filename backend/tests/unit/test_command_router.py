# backend/tests/unit/test_command_router.py
import pytest

from convoflow.config import commands as command_config
from convoflow.models.session import BotState
from convoflow.models.workflow import Step, StepType, WorkflowConfig, WorkflowDefinition
from convoflow.services.command_router import CommandDecision, CommandRouter
from convoflow.workflows.definitions import IGS_CALCULATOR, ONBOARDING

router = CommandRouter()


def workflow(**config):
    return WorkflowDefinition(
        id="custom",
        name="Custom",
        steps=[Step(id="a", type=StepType.INPUT, prompt="A?")],
        config=WorkflowConfig(**config),
    )


@pytest.mark.parametrize("text,expected", [
    ("menu", command_config.MENU),
    ("  MENU ", command_config.MENU),
    ("Retour", command_config.MENU),
    ("*", command_config.BACK),
    ("précédent", command_config.BACK),
    ("Annuler", command_config.CANCEL),
    ("en", command_config.LANGUAGE_EN),
    ("Français", command_config.LANGUAGE_FR),
    ("?", command_config.HELP),
    ("profil", command_config.PROFILE),
])
def test_detects_synonyms(text, expected):
    assert router.detect(text).type == expected


@pytest.mark.parametrize("text", ["show me the menu", "menu please", "", None, "1", "oui"])
def test_only_whole_messages_are_commands(text):
    assert router.detect(text) is None


def test_normalize_collapses_whitespace():
    assert CommandRouter.normalize("  Mon   Profil ") == "mon profil"


def test_menu_is_rejected_inside_onboarding():
    command = router.detect("menu")
    assert router.check_eligibility(command, BotState.SYSTEM_WORKFLOW, ONBOARDING) == CommandDecision.REJECT


def test_menu_is_allowed_in_interruptible_workflows():
    command = router.detect("menu")
    assert router.check_eligibility(command, BotState.USER_WORKFLOW, IGS_CALCULATOR) == CommandDecision.EXECUTE
    assert router.check_eligibility(command, BotState.IDLE) == CommandDecision.EXECUTE


def test_menu_is_rejected_when_interruption_is_disabled():
    command = router.detect("menu")
    decision = router.check_eligibility(command, BotState.USER_WORKFLOW, workflow(allow_interruption=False))
    assert decision == CommandDecision.REJECT


def test_workflow_only_commands_are_ignored_when_idle():
    for text in ["annuler", "*", "recommencer"]:
        assert router.check_eligibility(router.detect(text), BotState.IDLE) == CommandDecision.IGNORE


def test_state_restrictions_ignore_the_command():
    assert router.check_eligibility(router.detect("*"), BotState.MENU_DISPLAYED) == CommandDecision.IGNORE
    decision = router.check_eligibility(router.detect("profil"), BotState.USER_WORKFLOW, IGS_CALCULATOR)
    assert decision == CommandDecision.IGNORE


def test_workflow_allow_and_deny_tables():
    assert router.check_eligibility(
        router.detect("restart"), BotState.USER_WORKFLOW, workflow(blocked_commands=["restart"])
    ) == CommandDecision.REJECT
    only_help = workflow(allowed_commands=["help"])
    assert router.check_eligibility(router.detect("aide"), BotState.USER_WORKFLOW, only_help) == CommandDecision.EXECUTE
    assert router.check_eligibility(router.detect("annuler"), BotState.USER_WORKFLOW, only_help) == CommandDecision.REJECT


def test_cancel_is_rejected_in_onboarding():
    decision = router.check_eligibility(router.detect("annuler"), BotState.SYSTEM_WORKFLOW, ONBOARDING)
    assert decision == CommandDecision.REJECT


def test_language_commands_carry_their_target():
    assert router.detect("english").spec["target_language"] == "en"
    assert router.detect("fr").spec["target_language"] == "fr"


def test_conflicting_synonyms_are_refused():
    with pytest.raises(ValueError):
        CommandRouter({
            "menu": {"synonyms": ["menu"], "scope": command_config.ALWAYS},
            "home": {"synonyms": ["MENU"], "scope": command_config.ALWAYS},
        })

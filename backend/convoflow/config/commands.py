# backend/convoflow/config/commands.py

# This file contains the system-command table: every synonym a user can type
# to trigger a command, and the rules deciding where each command applies.
# Commands are matched on the whole normalized message, never on substrings.

from convoflow.models.session import BotState

# Command types
LANGUAGE_FR = "language_fr"
LANGUAGE_EN = "language_en"
HELP = "help"
MENU = "menu"
BACK = "back"
CANCEL = "cancel"
RESTART = "restart"
PROFILE = "profile"

# Eligibility scopes
ALWAYS = "always"              # Allowed everywhere unless a restriction applies
WORKFLOW_ONLY = "workflow_only"  # Only meaningful while a workflow is active

# Each entry: command type -> (synonyms, scope, blocked_in_workflows, blocked_in_states)
SYSTEM_COMMANDS = {
    LANGUAGE_FR: {
        "synonyms": ["fr", "francais", "français"],
        "scope": ALWAYS,
        "target_language": "fr",
    },
    LANGUAGE_EN: {
        "synonyms": ["en", "english", "anglais"],
        "scope": ALWAYS,
        "target_language": "en",
    },
    HELP: {
        "synonyms": ["aide", "help", "?", "assistance"],
        "scope": ALWAYS,
    },
    MENU: {
        "synonyms": ["menu", "accueil", "home", "retour"],
        "scope": ALWAYS,
        "blocked_in_workflows": ["onboarding"],
    },
    BACK: {
        "synonyms": ["*", "precedent", "précédent", "back"],
        "scope": WORKFLOW_ONLY,
        "blocked_in_states": [BotState.MENU_DISPLAYED],
    },
    CANCEL: {
        "synonyms": ["annuler", "cancel", "stop", "quitter"],
        "scope": WORKFLOW_ONLY,
        "blocked_in_workflows": ["onboarding"],
        "blocked_in_states": [BotState.MENU_DISPLAYED],
    },
    RESTART: {
        "synonyms": ["recommencer", "restart", "reset"],
        "scope": WORKFLOW_ONLY,
    },
    PROFILE: {
        "synonyms": ["profil", "profile", "moi"],
        "scope": ALWAYS,
        "blocked_in_states": [BotState.USER_WORKFLOW, BotState.SYSTEM_WORKFLOW],
    },
}

# Confirmation vocabulary used while waiting for the user to accept an
# AI-suggested workflow.
CONFIRM_WORDS = {
    "fr": ["oui", "yes", "ok", "d'accord", "daccord", "commence", "commencer"],
    "en": ["yes", "ok", "okay", "sure", "start", "begin", "confirm"],
}

DENY_WORDS = {
    "fr": ["non", "no", "pas", "annule", "annuler"],
    "en": ["no", "nope", "cancel", "stop", "abort"],
}

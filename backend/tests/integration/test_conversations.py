# backend/tests/integration/test_conversations.py
import asyncio
import pytest
from dataclasses import replace
from datetime import datetime, timedelta
from unittest.mock import AsyncMock

from convoflow.models.results import ServiceResult
from convoflow.models.session import BotState
from convoflow.services.ai_service import AIIntent, AIResponse

SECTOR_PROMPT = "Dans quel secteur exercez-vous ?\n\n1. Secteur formel\n2. Secteur informel"
MENU = (
    "📋 *Services disponibles*\n"
    "1. Calculateur d'IGS\n"
    "2. Recherche de NIU\n"
    "\n"
    "Répondez avec le numéro du service, ou *0* pour quitter."
)
IGS_ANSWERS = ["1", "2", "500000", "600000", "1", "Ets Ndongo", "670000000", "2", "Akwa", "N/A"]
WELCOME = "*Inscription – 1/2*\n👋 Bienvenue ! Pour commencer, quel est votre nom complet ?"


def suggest(fake_ai, workflow_id="igs_calculator", confidence=0.92, message="Je peux calculer votre IGS."):
    fake_ai.generate_response.return_value = AIResponse(
        message=message,
        intents=[AIIntent(workflow_id=workflow_id, confidence=confidence)],
    )


# --- Onboarding ---

@pytest.mark.asyncio
async def test_first_contact_starts_onboarding(send, load_session):
    replies = await send("bonjour")

    assert replies == [WELCOME]
    session = await load_session()
    assert session.bot_state == BotState.SYSTEM_WORKFLOW
    assert session.current_workflow_id == "onboarding"
    assert session.is_verified is False


@pytest.mark.asyncio
async def test_onboarding_verifies_the_session(onboard, load_session, fake_ai):
    replies = await onboard()

    assert replies == [
        "🔎 Recherche de votre dossier à la DGI...",
        "⏳ Création de votre profil...",
        "🎉 Merci Jean Dupont, votre profil est prêt ! Tapez *menu* pour découvrir nos services.",
    ]
    session = await load_session()
    assert session.bot_state == BotState.IDLE
    assert session.is_verified is True
    assert session.user_id == session.data_bag["user_id"]
    assert session.data_bag["user_name"] == "Jean Dupont"
    assert session.workflow_history == ["onboarding"]
    assert session.current_workflow_id is None
    fake_ai.generate_response.assert_not_awaited()


@pytest.mark.asyncio
async def test_menu_is_refused_during_onboarding(send, load_session):
    await send("bonjour")
    replies = await send("menu")

    assert replies == ["⛔ Cette commande n'est pas disponible pour le moment."]
    session = await load_session()
    assert session.bot_state == BotState.SYSTEM_WORKFLOW
    assert session.current_step_id == "collect_name"


@pytest.mark.asyncio
async def test_onboarding_links_a_matching_taxpayer(send, load_session):
    await send("bonjour")
    replies = await send("Paul Mballa")
    assert replies == [
        "🔎 Recherche de votre dossier à la DGI...",
        "*Inscription – 2/2*\nNous avons trouvé ce contribuable à votre nom. Est-ce bien vous ?\n\n"
        "1. Ets Mballa Paul - Bafoussam\n"
        "2. Ce n'est pas moi",
    ]

    replies = await send("1")
    assert replies == [
        "⏳ Création de votre profil...",
        "🎉 Merci Paul Mballa, votre profil est prêt et lié au NIU P111222333444C. "
        "Tapez *menu* pour découvrir nos services.",
    ]
    session = await load_session()
    assert session.is_verified is True
    assert session.data_bag["niu"] == "P111222333444C"
    assert await send("profil") == [
        "👤 *Votre profil*\nNom : Paul Mballa\nNIU : P111222333444C\nLangue : FR\nVérifié : ✅"
    ]


@pytest.mark.asyncio
async def test_onboarding_without_the_proposed_taxpayer(send, load_session):
    await send("bonjour")
    await send("Paul Mballa")

    replies = await send("2")
    assert replies[-1].startswith("🎉 Merci Paul Mballa, votre profil est prêt !")
    session = await load_session()
    assert session.is_verified is True
    assert "niu" not in session.data_bag


@pytest.mark.asyncio
async def test_onboarding_lists_several_matches(send, load_session, container):
    container.services.get("niu_service").directory.append(
        {"name": "Mballa Paul Transport", "niu": "M555666777888D", "city": "Douala"}
    )
    await send("bonjour")
    replies = await send("Paul Mballa")
    assert replies[1] == (
        "*Inscription – 2/2*\nPlusieurs contribuables correspondent à votre nom. Lequel êtes-vous ?\n\n"
        "1. Ets Mballa Paul - Bafoussam\n"
        "2. Mballa Paul Transport - Douala\n"
        "3. Aucun de ceux-ci"
    )

    await send("2")
    assert (await load_session()).data_bag["niu"] == "M555666777888D"


@pytest.mark.asyncio
async def test_onboarding_can_refine_a_broad_search(send, load_session, container):
    container.services.get("niu_service").directory.extend(
        {"name": f"Awa Ngono {index}", "niu": f"P00000000000{index}A", "city": "Yaoundé"}
        for index in range(6)
    )
    await send("bonjour")
    replies = await send("Awa Ngono")
    assert replies[1] == (
        "*Inscription – 2/2*\nVotre recherche renvoie 6 contribuables. Voulez-vous préciser votre nom ?\n\n"
        "1. Préciser mon nom\n"
        "2. Continuer sans NIU"
    )

    assert await send("1") == [WELCOME]
    replies = await send("Awa Ngono 3")
    assert replies[1].endswith("1. Awa Ngono 3 - Yaoundé\n2. Ce n'est pas moi")

    await send("1")
    session = await load_session()
    assert session.is_verified is True
    assert session.data_bag["niu"] == "P000000000003A"
    assert session.data_bag["user_name"] == "Awa Ngono 3"


@pytest.mark.asyncio
async def test_onboarding_registers_when_the_directory_fails(send, load_session, mocker):
    mocker.patch(
        "convoflow.services.niu_service.NiuService.search",
        new_callable=AsyncMock,
        side_effect=RuntimeError("directory offline"),
    )
    await send("bonjour")
    replies = await send("Jean Dupont")

    assert replies[0] == "🔎 Recherche de votre dossier à la DGI..."
    assert replies[-1].startswith("🎉 Merci Jean Dupont")
    assert (await load_session()).is_verified is True


# --- Menu and guided workflows ---

@pytest.mark.asyncio
async def test_menu_lists_user_workflows(onboard, send, load_session):
    await onboard()
    assert await send("menu") == [MENU]

    session = await load_session()
    assert session.bot_state == BotState.MENU_DISPLAYED
    assert session.state_data["menu_options"] == ["igs_calculator", "niu_finder"]


@pytest.mark.asyncio
async def test_igs_calculation_end_to_end(onboard, send, load_session, container):
    await onboard()
    await send("menu")
    assert await send("1") == [SECTOR_PROMPT]

    for answer in IGS_ANSWERS:
        replies = await send(answer)
    assert "*IGS estimé : 30 000 FCFA*" in replies[0]

    replies = await send("1")
    assert replies == ["⏳ Enregistrement de votre calcul...", "✅ Votre IGS annuel estimé est de *30 000 FCFA*."]

    session = await load_session()
    assert session.bot_state == BotState.IDLE
    assert session.current_workflow_id is None
    assert session.navigation_stack == []
    assert session.workflow_history == ["onboarding", "igs_calculator"]

    saved = container.services.get("igs_service").saved
    assert saved[0]["name"] == "Ets Ndongo"
    assert saved[0]["city"] == "douala"
    assert saved[0]["calculated_igs"] == 30000


@pytest.mark.asyncio
async def test_message_steps_auto_advance(onboard, send):
    await onboard()
    await send("menu")
    for answer in ["1", "1", "1", "500000"]:
        await send(answer)

    replies = await send("600000")
    assert replies[0].startswith("ℹ️ Votre chiffre d'affaires est inférieur")
    assert replies[1].startswith("Quelle est la forme de votre entreprise ?")


@pytest.mark.asyncio
async def test_invalid_answer_keeps_the_step(onboard, send, load_session):
    await onboard()
    await send("menu")
    await send("1")
    await send("1")
    await send("1")

    replies = await send("beaucoup")
    assert len(replies) == 1
    assert replies[0].startswith("❌ ")
    assert (await load_session()).current_step_id == "previous_year_revenue"


@pytest.mark.asyncio
async def test_niu_lookup(onboard, send, load_session):
    await onboard()
    await send("menu")
    await send("2")

    replies = await send("boulangerie etoile")
    assert replies == [
        "🔎 Recherche en cours...",
        "✅ 1 résultat(s) trouvé(s) : Boulangerie Étoile (P012345678901A)",
    ]
    assert (await load_session()).bot_state == BotState.IDLE


@pytest.mark.asyncio
async def test_niu_lookup_without_match(onboard, send):
    await onboard()
    await send("menu")
    await send("2")
    replies = await send("Pharmacie du Lac")
    assert replies[-1] == "❌ Aucun contribuable trouvé pour « Pharmacie du Lac »."


@pytest.mark.asyncio
async def test_menu_exit_and_invalid_selection(onboard, send, load_session):
    await onboard()
    await send("menu")
    assert await send("0") == ["👍 D'accord. Écrivez-moi quand vous voulez."]
    assert (await load_session()).bot_state == BotState.IDLE

    await send("menu")
    replies = await send("9")
    assert replies[0].startswith("🤔 Je n'ai pas bien compris.")
    assert (await load_session()).bot_state == BotState.IDLE


# --- Interruption and navigation ---

@pytest.mark.asyncio
async def test_menu_interrupts_and_back_resumes(onboard, send, load_session):
    await onboard()
    await send("menu")
    await send("1")
    await send("1")
    await send("1")

    assert await send("menu") == [MENU]
    session = await load_session()
    assert session.bot_state == BotState.MENU_DISPLAYED
    assert session.current_workflow_id is None

    await send("2")
    session = await load_session()
    assert session.current_workflow_id == "niu_finder"

    replies = await send("*")
    assert replies == ["Quel a été votre chiffre d'affaires l'année dernière (en FCFA, chiffres uniquement) ?"]
    session = await load_session()
    assert session.bot_state == BotState.USER_WORKFLOW
    assert session.current_workflow_id == "igs_calculator"
    assert session.current_step_id == "previous_year_revenue"
    assert session.workflow_context["data"]["sector_selection"] == "formal"
    assert "niu_finder" in session.workflow_history


@pytest.mark.asyncio
async def test_back_restores_the_previous_step(onboard, send, load_session):
    await onboard()
    await send("menu")
    await send("1")
    await send("2")

    replies = await send("*")
    assert replies == [SECTOR_PROMPT]
    session = await load_session()
    assert session.current_step_id == "sector_selection"
    assert "sector_selection" not in session.workflow_context["data"]

    assert (await send("1"))[0].startswith("Quelle est votre catégorie professionnelle ?")


@pytest.mark.asyncio
async def test_back_at_first_step(onboard, send):
    await onboard()
    await send("menu")
    await send("1")
    assert await send("*") == ["↩️ Impossible de revenir en arrière ici."]


@pytest.mark.asyncio
async def test_only_one_workflow_is_ever_active(onboard, send, load_session):
    await onboard()
    await send("menu")
    await send("1")
    await send("1")
    await send("menu")
    await send("2")

    session = await load_session()
    assert session.current_workflow_id == "niu_finder"
    assert session.workflow_context["workflow_id"] == "niu_finder"
    interrupted = [frame for frame in session.navigation_stack if frame.workflow_id == "igs_calculator"]
    assert interrupted[-1].step_id == "subcategory_selection"


# --- Commands ---

@pytest.mark.asyncio
async def test_cancel_leaves_the_workflow(onboard, send, load_session):
    await onboard()
    await send("menu")
    await send("1")
    await send("1")

    assert await send("annuler") == ["❌ Service annulé. Tapez *menu* pour voir les autres services."]
    session = await load_session()
    assert session.bot_state == BotState.IDLE
    assert session.current_workflow_id is None
    assert session.workflow_history[-1] == "igs_calculator"


@pytest.mark.asyncio
async def test_restart_clears_everything(onboard, send, load_session):
    await onboard()
    await send("menu")
    for answer in ["1", "1", "1", "500000"]:
        await send(answer)

    replies = await send("recommencer")
    assert replies == ["🔄 On recommence depuis le début.", SECTOR_PROMPT]
    session = await load_session()
    assert session.current_step_id == "sector_selection"
    assert session.workflow_context["data"] == {}
    assert session.navigation_stack == []


@pytest.mark.asyncio
async def test_language_switch_rerenders_the_current_step(onboard, send, load_session):
    await onboard()
    await send("menu")
    await send("1")

    replies = await send("en")
    assert replies[0] == "🇬🇧 Language is now English."
    assert replies[1].startswith("Which sector do you operate in?")
    assert (await load_session()).language == "en"


@pytest.mark.asyncio
async def test_profile_and_help(onboard, send):
    await onboard()
    assert await send("profil") == [
        "👤 *Votre profil*\nNom : Jean Dupont\nNIU : non renseigné\nLangue : FR\nVérifié : ✅"
    ]
    assert (await send("aide"))[0].startswith("ℹ️ *Aide*")

    await send("menu")
    await send("1")
    assert "Calculateur d'IGS" in (await send("aide"))[0]


@pytest.mark.asyncio
async def test_command_words_inside_sentences_are_answers(onboard, send, load_session, fake_ai):
    await onboard()
    await send("je voudrais voir le menu")
    fake_ai.generate_response.assert_awaited_once()
    assert (await load_session()).bot_state == BotState.IDLE


# --- AI conversation ---

@pytest.mark.asyncio
async def test_ai_reply_without_intent(onboard, send, load_session):
    await onboard()
    assert await send("Comment ça va ?") == ["Je suis là pour vous aider."]
    assert (await load_session()).bot_state == BotState.IDLE


@pytest.mark.asyncio
async def test_ai_suggestion_confirmed(onboard, send, load_session, fake_ai):
    await onboard()
    suggest(fake_ai)

    replies = await send("Je veux calculer mon impôt")
    assert replies == [
        "Je peux calculer votre IGS.",
        "Voulez-vous lancer « Calculateur d'IGS » ? Répondez *oui* ou *non*.",
    ]
    session = await load_session()
    assert session.bot_state == BotState.AI_WAITING_CONFIRM
    assert session.state_data == {"pending_workflow_id": "igs_calculator", "confidence": 0.92}

    assert await send("oui") == [SECTOR_PROMPT]
    session = await load_session()
    assert session.bot_state == BotState.USER_WORKFLOW
    assert session.current_step_id == "sector_selection"

    context = fake_ai.generate_response.await_args.args[1]
    assert context["user"] == {"name": "Jean Dupont"}
    assert [w["id"] for w in context["workflows"]] == ["igs_calculator", "niu_finder"]


@pytest.mark.asyncio
async def test_ai_suggestion_declined(onboard, send, load_session, fake_ai):
    await onboard()
    suggest(fake_ai)
    await send("impôt")

    assert await send("non") == ["👍 Pas de problème. Comment puis-je vous aider ?"]
    assert (await load_session()).bot_state == BotState.IDLE


@pytest.mark.asyncio
async def test_ambiguous_confirmation_is_a_new_question(onboard, send, load_session, fake_ai):
    await onboard()
    suggest(fake_ai)
    await send("impôt")

    fake_ai.generate_response.return_value = AIResponse(message="Dites-m'en plus.", intents=[])
    assert await send("peut-être plus tard") == ["Dites-m'en plus."]
    assert (await load_session()).bot_state == BotState.IDLE


@pytest.mark.asyncio
@pytest.mark.parametrize("workflow_id,confidence", [
    ("igs_calculator", 0.79),
    ("onboarding", 0.99),
    ("unknown_workflow", 0.99),
])
async def test_weak_or_unavailable_intents_stay_idle(onboard, send, load_session, fake_ai, workflow_id, confidence):
    await onboard()
    suggest(fake_ai, workflow_id=workflow_id, confidence=confidence, message="Pouvez-vous préciser ?")

    assert await send("impôt") == ["Pouvez-vous préciser ?"]
    assert (await load_session()).bot_state == BotState.IDLE


@pytest.mark.asyncio
async def test_threshold_is_inclusive(onboard, send, load_session, fake_ai):
    await onboard()
    suggest(fake_ai, confidence=0.8)
    await send("impôt")
    assert (await load_session()).bot_state == BotState.AI_WAITING_CONFIRM


@pytest.mark.asyncio
async def test_ai_failure(onboard, send, load_session, fake_ai):
    await onboard()
    fake_ai.generate_response.return_value = None

    replies = await send("bonjour")
    assert replies == ["🤖 L'assistant n'est pas disponible pour le moment. Tapez *menu* pour voir les services."]
    assert (await load_session()).bot_state == BotState.IDLE


@pytest.mark.asyncio
async def test_ai_not_configured(onboard, send, fake_ai):
    await onboard()
    fake_ai.is_configured = False
    replies = await send("bonjour")
    assert replies[0].startswith("🤖 L'assistant n'est pas disponible")
    fake_ai.generate_response.assert_not_awaited()


# --- Failures and timeouts ---

@pytest.mark.asyncio
async def test_service_failure_keeps_the_service_step(onboard, send, load_session, container, mocker):
    await onboard()
    await send("menu")
    await send("1")
    mocker.patch(
        "convoflow.services.igs_service.IgsService.calculate",
        new_callable=AsyncMock,
        side_effect=RuntimeError("tax tables unavailable"),
    )
    for answer in IGS_ANSWERS[:-1]:
        await send(answer)

    saved = []
    store_save = container.sessions.save

    async def recording_save(session):
        saved.append(session.model_dump())
        await store_save(session)

    mocker.patch.object(container.sessions, "save", side_effect=recording_save)
    replies = await send(IGS_ANSWERS[-1])

    assert replies == ["⚠️ Un problème technique est survenu pendant le traitement. Renvoyez votre réponse pour réessayer."]
    session = await load_session()
    assert session.bot_state == BotState.USER_WORKFLOW
    assert session.current_step_id == "calculate_igs"
    assert session.workflow_context["data"]["niu_input"] == "N/A"

    # The checkpoint taken before the call is exactly what remains stored.
    checkpoint, final = saved[0], saved[-1]
    assert checkpoint["current_step_id"] == "calculate_igs"
    assert final == checkpoint
    assert session.model_dump() == checkpoint


@pytest.mark.asyncio
async def test_language_switch_on_a_failed_service_step_does_not_rerun_it(onboard, send, load_session, mocker):
    await onboard()
    await send("menu")
    await send("1")
    calculate = mocker.patch(
        "convoflow.services.igs_service.IgsService.calculate",
        new_callable=AsyncMock,
        side_effect=RuntimeError("tax tables unavailable"),
    )
    for answer in IGS_ANSWERS:
        await send(answer)
    calls = calculate.await_count

    replies = await send("en")
    assert replies == ["🇬🇧 Language is now English.", "🔁 Send any message to run this step again."]
    assert calculate.await_count == calls
    session = await load_session()
    assert session.language == "en"
    assert session.current_step_id == "calculate_igs"


@pytest.mark.asyncio
async def test_failed_save_goes_to_the_error_step(onboard, send, load_session, mocker):
    await onboard()
    await send("menu")
    await send("1")
    for answer in IGS_ANSWERS:
        await send(answer)
    mocker.patch(
        "convoflow.services.igs_service.IgsService.save_company",
        new_callable=AsyncMock,
        return_value=ServiceResult(status="error", message="database down"),
    )

    replies = await send("1")
    assert replies == [
        "⏳ Enregistrement de votre calcul...",
        "⚠️ Nous n'avons pas pu enregistrer votre calcul. Votre IGS estimé reste valable.",
    ]
    assert (await load_session()).bot_state == BotState.IDLE


@pytest.mark.asyncio
async def test_stale_workflow_is_discarded(onboard, send, load_session, container):
    await onboard()
    await send("menu")
    await send("1")

    session = await load_session()
    stale = datetime.utcnow() - timedelta(minutes=10)
    session.workflow_context["last_activity_at"] = stale.isoformat()
    await container.sessions.save(session)

    replies = await send("bonjour")
    assert replies == [
        "⌛ Votre session précédente a expiré. Reprenons depuis le début.",
        "Je suis là pour vous aider.",
    ]
    session = await load_session()
    assert session.bot_state == BotState.IDLE
    assert session.current_workflow_id is None


@pytest.mark.asyncio
@pytest.mark.parametrize("persist_progress,saves", [(True, 2), (False, 1)])
async def test_service_checkpoints_follow_persist_progress(onboard, send, container, mocker, persist_progress, saves):
    niu_finder = container.workflows.get("niu_finder")
    container.workflows.register(
        replace(niu_finder, config=replace(niu_finder.config, persist_progress=persist_progress))
    )
    await onboard()
    await send("menu")
    await send("2")

    store_save = container.sessions.save
    save = mocker.patch.object(container.sessions, "save", side_effect=store_save)
    await send("boulangerie etoile")
    assert save.await_count == saves


@pytest.mark.asyncio
async def test_unexpected_error_restores_the_session(onboard, send, load_session, orchestrator, mocker):
    await onboard()
    before = await load_session()
    mocker.patch.object(
        orchestrator, "_handle_free_conversation", new_callable=AsyncMock, side_effect=RuntimeError("boom")
    )

    replies = await send("bonjour")
    assert replies == ["😔 Désolé, une erreur est survenue. Veuillez réessayer dans un instant."]
    assert await load_session() == before


@pytest.mark.asyncio
async def test_replies_are_delivered_to_the_channel(onboard, outbox):
    await onboard()
    texts = [message.text for message in outbox.sent]
    assert texts[0] == WELCOME
    assert texts[-1].startswith("🎉 Merci Jean Dupont")
    assert {message.destination for message in outbox.sent} == {"237670000001"}


# --- Concurrency ---

@pytest.mark.asyncio
async def test_messages_from_one_user_are_serialized(onboard, send, load_session):
    await onboard()
    menu_replies, selection_replies = await asyncio.gather(send("menu"), send("1"))

    assert menu_replies == [MENU]
    assert selection_replies == [SECTOR_PROMPT]
    session = await load_session()
    assert session.current_workflow_id == "igs_calculator"
    assert session.message_count == 4


@pytest.mark.asyncio
async def test_users_have_independent_sessions(send, load_session):
    first, second = await asyncio.gather(send("bonjour", user="237690000001"), send("hello", user="237690000002"))

    assert first == second
    one = await load_session(user="237690000001")
    two = await load_session(user="237690000002")
    assert one.id != two.id
    assert one.message_count == two.message_count == 1


@pytest.mark.asyncio
async def test_session_locks_are_released_after_processing(onboard, send, orchestrator):
    await onboard()
    await asyncio.gather(send("menu"), send("1"), send("hello", user="237690000003"))
    assert orchestrator._locks == {}
    assert orchestrator._lock_holders == {}


# --- Session expiry ---

@pytest.mark.asyncio
async def test_returning_user_keeps_verification_after_the_expiry_sweep(onboard, send, load_session, container):
    await onboard()
    first = await load_session()

    assert await container.sessions.expire_stale(datetime.utcnow() + timedelta(days=2)) == 1
    assert await load_session() is None

    assert await send("bonjour") == ["Je suis là pour vous aider."]
    session = await load_session()
    assert session.id != first.id
    assert session.bot_state == BotState.IDLE
    assert session.is_verified is True
    assert session.user_id == first.user_id
    assert session.data_bag["user_name"] == "Jean Dupont"

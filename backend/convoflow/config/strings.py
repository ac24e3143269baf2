# backend/convoflow/config/strings.py

# This file contains all user-facing strings, keyed by language, so wording
# can be updated without touching workflow or orchestration logic.
# Placeholders use str.format_map syntax, e.g. {name}.

FR = {
    # Generic
    "generic_error": "😔 Désolé, une erreur est survenue. Veuillez réessayer dans un instant.",
    "not_understood": "🤔 Je n'ai pas bien compris. Tapez *menu* pour voir les services disponibles ou *aide* pour de l'aide.",
    "command_not_allowed": "⛔ Cette commande n'est pas disponible pour le moment.",
    "technical_error": "⚠️ Un problème technique est survenu pendant le traitement. Renvoyez votre réponse pour réessayer.",
    "processing": "⏳ Traitement en cours...",
    "workflow_completed": "✅ Terminé ! Merci.",
    "workflow_unresolved": "✅ Terminé. Tapez *menu* pour continuer.",
    "workflow_timed_out": "⌛ Votre session précédente a expiré. Reprenons depuis le début.",
    "progress_header": "*{label} – {current}/{total}*",

    # Language
    "language_changed": "🇫🇷 La langue est maintenant le français.",
    "service_retry": "🔁 Envoyez un message pour relancer cette étape.",

    # Help
    "help_idle": (
        "ℹ️ *Aide*\n"
        "• *menu* : voir les services\n"
        "• *profil* : voir votre profil\n"
        "• *fr* / *en* : changer de langue\n"
        "Vous pouvez aussi me poser une question librement."
    ),
    "help_workflow": (
        "ℹ️ *Aide* : vous êtes dans « {workflow_name} ».\n"
        "• « * » ou *précédent* : étape précédente\n"
        "• *annuler* : quitter ce service\n"
        "• *recommencer* : tout reprendre depuis le début\n"
        "• *menu* : voir les autres services"
    ),

    # Menu
    "menu_header": "📋 *Services disponibles*",
    "menu_item": "{index}. {name}",
    "menu_footer": "Répondez avec le numéro du service, ou *0* pour quitter.",
    "menu_empty": "Aucun service n'est disponible pour le moment.",
    "menu_closed": "👍 D'accord. Écrivez-moi quand vous voulez.",

    # Navigation
    "back_unavailable": "↩️ Impossible de revenir en arrière ici.",
    "cancel_done": "❌ Service annulé. Tapez *menu* pour voir les autres services.",
    "restart_done": "🔄 On recommence depuis le début.",

    # AI handoff
    "ai_confirm_workflow": "Voulez-vous lancer « {workflow_name} » ? Répondez *oui* ou *non*.",
    "ai_declined": "👍 Pas de problème. Comment puis-je vous aider ?",
    "ai_unavailable": "🤖 L'assistant n'est pas disponible pour le moment. Tapez *menu* pour voir les services.",

    # Profile
    "profile_summary": "👤 *Votre profil*\nNom : {user_name}\nNIU : {niu}\nLangue : {lang}\nVérifié : {verified}",
    "profile_unknown": "non renseigné",

    # Validation
    "validation_required": "Cette information est obligatoire.",
    "validation_too_short": "Votre réponse doit contenir au moins {min_length} caractères.",
    "validation_too_long": "Votre réponse ne doit pas dépasser {max_length} caractères.",
    "validation_invalid_format": "Le format de votre réponse n'est pas valide.",
    "validation_invalid_number": "Veuillez entrer un nombre valide.",
    "validation_invalid_email": "Veuillez entrer une adresse e-mail valide.",
    "validation_invalid_phone": "Veuillez entrer un numéro de téléphone valide (ex : 6XXXXXXXX).",
    "validation_too_small": "La valeur doit être au moins {min_value}.",
    "validation_too_large": "La valeur ne doit pas dépasser {max_value}.",
    "validation_invalid_choice": "Choix invalide. Répondez avec le numéro ou la valeur d'une option.",

    # Onboarding
    "onboarding.name": "Inscription",
    "onboarding.collect_name": "👋 Bienvenue ! Pour commencer, quel est votre nom complet ?",
    "onboarding.searching": "🔎 Recherche de votre dossier à la DGI...",
    "onboarding.confirm_single": "Nous avons trouvé ce contribuable à votre nom. Est-ce bien vous ?",
    "onboarding.select_multiple": "Plusieurs contribuables correspondent à votre nom. Lequel êtes-vous ?",
    "onboarding.too_many": "Votre recherche renvoie {search_dgi[data][count]} contribuables. Voulez-vous préciser votre nom ?",
    "onboarding.choice_not_me": "Ce n'est pas moi",
    "onboarding.choice_none": "Aucun de ceux-ci",
    "onboarding.choice_refine": "Préciser mon nom",
    "onboarding.choice_continue": "Continuer sans NIU",
    "onboarding.register": "⏳ Création de votre profil...",
    "onboarding.done": "🎉 Merci {register[data][user_name]}, votre profil est prêt ! Tapez *menu* pour découvrir nos services.",
    "onboarding.done_linked": "🎉 Merci {register[data][user_name]}, votre profil est prêt et lié au NIU {register[data][niu]}. Tapez *menu* pour découvrir nos services.",

    # IGS calculator
    "igs.name": "Calculateur d'IGS",
    "igs.sector": "Dans quel secteur exercez-vous ?",
    "igs.sector.formal": "Secteur formel",
    "igs.sector.informal": "Secteur informel",
    "igs.subcategory_formal": "Quelle est votre catégorie professionnelle ?",
    "igs.subcategory_informal": "Quelle est votre activité ?",
    "igs.sub.public_employee": "Agent public",
    "igs.sub.private_employee": "Salarié du privé",
    "igs.sub.international_agent": "Agent d'organisation internationale",
    "igs.sub.liberal_profession": "Profession libérale",
    "igs.sub.executive": "Dirigeant d'entreprise",
    "igs.sub.commerce": "Commerce",
    "igs.sub.artisanat": "Artisanat",
    "igs.sub.agriculture": "Agriculture / élevage",
    "igs.sub.transport": "Transport",
    "igs.sub.personal_services": "Services à la personne",
    "igs.sub.restauration": "Restauration",
    "igs.sub.technical_services": "Services techniques",
    "igs.sub.other_activities": "Autres activités",
    "igs.previous_revenue": "Quel a été votre chiffre d'affaires l'année dernière (en FCFA, chiffres uniquement) ?",
    "igs.current_estimate": "Quel chiffre d'affaires estimez-vous pour cette année (en FCFA) ?",
    "igs.small_business_notice": "ℹ️ Votre chiffre d'affaires est inférieur à 10 000 000 FCFA : vous relevez du régime de l'IGS.",
    "igs.standard_notice": "ℹ️ Votre chiffre d'affaires dépasse 10 000 000 FCFA : nous calculons tout de même votre IGS indicatif.",
    "igs.company_type": "Quelle est la forme de votre entreprise ?",
    "igs.legal_entity": "Personne morale",
    "igs.individual": "Personne physique",
    "igs.company_name": "Quel est le nom de votre entreprise ?",
    "igs.phone": "Quel est votre numéro de téléphone ?",
    "igs.city": "Dans quelle ville êtes-vous installé ?",
    "igs.city_other": "Autre ville",
    "igs.city_name": "Quel est le nom de votre ville ?",
    "igs.neighborhood": "Dans quel quartier ?",
    "igs.niu": "Quel est votre NIU ? Répondez *N/A* si vous n'en avez pas.",
    "igs.confirmation": (
        "📝 *Récapitulatif*\n"
        "Secteur : {labels[sector_selection]}\n"
        "Catégorie : {labels[subcategory_selection]}\n"
        "CA année dernière : {previous_year_revenue} FCFA\n"
        "CA estimé cette année : {current_year_estimate} FCFA\n"
        "Forme : {labels[company_type]}\n"
        "Entreprise : {company_name}\n"
        "Téléphone : {phone_number}\n"
        "Ville : {labels[city_selection]} ({neighborhood_input})\n"
        "NIU : {niu_input}\n"
        "*IGS estimé : {calculate_igs[data][igs_formatted]} FCFA*"
    ),
    "igs.confirm": "Confirmer",
    "igs.restart": "Recommencer",
    "igs.saving": "⏳ Enregistrement de votre calcul...",
    "igs.save_failed": "⚠️ Nous n'avons pas pu enregistrer votre calcul. Votre IGS estimé reste valable.",
    "igs.done": "✅ Votre IGS annuel estimé est de *{calculate_igs[data][igs_formatted]} FCFA*.",

    # NIU finder
    "niu.name": "Recherche de NIU",
    "niu.query": "Quel nom ou raison sociale voulez-vous rechercher ?",
    "niu.searching": "🔎 Recherche en cours...",
    "niu.found": "✅ {search_dgi[data][count]} résultat(s) trouvé(s) : {search_dgi[data][summary]}",
    "niu.not_found": "❌ Aucun contribuable trouvé pour « {collect_name} ».",
}

EN = {
    # Generic
    "generic_error": "😔 Sorry, something went wrong. Please try again in a moment.",
    "not_understood": "🤔 I didn't quite get that. Type *menu* to see available services or *help* for help.",
    "command_not_allowed": "⛔ This command isn't available right now.",
    "technical_error": "⚠️ A technical problem occurred while processing. Send your answer again to retry.",
    "processing": "⏳ Processing...",
    "workflow_completed": "✅ Done! Thank you.",
    "workflow_unresolved": "✅ Done. Type *menu* to continue.",
    "workflow_timed_out": "⌛ Your previous session expired. Let's start over.",
    "progress_header": "*{label} – {current}/{total}*",

    # Language
    "language_changed": "🇬🇧 Language is now English.",
    "service_retry": "🔁 Send any message to run this step again.",

    # Help
    "help_idle": (
        "ℹ️ *Help*\n"
        "• *menu*: see services\n"
        "• *profile*: see your profile\n"
        "• *fr* / *en*: change language\n"
        "You can also just ask me a question."
    ),
    "help_workflow": (
        "ℹ️ *Help*: you are in \"{workflow_name}\".\n"
        "• \"*\" or *back*: previous step\n"
        "• *cancel*: leave this service\n"
        "• *restart*: start over from the beginning\n"
        "• *menu*: see other services"
    ),

    # Menu
    "menu_header": "📋 *Available services*",
    "menu_item": "{index}. {name}",
    "menu_footer": "Reply with the service number, or *0* to exit.",
    "menu_empty": "No services are available right now.",
    "menu_closed": "👍 Okay. Message me whenever you like.",

    # Navigation
    "back_unavailable": "↩️ You can't go back from here.",
    "cancel_done": "❌ Service cancelled. Type *menu* to see other services.",
    "restart_done": "🔄 Starting over from the beginning.",

    # AI handoff
    "ai_confirm_workflow": "Would you like to start \"{workflow_name}\"? Reply *yes* or *no*.",
    "ai_declined": "👍 No problem. How can I help you?",
    "ai_unavailable": "🤖 The assistant is unavailable right now. Type *menu* to see services.",

    # Profile
    "profile_summary": "👤 *Your profile*\nName: {user_name}\nNIU: {niu}\nLanguage: {lang}\nVerified: {verified}",
    "profile_unknown": "not provided",

    # Validation
    "validation_required": "This information is required.",
    "validation_too_short": "Your answer must be at least {min_length} characters long.",
    "validation_too_long": "Your answer must not exceed {max_length} characters.",
    "validation_invalid_format": "Your answer's format is not valid.",
    "validation_invalid_number": "Please enter a valid number.",
    "validation_invalid_email": "Please enter a valid email address.",
    "validation_invalid_phone": "Please enter a valid phone number (e.g. 6XXXXXXXX).",
    "validation_too_small": "The value must be at least {min_value}.",
    "validation_too_large": "The value must not exceed {max_value}.",
    "validation_invalid_choice": "Invalid choice. Reply with the number or value of an option.",

    # Onboarding
    "onboarding.name": "Registration",
    "onboarding.collect_name": "👋 Welcome! To get started, what is your full name?",
    "onboarding.searching": "🔎 Looking up your tax record...",
    "onboarding.confirm_single": "We found this taxpayer under your name. Is this you?",
    "onboarding.select_multiple": "Several taxpayers match your name. Which one are you?",
    "onboarding.too_many": "Your search returned {search_dgi[data][count]} taxpayers. Would you like to refine your name?",
    "onboarding.choice_not_me": "That's not me",
    "onboarding.choice_none": "None of these",
    "onboarding.choice_refine": "Refine my name",
    "onboarding.choice_continue": "Continue without a NIU",
    "onboarding.register": "⏳ Creating your profile...",
    "onboarding.done": "🎉 Thanks {register[data][user_name]}, your profile is ready! Type *menu* to discover our services.",
    "onboarding.done_linked": "🎉 Thanks {register[data][user_name]}, your profile is ready and linked to NIU {register[data][niu]}. Type *menu* to discover our services.",

    # IGS calculator
    "igs.name": "IGS calculator",
    "igs.sector": "Which sector do you operate in?",
    "igs.sector.formal": "Formal sector",
    "igs.sector.informal": "Informal sector",
    "igs.subcategory_formal": "What is your professional category?",
    "igs.subcategory_informal": "What is your activity?",
    "igs.sub.public_employee": "Public servant",
    "igs.sub.private_employee": "Private-sector employee",
    "igs.sub.international_agent": "International organization staff",
    "igs.sub.liberal_profession": "Liberal profession",
    "igs.sub.executive": "Company executive",
    "igs.sub.commerce": "Trade",
    "igs.sub.artisanat": "Crafts",
    "igs.sub.agriculture": "Farming",
    "igs.sub.transport": "Transport",
    "igs.sub.personal_services": "Personal services",
    "igs.sub.restauration": "Catering",
    "igs.sub.technical_services": "Technical services",
    "igs.sub.other_activities": "Other activities",
    "igs.previous_revenue": "What was your revenue last year (in FCFA, digits only)?",
    "igs.current_estimate": "What revenue do you expect this year (in FCFA)?",
    "igs.small_business_notice": "ℹ️ Your revenue is below 10,000,000 FCFA: you fall under the IGS regime.",
    "igs.standard_notice": "ℹ️ Your revenue exceeds 10,000,000 FCFA: we'll still compute an indicative IGS.",
    "igs.company_type": "What is your company's legal form?",
    "igs.legal_entity": "Legal entity",
    "igs.individual": "Individual",
    "igs.company_name": "What is your company's name?",
    "igs.phone": "What is your phone number?",
    "igs.city": "Which city are you based in?",
    "igs.city_other": "Other city",
    "igs.city_name": "What is the name of your city?",
    "igs.neighborhood": "Which neighborhood?",
    "igs.niu": "What is your NIU? Reply *N/A* if you don't have one.",
    "igs.confirmation": (
        "📝 *Summary*\n"
        "Sector: {labels[sector_selection]}\n"
        "Category: {labels[subcategory_selection]}\n"
        "Last year's revenue: {previous_year_revenue} FCFA\n"
        "Expected revenue this year: {current_year_estimate} FCFA\n"
        "Legal form: {labels[company_type]}\n"
        "Company: {company_name}\n"
        "Phone: {phone_number}\n"
        "City: {labels[city_selection]} ({neighborhood_input})\n"
        "NIU: {niu_input}\n"
        "*Estimated IGS: {calculate_igs[data][igs_formatted]} FCFA*"
    ),
    "igs.confirm": "Confirm",
    "igs.restart": "Start over",
    "igs.saving": "⏳ Saving your calculation...",
    "igs.save_failed": "⚠️ We couldn't save your calculation. Your estimated IGS is still valid.",
    "igs.done": "✅ Your estimated annual IGS is *{calculate_igs[data][igs_formatted]} FCFA*.",

    # NIU finder
    "niu.name": "NIU lookup",
    "niu.query": "Which name or company name do you want to look up?",
    "niu.searching": "🔎 Searching...",
    "niu.found": "✅ {search_dgi[data][count]} result(s) found: {search_dgi[data][summary]}",
    "niu.not_found": "❌ No taxpayer found for \"{collect_name}\".",
}

STRINGS = {
    "fr": FR,
    "en": EN,
}

# backend/convoflow/workflows/definitions.py

"""
Built-in workflow definitions.

- onboarding (system): mandatory for unverified sessions; collects the user's
  name, offers to link a matching taxpayer record and registers them.
- igs_calculator (user): collects company details, computes the flat-rate IGS
  and saves the company.
- niu_finder (user): looks up a taxpayer identification number by name.

Every step declares its `next` explicitly; a step without `next` ends the
workflow. Prompts and labels are string keys from config/strings.py.
"""

import re
from typing import Dict, List

from convoflow.models.workflow import (
    Branch,
    Choice,
    ProgressTrack,
    ServiceCall,
    Step,
    StepType,
    ValidationRule,
    WorkflowConfig,
    WorkflowDefinition,
    WorkflowKind,
)
from convoflow.services.niu_service import MAX_RESULTS

NIU_RE = re.compile(r"^[A-Z0-9]{12,}$")
SMALL_BUSINESS_CEILING = 10_000_000


# ---------------- Onboarding ---------------- #

def taxpayer_prompt(ctx) -> str:
    return "onboarding.confirm_single" if ctx.get("search_dgi.data.count") == 1 else "onboarding.select_multiple"


def taxpayer_choices(ctx) -> List[Choice]:
    results = ctx.get("search_dgi.data.results", [])
    choices = [
        Choice(id=f"taxpayer_{index}", value=record["niu"], label=f"{record['name']} - {record['city']}")
        for index, record in enumerate(results)
    ]
    none_label = "onboarding.choice_not_me" if len(results) == 1 else "onboarding.choice_none"
    choices.append(Choice(id="none", value="none", label=none_label))
    return choices


def onboarding_done(ctx) -> str:
    return "onboarding.done_linked" if ctx.get("register.data.niu") else "onboarding.done"


ONBOARDING = WorkflowDefinition(
    id="onboarding",
    name="onboarding.name",
    kind=WorkflowKind.SYSTEM,
    description="Collects the user's name, links their taxpayer record and registers them.",
    steps=[
        Step(
            id="collect_name",
            type=StepType.INPUT,
            prompt="onboarding.collect_name",
            validation=ValidationRule(required=True, min_length=2, max_length=100),
            next="search_dgi",
            can_go_back=False,
        ),
        Step(
            id="search_dgi",
            type=StepType.SERVICE,
            service=ServiceCall(
                service="niu_service",
                method="search",
                params=lambda ctx: {"query": ctx.get("collect_name")},
                progress_message="onboarding.searching",
            ),
            next=[
                Branch("search_dgi.data.count == 0", "register"),
                Branch(f"search_dgi.data.count > {MAX_RESULTS}", "refine_search"),
                Branch("search_dgi.data.count > 0", "select_taxpayer"),
            ],
            # An unreachable directory must not block registration.
            error_step="register",
        ),
        Step(
            id="select_taxpayer",
            type=StepType.CHOICE,
            prompt=taxpayer_prompt,
            choices=taxpayer_choices,
            next=[
                Branch("select_taxpayer == 'none'", "register"),
                Branch("select_taxpayer != 'none'", "link_taxpayer"),
            ],
            can_go_back=False,
        ),
        Step(
            id="refine_search",
            type=StepType.CHOICE,
            prompt="onboarding.too_many",
            choices=[
                Choice(id="refine", value="refine", label="onboarding.choice_refine"),
                Choice(id="continue", value="continue", label="onboarding.choice_continue"),
            ],
            next=[
                Branch("refine_search == 'refine'", "collect_name"),
                Branch("refine_search == 'continue'", "register"),
            ],
            can_go_back=False,
        ),
        Step(
            id="link_taxpayer",
            type=StepType.SERVICE,
            service=ServiceCall(
                service="onboarding_service",
                method="link_taxpayer",
                params=lambda ctx: {
                    "niu": ctx.get("select_taxpayer"),
                    "candidates": ctx.get("search_dgi.data.results", []),
                },
            ),
            next="register",
            error_step="register",
        ),
        Step(
            id="register",
            type=StepType.SERVICE,
            service=ServiceCall(
                service="onboarding_service",
                method="register",
                params=lambda ctx: {
                    "full_name": ctx.get("collect_name"),
                    "language": ctx.session_data.get("language"),
                    "niu": ctx.get("link_taxpayer.data.niu"),
                },
                progress_message="onboarding.register",
            ),
        ),
    ],
    config=WorkflowConfig(
        timeout_seconds=300,
        allow_interruption=False,
        allow_back=False,
        persist_progress=False,
        requires_verification=False,
        verifies_session=True,
    ),
    completion_message=onboarding_done,
    on_complete=lambda ctx: {
        "user_name": ctx.get("register.data.user_name"),
        "user_id": ctx.get("register.data.user_id"),
        "niu": ctx.get("register.data.niu"),
    },
    progress=ProgressTrack(
        label="onboarding.name",
        total=2,
        steps={"collect_name": 1, "select_taxpayer": 2, "refine_search": 2},
    ),
)


# ---------------- IGS calculator ---------------- #

SUBCATEGORIES: Dict[str, List[str]] = {
    "formal": [
        "public_employee",
        "private_employee",
        "international_agent",
        "liberal_profession",
        "executive",
    ],
    "informal": [
        "commerce",
        "artisanat",
        "agriculture",
        "transport",
        "personal_services",
        "restauration",
        "technical_services",
        "other_activities",
    ],
}

CITIES = [
    ("yaounde", "Yaoundé"),
    ("douala", "Douala"),
    ("bafoussam", "Bafoussam"),
    ("garoua", "Garoua"),
    ("bamenda", "Bamenda"),
    ("maroua", "Maroua"),
    ("ngaoundere", "Ngaoundéré"),
    ("bertoua", "Bertoua"),
    ("buea", "Buea"),
    ("ebolowa", "Ebolowa"),
    ("other", "igs.city_other"),
]

REVENUE_RULE = ValidationRule(required=True, pattern=r"^\d[\d\s]*$", type="number", min_value=0)


def subcategory_choices(ctx) -> List[Choice]:
    sector = ctx.get("sector_selection", "formal")
    return [
        Choice(id=value, value=value, label=f"igs.sub.{value}")
        for value in SUBCATEGORIES.get(sector, [])
    ]


def subcategory_prompt(ctx) -> str:
    return f"igs.subcategory_{ctx.get('sector_selection', 'formal')}"


def neighborhood_prompt(ctx) -> str:
    return "igs.city_name" if ctx.get("city_selection") == "other" else "igs.neighborhood"


def valid_niu(value: str):
    cleaned = value.strip().upper()
    return cleaned == "N/A" or bool(NIU_RE.match(cleaned))


def company_params(ctx) -> dict:
    city = ctx.get("city_selection")
    return {
        "user_id": ctx.session_data.get("user_id"),
        "sector": ctx.get("sector_selection"),
        "subcategory": ctx.get("subcategory_selection"),
        "previous_year_revenue": int(ctx.get("previous_year_revenue")),
        "current_year_estimate": int(ctx.get("current_year_estimate")),
        "company_type": ctx.get("company_type"),
        "name": ctx.get("company_name"),
        "phone_number": ctx.get("phone_number"),
        "city": ctx.get("neighborhood_input") if city == "other" else city,
        "neighborhood": "" if city == "other" else ctx.get("neighborhood_input"),
        "niu": ctx.get("niu_input", "").upper(),
        "calculated_igs": ctx.get("calculate_igs.data.igs_amount"),
    }


IGS_CALCULATOR = WorkflowDefinition(
    id="igs_calculator",
    name="igs.name",
    description="Computes the flat-rate IGS from revenue and registers the company.",
    steps=[
        Step(
            id="sector_selection",
            type=StepType.CHOICE,
            prompt="igs.sector",
            choices=[
                Choice(id="formal", value="formal", label="igs.sector.formal"),
                Choice(id="informal", value="informal", label="igs.sector.informal"),
            ],
            next="subcategory_selection",
        ),
        Step(
            id="subcategory_selection",
            type=StepType.CHOICE,
            prompt=subcategory_prompt,
            choices=subcategory_choices,
            next="previous_year_revenue",
        ),
        Step(
            id="previous_year_revenue",
            type=StepType.INPUT,
            prompt="igs.previous_revenue",
            validation=REVENUE_RULE,
            next="current_year_estimate",
        ),
        Step(
            id="current_year_estimate",
            type=StepType.INPUT,
            prompt="igs.current_estimate",
            validation=REVENUE_RULE,
            next=[
                Branch(f"previous_year_revenue < {SMALL_BUSINESS_CEILING}", "small_business_notice"),
                Branch(f"previous_year_revenue >= {SMALL_BUSINESS_CEILING}", "standard_notice"),
            ],
        ),
        Step(
            id="small_business_notice",
            type=StepType.MESSAGE,
            prompt="igs.small_business_notice",
            next="company_type",
        ),
        Step(
            id="standard_notice",
            type=StepType.MESSAGE,
            prompt="igs.standard_notice",
            next="company_type",
        ),
        Step(
            id="company_type",
            type=StepType.CHOICE,
            prompt="igs.company_type",
            choices=[
                Choice(id="legal_entity", value="legal_entity", label="igs.legal_entity"),
                Choice(id="individual", value="individual", label="igs.individual"),
            ],
            next="company_name",
        ),
        Step(
            id="company_name",
            type=StepType.INPUT,
            prompt="igs.company_name",
            validation=ValidationRule(required=True, min_length=2, max_length=100),
            next="phone_number",
        ),
        Step(
            id="phone_number",
            type=StepType.INPUT,
            prompt="igs.phone",
            validation=ValidationRule(required=True, type="phone"),
            next="city_selection",
        ),
        Step(
            id="city_selection",
            type=StepType.CHOICE,
            prompt="igs.city",
            choices=[Choice(id=value, value=value, label=label) for value, label in CITIES],
            next="neighborhood_input",
        ),
        Step(
            id="neighborhood_input",
            type=StepType.INPUT,
            prompt=neighborhood_prompt,
            validation=ValidationRule(required=True, min_length=2, max_length=100),
            next="niu_input",
        ),
        Step(
            id="niu_input",
            type=StepType.INPUT,
            prompt="igs.niu",
            validation=ValidationRule(required=True, custom=valid_niu),
            next="calculate_igs",
        ),
        Step(
            id="calculate_igs",
            type=StepType.SERVICE,
            service=ServiceCall(
                service="igs_service",
                method="calculate",
                params=lambda ctx: {"revenue": ctx.get("previous_year_revenue")},
            ),
            next="confirmation",
        ),
        Step(
            id="confirmation",
            type=StepType.CHOICE,
            prompt="igs.confirmation",
            choices=[
                Choice(id="confirm", value="confirm", label="igs.confirm"),
                Choice(id="restart", value="restart", label="igs.restart"),
            ],
            restart_value="restart",
            next="save_company",
        ),
        Step(
            id="save_company",
            type=StepType.SERVICE,
            service=ServiceCall(
                service="igs_service",
                method="save_company",
                params=company_params,
                progress_message="igs.saving",
            ),
            error_step="save_failed",
        ),
        Step(
            id="save_failed",
            type=StepType.MESSAGE,
            prompt="igs.save_failed",
        ),
    ],
    config=WorkflowConfig(timeout_seconds=300),
    completion_message="igs.done",
)


# ---------------- NIU finder ---------------- #

NIU_FINDER = WorkflowDefinition(
    id="niu_finder",
    name="niu.name",
    description="Looks up a taxpayer identification number by name.",
    steps=[
        Step(
            id="collect_name",
            type=StepType.INPUT,
            prompt="niu.query",
            validation=ValidationRule(required=True, min_length=2, max_length=100),
            next="search_dgi",
        ),
        Step(
            id="search_dgi",
            type=StepType.SERVICE,
            service=ServiceCall(
                service="niu_service",
                method="search",
                params=lambda ctx: {"query": ctx.get("collect_name")},
                progress_message="niu.searching",
            ),
            next=[
                Branch("search_dgi.data.count > 0", "found"),
                Branch("search_dgi.data.count == 0", "not_found"),
            ],
        ),
        Step(id="found", type=StepType.MESSAGE, prompt="niu.found"),
        Step(id="not_found", type=StepType.MESSAGE, prompt="niu.not_found"),
    ],
)


BUILTIN_WORKFLOWS = [ONBOARDING, IGS_CALCULATOR, NIU_FINDER]

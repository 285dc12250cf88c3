from __future__ import annotations

from datetime import timedelta

from venue_crm.core.enums import UNASSIGNED, AssignmentMethod, AssignmentMode
from venue_crm.schemas.policies import AssignmentConfig, SourceRule
from venue_crm.schemas.roster import EmployeeSnapshot
from venue_crm.services.assignment_engine import (
    compute_load,
    counts_toward_load,
    decide_assignment,
    pick_round_robin,
    roster_names,
)
from tests.helpers import NOW, make_lead


def _source_config(fallback: str = "round_robin") -> AssignmentConfig:
    return AssignmentConfig(
        mode=AssignmentMode.SOURCE_BASED,
        source_rules=(SourceRule(source="Meta Lead Gen", assign_to="Zia un Nabi"),),
        fallback_assignee=fallback,
    )


def test_processed_lead_keeps_its_manager_on_repeat_calls():
    lead = make_lead(manager="Ali", processed=True)
    config = AssignmentConfig(mode=AssignmentMode.ROUND_ROBIN)

    first = decide_assignment(lead, config, ["Zara", "Ali"], {"Zara": 0, "Ali": 5})
    second = decide_assignment(lead, config, ["Zara", "Ali"], {"Zara": 0, "Ali": 5})

    assert first.employee == "Ali"
    assert second.employee == "Ali"
    assert first.method == AssignmentMethod.ALREADY_PROCESSED
    assert first.assigns is False


def test_round_robin_gives_each_employee_one_lead_from_equal_start():
    roster = ["Ali", "Zara", "Omar"]
    load = {name: 0 for name in roster}
    config = AssignmentConfig()
    assigned = []

    for index in range(len(roster)):
        decision = decide_assignment(make_lead(id=f"lead-{index}"), config, roster, load)
        assert decision.method == AssignmentMethod.ROUND_ROBIN
        assigned.append(decision.employee)
        load[decision.employee] += 1

    assert sorted(assigned) == sorted(roster)


def test_round_robin_ties_go_to_first_listed():
    assert pick_round_robin(["Zara", "Ali"], {"Zara": 1, "Ali": 1}) == "Zara"
    assert pick_round_robin(["Zara", "Ali"], {"Zara": 2, "Ali": 1}) == "Ali"


def test_source_rule_wins_regardless_of_load():
    lead = make_lead(source="Meta Lead Gen")
    decision = decide_assignment(lead, _source_config(), ["Ali", "Zia un Nabi"], {"Ali": 0, "Zia un Nabi": 40})
    assert decision.employee == "Zia un Nabi"
    assert decision.method == AssignmentMethod.SOURCE_RULE


def test_source_rule_match_is_case_sensitive():
    lead = make_lead(source="meta lead gen")
    decision = decide_assignment(lead, _source_config(), ["Ali"], {"Ali": 0})
    assert decision.method == AssignmentMethod.ROUND_ROBIN


def test_unmatched_source_falls_back_to_least_loaded_employee():
    lead = make_lead(source="Walk-in")
    decision = decide_assignment(lead, _source_config(), ["Ali", "Zara"], {"Ali": 3, "Zara": 2})
    assert decision.employee == "Zara"
    assert decision.method == AssignmentMethod.ROUND_ROBIN


def test_unmatched_source_with_unassigned_fallback():
    decision = decide_assignment(make_lead(source="Walk-in"), _source_config("unassigned"), ["Ali"], {"Ali": 0})
    assert decision.employee == UNASSIGNED
    assert decision.method == AssignmentMethod.FALLBACK_UNASSIGNED
    assert decision.assigns is False


def test_unmatched_source_with_fixed_fallback():
    decision = decide_assignment(make_lead(source="Walk-in"), _source_config("Omar"), ["Ali"], {"Ali": 0})
    assert decision.employee == "Omar"
    assert decision.method == AssignmentMethod.FALLBACK_FIXED


def test_manual_mode_leaves_lead_unassigned():
    decision = decide_assignment(make_lead(), AssignmentConfig(mode=AssignmentMode.MANUAL), ["Ali"], {"Ali": 0})
    assert decision.employee == UNASSIGNED
    assert decision.method == AssignmentMethod.MANUAL


def test_single_person_mode_uses_default_assignee():
    config = AssignmentConfig(mode=AssignmentMode.SINGLE_PERSON, default_assignee="Zara")
    decision = decide_assignment(make_lead(), config, ["Ali", "Zara"], {"Ali": 0, "Zara": 9})
    assert decision.employee == "Zara"
    assert decision.method == AssignmentMethod.SINGLE_PERSON


def test_single_person_without_default_uses_round_robin():
    config = AssignmentConfig(mode=AssignmentMode.SINGLE_PERSON)
    decision = decide_assignment(make_lead(), config, ["Ali", "Zara"], {"Ali": 1, "Zara": 0})
    assert decision.employee == "Zara"
    assert decision.method == AssignmentMethod.ROUND_ROBIN


def test_empty_roster_returns_no_employees():
    decision = decide_assignment(make_lead(), AssignmentConfig(), [], {})
    assert decision.employee == UNASSIGNED
    assert decision.method == AssignmentMethod.NO_EMPLOYEES


def test_roster_names_drop_unassigned_and_duplicates():
    roster = [EmployeeSnapshot(name="Ali"), "Unassigned", "Zara", "Ali", ""]
    assert roster_names(roster) == ["Ali", "Zara"]


def test_compute_load_counts_only_new_stage_leads():
    leads = [
        make_lead(id="1", manager="Ali", stage="New"),
        make_lead(id="2", manager="Ali", stage="Contacted"),
        make_lead(id="3", manager="Zara", stage="New"),
        make_lead(id="4", manager="Nobody", stage="New"),
    ]
    assert compute_load(["Ali", "Zara"], leads) == {"Ali": 1, "Zara": 1}


def test_compute_load_counts_leads_the_greeting_advanced():
    greeted = NOW
    leads = [
        make_lead(id="1", manager="Ali", stage="Contacted", greeting_sent_at=greeted, last_contacted_at=greeted),
        make_lead(
            id="2",
            manager="Zara",
            stage="Contacted",
            greeting_sent_at=greeted,
            last_contacted_at=greeted + timedelta(hours=1),
        ),
    ]
    assert compute_load(["Ali", "Zara"], leads) == {"Ali": 1, "Zara": 0}
    assert counts_toward_load(leads[0]) is True
    assert counts_toward_load(leads[1]) is False

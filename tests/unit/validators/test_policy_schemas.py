from __future__ import annotations

from venue_crm.core.enums import AssignmentMode
from venue_crm.schemas.policies import ActionSet, AssignmentConfig


def test_assignment_config_reads_camel_case_document():
    config = AssignmentConfig.model_validate(
        {
            "mode": "source_based",
            "defaultAssignee": "Zara",
            "sourceRules": [{"source": "Meta Lead Gen", "assignTo": "Zia un Nabi"}],
            "fallbackAssignee": "unassigned",
        }
    )
    assert config.mode == AssignmentMode.SOURCE_BASED
    assert config.default_assignee == "Zara"
    assert config.rule_for("Meta Lead Gen").assign_to == "Zia un Nabi"
    assert config.fallback_assignee == "unassigned"


def test_duplicate_source_rules_last_write_wins():
    config = AssignmentConfig.model_validate(
        {
            "sourceRules": [
                {"source": "Walk-in", "assignTo": "Ali"},
                {"source": "Referral", "assignTo": "Omar"},
                {"source": "Walk-in", "assignTo": "Zara"},
            ]
        }
    )
    assert len(config.source_rules) == 2
    assert config.rule_for("Walk-in").assign_to == "Zara"


def test_blank_rules_and_fallback_are_dropped():
    config = AssignmentConfig.model_validate(
        {"sourceRules": [{"source": "", "assignTo": "Ali"}, {"source": "Walk-in"}], "fallbackAssignee": ""}
    )
    assert config.source_rules == ()
    assert config.fallback_assignee == "round_robin"


def test_action_set_defaults_off_and_accepts_camel_case():
    assert ActionSet() == ActionSet(
        add_to_call_list=False, send_notification=False, email_response=False, text_auto_response=False, ai_bot=False
    )
    actions = ActionSet.model_validate({"addToCallList": True, "aiBot": True})
    assert actions.add_to_call_list is True
    assert actions.ai_bot is True

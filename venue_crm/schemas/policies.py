"""Policy document schemas: assignment rules and per-source automation toggles."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from venue_crm.core.enums import FALLBACK_ROUND_ROBIN, AssignmentMode


class _PolicyModel(BaseModel):
    # Documents written by the admin panel use camelCase keys.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class SourceRule(_PolicyModel):
    source: str = Field(min_length=1)
    assign_to: str = Field(min_length=1)


class AssignmentConfig(_PolicyModel):
    mode: AssignmentMode = AssignmentMode.ROUND_ROBIN
    default_assignee: str | None = None
    source_rules: tuple[SourceRule, ...] = ()
    fallback_assignee: str = FALLBACK_ROUND_ROBIN

    @field_validator("source_rules", mode="before")
    @classmethod
    def drop_blank_rules(cls, value):
        if value is None:
            return ()
        return tuple(
            rule for rule in value
            if not isinstance(rule, dict) or (rule.get("source") and (rule.get("assignTo") or rule.get("assign_to")))
        )

    @field_validator("source_rules")
    @classmethod
    def last_write_wins(cls, rules: tuple[SourceRule, ...]) -> tuple[SourceRule, ...]:
        by_source: dict[str, SourceRule] = {}
        for rule in rules:
            by_source[rule.source] = rule
        return tuple(by_source.values())

    @field_validator("fallback_assignee", mode="before")
    @classmethod
    def default_fallback(cls, value):
        return value or FALLBACK_ROUND_ROBIN

    def rule_for(self, source: str | None) -> SourceRule | None:
        """Case-sensitive exact lookup of a source rule."""
        if source is None:
            return None
        for rule in self.source_rules:
            if rule.source == source:
                return rule
        return None


class ActionSet(_PolicyModel):
    """Enabled automation actions for one lead source."""

    add_to_call_list: bool = False
    send_notification: bool = False
    email_response: bool = False
    text_auto_response: bool = False
    ai_bot: bool = False


SAFE_DEFAULT_ACTIONS = ActionSet(add_to_call_list=True, send_notification=True)

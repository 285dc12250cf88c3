"""Lead stage machine.

The machine does not gatekeep: any pair of known stages is accepted. Its job is
to attach side effects to the stage being entered and to produce the history
entry for the move.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from typing import Any

from venue_crm.core.enums import TRIGGER_MANUAL, LeadStage
from venue_crm.core.exceptions import InvalidTransition
from venue_crm.schemas.leads import LeadSnapshot, StageHistoryItem

CONTACTED_FOLLOW_UP = timedelta(hours=24)
QUOTED_FOLLOW_UP = timedelta(hours=72)
SITE_VISIT_REMINDER_LEAD = timedelta(days=1)


@dataclass(frozen=True)
class TransitionPlan:
    """What applying a transition would write.

    `updates` is merged into the lead row, `history_entry` appended to its
    stage history and `push_invoice` tells the caller to call the invoicing
    collaborator after the write commits. A same-stage request yields an empty
    plan.
    """

    allowed: bool
    from_stage: str
    to_stage: str
    updates: dict[str, Any] = field(default_factory=dict)
    history_entry: StageHistoryItem | None = None
    push_invoice: bool = False

    @property
    def is_noop(self) -> bool:
        return self.history_entry is None


class StageMachine:
    """Side-effect table keyed by the stage being entered."""

    def __init__(
        self,
        contacted_follow_up: timedelta = CONTACTED_FOLLOW_UP,
        quoted_follow_up: timedelta = QUOTED_FOLLOW_UP,
        site_visit_lead: timedelta = SITE_VISIT_REMINDER_LEAD,
    ) -> None:
        self._contacted_follow_up = contacted_follow_up
        self._quoted_follow_up = quoted_follow_up
        self._site_visit_lead = site_visit_lead

    def can_transition(self, current: str | None, target: str | None) -> bool:
        return LeadStage.parse(current) is not None and LeadStage.parse(target) is not None

    def assert_transition(self, current: str | None, target: str | None) -> tuple[LeadStage, LeadStage]:
        source = LeadStage.parse(current)
        destination = LeadStage.parse(target)
        if source is None or destination is None:
            raise InvalidTransition(current, target)
        return source, destination

    def side_effects(self, stage: LeadStage, lead: LeadSnapshot, now: datetime) -> dict[str, Any]:
        if stage == LeadStage.CONTACTED:
            return {"follow_up_due": now + self._contacted_follow_up}
        if stage == LeadStage.SITE_VISIT_SCHEDULED:
            if lead.event_date is None:
                return {}
            return {"site_visit_reminder_at": datetime.combine(lead.event_date, time.min) - self._site_visit_lead}
        if stage == LeadStage.QUOTED:
            return {"quote_follow_up_due": now + self._quoted_follow_up}
        if stage == LeadStage.LOST:
            return {"lost_at": now}
        return {}

    def plan(
        self,
        current: str | None,
        requested: str | None,
        lead: LeadSnapshot,
        now: datetime,
        trigger: str = TRIGGER_MANUAL,
        actor: str | None = None,
    ) -> TransitionPlan:
        source, destination = self.assert_transition(current, requested)
        if source == destination:
            return TransitionPlan(allowed=True, from_stage=source.value, to_stage=destination.value)

        updates = {"stage": destination.value, "stage_updated_at": now}
        updates.update(self.side_effects(destination, lead, now))
        history = StageHistoryItem(
            from_stage=source.value,
            to_stage=destination.value,
            trigger=trigger or TRIGGER_MANUAL,
            actor=actor,
            timestamp=now,
        )
        return TransitionPlan(
            allowed=True,
            from_stage=source.value,
            to_stage=destination.value,
            updates=updates,
            history_entry=history,
            push_invoice=destination == LeadStage.BOOKED,
        )


_default_machine = StageMachine()


def plan_transition(
    current: str | None,
    requested: str | None,
    lead: LeadSnapshot,
    now: datetime,
    trigger: str = TRIGGER_MANUAL,
    actor: str | None = None,
) -> TransitionPlan:
    """Plan a stage move with the default side-effect table.

    Raises InvalidTransition when either stage is not a known stage value.
    """
    return _default_machine.plan(current, requested, lead, now, trigger=trigger, actor=actor)

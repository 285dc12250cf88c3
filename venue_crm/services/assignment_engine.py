"""Assignment engine: picks the employee a new lead goes to."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass

from venue_crm.core.enums import (
    FALLBACK_ROUND_ROBIN,
    FALLBACK_UNASSIGNED,
    STAGE_CONTACTED,
    STAGE_NEW,
    UNASSIGNED,
    AssignmentMethod,
    AssignmentMode,
)
from venue_crm.core.exceptions import NoEligibleAssignee
from venue_crm.schemas.leads import LeadSnapshot
from venue_crm.schemas.policies import AssignmentConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AssignmentDecision:
    employee: str
    method: AssignmentMethod

    @property
    def assigns(self) -> bool:
        return self.employee != UNASSIGNED and self.method != AssignmentMethod.ALREADY_PROCESSED


def roster_names(roster: Iterable) -> list[str]:
    """Names in declaration order, without blanks, duplicates or the Unassigned sentinel."""
    names: list[str] = []
    for member in roster:
        name = member if isinstance(member, str) else getattr(member, "name", None)
        if name and name != UNASSIGNED and name not in names:
            names.append(name)
    return names


def counts_toward_load(lead: LeadSnapshot) -> bool:
    """Whether a lead still sits in its employee's intake queue.

    New leads count, and so do leads the automatic greeting moved to Contacted
    that nobody has followed up on since.
    """
    if lead.stage == STAGE_NEW:
        return True
    return (
        lead.stage == STAGE_CONTACTED
        and lead.greeting_sent_at is not None
        and lead.last_contacted_at == lead.greeting_sent_at
    )


def compute_load(roster: Sequence[str], leads: Iterable[LeadSnapshot]) -> dict[str, int]:
    """Count intake-queue leads per roster employee."""
    load = {name: 0 for name in roster}
    for lead in leads:
        if lead.manager in load and counts_toward_load(lead):
            load[lead.manager] += 1
    return load


def pick_round_robin(roster: Sequence[str], load: Mapping[str, int]) -> str:
    """Employee with the strictly lowest load; ties go to the first listed."""
    if not roster:
        raise NoEligibleAssignee("Roster has no assignable employees.")
    chosen = roster[0]
    lowest = load.get(chosen, 0)
    for name in roster[1:]:
        count = load.get(name, 0)
        if count < lowest:
            chosen, lowest = name, count
    return chosen


def _round_robin(roster: Sequence[str], load: Mapping[str, int]) -> AssignmentDecision:
    try:
        return AssignmentDecision(pick_round_robin(roster, load), AssignmentMethod.ROUND_ROBIN)
    except NoEligibleAssignee:
        return AssignmentDecision(UNASSIGNED, AssignmentMethod.NO_EMPLOYEES)


def _fallback(config: AssignmentConfig, roster: Sequence[str], load: Mapping[str, int]) -> AssignmentDecision:
    fallback = config.fallback_assignee.strip()
    if fallback == FALLBACK_ROUND_ROBIN:
        return _round_robin(roster, load)
    if fallback.lower() == FALLBACK_UNASSIGNED:
        return AssignmentDecision(UNASSIGNED, AssignmentMethod.FALLBACK_UNASSIGNED)
    return AssignmentDecision(fallback, AssignmentMethod.FALLBACK_FIXED)


def decide_assignment(
    lead: LeadSnapshot,
    config: AssignmentConfig,
    roster: Iterable,
    load: Mapping[str, int],
) -> AssignmentDecision:
    """Compute the assignee for an unassigned lead.

    Pure: nothing is written. A lead that is already processed (or already has
    an assignee) keeps its manager, so repeated dispatch cannot reassign it.
    """
    if lead.processed or lead.manager != UNASSIGNED:
        return AssignmentDecision(lead.manager, AssignmentMethod.ALREADY_PROCESSED)

    names = roster_names(roster)
    mode = config.mode

    if mode == AssignmentMode.MANUAL:
        decision = AssignmentDecision(UNASSIGNED, AssignmentMethod.MANUAL)
    elif mode == AssignmentMode.SINGLE_PERSON:
        if config.default_assignee:
            decision = AssignmentDecision(config.default_assignee, AssignmentMethod.SINGLE_PERSON)
        else:
            decision = _round_robin(names, load)
    elif mode == AssignmentMode.SOURCE_BASED:
        rule = config.rule_for(lead.source)
        if rule is not None:
            decision = AssignmentDecision(rule.assign_to, AssignmentMethod.SOURCE_RULE)
        else:
            decision = _fallback(config, names, load)
    else:
        decision = _round_robin(names, load)

    logger.debug(
        "assignment.decided",
        extra={
            "event": "assignment.decided",
            "lead_id": lead.id,
            "mode": mode.value,
            "employee": decision.employee,
            "method": decision.method.value,
        },
    )
    return decision

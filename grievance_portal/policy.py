"""Time-based escalation policy.

Pure functions over a ``GrievanceRecord`` and the current time. The lifecycle
service runs ``apply_time_policy`` whenever it loads a record, so both
triggers are evaluated lazily at access time:

* inactivity: five days without an update moves responsibility one level up
  the hierarchy and records the move in the escalation history;
* due date: a breached due date flags the record as escalated without
  reassigning it.

A single pass never writes two escalation steps: the due-date check reads the
status left by the inactivity check.
"""

from datetime import datetime, timedelta
from typing import Optional

from .models import (
    EscalationEntry, GrievanceRecord, GrievanceStatus, Level, LEVEL_LABELS, LEVEL_ORDER,
    Priority, ResolutionStep, StepActor, TERMINAL_STATUSES,
)

INACTIVITY_DAYS = 5
AUTO_ESCALATION_REASON = f"Auto-escalated due to inactivity for {INACTIVITY_DAYS} days"

DUE_DATE_OFFSETS = {
    "low": timedelta(days=3),
    "medium": timedelta(days=2),
    "high": timedelta(hours=24),
}

SYSTEM_ACTOR = StepActor(name="System", role="system", id="system")


def compute_due_date(priority: Priority, created_at: datetime) -> datetime:
    offset = DUE_DATE_OFFSETS.get(Priority(priority).value, DUE_DATE_OFFSETS["medium"])
    return created_at + offset


def successor(level: Level) -> Optional[Level]:
    """Next level in the hierarchy, or None at the top."""
    idx = LEVEL_ORDER.index(Level(level))
    if idx + 1 < len(LEVEL_ORDER):
        return LEVEL_ORDER[idx + 1]
    return None


def level_rank(level: Level) -> int:
    return LEVEL_ORDER.index(Level(level))


def is_terminal(record: GrievanceRecord) -> bool:
    return record.status in TERMINAL_STATUSES


def is_overdue(record: GrievanceRecord, now: datetime) -> bool:
    return record.due_date is not None and now > record.due_date and not is_terminal(record)


def apply_time_policy(record: GrievanceRecord, now: datetime, is_new: bool = False) -> GrievanceRecord:
    """Return a copy of ``record`` with the time policy applied at ``now``."""
    evaluated = record.model_copy(deep=True)

    if is_new or is_terminal(evaluated):
        evaluated.last_updated_at = now
        return evaluated

    days_since_update = (now - evaluated.last_updated_at) / timedelta(days=1)

    if days_since_update >= INACTIVITY_DAYS:
        next_level = successor(evaluated.current_level)
        if next_level is not None:
            evaluated.escalation_history.append(EscalationEntry(
                from_level=evaluated.current_level, to_level=next_level,
                reason=AUTO_ESCALATION_REASON, is_automatic=True, date=now))
            evaluated.resolution_steps.append(ResolutionStep(
                status=GrievanceStatus.ESCALATED, actor=SYSTEM_ACTOR, date=now,
                comment=(f"Automatically escalated to {LEVEL_LABELS[next_level.value]} "
                         f"due to inactivity for {INACTIVITY_DAYS} days")))
            evaluated.current_level = next_level
            evaluated.status = GrievanceStatus.ESCALATED

    if (evaluated.due_date is not None and now > evaluated.due_date
            and evaluated.status != GrievanceStatus.ESCALATED):
        evaluated.status = GrievanceStatus.ESCALATED
        evaluated.resolution_steps.append(ResolutionStep(
            status=GrievanceStatus.ESCALATED, actor=SYSTEM_ACTOR, date=now,
            comment=f"Grievance has passed its due date ({evaluated.due_date.date().isoformat()})"))

    evaluated.last_updated_at = now
    return evaluated


def policy_changed(before: GrievanceRecord, after: GrievanceRecord) -> bool:
    """True when the policy touched anything besides the update timestamp."""
    return (
        before.status != after.status
        or before.current_level != after.current_level
        or len(before.resolution_steps) != len(after.resolution_steps)
        or len(before.escalation_history) != len(after.escalation_history)
    )

"""Grievance lifecycle service.

Every operation follows the same shape: validate input, load the record,
run the time policy, authorize against the role table, mutate, then save
with the revision that was loaded. A failed check raises before anything is
written; a lost race surfaces as ``ConflictError``.
"""

import logging
import uuid
from typing import Dict, List, Optional

from . import access
from .clock import Clock, SystemClock
from .errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from .models import (
    Actor, Comment, CommentView, EscalationEntry, GrievanceCreate, GrievanceRecord,
    GrievanceStatistics, GrievanceStatus, GrievanceView, Level, LEVEL_LABELS, PersonSummary,
    PriorityCounts, ResolutionStep, StatusCounts, StepActor, TERMINAL_STATUSES, UserRecord,
)
from .policy import apply_time_policy, compute_due_date, is_overdue, policy_changed, successor
from .protocols import GrievanceStore, UserStore
from .visibility import redact

logger = logging.getLogger(__name__)

SUBMISSION_COMMENT = "Grievance submitted"


def _require_text(value: Optional[str], field: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} is required")
    return value.strip()


def _step_actor(actor: Actor) -> StepActor:
    return StepActor(name=actor.name, role=access.normalize_role(actor.role), id=actor.id)


class GrievanceService:
    def __init__(self, store: GrievanceStore, users: UserStore, clock: Optional[Clock] = None) -> None:
        self._store = store
        self._users = users
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def submit(self, data: GrievanceCreate, actor: Actor) -> GrievanceView:
        access.scope_for(actor)
        if not access.can_submit(actor):
            raise AuthorizationError("Only students can submit grievances")
        title = _require_text(data.title, "title")
        description = _require_text(data.description, "description")
        department = _require_text(data.department, "department")
        category = _require_text(data.category, "category")

        now = self._clock.now()
        attachments = [a.model_copy(update={"uploaded_at": a.uploaded_at or now}) for a in data.attachments]
        record = GrievanceRecord(
            id=str(uuid.uuid4()), title=title, description=description,
            department=department, category=category, priority=data.priority,
            is_anonymous=data.is_anonymous, status=GrievanceStatus.PENDING,
            current_level=Level.DEPARTMENT_ADMIN, due_date=compute_due_date(data.priority, now),
            submitted_by=actor.id, attachments=attachments,
            resolution_steps=[ResolutionStep(
                status=GrievanceStatus.PENDING, actor=_step_actor(actor),
                comment=SUBMISSION_COMMENT, date=now)],
            created_at=now, last_updated_at=now)
        record = apply_time_policy(record, now, is_new=True)
        self._store.insert(record)
        logger.info("Grievance %s submitted by %s (priority %s)", record.id, actor.id, record.priority.value)
        return self._view(record, actor)

    def update_status(self, grievance_id: str, new_status: Optional[GrievanceStatus],
                      comment: Optional[str], actor: Actor) -> GrievanceView:
        if new_status is None:
            raise ValidationError("status is required")
        try:
            new_status = GrievanceStatus(new_status)
        except ValueError:
            raise ValidationError(f"Invalid status: {new_status}")
        comment = _require_text(comment, "comment")

        loaded, record, now = self._load_for_mutation(grievance_id)
        if access.is_student(actor):
            raise AuthorizationError("Students cannot update grievance status")
        if not access.can_manage(actor, record):
            raise AuthorizationError("Not authorized to update this grievance")
        if record.status in TERMINAL_STATUSES:
            raise ConflictError(f"Grievance is already {record.status.value}")

        previous = record.status
        record.status = new_status
        record.resolution_steps.append(ResolutionStep(
            status=new_status, actor=_step_actor(actor), comment=comment, date=now))
        saved = self._store.save(record, loaded.revision)
        logger.info("Grievance %s status %s -> %s by %s", grievance_id, previous.value, new_status.value, actor.id)
        return self._view(saved, actor)

    def escalate(self, grievance_id: str, reason: Optional[str], actor: Actor) -> GrievanceView:
        reason = _require_text(reason, "reason")

        loaded, record, now = self._load_for_mutation(grievance_id)
        if access.is_student(actor):
            raise AuthorizationError("Not authorized to escalate grievances")
        if not access.can_manage(actor, record):
            raise AuthorizationError("Not authorized to escalate this grievance")
        if record.status in TERMINAL_STATUSES:
            raise ConflictError(f"Grievance is already {record.status.value}")
        next_level = successor(record.current_level)
        if next_level is None:
            raise ConflictError("Grievance is already at the highest level")

        record.escalation_history.append(EscalationEntry(
            from_level=record.current_level, from_user=actor.id, to_level=next_level,
            reason=reason, is_automatic=False, date=now))
        record.resolution_steps.append(ResolutionStep(
            status=GrievanceStatus.ESCALATED, actor=_step_actor(actor), date=now,
            comment=f"Manually escalated to {LEVEL_LABELS[next_level.value]}: {reason}"))
        previous_level = record.current_level
        record.current_level = next_level
        record.status = GrievanceStatus.ESCALATED
        saved = self._store.save(record, loaded.revision)
        logger.info("Grievance %s escalated %s -> %s by %s", grievance_id,
                    previous_level.value, next_level.value, actor.id)
        return self._view(saved, actor)

    def add_comment(self, grievance_id: str, text: Optional[str], actor: Actor) -> List[CommentView]:
        text = _require_text(text, "text")

        loaded, record, now = self._load_for_mutation(grievance_id)
        if not access.can_view(actor, record):
            raise AuthorizationError("Not authorized to comment on this grievance")

        record.comments.insert(0, Comment(text=text, posted_by=actor.id, posted_at=now))
        saved = self._store.save(record, loaded.revision)
        view = self._view(saved, actor)
        return view.comments

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def list_for(self, actor: Actor) -> List[GrievanceView]:
        return [self._view(r, actor) for r in self._visible_records(actor)]

    def get_by_id(self, grievance_id: str, actor: Actor) -> GrievanceView:
        access.scope_for(actor)
        record = self._store.get(grievance_id)
        if record is None:
            raise NotFoundError("Grievance not found")
        record = self._refresh(record, self._clock.now())
        if not access.can_view(actor, record):
            raise AuthorizationError("Not authorized to view this grievance")
        return self._view(record, actor)

    def statistics(self, actor: Actor) -> GrievanceStatistics:
        now = self._clock.now()
        stats = GrievanceStatistics(by_status=StatusCounts(), by_priority=PriorityCounts())
        for record in self._visible_records(actor):
            stats.total += 1
            setattr(stats.by_status, record.status.value,
                    getattr(stats.by_status, record.status.value) + 1)
            setattr(stats.by_priority, record.priority.value,
                    getattr(stats.by_priority, record.priority.value) + 1)
            if is_overdue(record, now):
                stats.overdue += 1
        return stats

    def sweep(self) -> int:
        """Apply the time policy to every open record; return how many changed."""
        now = self._clock.now()
        open_records = self._store.find({"status": {"$nin": [s.value for s in TERMINAL_STATUSES]}})
        changed = 0
        for record in open_records:
            evaluated = apply_time_policy(record, now)
            if not policy_changed(record, evaluated):
                continue
            try:
                self._store.save(evaluated, record.revision)
                changed += 1
            except ConflictError:
                logger.info("Sweep skipped grievance %s: modified concurrently", record.id)
        logger.info("Sweep evaluated %d open grievances, %d changed", len(open_records), changed)
        return changed

    def submitter_of(self, grievance_id: str) -> Optional[UserRecord]:
        """Real submitter account, for notifications that bypass redaction."""
        record = self._store.get(grievance_id)
        return self._users.get(record.submitted_by) if record else None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _load_for_mutation(self, grievance_id: str):
        loaded = self._store.get(grievance_id)
        if loaded is None:
            raise NotFoundError("Grievance not found")
        now = self._clock.now()
        evaluated = apply_time_policy(loaded, now)
        if policy_changed(loaded, evaluated):
            logger.info("Time policy escalated grievance %s to %s (%s)", grievance_id,
                        evaluated.current_level.value, evaluated.status.value)
        return loaded, evaluated, now

    def _visible_records(self, actor: Actor) -> List[GrievanceRecord]:
        """Records matching the role query, re-checked after the policy may have moved them."""
        query = access.listing_query(actor)
        now = self._clock.now()
        records = [self._refresh(r, now) for r in self._store.find(query)]
        visible = [r for r in records if access.can_view(actor, r)]
        visible.sort(key=lambda r: r.created_at, reverse=True)
        return visible

    def _refresh(self, record: GrievanceRecord, now) -> GrievanceRecord:
        """Read-path policy run: persist only when the policy changed the record."""
        evaluated = apply_time_policy(record, now)
        if not policy_changed(record, evaluated):
            return record
        try:
            saved = self._store.save(evaluated, record.revision)
        except ConflictError:
            latest = self._store.get(record.id)
            return latest if latest is not None else record
        logger.info("Time policy escalated grievance %s to %s (%s)", record.id,
                    saved.current_level.value, saved.status.value)
        return saved

    def _people(self, user_ids) -> Dict[str, PersonSummary]:
        people = {}
        for user_id in set(user_ids):
            user = self._users.get(user_id)
            if user is not None:
                people[user_id] = PersonSummary(
                    id=user.id, name=user.name, email=user.email,
                    department=user.department, role=user.role.value)
        return people

    def _view(self, record: GrievanceRecord, actor: Actor) -> GrievanceView:
        people = self._people([record.submitted_by] + [c.posted_by for c in record.comments])

        def person(user_id: str) -> PersonSummary:
            return people.get(user_id) or PersonSummary(id=user_id, name="Unknown user")

        data = record.model_dump(exclude={"revision", "submitted_by", "comments"})
        view = GrievanceView(
            **data,
            submitted_by=person(record.submitted_by),
            comments=[CommentView(text=c.text, posted_by=person(c.posted_by), posted_at=c.posted_at)
                      for c in record.comments])
        return redact(view, actor.role)

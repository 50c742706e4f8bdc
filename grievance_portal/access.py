"""Role-scoped access rules.

One table maps every role to the records it may list, view and manage. The
listing query is a MongoDB filter over stored (snake_case) keys, so the same
rule drives both the store query and the per-record checks.
"""

from dataclasses import dataclass
from typing import Callable, Dict

from .errors import AuthorizationError
from .models import Actor, GrievanceRecord, Level, Role

ROLE_ALIASES = {"dean": Role.DIRECTOR.value}
SUBMITTING_ROLES = (Role.STUDENT.value,)


@dataclass(frozen=True)
class RoleScope:
    query: Callable[[Actor], dict]
    can_view: Callable[[Actor, GrievanceRecord], bool]
    can_manage: Callable[[Actor, GrievanceRecord], bool]


def _owner_query(actor: Actor) -> dict:
    return {"submitted_by": actor.id}


def _is_owner(actor: Actor, record: GrievanceRecord) -> bool:
    return record.submitted_by == actor.id


def _never(actor: Actor, record: GrievanceRecord) -> bool:
    return False


def _department_level_query(actor: Actor) -> dict:
    return {"department": actor.department, "current_level": normalize_role(actor.role)}


def _holds_department_level(actor: Actor, record: GrievanceRecord) -> bool:
    return (
        actor.department is not None
        and record.department == actor.department
        and record.current_level.value == normalize_role(actor.role)
    )


def _director_query(actor: Actor) -> dict:
    return {"current_level": Level.DIRECTOR.value}


def _at_director_level(actor: Actor, record: GrievanceRecord) -> bool:
    return record.current_level == Level.DIRECTOR


_DEPARTMENT_SCOPE = RoleScope(_department_level_query, _holds_department_level, _holds_department_level)

ROLE_SCOPES: Dict[str, RoleScope] = {
    Role.STUDENT.value: RoleScope(_owner_query, _is_owner, _never),
    Role.DEPARTMENT_ADMIN.value: _DEPARTMENT_SCOPE,
    Role.HOD.value: _DEPARTMENT_SCOPE,
    Role.DIRECTOR.value: RoleScope(_director_query, _at_director_level, _at_director_level),
}


def normalize_role(role: str) -> str:
    role = getattr(role, "value", role)
    return ROLE_ALIASES.get(role, role)


def scope_for(actor: Actor) -> RoleScope:
    scope = ROLE_SCOPES.get(normalize_role(actor.role))
    if scope is None:
        raise AuthorizationError("Unauthorized role")
    return scope


def is_student(actor: Actor) -> bool:
    return normalize_role(actor.role) == Role.STUDENT.value


def listing_query(actor: Actor) -> dict:
    return scope_for(actor).query(actor)


def can_view(actor: Actor, record: GrievanceRecord) -> bool:
    return scope_for(actor).can_view(actor, record)


def can_manage(actor: Actor, record: GrievanceRecord) -> bool:
    return scope_for(actor).can_manage(actor, record)


def can_submit(actor: Actor) -> bool:
    return normalize_role(actor.role) in SUBMITTING_ROLES

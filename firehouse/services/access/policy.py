"""
Bulletin authorization engine.

Pure functions deciding whether a role set may view, post to or delete
from a bulletin category. Decisions are the union over every role the
user holds: a multi-role user gets the privileges of each of their roles.
``admin`` and ``super_user`` short-circuit every check.

Bulletin authorship is not considered here; the bulletin store grants
deletion to the original author separately.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import StrEnum

from firehouse.services.access.ranking import Role, has_override, rank


class BulletinCategory(StrEnum):
    WEST_WING = "west-wing"
    TRAINING = "training"
    FIRE_PREVENTION = "fire-prevention"
    REPAIR_DIVISION = "repair-division"
    ALARM_DIVISION = "alarm-division"
    COMMISSIONERS = "commissioners"


GENERAL_CATEGORIES: frozenset[str] = frozenset(
    {
        BulletinCategory.WEST_WING,
        BulletinCategory.TRAINING,
        BulletinCategory.FIRE_PREVENTION,
        BulletinCategory.REPAIR_DIVISION,
    }
)
OPERATIONAL_CATEGORIES: frozenset[str] = GENERAL_CATEGORIES | {BulletinCategory.ALARM_DIVISION}

SingleRoleRule = Callable[[str], bool]


def _rank_at_least(threshold: Role) -> SingleRoleRule:
    floor = rank(threshold)
    return lambda role: rank(role) >= floor


def _named_or_chief(*names: Role) -> SingleRoleRule:
    allowed = {name.value for name in names}
    chief = _rank_at_least(Role.CHIEF)
    return lambda role: role in allowed or chief(role)


def _everyone(_role: str) -> bool:
    return True


def _nobody(_role: str) -> bool:
    return False


_VIEW_RULES: dict[str, SingleRoleRule] = {
    **{category: _everyone for category in GENERAL_CATEGORIES},
    BulletinCategory.ALARM_DIVISION: _named_or_chief(Role.ALARM_DIVISION, Role.ALARM_SUPERVISOR),
    BulletinCategory.COMMISSIONERS: _rank_at_least(Role.FIRE_COMMISSIONER),
}

_POST_RULES: dict[str, SingleRoleRule] = {
    BulletinCategory.WEST_WING: _rank_at_least(Role.DEPUTY),
    BulletinCategory.TRAINING: _named_or_chief(Role.TRAINING),
    BulletinCategory.FIRE_PREVENTION: _named_or_chief(Role.PREVENTION_CAPTAIN),
    BulletinCategory.REPAIR_DIVISION: _named_or_chief(Role.REPAIR_DIVISION_SUPERVISOR),
    BulletinCategory.ALARM_DIVISION: _named_or_chief(Role.ALARM_SUPERVISOR),
    BulletinCategory.COMMISSIONERS: _rank_at_least(Role.FIRE_COMMISSIONER),
}

_DELETE_RULES: dict[str, SingleRoleRule] = {
    **{category: _rank_at_least(Role.CHIEF) for category in OPERATIONAL_CATEGORIES},
    BulletinCategory.COMMISSIONERS: _rank_at_least(Role.FIRE_COMMISSIONER),
}


def _decide(
    roles: Iterable[str],
    category: str,
    rules: dict[str, SingleRoleRule],
    default: SingleRoleRule,
) -> bool:
    roles = list(roles)
    if has_override(roles):
        return True
    rule = rules.get(category, default)
    return any(rule(role) for role in roles)


def can_view(roles: Iterable[str], category: str) -> bool:
    # Unknown categories are viewable; there is nothing in them to leak.
    return _decide(roles, category, _VIEW_RULES, _everyone)


def can_post(roles: Iterable[str], category: str) -> bool:
    return _decide(roles, category, _POST_RULES, _nobody)


def can_delete(roles: Iterable[str], category: str) -> bool:
    return _decide(roles, category, _DELETE_RULES, _nobody)


@dataclass(frozen=True)
class CategoryPermissions:
    can_view: bool
    can_post: bool
    can_delete: bool


def permissions(roles: Iterable[str], category: str) -> CategoryPermissions:
    roles = list(roles)
    return CategoryPermissions(
        can_view=can_view(roles, category),
        can_post=can_post(roles, category),
        can_delete=can_delete(roles, category),
    )

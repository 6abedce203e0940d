"""
Role ranking table.

A fixed total order over department roles. Higher rank means more
privileged. Unknown role names rank 0 and therefore fail every
threshold comparison.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import StrEnum


class Role(StrEnum):
    """Department roles, lowest to highest."""

    FIREFIGHTER = "firefighter"
    REPAIR_DIVISION = "repair_division"
    ALARM_DIVISION = "alarm_division"
    OFFICER = "officer"
    PREVENTION = "prevention"
    REPAIR_DIVISION_SUPERVISOR = "repair_division_supervisor"
    TRAINING = "training"
    PREVENTION_CAPTAIN = "prevention_captain"
    ALARM_SUPERVISOR = "alarm_supervisor"
    FIRE_COMMISSIONER = "fire_commissioner"
    DEPUTY = "deputy"
    XO = "XO"
    CHIEF = "chief"
    ADMIN = "admin"
    SUPER_USER = "super_user"


ROLE_RANKS: dict[str, int] = {role.value: index for index, role in enumerate(Role, start=1)}

# Roles that pass every bulletin check regardless of category.
OVERRIDE_ROLES: frozenset[str] = frozenset({Role.ADMIN.value, Role.SUPER_USER.value})


def rank(role: str) -> int:
    return ROLE_RANKS.get(role, 0)


def is_known_role(role: str) -> bool:
    return role in ROLE_RANKS


def at_least(roles: Iterable[str], threshold: str) -> bool:
    """True if any role in ``roles`` ranks at or above ``threshold``."""
    floor = rank(threshold)
    return any(rank(role) >= floor for role in roles)


def has_override(roles: Iterable[str]) -> bool:
    return any(role in OVERRIDE_ROLES for role in roles)


def highest_role(roles: Iterable[str]) -> str:
    """
    Return the highest-ranked member of a role set.

    Raises:
        ValueError: If ``roles`` is empty.
    """
    return max(roles, key=rank)


def order_by_rank(roles: Iterable[str]) -> list[str]:
    """Deduplicate and sort a role set from most to least privileged."""
    return sorted(set(roles), key=lambda role: (-rank(role), role))

"""Unit tests for firehouse.services.access.ranking."""
import pytest

from firehouse.services.access.ranking import (
    Role,
    at_least,
    has_override,
    highest_role,
    is_known_role,
    order_by_rank,
    rank,
)


def test_ranks_follow_declared_order():
    assert rank("firefighter") == 1
    assert rank("XO") == 12
    assert rank("chief") == 13
    assert rank("super_user") == 15
    assert rank("deputy") > rank("fire_commissioner") > rank("alarm_supervisor")


def test_unknown_role_ranks_zero_without_raising():
    assert rank("janitor") == 0
    assert rank("") == 0
    assert not is_known_role("janitor")


def test_ranks_are_distinct():
    assert len({rank(role) for role in Role}) == len(Role)


def test_at_least_is_true_when_any_role_qualifies():
    assert at_least(["firefighter", "chief"], "deputy")
    assert not at_least(["firefighter", "training"], "chief")
    assert not at_least([], "firefighter")


def test_highest_role_picks_max_rank():
    assert highest_role(["training", "firefighter", "officer"]) == "training"
    assert highest_role(["admin", "chief"]) == "admin"


def test_highest_role_rejects_empty_set():
    with pytest.raises(ValueError):
        highest_role([])


def test_override_roles():
    assert has_override(["firefighter", "admin"])
    assert has_override(["super_user"])
    assert not has_override(["chief", "XO"])


def test_order_by_rank_dedupes_and_sorts_descending():
    assert order_by_rank(["firefighter", "chief", "firefighter", "training"]) == [
        "chief",
        "training",
        "firefighter",
    ]

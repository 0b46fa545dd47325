from datetime import datetime

import pytest

from impact_ledger.domain.values import (
    MAX_LEVEL,
    MIN_LEVEL,
    NEGATIVE_PRACTICE_MULTIPLIERS,
    TOTAL_VALUE_POINTS,
    VALUE_CATEGORIES,
    category_ids,
    commit,
    default_settings,
    is_committed,
    multiplier_for_category,
    multiplier_for_level,
    normalize_settings,
    reorder,
    reset_to_default,
    update_level,
    values_hash,
)
from impact_ledger.errors import ValidationError


def test_default_settings_are_neutral_and_balanced():
    settings = default_settings()
    assert set(settings.levels) == set(category_ids())
    assert all(level == 3 for level in settings.levels.values())
    assert sum(settings.levels.values()) == TOTAL_VALUE_POINTS == 15
    assert settings.order == [category.id for category in VALUE_CATEGORIES]
    assert settings.values_hash == values_hash(settings.levels)


def test_increase_reclaims_from_end_of_order():
    settings = default_settings()
    updated = update_level(settings, "animalWelfare", 5)

    assert updated.levels["animalWelfare"] == 5
    # Last in order gives first.
    assert updated.levels["digitalRights"] == 1
    assert updated.levels["laborEthics"] == 3
    assert sum(updated.levels.values()) == TOTAL_VALUE_POINTS


def test_increase_walks_further_when_last_is_at_minimum():
    settings = update_level(default_settings(), "animalWelfare", 5)
    updated = update_level(settings, "communitySupport", 5)

    assert updated.levels["communitySupport"] == 5
    assert updated.levels["digitalRights"] == 1
    assert updated.levels["laborEthics"] == 1
    assert sum(updated.levels.values()) == TOTAL_VALUE_POINTS


def test_decrease_redistributes_to_front_of_order():
    settings = default_settings()
    updated = update_level(settings, "digitalRights", 1)

    assert updated.levels["digitalRights"] == 1
    assert updated.levels["animalWelfare"] == 5
    assert updated.levels["communitySupport"] == 3
    assert sum(updated.levels.values()) == TOTAL_VALUE_POINTS


def test_reclaim_follows_custom_order():
    settings = reorder(default_settings(), [
        "digitalRights", "laborEthics", "environment", "communitySupport", "animalWelfare",
    ])
    updated = update_level(settings, "environment", 4)
    assert updated.levels["animalWelfare"] == 2
    assert sum(updated.levels.values()) == TOTAL_VALUE_POINTS


def test_budget_conserved_over_many_updates():
    settings = default_settings()
    moves = [
        ("environment", 5), ("laborEthics", 1), ("animalWelfare", 4),
        ("digitalRights", 5), ("communitySupport", 2), ("environment", 1),
    ]
    for category_id, level in moves:
        settings = update_level(settings, category_id, level)
        assert settings.levels[category_id] == level
        assert sum(settings.levels.values()) == TOTAL_VALUE_POINTS
        assert all(MIN_LEVEL <= v <= MAX_LEVEL for v in settings.levels.values())


def test_update_same_level_is_noop():
    settings = default_settings()
    assert update_level(settings, "environment", 3) is settings


def test_update_does_not_mutate_input():
    settings = default_settings()
    update_level(settings, "environment", 5)
    assert settings.levels["environment"] == 3


@pytest.mark.parametrize("level", [0, 6, 2.5, "3", True, None])
def test_update_rejects_invalid_level(level):
    with pytest.raises(ValidationError):
        update_level(default_settings(), "environment", level)


def test_update_rejects_unknown_category():
    with pytest.raises(ValidationError):
        update_level(default_settings(), "oceanHealth", 4)


def test_reorder_accepts_permutation():
    new_order = list(reversed(category_ids()))
    assert reorder(default_settings(), new_order).order == new_order


@pytest.mark.parametrize("order", [
    ["animalWelfare", "communitySupport", "environment", "laborEthics"],
    ["animalWelfare", "animalWelfare", "environment", "laborEthics", "digitalRights"],
    ["animalWelfare", "communitySupport", "environment", "laborEthics", "oceanHealth"],
])
def test_reorder_rejects_non_permutation(order: list[str]):
    settings = default_settings()
    original = list(settings.order)
    with pytest.raises(ValidationError):
        reorder(settings, order)
    assert settings.order == original


def test_reset_clears_commitment():
    settings = commit(update_level(default_settings(), "environment", 5), datetime(2024, 2, 10))
    reset = reset_to_default()
    assert reset.committed_until is None
    assert reset.levels == default_settings().levels
    assert settings.committed_until is not None


def test_commit_until_end_of_month():
    now = datetime(2024, 2, 10, 12, 0)
    committed = commit(default_settings(), now)
    assert committed.committed_until == datetime(2024, 2, 29, 23, 59, 59, 999999)
    assert is_committed(committed, now)
    assert not is_committed(committed, datetime(2024, 3, 1))
    assert not is_committed(default_settings(), now)


def test_normalize_settings_repairs_document():
    settings = normalize_settings({
        "levels": {"environment": 5, "oceanHealth": 4, "laborEthics": "x"},
        "order": ["environment"],
    })
    assert "oceanHealth" not in settings.levels
    assert settings.levels["environment"] == 5
    assert settings.levels["laborEthics"] == 3
    assert settings.order == category_ids()
    assert settings.values_hash == values_hash(settings.levels)


def test_normalize_settings_empty():
    assert normalize_settings(None) == default_settings()


def test_multiplier_table_is_monotonic():
    levels = sorted(NEGATIVE_PRACTICE_MULTIPLIERS)
    values = [multiplier_for_level(level) for level in levels]
    assert values == sorted(values)
    assert multiplier_for_level(1) < multiplier_for_level(3) == 1.0 < multiplier_for_level(5)
    assert multiplier_for_level(42) == 1.0


def test_multiplier_for_category():
    settings = update_level(default_settings(), "animalWelfare", 5)
    assert multiplier_for_category("Animal Welfare", settings) == 1.5
    assert multiplier_for_category("Digital Rights", settings) == 0.0
    assert multiplier_for_category("Unknown Cause", settings) == 1.0
    assert multiplier_for_category(None, settings) == 1.0
    assert multiplier_for_category("Animal Welfare", None) == 1.0


def test_all_neutral_multipliers():
    settings = default_settings()
    for category in VALUE_CATEGORIES:
        assert multiplier_for_category(category.name, settings) == 1.0

"""
User value settings: per-category importance levels under a fixed point budget,
and the multiplier table that turns a level into a weight on negative practices.
"""
import calendar
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from impact_ledger.errors import ValidationError
from impact_ledger.logger import get_logger
from impact_ledger.models import UserValueSettings

logger = get_logger(__name__)


@dataclass(frozen=True)
class ValueCategory:
    id: str
    name: str
    emoji: str
    default_level: int


# Canonical order, also used for tie-breaking when points are moved around.
VALUE_CATEGORIES: tuple[ValueCategory, ...] = (
    ValueCategory(id="animalWelfare", name="Animal Welfare", emoji="🐮", default_level=3),
    ValueCategory(id="communitySupport", name="Community Support", emoji="🤝", default_level=3),
    ValueCategory(id="environment", name="Environment", emoji="🌱", default_level=3),
    ValueCategory(id="laborEthics", name="Labor Ethics", emoji="⚖️", default_level=3),
    ValueCategory(id="digitalRights", name="Digital Rights", emoji="🛜", default_level=3),
)

MIN_LEVEL = 1
MAX_LEVEL = 5
NEUTRAL_LEVEL = 3

# The sum of all levels must always equal this.
TOTAL_VALUE_POINTS = len(VALUE_CATEGORIES) * NEUTRAL_LEVEL

# Applied to NEGATIVE practices only. Positive practices always count at 1.0x.
NEGATIVE_PRACTICE_MULTIPLIERS: dict[int, float] = {
    1: 0.0,
    2: 0.5,
    3: 1.0,
    4: 1.25,
    5: 1.5,
}

_CATEGORY_IDS = tuple(category.id for category in VALUE_CATEGORIES)
_ID_BY_NAME = {category.name: category.id for category in VALUE_CATEGORIES}


def category_ids() -> list[str]:
    return list(_CATEGORY_IDS)


def find_category_id(category_name: str | None) -> str | None:
    if not category_name:
        return None
    return _ID_BY_NAME.get(category_name)


def values_hash(levels: Mapping[str, int]) -> str:
    return "_".join(f"{key}:{levels[key]}" for key in sorted(levels))


def default_settings() -> UserValueSettings:
    levels = {category.id: category.default_level for category in VALUE_CATEGORIES}
    return UserValueSettings(
        levels=levels,
        order=category_ids(),
        values_hash=values_hash(levels),
    )


def reset_to_default() -> UserValueSettings:
    return default_settings()


def normalize_settings(raw: Mapping[str, Any] | None) -> UserValueSettings:
    """
    Build settings from a persisted document.

    Unknown categories are dropped, missing ones get their default level and
    an order that is not a full permutation falls back to the canonical one.
    """
    settings = default_settings()
    if not raw:
        return settings

    levels = dict(settings.levels)
    for key, value in (raw.get("levels") or {}).items():
        if key in levels:
            try:
                levels[key] = int(value)
            except (TypeError, ValueError):
                logger.warning("[VALUES] Ignoring invalid stored level %s=%r", key, value)

    order = raw.get("order") or []
    if not _is_permutation(order):
        order = category_ids()

    total = sum(levels.values())
    if total != TOTAL_VALUE_POINTS:
        logger.warning(
            "[VALUES] Stored levels sum to %s instead of %s.",
            total,
            TOTAL_VALUE_POINTS,
        )

    return UserValueSettings(
        levels=levels,
        order=list(order),
        values_hash=values_hash(levels),
        committed_until=raw.get("committed_until"),
    )


def _validate_level(new_level: Any) -> int:
    if isinstance(new_level, bool) or not isinstance(new_level, int):
        raise ValidationError(f"Level must be an integer, got {new_level!r}")
    if new_level < MIN_LEVEL or new_level > MAX_LEVEL:
        raise ValidationError(
            f"Level {new_level} outside allowed range {MIN_LEVEL}..{MAX_LEVEL}"
        )
    return new_level


def update_level(
    settings: UserValueSettings,
    category_id: str,
    new_level: int,
) -> UserValueSettings:
    """
    Set one category's level and move points between the other categories so
    the total stays at TOTAL_VALUE_POINTS.

    Overflow is reclaimed from the other categories starting at the END of
    ``settings.order``; freed points go to the other categories starting at
    the FRONT of it. Levels never leave MIN_LEVEL..MAX_LEVEL.
    """
    if category_id not in _CATEGORY_IDS:
        raise ValidationError(f"Unknown value category: {category_id!r}")
    new_level = _validate_level(new_level)

    old_level = settings.levels.get(category_id, NEUTRAL_LEVEL)
    if new_level == old_level:
        return settings

    levels = dict(settings.levels)
    levels[category_id] = new_level
    others = [cat_id for cat_id in settings.order if cat_id != category_id]

    balance = sum(levels.values()) - TOTAL_VALUE_POINTS
    if balance > 0:
        for cat_id in reversed(others):
            if balance <= 0:
                break
            take = min(balance, levels[cat_id] - MIN_LEVEL)
            if take > 0:
                levels[cat_id] -= take
                balance -= take
    elif balance < 0:
        for cat_id in others:
            if balance >= 0:
                break
            give = min(-balance, MAX_LEVEL - levels[cat_id])
            if give > 0:
                levels[cat_id] += give
                balance += give

    if balance != 0:
        logger.warning(
            "[VALUES] Could not rebalance %s -> %s; total off budget by %s.",
            category_id,
            new_level,
            balance,
        )

    logger.debug("[VALUES] %s: %s -> %s, levels=%s", category_id, old_level, new_level, levels)
    return settings.model_copy(update={"levels": levels, "values_hash": values_hash(levels)})


def _is_permutation(order: Any) -> bool:
    if not isinstance(order, (list, tuple)):
        return False
    return len(order) == len(_CATEGORY_IDS) and len(set(order)) == len(order) \
        and set(order) == set(_CATEGORY_IDS)


def reorder(settings: UserValueSettings, new_order: list[str]) -> UserValueSettings:
    if not _is_permutation(new_order):
        raise ValidationError(
            f"Order must be a permutation of {', '.join(_CATEGORY_IDS)}; got {new_order!r}"
        )
    return settings.model_copy(update={"order": list(new_order)})


def end_of_month(now: datetime) -> datetime:
    last_day = calendar.monthrange(now.year, now.month)[1]
    return now.replace(day=last_day, hour=23, minute=59, second=59, microsecond=999999)


def commit(settings: UserValueSettings, now: datetime) -> UserValueSettings:
    return settings.model_copy(update={"committed_until": end_of_month(now)})


def is_committed(settings: UserValueSettings, now: datetime) -> bool:
    return settings.committed_until is not None and settings.committed_until > now


def multiplier_for_level(level: int) -> float:
    return NEGATIVE_PRACTICE_MULTIPLIERS.get(level, 1.0)


def multiplier_for_category(
    category_name: str | None,
    settings: UserValueSettings | None,
) -> float:
    if settings is None:
        return 1.0
    category_id = find_category_id(category_name)
    if category_id is None:
        return 1.0
    return multiplier_for_level(settings.levels.get(category_id, NEUTRAL_LEVEL))

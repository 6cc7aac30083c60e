from __future__ import annotations

from app.core.config import settings
from app.models.story import EndingType
from app.services.errors import ConfigurationError


def score_percentage(score: int, max_score: int) -> float:
    if max_score <= 0:
        raise ConfigurationError(f"max_score must be positive, got {max_score}")
    return score / max_score * 100


def select_ending(
    score: int,
    max_score: int,
    *,
    good_threshold: float | None = None,
    neutral_threshold: float | None = None,
) -> EndingType:
    """Выбор концовки по проценту набранных очков.

    good, если процент >= good_threshold; neutral, если >= neutral_threshold;
    иначе bad. Границы включительно.
    """
    good = settings.ENDING_GOOD_THRESHOLD if good_threshold is None else good_threshold
    neutral = settings.ENDING_NEUTRAL_THRESHOLD if neutral_threshold is None else neutral_threshold
    if neutral > good:
        raise ConfigurationError(
            f"Neutral threshold {neutral} is above good threshold {good}"
        )

    if max_score <= 0:
        raise ConfigurationError(f"max_score must be positive, got {max_score}")

    # сравниваем score * 100 с threshold * max_score, без деления:
    # 14/20 должно дать ровно 70%, а не 69.999...
    scaled = score * 100
    if scaled >= good * max_score:
        return EndingType.GOOD
    if scaled >= neutral * max_score:
        return EndingType.NEUTRAL
    return EndingType.BAD

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Sequence, TypeVar
import random


MIN_LEVEL = 1
MAX_LEVEL = 3


@dataclass(frozen=True)
class LevelRule:
    visible_answers: int
    points: int


# уровень -> (сколько вариантов показываем, сколько очков за верный ответ)
LEVELS: Dict[int, LevelRule] = {
    3: LevelRule(visible_answers=4, points=5),
    2: LevelRule(visible_answers=3, points=3),
    1: LevelRule(visible_answers=2, points=1),
}

START_LEVEL = MAX_LEVEL


def _rule(level: int) -> LevelRule:
    try:
        return LEVELS[level]
    except KeyError:
        raise ValueError(f"Level must be in [{MIN_LEVEL}, {MAX_LEVEL}], got {level}") from None


def visible_answer_count(level: int) -> int:
    return _rule(level).visible_answers


def points_for_correct(level: int) -> int:
    return _rule(level).points


def max_points_per_question() -> int:
    return points_for_correct(MAX_LEVEL)


def next_level(level: int, is_correct: bool) -> int:
    """Верный ответ поднимает уровень (максимум 3), неверный опускает (минимум 1)."""
    _rule(level)
    if is_correct:
        return min(level + 1, MAX_LEVEL)
    return max(level - 1, MIN_LEVEL)


def is_fatal_miss(level: int, is_correct: bool) -> bool:
    # ошибка на минимальном уровне = конец игры
    return not is_correct and level == MIN_LEVEL


T = TypeVar("T")


def pick_visible_options(
    options: Sequence[T],
    *,
    level: int,
    rng: random.Random,
    is_correct=lambda o: o.is_correct,
) -> List[T]:
    """Выбираем варианты ответа, которые видит игрок на данном уровне.

    Верный вариант всегда в списке, остальные места занимает случайная выборка
    (без повторов) из неверных. Итоговый порядок перемешан, чтобы верный
    ответ не угадывался по позиции.
    """
    correct = [o for o in options if is_correct(o)]
    wrong = [o for o in options if not is_correct(o)]
    if len(correct) != 1:
        raise ValueError(f"Expected exactly one correct option, got {len(correct)}")

    need = min(visible_answer_count(level), len(options)) - 1
    picked = [correct[0], *rng.sample(wrong, need)]
    rng.shuffle(picked)
    return picked

from __future__ import annotations

from typing import Sequence


class StoryError(Exception):
    """Базовая ошибка домена: роутеры мапят наследников в HTTP-коды."""


class NotFoundError(StoryError):
    """История / сцена / сессия / ответ не найдены."""


class ValidationFailedError(StoryError):
    """Правка сцен нарушает правила контента. Ничего не изменено."""

    def __init__(self, errors: Sequence[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "Validation failed")


class ChainCorruptionError(StoryError):
    """Цепочка сцен сломана: цикл, несколько/ноль голов, висячая ссылка."""


class IllegalStateTransitionError(StoryError):
    pass


class ConfigurationError(StoryError):
    pass

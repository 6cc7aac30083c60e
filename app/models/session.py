from __future__ import annotations

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base


class SceneType(str, enum.Enum):
    INTRO = "intro"
    QUESTION = "question"
    ENDING = "ending"


class SessionState(str, enum.Enum):
    INTRO = "intro"
    QUESTION = "question"
    ENDING = "ending"
    GAME_OVER = "game_over"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.ENDING, SessionState.GAME_OVER)


class PlaySession(Base):
    __tablename__ = "play_sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    story_id: Mapped[int] = mapped_column(
        ForeignKey("stories.id", ondelete="CASCADE"), nullable=False, index=True
    )
    player_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    state: Mapped[SessionState] = mapped_column(
        Enum(SessionState, native_enum=False, length=20),
        nullable=False,
        default=SessionState.INTRO,
    )
    # id сцены текущего состояния (intro/question/ending), в game_over None
    current_scene_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=3)

    # seed для выбора/перемешивания вариантов ответа
    seed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    start_time: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    end_time: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    @property
    def scene_type(self) -> Optional[SceneType]:
        if self.state == SessionState.GAME_OVER:
            return None
        return SceneType(self.state.value)

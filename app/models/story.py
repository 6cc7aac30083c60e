from __future__ import annotations

import enum
from datetime import datetime
from typing import List, Optional

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base


class DifficultyLevel(str, enum.Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class Accessibility(str, enum.Enum):
    PUBLIC = "public"
    PRIVATE = "private"


class EndingType(str, enum.Enum):
    GOOD = "good"
    NEUTRAL = "neutral"
    BAD = "bad"


class Story(Base):
    __tablename__ = "stories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    difficulty: Mapped[DifficultyLevel] = mapped_column(
        Enum(DifficultyLevel, native_enum=False, length=20),
        nullable=False,
        default=DifficultyLevel.MEDIUM,
    )
    accessibility: Mapped[Accessibility] = mapped_column(
        Enum(Accessibility, native_enum=False, length=20),
        nullable=False,
        default=Accessibility.PUBLIC,
    )
    # код для приватных историй (8 символов), у публичных None
    code: Mapped[Optional[str]] = mapped_column(String(16), unique=True, nullable=True)
    owner_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)

    # статистика прохождений
    played: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    finished: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    intro: Mapped[Optional["IntroScene"]] = relationship(
        back_populates="story", cascade="all, delete-orphan", uselist=False
    )
    question_scenes: Mapped[List["QuestionScene"]] = relationship(
        back_populates="story",
        cascade="all, delete-orphan",
        foreign_keys="QuestionScene.story_id",
    )
    endings: Mapped[List["EndingScene"]] = relationship(
        back_populates="story", cascade="all, delete-orphan"
    )


class IntroScene(Base):
    __tablename__ = "intro_scenes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    story_id: Mapped[int] = mapped_column(
        ForeignKey("stories.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    intro_text: Mapped[str] = mapped_column(Text, nullable=False)

    story: Mapped["Story"] = relationship(back_populates="intro")


class QuestionScene(Base):
    __tablename__ = "question_scenes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    story_id: Mapped[int] = mapped_column(
        ForeignKey("stories.id", ondelete="CASCADE"), nullable=False, index=True
    )
    scene_text: Mapped[str] = mapped_column(Text, nullable=False)
    question: Mapped[str] = mapped_column(Text, nullable=False)

    # ссылка на следующую сцену: только порядок, не владение.
    # unique: на одну сцену может ссылаться не больше одной
    next_question_scene_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("question_scenes.id", ondelete="SET NULL"),
        nullable=True,
        unique=True,
    )

    story: Mapped["Story"] = relationship(back_populates="question_scenes", foreign_keys=[story_id])
    answer_options: Mapped[List["AnswerOption"]] = relationship(
        back_populates="question_scene",
        cascade="all, delete-orphan",
        order_by="AnswerOption.id",
    )


class AnswerOption(Base):
    __tablename__ = "answer_options"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    question_scene_id: Mapped[int] = mapped_column(
        ForeignKey("question_scenes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    answer: Mapped[str] = mapped_column(Text, nullable=False)
    feedback_text: Mapped[str] = mapped_column(Text, nullable=False)
    is_correct: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    question_scene: Mapped["QuestionScene"] = relationship(back_populates="answer_options")


class EndingScene(Base):
    __tablename__ = "ending_scenes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    story_id: Mapped[int] = mapped_column(
        ForeignKey("stories.id", ondelete="CASCADE"), nullable=False, index=True
    )
    ending_type: Mapped[EndingType] = mapped_column(
        Enum(EndingType, native_enum=False, length=20), nullable=False
    )
    ending_text: Mapped[str] = mapped_column(Text, nullable=False)

    story: Mapped["Story"] = relationship(back_populates="endings")

    __table_args__ = (UniqueConstraint("story_id", "ending_type", name="uq_story_ending_type"),)

"""Общие фикстуры: in-memory SQLite через aiosqlite, фабрики историй."""

from __future__ import annotations

from typing import Optional

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.models.base import Base
from app.models import session as session_models, story as story_models  # noqa: F401
from app.models.story import Accessibility, DifficultyLevel, EndingType
from app.schemas.scenes import AnswerEdit, QuestionSceneEdit
from app.services.stories import create_story


def make_question(
    n: int,
    *,
    correct_index: int = 0,
    scene_id: Optional[int] = None,
) -> QuestionSceneEdit:
    return QuestionSceneEdit(
        question_scene_id=scene_id,
        story_text=f"Scene {n}: the bridge creaks.",
        question_text=f"What is {n} + {n}?",
        correct_answer_index=correct_index,
        answers=[
            AnswerEdit(answer_text=f"{n * 2 + k}", context_text=f"Feedback {n}/{k}")
            for k in range(4)
        ],
    )


ENDINGS = {
    EndingType.GOOD: "You crossed the river.",
    EndingType.NEUTRAL: "You made it, barely.",
    EndingType.BAD: "The river took you.",
}


@pytest.fixture()
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


@pytest.fixture()
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture()
def make_story(session_factory):
    """Фабрика историй: make_story(4) -> Story с четырьмя вопросами."""

    async def _factory(
        n_questions: int = 4,
        *,
        accessibility: Accessibility = Accessibility.PUBLIC,
        endings: Optional[dict] = None,
    ):
        async with session_factory() as session:
            return await create_story(
                session,
                title="River crossing",
                description="Solve sums to cross the river",
                difficulty=DifficultyLevel.EASY,
                accessibility=accessibility,
                intro_text="A river blocks your path.",
                questions=[make_question(i + 1) for i in range(n_questions)],
                endings=dict(ENDINGS if endings is None else endings),
            )

    return _factory

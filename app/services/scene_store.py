# app/services/scene_store.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Sequence
import logging

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.models.session import PlaySession
from app.models.story import (
    AnswerOption,
    EndingScene,
    EndingType,
    IntroScene,
    QuestionScene,
    Story,
)
from app.schemas.scenes import QuestionSceneEdit
from app.services.chain import SceneChain


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderSlot:
    """Позиция в новом порядке: либо существующая сцена, либо i-я вставка."""

    existing_id: Optional[int] = None
    insert_index: Optional[int] = None


def build_answer_options(edit: QuestionSceneEdit) -> List[AnswerOption]:
    return [
        AnswerOption(
            answer=a.answer_text,
            feedback_text=a.context_text,
            is_correct=(i == edit.correct_answer_index),
        )
        for i, a in enumerate(edit.answers)
    ]


class SceneStore:
    """Доступ к сценам истории поверх AsyncSession.

    Методы чтения возвращают объект или None, решение "что делать, если
    не нашли" остаётся за сервисом.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_story(self, story_id: int) -> Optional[Story]:
        return await self.session.get(Story, story_id)

    async def load_chain(self, story_id: int) -> SceneChain[QuestionScene]:
        scenes = (
            await self.session.execute(
                select(QuestionScene)
                .where(QuestionScene.story_id == story_id)
                .options(selectinload(QuestionScene.answer_options))
                .order_by(QuestionScene.id)
            )
        ).scalars().all()
        return SceneChain.from_scenes(story_id, scenes)

    async def count_questions(self, story_id: int) -> int:
        res = await self.session.execute(
            select(func.count())
            .select_from(QuestionScene)
            .where(QuestionScene.story_id == story_id)
        )
        return res.scalar_one()

    async def load_intro(self, story_id: int) -> Optional[IntroScene]:
        return await self.session.scalar(
            select(IntroScene).where(IntroScene.story_id == story_id)
        )

    async def load_endings(self, story_id: int) -> Dict[EndingType, EndingScene]:
        rows = (
            await self.session.execute(
                select(EndingScene).where(EndingScene.story_id == story_id)
            )
        ).scalars().all()
        return {e.ending_type: e for e in rows}

    async def get_ending(self, ending_id: int) -> Optional[EndingScene]:
        return await self.session.get(EndingScene, ending_id)

    async def increment_stat(self, story_id: int, field: str) -> None:
        column = {"played": Story.played, "finished": Story.finished, "failed": Story.failed}[field]
        await self.session.execute(
            update(Story).where(Story.id == story_id).values({column: column + 1})
        )

    async def apply_reconciliation(
        self,
        story_id: int,
        *,
        deletes: Sequence[int],
        updates: Dict[int, QuestionSceneEdit],
        inserts: Sequence[QuestionSceneEdit],
        new_order: Sequence[OrderSlot],
    ) -> List[int]:
        """Атомарно применяет удаления/правки/вставки и перелинковку.

        Либо всё, либо ничего: при любой ошибке rollback.
        Возвращает id сцен в новом порядке.
        """
        try:
            existing = {
                s.id: s
                for s in (
                    await self.session.execute(
                        select(QuestionScene)
                        .where(QuestionScene.story_id == story_id)
                        .options(selectinload(QuestionScene.answer_options))
                    )
                ).scalars().all()
            }

            # 1. сначала рвём все ссылки, иначе unique(next) и FK мешают
            await self.session.execute(
                update(QuestionScene)
                .where(QuestionScene.story_id == story_id)
                .values(next_question_scene_id=None)
            )
            for scene in existing.values():
                scene.next_question_scene_id = None

            # 2. удаление
            for scene_id in deletes:
                await self.session.delete(existing.pop(scene_id))

            # 3. правки на месте
            for scene_id, edit in updates.items():
                scene = existing[scene_id]
                scene.scene_text = edit.story_text
                scene.question = edit.question_text
                scene.answer_options = build_answer_options(edit)

            # 4. вставки
            created: List[QuestionScene] = []
            for edit in inserts:
                scene = QuestionScene(
                    story_id=story_id,
                    scene_text=edit.story_text,
                    question=edit.question_text,
                    answer_options=build_answer_options(edit),
                )
                self.session.add(scene)
                created.append(scene)

            await self.session.flush()  # чтобы у новых сцен появились id

            # 5. перелинковка в присланном порядке
            ordered = [
                existing[slot.existing_id] if slot.existing_id is not None else created[slot.insert_index]
                for slot in new_order
            ]
            for i, scene in enumerate(ordered):
                scene.next_question_scene_id = ordered[i + 1].id if i + 1 < len(ordered) else None

            await self.session.flush()
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        return [s.id for s in ordered]

    async def delete_story(self, story: Story) -> None:
        await self.session.execute(delete(PlaySession).where(PlaySession.story_id == story.id))
        await self.session.execute(
            update(QuestionScene)
            .where(QuestionScene.story_id == story.id)
            .values(next_question_scene_id=None)
        )
        await self.session.delete(story)
        await self.session.commit()


class SessionStore:
    """Хранилище PlaySession: create / read / write по id."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, play: PlaySession) -> PlaySession:
        self.session.add(play)
        await self.session.commit()
        await self.session.refresh(play)
        return play

    async def read(self, session_id: int, *, for_update: bool = False) -> Optional[PlaySession]:
        # populate_existing: всегда свежее состояние из БД, а не из identity map
        return await self.session.get(
            PlaySession,
            session_id,
            populate_existing=True,
            with_for_update=for_update,
        )

    async def write(self, play: PlaySession) -> PlaySession:
        if play.state.is_terminal and play.end_time is None:
            play.end_time = datetime.utcnow()
        await self.session.commit()
        return play

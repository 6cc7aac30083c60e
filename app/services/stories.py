# app/services/stories.py
from __future__ import annotations

from typing import Dict, List, Optional, Sequence
import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.models.story import (
    Accessibility,
    DifficultyLevel,
    EndingScene,
    EndingType,
    IntroScene,
    QuestionScene,
    Story,
)
from app.schemas.scenes import AnswerEdit, QuestionSceneEdit, QuestionSceneOut
from app.services.errors import NotFoundError, ValidationFailedError
from app.services.locks import story_locks
from app.services.reconciler import validate_scene_edits
from app.services.scene_store import SceneStore, build_answer_options


logger = logging.getLogger(__name__)


async def generate_unique_code(session: AsyncSession) -> str:
    """8 символов из uuid4, в верхнем регистре; повторяем, пока не уникален."""
    while True:
        code = uuid.uuid4().hex[: settings.JOIN_CODE_LENGTH].upper()
        exists = await session.scalar(select(Story.id).where(Story.code == code))
        if not exists:
            return code


def _validate_texts(intro_text: Optional[str], endings: Dict[EndingType, str]) -> List[str]:
    errors: List[str] = []
    if intro_text is not None and not intro_text.strip():
        errors.append("Intro text is required")
    for ending_type, text in endings.items():
        if not (text or "").strip():
            errors.append(f"{ending_type.value.capitalize()} ending text is required")
    return errors


async def create_story(
    session: AsyncSession,
    *,
    title: str,
    description: str,
    difficulty: DifficultyLevel,
    accessibility: Accessibility,
    intro_text: str,
    questions: Sequence[QuestionSceneEdit],
    endings: Dict[EndingType, str],
    owner_id: Optional[str] = None,
) -> Story:
    """Создаёт историю целиком: intro, цепочку вопросов и три концовки."""
    errors: List[str] = []
    if not title.strip():
        errors.append("Title is required")
    errors.extend(_validate_texts(intro_text, endings))
    missing = [t.value for t in EndingType if t not in endings]
    if missing:
        errors.append(f"Missing endings: {', '.join(missing)}")
    if any(not q.is_new for q in questions):
        errors.append("New story questions must not carry ids")
    errors.extend(validate_scene_edits(questions))
    if errors:
        raise ValidationFailedError(errors)

    code = None
    if accessibility == Accessibility.PRIVATE:
        code = await generate_unique_code(session)

    try:
        story = Story(
            title=title,
            description=description,
            difficulty=difficulty,
            accessibility=accessibility,
            code=code,
            owner_id=owner_id,
        )
        session.add(story)
        await session.flush()  # чтобы появился story.id

        session.add(IntroScene(story_id=story.id, intro_text=intro_text))
        for ending_type in EndingType:
            session.add(
                EndingScene(story_id=story.id, ending_type=ending_type, ending_text=endings[ending_type])
            )

        scenes = [
            QuestionScene(
                story_id=story.id,
                scene_text=q.story_text,
                question=q.question_text,
                answer_options=build_answer_options(q),
            )
            for q in questions
        ]
        session.add_all(scenes)
        await session.flush()

        for i, scene in enumerate(scenes):
            scene.next_question_scene_id = scenes[i + 1].id if i + 1 < len(scenes) else None

        await session.commit()
    except Exception:
        await session.rollback()
        raise

    await session.refresh(story)
    logger.info("Story %s created with %d question(s)", story.id, len(scenes))
    return story


async def _get_story(session: AsyncSession, story_id: int) -> Story:
    story = await session.get(Story, story_id)
    if story is None:
        raise NotFoundError(f"Story {story_id} not found")
    return story


async def update_story(
    session: AsyncSession,
    story_id: int,
    *,
    title: str,
    description: str,
    difficulty: DifficultyLevel,
    accessibility: Accessibility,
) -> Story:
    """Метаданные истории. Смена доступа выдаёт новый код или снимает старый."""
    story = await _get_story(session, story_id)
    if not title.strip():
        raise ValidationFailedError(["Title is required"])

    story.title = title
    story.description = description
    story.difficulty = difficulty
    if story.accessibility != accessibility:
        if accessibility == Accessibility.PRIVATE:
            story.code = await generate_unique_code(session)
        else:
            story.code = None
    story.accessibility = accessibility

    await session.commit()
    logger.info("Story %s updated (%s)", story_id, accessibility.value)
    return story


async def load_intro_for_editing(session: AsyncSession, story_id: int) -> IntroScene:
    await _get_story(session, story_id)
    intro = await SceneStore(session).load_intro(story_id)
    if intro is None:
        raise NotFoundError("Intro scene not found")
    return intro


async def load_endings_for_editing(session: AsyncSession, story_id: int) -> Dict[EndingType, EndingScene]:
    await _get_story(session, story_id)
    endings = await SceneStore(session).load_endings(story_id)
    if not endings:
        raise NotFoundError("Ending scenes not found")
    return endings


async def update_intro(session: AsyncSession, story_id: int, intro_text: str) -> IntroScene:
    await _get_story(session, story_id)
    errors = _validate_texts(intro_text, {})
    if errors:
        raise ValidationFailedError(errors)

    store = SceneStore(session)
    intro = await store.load_intro(story_id)
    if intro is None:
        intro = IntroScene(story_id=story_id, intro_text=intro_text)
        session.add(intro)
    else:
        intro.intro_text = intro_text
    await session.commit()
    return intro


async def update_endings(
    session: AsyncSession,
    story_id: int,
    endings: Dict[EndingType, str],
) -> Dict[EndingType, EndingScene]:
    """Меняет тексты концовок (можно прислать только часть)."""
    await _get_story(session, story_id)
    errors = _validate_texts(None, endings)
    if errors:
        raise ValidationFailedError(errors)

    store = SceneStore(session)
    current = await store.load_endings(story_id)
    for ending_type, text in endings.items():
        scene = current.get(ending_type)
        if scene is None:
            scene = EndingScene(story_id=story_id, ending_type=ending_type, ending_text=text)
            session.add(scene)
            current[ending_type] = scene
        else:
            scene.ending_text = text
    await session.commit()
    return current


async def load_questions_for_editing(session: AsyncSession, story_id: int) -> List[QuestionSceneOut]:
    await _get_story(session, story_id)
    chain = await SceneStore(session).load_chain(story_id)

    out: List[QuestionSceneOut] = []
    for scene in chain.ordered_scenes():
        correct = next(
            (i for i, a in enumerate(scene.answer_options) if a.is_correct), -1
        )
        out.append(
            QuestionSceneOut(
                question_scene_id=scene.id,
                story_text=scene.scene_text,
                question_text=scene.question,
                correct_answer_index=correct,
                answers=[
                    AnswerEdit(answer_text=a.answer, context_text=a.feedback_text)
                    for a in scene.answer_options
                ],
            )
        )
    return out


async def delete_story(session: AsyncSession, story_id: int) -> None:
    async with story_locks.hold(story_id):
        story = await _get_story(session, story_id)
        await SceneStore(session).delete_story(story)
    logger.info("Story %s deleted", story_id)

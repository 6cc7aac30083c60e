from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from sqlalchemy.ext.asyncio import AsyncSession

from app.api.errors import to_http
from app.core.db import get_session
from app.models.story import Accessibility, DifficultyLevel, EndingScene, EndingType, Story
from app.schemas.scenes import QuestionSceneEdit, QuestionSceneOut
from app.services import stories
from app.services.errors import StoryError
from app.services.reconciler import ChainReconciler
from app.services.scene_store import SceneStore


router = APIRouter(prefix="/stories", tags=["stories"])


class EndingsIn(BaseModel):
    good_ending: Optional[str] = None
    neutral_ending: Optional[str] = None
    bad_ending: Optional[str] = None

    def as_dict(self) -> dict[EndingType, str]:
        pairs = {
            EndingType.GOOD: self.good_ending,
            EndingType.NEUTRAL: self.neutral_ending,
            EndingType.BAD: self.bad_ending,
        }
        return {k: v for k, v in pairs.items() if v is not None}


class StoryCreate(BaseModel):
    title: str = Field(..., max_length=200)
    description: str = ""
    difficulty: DifficultyLevel = DifficultyLevel.MEDIUM
    accessibility: Accessibility = Accessibility.PUBLIC
    owner_id: Optional[str] = None
    intro_text: str
    questions: list[QuestionSceneEdit] = Field(default_factory=list)
    endings: EndingsIn = Field(default_factory=EndingsIn)


class StoryUpdate(BaseModel):
    title: str = Field(..., max_length=200)
    description: str = ""
    difficulty: DifficultyLevel
    accessibility: Accessibility


class StoryOut(BaseModel):
    id: int
    title: str
    description: str
    difficulty: DifficultyLevel
    accessibility: Accessibility
    code: Optional[str]
    question_count: int
    played: int
    finished: int
    failed: int


class QuestionsIn(BaseModel):
    question_scenes: list[QuestionSceneEdit]


class QuestionsSaved(BaseModel):
    story_id: int
    ordered_ids: list[int]
    added: int
    updated: int
    deleted: int


class IntroIn(BaseModel):
    intro_text: str


class EndingsOut(BaseModel):
    story_id: int
    good_ending: Optional[str] = None
    neutral_ending: Optional[str] = None
    bad_ending: Optional[str] = None


def _endings_out(story_id: int, current: dict[EndingType, EndingScene]) -> EndingsOut:
    def text(t: EndingType) -> Optional[str]:
        scene = current.get(t)
        return scene.ending_text if scene else None

    return EndingsOut(
        story_id=story_id,
        good_ending=text(EndingType.GOOD),
        neutral_ending=text(EndingType.NEUTRAL),
        bad_ending=text(EndingType.BAD),
    )


async def _story_out(session: AsyncSession, story: Story) -> StoryOut:
    return StoryOut(
        id=story.id,
        title=story.title,
        description=story.description,
        difficulty=story.difficulty,
        accessibility=story.accessibility,
        code=story.code,
        question_count=await SceneStore(session).count_questions(story.id),
        played=story.played,
        finished=story.finished,
        failed=story.failed,
    )


@router.post("", response_model=StoryOut, status_code=status.HTTP_201_CREATED)
async def create_story(body: StoryCreate, session: AsyncSession = Depends(get_session)):
    try:
        story = await stories.create_story(
            session,
            title=body.title,
            description=body.description,
            difficulty=body.difficulty,
            accessibility=body.accessibility,
            intro_text=body.intro_text,
            questions=body.questions,
            endings=body.endings.as_dict(),
            owner_id=body.owner_id,
        )
    except StoryError as e:
        raise to_http(e)
    return await _story_out(session, story)


@router.get("/{story_id}", response_model=StoryOut)
async def get_story(story_id: int, session: AsyncSession = Depends(get_session)):
    # populate_existing: счётчики могли измениться bulk-update'ом
    story = await session.get(Story, story_id, populate_existing=True)
    if not story:
        raise HTTPException(404, "Story not found")
    return await _story_out(session, story)


@router.delete("/{story_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_story(story_id: int, session: AsyncSession = Depends(get_session)):
    try:
        await stories.delete_story(session, story_id)
    except StoryError as e:
        raise to_http(e)


@router.get("/{story_id}/questions", response_model=list[QuestionSceneOut])
async def get_questions(story_id: int, session: AsyncSession = Depends(get_session)):
    try:
        return await stories.load_questions_for_editing(session, story_id)
    except StoryError as e:
        raise to_http(e)


@router.put("/{story_id}/questions", response_model=QuestionsSaved)
async def save_questions(
    story_id: int,
    body: QuestionsIn,
    session: AsyncSession = Depends(get_session),
):
    try:
        result = await ChainReconciler(SceneStore(session)).submit_edited_questions(
            story_id, body.question_scenes
        )
    except StoryError as e:
        raise to_http(e)

    return QuestionsSaved(
        story_id=result.story_id,
        ordered_ids=result.ordered_ids,
        added=result.added,
        updated=result.updated,
        deleted=result.deleted,
    )


@router.put("/{story_id}/intro")
async def save_intro(story_id: int, body: IntroIn, session: AsyncSession = Depends(get_session)):
    try:
        intro = await stories.update_intro(session, story_id, body.intro_text)
    except StoryError as e:
        raise to_http(e)
    return {"story_id": story_id, "intro_scene_id": intro.id, "intro_text": intro.intro_text}


@router.put("/{story_id}/endings", response_model=EndingsOut)
async def save_endings(story_id: int, body: EndingsIn, session: AsyncSession = Depends(get_session)):
    try:
        current = await stories.update_endings(session, story_id, body.as_dict())
    except StoryError as e:
        raise to_http(e)
    return _endings_out(story_id, current)


@router.put("/{story_id}", response_model=StoryOut)
async def update_story(story_id: int, body: StoryUpdate, session: AsyncSession = Depends(get_session)):
    try:
        story = await stories.update_story(
            session,
            story_id,
            title=body.title,
            description=body.description,
            difficulty=body.difficulty,
            accessibility=body.accessibility,
        )
    except StoryError as e:
        raise to_http(e)
    return await _story_out(session, story)


@router.get("/{story_id}/intro")
async def get_intro(story_id: int, session: AsyncSession = Depends(get_session)):
    try:
        intro = await stories.load_intro_for_editing(session, story_id)
    except StoryError as e:
        raise to_http(e)
    return {"story_id": story_id, "intro_scene_id": intro.id, "intro_text": intro.intro_text}


@router.get("/{story_id}/endings", response_model=EndingsOut)
async def get_endings(story_id: int, session: AsyncSession = Depends(get_session)):
    try:
        current = await stories.load_endings_for_editing(session, story_id)
    except StoryError as e:
        raise to_http(e)
    return _endings_out(story_id, current)

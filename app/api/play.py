from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from sqlalchemy.ext.asyncio import AsyncSession

from app.api.errors import to_http
from app.core.db import get_session
from app.models.session import SceneType
from app.models.story import EndingType
from app.services.errors import StoryError
from app.services.playing import PlayService, SceneRef


router = APIRouter(prefix="/play", tags=["play"])


class StartIn(BaseModel):
    player_id: str = Field(..., min_length=1, max_length=64)
    seed: Optional[int] = None


class SceneRefOut(BaseModel):
    session_id: int
    scene_id: Optional[int]
    scene_type: Optional[SceneType]


class PlayAnswerOptionOut(BaseModel):
    answer_option_id: int
    answer_text: str


class PlaySceneOut(BaseModel):
    session_id: int
    scene_id: int
    scene_type: SceneType
    scene_text: str
    question: Optional[str] = None
    answer_options: Optional[list[PlayAnswerOptionOut]] = None
    current_score: int
    max_score: int
    current_level: int
    next_scene_after_intro_id: Optional[int] = None
    ending_type: Optional[EndingType] = None


class AnswerIn(BaseModel):
    session_id: int
    # только id ответа: счёт и уровень клиент не присылает
    selected_answer_id: int


class AnswerOut(BaseModel):
    session_id: int
    story_id: int
    selected_answer_id: int
    is_correct: bool
    scene_text: str
    new_score: int
    new_level: int
    max_score: int
    next_scene_id: Optional[int]
    next_scene_type: Optional[SceneType]
    ending_type: Optional[EndingType] = None
    is_game_over: bool = False
    message: Optional[str] = None


def _ref_out(ref: SceneRef) -> SceneRefOut:
    return SceneRefOut(session_id=ref.session_id, scene_id=ref.scene_id, scene_type=ref.scene_type)


@router.post("/start/{story_id}", response_model=SceneRefOut, status_code=201)
async def start_story(
    story_id: int,
    body: StartIn,
    session: AsyncSession = Depends(get_session),
):
    try:
        ref = await PlayService(session).start_session(story_id, body.player_id, seed=body.seed)
    except StoryError as e:
        raise to_http(e)
    return _ref_out(ref)


@router.post("/{session_id}/advance", response_model=SceneRefOut)
async def advance(
    session_id: int,
    session: AsyncSession = Depends(get_session),
):
    try:
        ref = await PlayService(session).advance(session_id)
    except StoryError as e:
        raise to_http(e)
    return _ref_out(ref)


@router.get("/scene", response_model=PlaySceneOut)
async def get_scene(
    session_id: int = Query(...),
    scene_id: int = Query(...),
    scene_type: SceneType = Query(...),
    session: AsyncSession = Depends(get_session),
):
    try:
        view = await PlayService(session).get_scene(session_id, scene_id, scene_type)
    except StoryError as e:
        raise to_http(e)

    options = None
    if view.scene_type == SceneType.QUESTION:
        # флаг is_correct наружу не отдаём
        options = [
            PlayAnswerOptionOut(answer_option_id=o.id, answer_text=o.answer)
            for o in view.answer_options
        ]

    return PlaySceneOut(
        session_id=view.session_id,
        scene_id=view.scene_id,
        scene_type=view.scene_type,
        scene_text=view.scene_text,
        question=view.question,
        answer_options=options,
        current_score=view.current_score,
        max_score=view.max_score,
        current_level=view.current_level,
        next_scene_after_intro_id=view.next_scene_after_intro_id,
        ending_type=view.ending_type,
    )


@router.post("/answer", response_model=AnswerOut)
async def submit_answer(
    body: AnswerIn,
    session: AsyncSession = Depends(get_session),
):
    try:
        fb = await PlayService(session).submit_answer(body.session_id, body.selected_answer_id)
    except StoryError as e:
        raise to_http(e)

    return AnswerOut(
        session_id=fb.session_id,
        story_id=fb.story_id,
        selected_answer_id=fb.selected_answer_id,
        is_correct=fb.is_correct,
        scene_text=fb.feedback_text,
        new_score=fb.new_score,
        new_level=fb.new_level,
        max_score=fb.max_score,
        next_scene_id=fb.next_scene_id,
        next_scene_type=fb.next_scene_type,
        ending_type=fb.ending_type,
        is_game_over=fb.is_game_over,
        message="Game over" if fb.is_game_over else None,
    )

# app/services/playing.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional
import logging
import random
import time

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from app.models.session import PlaySession, SceneType, SessionState
from app.models.story import AnswerOption, EndingType, QuestionScene
from app.services import difficulty
from app.services.endings import select_ending
from app.services.errors import (
    ConfigurationError,
    IllegalStateTransitionError,
    NotFoundError,
)
from app.services.chain import SceneChain
from app.services.locks import session_locks
from app.services.scene_store import SceneStore, SessionStore


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SceneRef:
    session_id: int
    scene_id: Optional[int]
    scene_type: Optional[SceneType]


@dataclass(frozen=True)
class AnswerOutcome:
    is_correct: bool
    points: int
    new_score: int
    new_level: int
    game_over: bool


def score_answer(score: int, level: int, is_correct: bool) -> AnswerOutcome:
    """Чистый шаг автомата: очки и уровень после одного ответа."""
    points = difficulty.points_for_correct(level) if is_correct else 0
    return AnswerOutcome(
        is_correct=is_correct,
        points=points,
        new_score=score + points,
        new_level=difficulty.next_level(level, is_correct),
        game_over=difficulty.is_fatal_miss(level, is_correct),
    )


@dataclass
class SceneView:
    session_id: int
    scene_id: int
    scene_type: SceneType
    scene_text: str
    current_score: int
    max_score: int
    current_level: int
    question: Optional[str] = None
    answer_options: List[AnswerOption] = field(default_factory=list)
    next_scene_after_intro_id: Optional[int] = None
    ending_type: Optional[EndingType] = None


@dataclass(frozen=True)
class AnswerFeedback:
    session_id: int
    story_id: int
    selected_answer_id: int
    is_correct: bool
    feedback_text: str
    new_score: int
    new_level: int
    max_score: int
    next_scene_id: Optional[int]
    next_scene_type: Optional[SceneType]
    is_game_over: bool = False
    ending_type: Optional[EndingType] = None


def options_rng(play: PlaySession, scene_id: int) -> random.Random:
    # одна и та же сессия + сцена -> один и тот же набор вариантов
    return random.Random(play.seed * 1_000_003 + scene_id)


def visible_options(play: PlaySession, scene: QuestionScene) -> List[AnswerOption]:
    return difficulty.pick_visible_options(
        scene.answer_options,
        level=play.level,
        rng=options_rng(play, scene.id),
    )


class PlayService:
    """Автомат прохождения: intro -> question (xN) -> ending | game_over.

    Счёт, уровень и позиция берутся только из PlaySession в БД; от клиента
    принимается лишь id выбранного ответа. Все изменения одной сессии идут
    строго по очереди.
    """

    def __init__(self, session: AsyncSession):
        self.db = session
        self.scenes = SceneStore(session)
        self.sessions = SessionStore(session)

    async def _load(self, session_id: int, *, for_update: bool = False) -> PlaySession:
        play = await self.sessions.read(session_id, for_update=for_update)
        if play is None:
            raise NotFoundError(f"Session {session_id} not found")
        return play

    async def _commit(self, play: PlaySession) -> None:
        try:
            await self.sessions.write(play)
        except StaleDataError:
            await self.db.rollback()
            raise IllegalStateTransitionError(
                f"Session {play.id} was modified concurrently"
            ) from None

    async def start_session(
        self,
        story_id: int,
        player_id: str,
        *,
        seed: Optional[int] = None,
    ) -> SceneRef:
        story = await self.scenes.get_story(story_id)
        if story is None:
            raise NotFoundError(f"Story {story_id} not found")

        intro = await self.scenes.load_intro(story_id)
        if intro is None:
            logger.error("Story %s has no intro scene", story_id)
            raise ConfigurationError(f"Story {story_id} has no intro scene")

        # знаменатель фиксируем сразу: вопросы x очки на максимальном уровне
        questions = await self.scenes.count_questions(story_id)
        max_score = questions * difficulty.max_points_per_question()

        if seed is None:
            seed = int(time.time())

        await self.scenes.increment_stat(story_id, "played")
        play = await self.sessions.create(
            PlaySession(
                story_id=story_id,
                player_id=player_id,
                state=SessionState.INTRO,
                current_scene_id=intro.id,
                score=0,
                max_score=max_score,
                level=difficulty.START_LEVEL,
                seed=seed,
            )
        )
        logger.info("Session %s started: story=%s player=%s", play.id, story_id, player_id)
        return SceneRef(play.id, intro.id, SceneType.INTRO)

    async def _advance_locked(self, play: PlaySession) -> SceneRef:
        if play.state != SessionState.INTRO:
            raise IllegalStateTransitionError(
                f"Session {play.id} is in state {play.state.value}, expected intro"
            )

        chain = await self.scenes.load_chain(play.story_id)
        head = chain.head()
        if head is None:
            logger.error("Story %s has no question scenes", play.story_id)
            raise ConfigurationError(f"Story {play.story_id} has no question scenes")

        play.state = SessionState.QUESTION
        play.current_scene_id = head
        await self._commit(play)
        return SceneRef(play.id, head, SceneType.QUESTION)

    async def advance(self, session_id: int) -> SceneRef:
        """Intro -> первый вопрос цепочки."""
        async with session_locks.hold(session_id):
            play = await self._load(session_id, for_update=True)
            return await self._advance_locked(play)

    async def get_scene(self, session_id: int, scene_id: int, scene_type: SceneType) -> SceneView:
        play = await self._load(session_id)

        if scene_type == SceneType.INTRO:
            intro = await self.scenes.load_intro(play.story_id)
            if intro is None or intro.id != scene_id:
                raise NotFoundError(f"Intro scene {scene_id} not found")
            chain = await self.scenes.load_chain(play.story_id)
            return self._view(
                play, scene_id, scene_type, intro.intro_text,
                next_scene_after_intro_id=chain.head(),
            )

        if scene_type == SceneType.QUESTION:
            chain = await self.scenes.load_chain(play.story_id)
            scene = chain.get(scene_id)
            if scene is None:
                raise NotFoundError(f"Question scene {scene_id} not found")

            if play.state == SessionState.INTRO and scene_id == chain.head():
                # клиент сразу просит первый вопрос после intro
                async with session_locks.hold(session_id):
                    play = await self._load(session_id, for_update=True)
                    if play.state == SessionState.INTRO:
                        await self._advance_locked(play)

            if play.state != SessionState.QUESTION or play.current_scene_id != scene_id:
                raise IllegalStateTransitionError(
                    f"Scene {scene_id} is not the current scene of session {session_id}"
                )
            return self._view(
                play, scene_id, scene_type, scene.scene_text,
                question=scene.question,
                answer_options=visible_options(play, scene),
            )

        ending = await self.scenes.get_ending(scene_id)
        if ending is None or ending.story_id != play.story_id:
            raise NotFoundError(f"Ending scene {scene_id} not found")
        if play.state != SessionState.ENDING or play.current_scene_id != scene_id:
            raise IllegalStateTransitionError(
                f"Session {session_id} has not reached ending {scene_id}"
            )
        return self._view(
            play, scene_id, scene_type, ending.ending_text, ending_type=ending.ending_type
        )

    def _view(self, play: PlaySession, scene_id: int, scene_type: SceneType, text: str, **extra) -> SceneView:
        return SceneView(
            session_id=play.id,
            scene_id=scene_id,
            scene_type=scene_type,
            scene_text=text,
            current_score=play.score,
            max_score=play.max_score,
            current_level=play.level,
            **extra,
        )

    async def submit_answer(self, session_id: int, answer_id: int) -> AnswerFeedback:
        async with session_locks.hold(session_id):
            play = await self._load(session_id, for_update=True)
            if play.state != SessionState.QUESTION:
                raise IllegalStateTransitionError(
                    f"Session {session_id} is in state {play.state.value}, no answer expected"
                )

            chain = await self.scenes.load_chain(play.story_id)
            scene = chain.get(play.current_scene_id)
            if scene is None:
                raise NotFoundError(f"Current scene of session {session_id} no longer exists")

            option = next((a for a in scene.answer_options if a.id == answer_id), None)
            if option is None:
                raise NotFoundError(f"Answer {answer_id} not found")
            if option not in visible_options(play, scene):
                raise NotFoundError(f"Answer {answer_id} was not offered")

            try:
                return await self._apply_answer(play, chain, scene, option)
            except Exception:
                # никаких частичных изменений (очки, статистика) при ошибке
                await self.db.rollback()
                raise

    async def _apply_answer(
        self,
        play: PlaySession,
        chain: SceneChain[QuestionScene],
        scene: QuestionScene,
        option: AnswerOption,
    ) -> AnswerFeedback:
        session_id = play.id
        outcome = score_answer(play.score, play.level, option.is_correct)
        play.score = outcome.new_score
        play.level = outcome.new_level

        next_id: Optional[int] = None
        next_type: Optional[SceneType] = None
        ending_type: Optional[EndingType] = None

        if outcome.game_over:
            play.state = SessionState.GAME_OVER
            play.current_scene_id = None
            await self.scenes.increment_stat(play.story_id, "failed")
            logger.info("Session %s: game over with score %s", session_id, play.score)
        else:
            next_id = chain.next(scene.id)
            if next_id is not None:
                play.current_scene_id = next_id
                next_type = SceneType.QUESTION
            else:
                ending_type = select_ending(play.score, play.max_score)
                endings = await self.scenes.load_endings(play.story_id)
                ending = endings.get(ending_type)
                if ending is None:
                    logger.error(
                        "Story %s has no %s ending (score %s/%s)",
                        play.story_id, ending_type.value, play.score, play.max_score,
                    )
                    raise ConfigurationError(
                        f"Story {play.story_id} has no {ending_type.value} ending"
                    )
                play.state = SessionState.ENDING
                play.current_scene_id = ending.id
                next_id, next_type = ending.id, SceneType.ENDING
                await self.scenes.increment_stat(play.story_id, "finished")
                logger.info(
                    "Session %s finished: %s ending, score %s/%s",
                    session_id, ending_type.value, play.score, play.max_score,
                )

        await self._commit(play)

        return AnswerFeedback(
            session_id=session_id,
            story_id=play.story_id,
            selected_answer_id=option.id,
            is_correct=outcome.is_correct,
            feedback_text=option.feedback_text,
            new_score=play.score,
            new_level=play.level,
            max_score=play.max_score,
            next_scene_id=next_id,
            next_scene_type=next_type,
            is_game_over=outcome.game_over,
            ending_type=ending_type,
        )

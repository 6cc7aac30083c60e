"""Автомат прохождения: полные прогоны, переходы и гонки."""

from __future__ import annotations

import asyncio
import random

import pytest
from sqlalchemy import delete, select, update

from app.models.session import PlaySession, SceneType, SessionState
from app.models.story import AnswerOption, EndingScene, EndingType, QuestionScene, Story
from app.services.errors import (
    ConfigurationError,
    IllegalStateTransitionError,
    NotFoundError,
)
from app.services.playing import PlayService, score_answer


async def answer(svc: PlayService, session_id: int, scene_id: int, correct: bool):
    view = await svc.get_scene(session_id, scene_id, SceneType.QUESTION)
    option = next(o for o in view.answer_options if o.is_correct == correct)
    return await svc.submit_answer(session_id, option.id)


async def start(svc: PlayService, story_id: int, seed: int = 7):
    ref = await svc.start_session(story_id, "player-1", seed=seed)
    first = await svc.advance(ref.session_id)
    return ref.session_id, first.scene_id


async def load_play(session_factory, session_id: int) -> PlaySession:
    async with session_factory() as s:
        return await s.get(PlaySession, session_id)


async def set_level(session_factory, session_id: int, level: int) -> None:
    async with session_factory() as s:
        await s.execute(update(PlaySession).where(PlaySession.id == session_id).values(level=level))
        await s.commit()


# ---------- pure step ----------

def test_score_answer_step() -> None:
    assert score_answer(0, 3, True).new_score == 5
    assert score_answer(5, 2, False).new_level == 1
    assert score_answer(5, 2, False).points == 0
    assert score_answer(5, 1, False).game_over
    assert not score_answer(5, 1, True).game_over


# ---------- full playthroughs ----------

async def test_all_correct_reaches_good_ending(make_story, db) -> None:
    story = await make_story(4)
    svc = PlayService(db)

    ref = await svc.start_session(story.id, "player-1", seed=1)
    assert ref.scene_type == SceneType.INTRO
    intro = await svc.get_scene(ref.session_id, ref.scene_id, SceneType.INTRO)
    assert intro.max_score == 20
    assert intro.current_level == 3

    scene_id = (await svc.advance(ref.session_id)).scene_id
    assert scene_id == intro.next_scene_after_intro_id

    scores = []
    for _ in range(4):
        fb = await answer(svc, ref.session_id, scene_id, correct=True)
        scores.append(fb.new_score)
        scene_id = fb.next_scene_id

    assert scores == [5, 10, 15, 20]
    assert fb.next_scene_type == SceneType.ENDING
    assert fb.ending_type == EndingType.GOOD
    assert not fb.is_game_over

    ending = await svc.get_scene(ref.session_id, fb.next_scene_id, SceneType.ENDING)
    assert ending.scene_text == "You crossed the river."
    assert (ending.current_score, ending.max_score) == (20, 20)

    with pytest.raises(IllegalStateTransitionError):
        await svc.submit_answer(ref.session_id, 1)

    play = await svc.sessions.read(ref.session_id)
    assert play.state == SessionState.ENDING
    assert play.end_time is not None

    stats = await db.get(Story, story.id, populate_existing=True)
    assert (stats.played, stats.finished, stats.failed) == (1, 1, 0)


async def test_one_miss_drops_level_and_points(make_story, db) -> None:
    story = await make_story(4)
    svc = PlayService(db)
    session_id, scene_id = await start(svc, story.id)

    path = []
    for correct in (True, False, True, True):
        fb = await answer(svc, session_id, scene_id, correct)
        path.append((fb.new_score, fb.new_level))
        scene_id = fb.next_scene_id

    # 5 + 0 + 3 + 5 = 13 из 20 -> 65%
    assert path == [(5, 3), (5, 2), (8, 3), (13, 3)]
    assert fb.ending_type == EndingType.NEUTRAL


async def test_miss_at_level_one_is_game_over(make_story, db, session_factory) -> None:
    story = await make_story(4)
    svc = PlayService(db)
    session_id, scene_id = await start(svc, story.id)
    await set_level(session_factory, session_id, 1)

    view = await svc.get_scene(session_id, scene_id, SceneType.QUESTION)
    assert len(view.answer_options) == 2

    fb = await answer(svc, session_id, scene_id, correct=False)

    assert fb.is_game_over
    assert fb.new_score == 0
    assert fb.next_scene_id is None and fb.next_scene_type is None
    assert fb.ending_type is None

    play = await load_play(session_factory, session_id)
    assert play.state == SessionState.GAME_OVER
    assert play.current_scene_id is None
    assert play.end_time is not None

    with pytest.raises(IllegalStateTransitionError):
        await svc.submit_answer(session_id, view.answer_options[0].id)
    with pytest.raises(IllegalStateTransitionError):
        await svc.get_scene(session_id, scene_id, SceneType.QUESTION)

    async with session_factory() as s:
        stats = await s.get(Story, story.id)
    assert stats.failed == 1 and stats.finished == 0


async def test_three_misses_in_a_row_end_the_game(make_story, db) -> None:
    story = await make_story(4)
    svc = PlayService(db)
    session_id, scene_id = await start(svc, story.id)

    levels = []
    for _ in range(3):
        fb = await answer(svc, session_id, scene_id, correct=False)
        levels.append(fb.new_level)
        scene_id = fb.next_scene_id

    assert levels == [2, 1, 1]
    assert fb.is_game_over
    assert fb.new_score == 0


async def test_level_and_score_invariants_over_random_play(make_story, session_factory) -> None:
    story = await make_story(5)
    rng = random.Random(99)

    for seed in range(12):
        async with session_factory() as s:
            svc = PlayService(s)
            session_id, scene_id = await start(svc, story.id, seed=seed)
            score, level = 0, 3
            while True:
                correct = rng.random() < 0.6
                fb = await answer(svc, session_id, scene_id, correct)

                assert 1 <= fb.new_level <= 3
                assert fb.new_score >= score
                if correct:
                    assert fb.new_level >= level
                else:
                    assert fb.new_level <= level
                    assert fb.new_score == score
                assert fb.is_game_over == (not correct and level == 1)

                score, level = fb.new_score, fb.new_level
                if fb.is_game_over or fb.next_scene_type == SceneType.ENDING:
                    break
                scene_id = fb.next_scene_id


# ---------- transitions and guards ----------

async def test_answer_before_advance_is_rejected(make_story, db) -> None:
    story = await make_story(2)
    svc = PlayService(db)
    ref = await svc.start_session(story.id, "player-1")

    with pytest.raises(IllegalStateTransitionError):
        await svc.submit_answer(ref.session_id, 1)


async def test_advance_twice_is_rejected(make_story, db) -> None:
    story = await make_story(2)
    svc = PlayService(db)
    session_id, _ = await start(svc, story.id)

    with pytest.raises(IllegalStateTransitionError):
        await svc.advance(session_id)


async def test_fetching_first_question_leaves_intro(make_story, db) -> None:
    story = await make_story(2)
    svc = PlayService(db)
    ref = await svc.start_session(story.id, "player-1")
    intro = await svc.get_scene(ref.session_id, ref.scene_id, SceneType.INTRO)

    view = await svc.get_scene(ref.session_id, intro.next_scene_after_intro_id, SceneType.QUESTION)

    assert view.question == "What is 1 + 1?"
    play = await svc.sessions.read(ref.session_id)
    assert play.state == SessionState.QUESTION
    assert play.current_scene_id == intro.next_scene_after_intro_id


async def test_cannot_skip_ahead(make_story, db) -> None:
    story = await make_story(3)
    svc = PlayService(db)
    session_id, first = await start(svc, story.id)
    chain = await svc.scenes.load_chain(story.id)
    third = chain.to_ordered_list()[2]

    with pytest.raises(IllegalStateTransitionError):
        await svc.get_scene(session_id, third, SceneType.QUESTION)


async def test_refetch_shows_same_options(make_story, db, session_factory) -> None:
    story = await make_story(2)
    svc = PlayService(db)
    session_id, scene_id = await start(svc, story.id, seed=5)
    await set_level(session_factory, session_id, 2)

    first = await svc.get_scene(session_id, scene_id, SceneType.QUESTION)
    again = await svc.get_scene(session_id, scene_id, SceneType.QUESTION)

    assert len(first.answer_options) == 3
    assert [o.id for o in first.answer_options] == [o.id for o in again.answer_options]
    assert sum(o.is_correct for o in first.answer_options) == 1


async def test_hidden_or_foreign_answer_is_not_found(make_story, db, session_factory) -> None:
    story = await make_story(2)
    svc = PlayService(db)
    session_id, scene_id = await start(svc, story.id)
    await set_level(session_factory, session_id, 1)

    view = await svc.get_scene(session_id, scene_id, SceneType.QUESTION)
    chain = await svc.scenes.load_chain(story.id)
    scene = chain.get(scene_id)
    hidden_id = next(o.id for o in scene.answer_options if o not in view.answer_options)
    foreign_id = chain.get(chain.next(scene_id)).answer_options[0].id

    with pytest.raises(NotFoundError, match="not offered"):
        await svc.submit_answer(session_id, hidden_id)
    with pytest.raises(NotFoundError):
        await svc.submit_answer(session_id, foreign_id)

    play = await load_play(session_factory, session_id)
    assert (play.score, play.level, play.current_scene_id) == (0, 1, scene_id)

    # после отказа загруженные объекты живы, сессией можно играть дальше
    assert all(o.answer for o in view.answer_options)
    fb = await answer(svc, session_id, scene_id, correct=True)
    assert (fb.new_score, fb.new_level) == (1, 2)


async def test_double_submit_applies_once(make_story, db, session_factory) -> None:
    story = await make_story(3)
    svc = PlayService(db)
    session_id, scene_id = await start(svc, story.id)
    view = await svc.get_scene(session_id, scene_id, SceneType.QUESTION)
    correct = next(o for o in view.answer_options if o.is_correct)

    async def submit():
        async with session_factory() as s:
            return await PlayService(s).submit_answer(session_id, correct.id)

    results = await asyncio.gather(submit(), submit(), return_exceptions=True)

    ok = [r for r in results if not isinstance(r, Exception)]
    failed = [r for r in results if isinstance(r, Exception)]
    assert len(ok) == 1 and len(failed) == 1
    assert isinstance(failed[0], NotFoundError)

    play = await load_play(session_factory, session_id)
    assert play.score == 5
    assert play.current_scene_id == ok[0].next_scene_id


async def test_unknown_session_and_story(db) -> None:
    svc = PlayService(db)

    with pytest.raises(NotFoundError):
        await svc.start_session(12345, "player-1")
    with pytest.raises(NotFoundError):
        await svc.submit_answer(12345, 1)
    with pytest.raises(NotFoundError):
        await svc.get_scene(12345, 1, SceneType.INTRO)


async def test_empty_chain_cannot_advance(make_story, db, session_factory) -> None:
    story = await make_story(1)
    async with session_factory() as s:
        scene_ids = (
            await s.scalars(select(QuestionScene.id).where(QuestionScene.story_id == story.id))
        ).all()
        await s.execute(delete(AnswerOption).where(AnswerOption.question_scene_id.in_(scene_ids)))
        await s.execute(delete(QuestionScene).where(QuestionScene.story_id == story.id))
        await s.commit()

    svc = PlayService(db)
    ref = await svc.start_session(story.id, "player-1")
    play = await svc.sessions.read(ref.session_id)
    assert play.max_score == 0

    with pytest.raises(ConfigurationError):
        await svc.advance(ref.session_id)


async def test_missing_ending_is_configuration_error(make_story, db, session_factory) -> None:
    story = await make_story(1)
    async with session_factory() as s:
        await s.execute(
            delete(EndingScene).where(
                EndingScene.story_id == story.id, EndingScene.ending_type == EndingType.GOOD
            )
        )
        await s.commit()

    svc = PlayService(db)
    session_id, scene_id = await start(svc, story.id)

    with pytest.raises(ConfigurationError):
        await answer(svc, session_id, scene_id, correct=True)

    play = await load_play(session_factory, session_id)
    assert play.state == SessionState.QUESTION
    assert play.score == 0
    async with session_factory() as s:
        stats = await s.get(Story, story.id)
    assert stats.finished == 0

# app/services/reconciler.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Sequence
import logging

from app.schemas.scenes import QuestionSceneEdit
from app.services.errors import NotFoundError, ValidationFailedError
from app.services.locks import story_locks
from app.services.scene_store import OrderSlot, SceneStore


logger = logging.getLogger(__name__)

ANSWERS_PER_SCENE = 4


def validate_scene_edit(edit: QuestionSceneEdit, position: int) -> List[str]:
    """Правила контента одной сцены. Возвращает список нарушений."""
    where = f"Scene {position + 1}"
    errors: List[str] = []

    if not edit.story_text.strip():
        errors.append(f"{where}: story text is required")
    if not edit.question_text.strip():
        errors.append(f"{where}: question text is required")

    if len(edit.answers) != ANSWERS_PER_SCENE:
        errors.append(
            f"{where}: exactly {ANSWERS_PER_SCENE} answers are required, got {len(edit.answers)}"
        )
    for i, answer in enumerate(edit.answers):
        if not answer.answer_text.strip():
            errors.append(f"{where}, answer {i + 1}: answer text is required")
        if not answer.context_text.strip():
            errors.append(f"{where}, answer {i + 1}: context text is required")

    if not 0 <= edit.correct_answer_index < ANSWERS_PER_SCENE:
        errors.append(
            f"{where}: correct answer index must be between 0 and {ANSWERS_PER_SCENE - 1}"
        )
    return errors


def validate_scene_edits(
    edits: Sequence[QuestionSceneEdit],
    existing_ids: Iterable[int] | None = None,
) -> List[str]:
    """Проверяем весь список до любых изменений.

    existing_ids: id сцен истории; если передан, присланный id не из
    этой истории тоже ошибка.
    """
    errors: List[str] = []
    known = set(existing_ids) if existing_ids is not None else None
    seen: set[int] = set()

    if not edits:
        errors.append("At least one question scene is required")

    for pos, edit in enumerate(edits):
        errors.extend(validate_scene_edit(edit, pos))
        if edit.is_new:
            continue
        sid = edit.question_scene_id
        if sid in seen:
            errors.append(f"Scene {pos + 1}: scene {sid} appears more than once")
        seen.add(sid)
        if known is not None and sid not in known:
            errors.append(f"Scene {pos + 1}: scene {sid} does not belong to this story")
    return errors


@dataclass
class ReconciliationPlan:
    deletes: List[int] = field(default_factory=list)
    updates: Dict[int, QuestionSceneEdit] = field(default_factory=dict)
    inserts: List[QuestionSceneEdit] = field(default_factory=list)
    new_order: List[OrderSlot] = field(default_factory=list)


def plan_reconciliation(
    current_ids: Sequence[int],
    edits: Sequence[QuestionSceneEdit],
) -> ReconciliationPlan:
    """Раскладываем присланный список на удаления, правки, вставки и порядок."""
    plan = ReconciliationPlan()
    submitted = {e.question_scene_id for e in edits if not e.is_new}
    plan.deletes = [sid for sid in current_ids if sid not in submitted]

    for edit in edits:
        if edit.is_new:
            plan.new_order.append(OrderSlot(insert_index=len(plan.inserts)))
            plan.inserts.append(edit)
        else:
            plan.updates[edit.question_scene_id] = edit
            plan.new_order.append(OrderSlot(existing_id=edit.question_scene_id))
    return plan


@dataclass(frozen=True)
class ReconciliationResult:
    story_id: int
    ordered_ids: List[int]
    added: int
    updated: int
    deleted: int


class ChainReconciler:
    def __init__(self, store: SceneStore):
        self.store = store

    async def submit_edited_questions(
        self,
        story_id: int,
        edits: Sequence[QuestionSceneEdit],
    ) -> ReconciliationResult:
        """Применяет правку автора к цепочке вопросов.

        Правки одной истории выполняются строго по очереди.
        """
        async with story_locks.hold(story_id):
            story = await self.store.get_story(story_id)
            if story is None:
                raise NotFoundError(f"Story {story_id} not found")

            # текущая цепочка должна быть целой, иначе падаем громко
            chain = await self.store.load_chain(story_id)
            current_ids = chain.to_ordered_list()

            errors = validate_scene_edits(edits, current_ids)
            if errors:
                logger.info(
                    "Rejected question edit for story %s: %d violation(s)", story_id, len(errors)
                )
                raise ValidationFailedError(errors)

            plan = plan_reconciliation(current_ids, edits)
            ordered_ids = await self.store.apply_reconciliation(
                story_id,
                deletes=plan.deletes,
                updates=plan.updates,
                inserts=plan.inserts,
                new_order=plan.new_order,
            )

        result = ReconciliationResult(
            story_id=story_id,
            ordered_ids=ordered_ids,
            added=len(plan.inserts),
            updated=len(plan.updates),
            deleted=len(plan.deletes),
        )
        logger.info(
            "Question scenes saved for story %s. Added=%d, Updated=%d, Deleted=%d",
            story_id, result.added, result.updated, result.deleted,
        )
        return result

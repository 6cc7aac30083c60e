from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, AliasChoices


class AnswerEdit(BaseModel):
    answer_text: str = ""
    # текст-пояснение, который игрок видит после ответа
    context_text: str = Field(
        default="",
        validation_alias=AliasChoices("context_text", "feedback_text"),
    )

    model_config = ConfigDict(populate_by_name=True)


class QuestionSceneEdit(BaseModel):
    """Одна сцена в присланном автором списке.

    question_scene_id None (или 0) означает новую сцену. Правила контента тут
    намеренно не проверяются: их проверяет reconciler и отдаёт список
    всех нарушений сразу.
    """

    question_scene_id: Optional[int] = None
    story_text: str = ""
    question_text: str = ""
    correct_answer_index: int = -1
    answers: list[AnswerEdit] = Field(default_factory=list)

    @property
    def is_new(self) -> bool:
        return not self.question_scene_id


class QuestionSceneOut(BaseModel):
    question_scene_id: int
    story_text: str
    question_text: str
    correct_answer_index: int
    answers: list[AnswerEdit]

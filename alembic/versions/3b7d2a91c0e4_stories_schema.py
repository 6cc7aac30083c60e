"""stories schema

Revision ID: 3b7d2a91c0e4
Revises: 
Create Date: 2026-10-19 12:10:44.218305

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3b7d2a91c0e4'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "stories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("difficulty", sa.String(20), nullable=False),
        sa.Column("accessibility", sa.String(20), nullable=False),
        sa.Column("code", sa.String(16), nullable=True, unique=True, comment="код для приватных историй"),
        sa.Column("owner_id", sa.String(64), nullable=True),
        sa.Column("played", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("finished", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("failed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "created_at",
            sa.DateTime(),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
    )

    op.create_table(
        "intro_scenes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "story_id",
            sa.Integer(),
            sa.ForeignKey("stories.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("intro_text", sa.Text(), nullable=False),
    )

    # цепочка вопросов: next_question_scene_id ссылается на ту же таблицу
    op.create_table(
        "question_scenes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "story_id",
            sa.Integer(),
            sa.ForeignKey("stories.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("scene_text", sa.Text(), nullable=False),
        sa.Column("question", sa.Text(), nullable=False),
        sa.Column(
            "next_question_scene_id",
            sa.Integer(),
            sa.ForeignKey("question_scenes.id", ondelete="SET NULL"),
            nullable=True,
            unique=True,
            comment="следующая сцена; только порядок, не владение",
        ),
    )

    op.create_table(
        "answer_options",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "question_scene_id",
            sa.Integer(),
            sa.ForeignKey("question_scenes.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("answer", sa.Text(), nullable=False),
        sa.Column("feedback_text", sa.Text(), nullable=False),
        sa.Column("is_correct", sa.Boolean(), nullable=False, server_default=sa.false()),
    )

    op.create_table(
        "ending_scenes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "story_id",
            sa.Integer(),
            sa.ForeignKey("stories.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("ending_type", sa.String(20), nullable=False),
        sa.Column("ending_text", sa.Text(), nullable=False),
        sa.UniqueConstraint("story_id", "ending_type", name="uq_story_ending_type"),
    )

    op.create_table(
        "play_sessions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "story_id",
            sa.Integer(),
            sa.ForeignKey("stories.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("player_id", sa.String(64), nullable=False),
        sa.Column("state", sa.String(20), nullable=False),
        sa.Column("current_scene_id", sa.Integer(), nullable=True),
        sa.Column("score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("level", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("seed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "start_time",
            sa.DateTime(),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column("end_time", sa.DateTime(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
    )

    # Индексы для быстрого поиска
    op.create_index("ix_stories_owner_id", "stories", ["owner_id"])
    op.create_index("ix_question_scenes_story_id", "question_scenes", ["story_id"])
    op.create_index("ix_answer_options_question_scene_id", "answer_options", ["question_scene_id"])
    op.create_index("ix_ending_scenes_story_id", "ending_scenes", ["story_id"])
    op.create_index("ix_play_sessions_story_id", "play_sessions", ["story_id"])
    op.create_index("ix_play_sessions_player_id", "play_sessions", ["player_id"])


def downgrade() -> None:
    op.drop_index("ix_play_sessions_player_id", table_name="play_sessions")
    op.drop_index("ix_play_sessions_story_id", table_name="play_sessions")
    op.drop_index("ix_ending_scenes_story_id", table_name="ending_scenes")
    op.drop_index("ix_answer_options_question_scene_id", table_name="answer_options")
    op.drop_index("ix_question_scenes_story_id", table_name="question_scenes")
    op.drop_index("ix_stories_owner_id", table_name="stories")
    op.drop_table("play_sessions")
    op.drop_table("ending_scenes")
    op.drop_table("answer_options")
    op.drop_table("question_scenes")
    op.drop_table("intro_scenes")
    op.drop_table("stories")

"""Initial schema: users, subscriptions, content, progress, gamification, sessions.

Subscription tiers are seeded at application startup, not here.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB

revision: str = "001_initial_schema"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_JSON = sa.JSON().with_variant(JSONB(), "postgresql")


def _id() -> sa.Column:
    return sa.Column("id", sa.String(36), primary_key=True)


def _ts(name: str, nullable: bool = True) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade() -> None:
    # --- Users ---
    op.create_table(
        "users",
        _id(),
        sa.Column("email", sa.String(320), nullable=False, unique=True),
        sa.Column("username", sa.String(64), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(256), nullable=False),
        sa.Column("role", sa.String(16), nullable=False, server_default="USER"),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_table(
        "profiles",
        _id(),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False, unique=True),
        sa.Column("nickname", sa.String(64)),
        sa.Column("bio", sa.Text),
        sa.Column("avatar_url", sa.Text),
        sa.Column("selected_badge", sa.String(36)),
        _ts("created_at"),
        _ts("updated_at"),
    )

    # --- Subscriptions ---
    op.create_table(
        "subscription_tiers",
        _id(),
        sa.Column("name", sa.String(16), nullable=False, unique=True),
        sa.Column("display_name", sa.String(64), nullable=False),
        sa.Column("price", sa.Integer, nullable=False, server_default="0"),
        sa.Column("module_limit", sa.Integer),
        sa.Column("features", _JSON, nullable=False),
        _ts("created_at"),
    )
    op.create_table(
        "user_subscriptions",
        _id(),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False, unique=True),
        sa.Column("tier_id", sa.String(36), sa.ForeignKey("subscription_tiers.id"), nullable=False),
        sa.Column("selected_modules", _JSON, nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="ACTIVE"),
        _ts("start_date"),
        _ts("end_date"),
        _ts("updated_at"),
    )

    # --- Content ---
    op.create_table(
        "modules",
        _id(),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("slug", sa.String(220), nullable=False, unique=True),
        sa.Column("description", sa.Text, nullable=False, server_default=""),
        sa.Column("category", sa.String(32), nullable=False),
        sa.Column("thumbnail_url", sa.Text),
        sa.Column("estimated_hours", sa.Integer, nullable=False, server_default="0"),
        sa.Column("order", sa.Integer, nullable=False, server_default="0"),
        sa.Column("is_published", sa.Boolean, nullable=False, server_default=sa.true()),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_table(
        "chapters",
        _id(),
        sa.Column("module_id", sa.String(36), sa.ForeignKey("modules.id"), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text),
        sa.Column("order", sa.Integer, nullable=False),
        _ts("created_at"),
        sa.UniqueConstraint("module_id", "order", name="uq_chapter_module_order"),
    )
    op.create_index("ix_chapters_module_id", "chapters", ["module_id"])
    op.create_table(
        "lessons",
        _id(),
        sa.Column("chapter_id", sa.String(36), sa.ForeignKey("chapters.id"), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("content", sa.Text, nullable=False, server_default=""),
        sa.Column("order", sa.Integer, nullable=False),
        sa.Column("estimated_minutes", sa.Integer, nullable=False, server_default="10"),
        sa.Column("difficulty", sa.String(16), nullable=False, server_default="BEGINNER"),
        _ts("created_at"),
        sa.UniqueConstraint("chapter_id", "order", name="uq_lesson_chapter_order"),
    )
    op.create_index("ix_lessons_chapter_id", "lessons", ["chapter_id"])
    op.create_table(
        "module_prerequisites",
        _id(),
        sa.Column("module_id", sa.String(36), sa.ForeignKey("modules.id"), nullable=False),
        sa.Column("prerequisite_id", sa.String(36), sa.ForeignKey("modules.id"), nullable=False),
        sa.Column("order", sa.Integer, nullable=False, server_default="0"),
        sa.UniqueConstraint("module_id", "prerequisite_id", name="uq_module_prerequisite"),
    )
    op.create_table(
        "learning_paths",
        _id(),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=False, server_default=""),
        sa.Column("category", sa.String(32)),
        sa.Column("modules", _JSON, nullable=False),
        sa.Column("order", sa.Integer, nullable=False, server_default="0"),
        _ts("created_at"),
    )

    # --- Enrollment & progress ---
    op.create_table(
        "enrollments",
        _id(),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("module_id", sa.String(36), sa.ForeignKey("modules.id"), nullable=False),
        _ts("enrolled_at"),
        _ts("last_accessed_at"),
        sa.UniqueConstraint("user_id", "module_id", name="uq_enrollment_user_module"),
    )
    op.create_index("ix_enrollments_user_id", "enrollments", ["user_id"])
    op.create_index("ix_enrollments_module_id", "enrollments", ["module_id"])
    op.create_table(
        "user_progress",
        _id(),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("lesson_id", sa.String(36), sa.ForeignKey("lessons.id"), nullable=False),
        sa.Column("completed", sa.Boolean, nullable=False, server_default=sa.false()),
        _ts("completed_at"),
        sa.UniqueConstraint("user_id", "lesson_id", name="uq_progress_user_lesson"),
    )
    op.create_index("ix_user_progress_user_id", "user_progress", ["user_id"])
    op.create_index("ix_user_progress_lesson_id", "user_progress", ["lesson_id"])

    # --- Gamification & notifications ---
    op.create_table(
        "achievements",
        _id(),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("type", sa.String(32), nullable=False),
        sa.Column("title", sa.String(128), nullable=False),
        sa.Column("description", sa.Text, nullable=False),
        sa.Column("icon", sa.String(16), nullable=False),
        sa.Column("rarity", sa.String(16), nullable=False),
        sa.Column("award_key", sa.String(128), nullable=False, server_default=""),
        sa.Column("metadata", _JSON, nullable=False),
        _ts("earned_at"),
        sa.UniqueConstraint("user_id", "type", "award_key", name="uq_achievement_user_type_key"),
    )
    op.create_index("ix_achievements_user_id", "achievements", ["user_id"])
    op.create_table(
        "notifications",
        _id(),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("type", sa.String(32), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("icon", sa.String(16)),
        sa.Column("metadata", _JSON, nullable=False),
        sa.Column("read", sa.Boolean, nullable=False, server_default=sa.false()),
        _ts("created_at"),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])

    # --- Time tracking ---
    op.create_table(
        "learning_sessions",
        _id(),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("lesson_id", sa.String(36), sa.ForeignKey("lessons.id")),
        sa.Column("module_id", sa.String(36), sa.ForeignKey("modules.id")),
        _ts("start_time"),
        _ts("last_ping"),
        _ts("end_time"),
        sa.Column("duration", sa.Integer),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
    )
    op.create_index("ix_learning_sessions_user_id", "learning_sessions", ["user_id"])


def downgrade() -> None:
    for table in (
        "learning_sessions",
        "notifications",
        "achievements",
        "user_progress",
        "enrollments",
        "learning_paths",
        "module_prerequisites",
        "lessons",
        "chapters",
        "modules",
        "user_subscriptions",
        "subscription_tiers",
        "profiles",
        "users",
    ):
        op.drop_table(table)

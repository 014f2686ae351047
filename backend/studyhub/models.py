"""SQLModel data models.

This module defines the application's database tables using SQLModel.
Identifiers are opaque uuid hex strings. Composite primary keys carry
the uniqueness rules the scoring code relies on (one answer per user
per quiz, one rank snapshot per user per metric).
"""

import uuid
from enum import Enum
from typing import List, Optional
from datetime import datetime, timezone
from sqlalchemy import CheckConstraint, Column, JSON
from sqlmodel import SQLModel, Field, Relationship


def _new_id() -> str:
    return uuid.uuid4().hex


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Trend(str, Enum):
    """Leaderboard movement relative to the previously recorded rank."""
    up = "up"
    down = "down"
    neutral = "neutral"


class Metric(str, Enum):
    """Leaderboard ordering key."""
    points = "points"
    hours = "hours"


class PostKind(str, Enum):
    text = "text"
    file = "file"
    quiz = "quiz"


class User(SQLModel, table=True):
    """A registered user.

    Fields:
    - `email`: unique login name
    - `password_hash`: hashed password string (never store plaintext)
    - `followers_count`/`following_count`: denormalized `Follow` counts
    """
    __table_args__ = (
        CheckConstraint("followers_count >= 0", name="ck_user_followers_nonneg"),
        CheckConstraint("following_count >= 0", name="ck_user_following_nonneg"),
    )

    id: str = Field(default_factory=_new_id, primary_key=True)
    name: str
    email: str = Field(index=True, nullable=False, unique=True)
    password_hash: str
    bio: str = "Estudante novo!"
    avatar: Optional[str] = None
    followers_count: int = 0
    following_count: int = 0
    created_at: datetime = Field(default_factory=_now)


class UserProgress(SQLModel, table=True):
    """The per-user ledger of cumulative study hours and quiz points.

    Exactly one row per user, created together with the `User`. Values
    only change through additive deltas or an explicit reset.
    """
    __table_args__ = (
        CheckConstraint("hours >= 0", name="ck_progress_hours_nonneg"),
        CheckConstraint("points >= 0", name="ck_progress_points_nonneg"),
    )

    user_id: str = Field(foreign_key="user.id", primary_key=True)
    hours: float = 0.0
    points: int = 0
    trend: Trend = Trend.neutral


class StudySession(SQLModel, table=True):
    """A logged study session; its duration feeds the hours ledger."""
    __table_args__ = (
        CheckConstraint("hours > 0", name="ck_session_hours_positive"),
    )

    id: str = Field(default_factory=_new_id, primary_key=True)
    user_id: str = Field(foreign_key="user.id", index=True)
    subject: str
    hours: float
    created_at: datetime = Field(default_factory=_now)


class Group(SQLModel, table=True):
    """A topic-based study group."""
    id: str = Field(default_factory=_new_id, primary_key=True)
    name: str
    description: Optional[str] = None
    creator_id: str = Field(foreign_key="user.id")
    created_at: datetime = Field(default_factory=_now)


class GroupPost(SQLModel, table=True):
    """A message inside a group chat.

    `kind` tags the variant; quiz posts have a matching `QuizPost` row
    sharing the same id.
    """
    id: str = Field(default_factory=_new_id, primary_key=True)
    group_id: str = Field(foreign_key="group.id", index=True)
    user_id: str = Field(foreign_key="user.id", index=True)
    kind: PostKind = PostKind.text
    text: str
    file_name: Optional[str] = None
    created_at: datetime = Field(default_factory=_now, index=True)
    quiz: Optional["QuizPost"] = Relationship(
        back_populates="post", sa_relationship_kwargs={"uselist": False}
    )


class QuizPost(SQLModel, table=True):
    """A peer-authored multiple-choice question. Immutable once created."""
    __table_args__ = (
        CheckConstraint("points_award > 0", name="ck_quiz_points_positive"),
    )

    id: str = Field(foreign_key="grouppost.id", primary_key=True)
    author_id: str = Field(foreign_key="user.id", index=True)
    question: str
    options: List[str] = Field(sa_column=Column(JSON, nullable=False))
    correct_index: int
    points_award: int
    created_at: datetime = Field(default_factory=_now)
    post: Optional[GroupPost] = Relationship(back_populates="quiz")


class QuizAnswer(SQLModel, table=True):
    """A user's single answer to a quiz post.

    The composite primary key is the storage-level guard against a user
    answering the same quiz twice.
    """
    quiz_post_id: str = Field(foreign_key="quizpost.id", primary_key=True)
    user_id: str = Field(foreign_key="user.id", primary_key=True)
    option_index: int
    is_correct: bool
    answered_at: datetime = Field(default_factory=_now)


class RankSnapshot(SQLModel, table=True):
    """Last known leaderboard rank per user and metric.

    `previous_rank` holds the rank before the latest change and is the
    baseline the trend is computed against.
    """
    user_id: str = Field(foreign_key="user.id", primary_key=True)
    metric: Metric = Field(primary_key=True)
    rank: int
    previous_rank: Optional[int] = None
    updated_at: datetime = Field(default_factory=_now)


class Post(SQLModel, table=True):
    """A progress post on the public feed, optionally with before/after images."""
    id: str = Field(default_factory=_new_id, primary_key=True)
    user_id: str = Field(foreign_key="user.id", index=True)
    content: str
    image_start: Optional[str] = None
    image_end: Optional[str] = None
    created_at: datetime = Field(default_factory=_now, index=True)


class PostLike(SQLModel, table=True):
    """One like per user per feed post; the composite key enforces it."""
    post_id: str = Field(foreign_key="post.id", primary_key=True)
    user_id: str = Field(foreign_key="user.id", primary_key=True)
    created_at: datetime = Field(default_factory=_now)


class PostComment(SQLModel, table=True):
    id: str = Field(default_factory=_new_id, primary_key=True)
    post_id: str = Field(foreign_key="post.id", index=True)
    user_id: str = Field(foreign_key="user.id", index=True)
    content: str
    created_at: datetime = Field(default_factory=_now)


class Follow(SQLModel, table=True):
    """`follower_id` follows `following_id`. Self-follows are rejected."""
    __table_args__ = (
        CheckConstraint("follower_id != following_id", name="ck_follow_not_self"),
    )

    follower_id: str = Field(foreign_key="user.id", primary_key=True)
    following_id: str = Field(foreign_key="user.id", primary_key=True)
    created_at: datetime = Field(default_factory=_now)

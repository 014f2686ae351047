"""Pydantic request/response schemas used by the API.

Schemas keep API input/output shapes stable and reject malformed
payloads before they reach the services. Group post content is a
tagged union on `type`, decoded once here.
"""

from typing import Annotated, List, Literal, Optional, Union
from pydantic import BaseModel, Field


class RegisterIn(BaseModel):
    """Payload for user registration."""
    name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    password: str = Field(min_length=1)


class LoginIn(BaseModel):
    email: str
    password: str


class DeleteAccountIn(BaseModel):
    """Password confirmation required to delete an account."""
    password: str


class UserSummary(BaseModel):
    id: str
    name: str
    avatar: Optional[str] = None


class TokenOut(BaseModel):
    """Authentication response containing an access token."""
    access_token: str
    user: UserSummary


class ProgressOut(BaseModel):
    user_id: str
    hours: float
    points: int
    trend: str


class ProgressDeltaIn(BaseModel):
    """Additive ledger update; both deltas must be non-negative."""
    hours: float = Field(default=0.0, ge=0, allow_inf_nan=False)
    points: int = Field(default=0, ge=0)


class StudySessionIn(BaseModel):
    subject: str = Field(min_length=1)
    hours: float = Field(gt=0, allow_inf_nan=False)


class ResetIn(BaseModel):
    field: Literal["hours", "points"]


class RankingEntryOut(BaseModel):
    rank: int
    user: UserSummary
    hours: float
    points: int
    trend: str
    hours_display: str


class GroupIn(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None


class QuizData(BaseModel):
    """Authored quiz. `points` falls back to the configured default award."""
    question: str = Field(min_length=1)
    options: List[str]
    correct_index: int = Field(ge=0)
    points: Optional[int] = Field(default=None, gt=0)


class TextContent(BaseModel):
    type: Literal["text"] = "text"
    text: str = Field(min_length=1)


class FileContent(BaseModel):
    type: Literal["file"] = "file"
    text: str = Field(min_length=1)
    file_name: str = Field(min_length=1)


class QuizContent(BaseModel):
    type: Literal["quiz"] = "quiz"
    text: str = "Quiz challenge"
    quiz: QuizData


PostContent = Annotated[Union[TextContent, FileContent, QuizContent], Field(discriminator="type")]


class GroupPostIn(BaseModel):
    content: PostContent


class AnswerIn(BaseModel):
    option_index: int


class AnswerOut(BaseModel):
    is_correct: bool
    points_awarded: int


class ProfileIn(BaseModel):
    """Profile edit; omitted fields keep their current value."""
    name: Optional[str] = Field(default=None, min_length=1)
    bio: Optional[str] = None
    avatar: Optional[str] = None


class PasswordChangeIn(BaseModel):
    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=1)


class PostIn(BaseModel):
    """A progress post; the image URLs show the before/after of a study goal."""
    content: str = Field(min_length=1)
    image_start: Optional[str] = None
    image_end: Optional[str] = None


class PostUpdateIn(BaseModel):
    content: str = Field(min_length=1)


class CommentIn(BaseModel):
    content: str = Field(min_length=1)


class LikeOut(BaseModel):
    liked: bool
    count: int

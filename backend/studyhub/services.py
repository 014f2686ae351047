"""Business logic services used by HTTP controllers.

This module holds small service classes that coordinate repositories
and domain rules. Services validate input, execute the domain logic,
own the transaction (commit/rollback) and raise `errors.StudyError`
subclasses for business-rule violations.
"""

import json
import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional
from passlib.context import CryptContext
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session
import jwt
from . import errors, models, repositories, schemas
from .config import settings
from .utils.formatting import format_study_time

PWD_CTX = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
LEDGER_FIELDS = ("hours", "points")

logger = logging.getLogger("studyhub.services")


def _log_event(name: str, payload: dict) -> None:
    logger.info("%s %s", name, json.dumps(payload, ensure_ascii=True, default=str))


def create_access_token(user: models.User) -> str:
    """Sign a JWT carrying the user id, valid for `JWT_EXPIRE_HOURS`."""
    expire = datetime.now(timezone.utc) + timedelta(hours=settings.JWT_EXPIRE_HOURS)
    payload = {"user_id": user.id, "email": user.email, "exp": int(expire.timestamp())}
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def user_summary(user: models.User) -> dict:
    return {"id": user.id, "name": user.name, "avatar": user.avatar}


def progress_payload(progress: models.UserProgress) -> dict:
    return {
        "user_id": progress.user_id,
        "hours": progress.hours,
        "points": progress.points,
        "trend": models.Trend(progress.trend).value,
    }


class AuthService:
    """Registration, authentication, profile edits and account removal."""
    def __init__(self, session: Session):
        self.session = session
        self.user_repo = repositories.UserRepository(session)
        self.progress_repo = repositories.ProgressRepository(session)

    def register(self, name: str, email: str, password: str) -> models.User:
        """Create a user and their empty ledger in one transaction.

        Raises `errors.Conflict` when the email is already registered.
        """
        email = email.strip().lower()
        if self.user_repo.get_by_email(email):
            raise errors.Conflict("email already registered")
        user = models.User(name=name.strip(), email=email, password_hash=PWD_CTX.hash(password))
        user.avatar = f"https://picsum.photos/seed/{user.id}/100/100"
        try:
            self.user_repo.create(user)
            self.progress_repo.create(user.id)
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise errors.Conflict("email already registered")
        self.session.refresh(user)
        _log_event("user_registered", {"user_id": user.id})
        return user

    def authenticate(self, email: str, password: str) -> Optional[str]:
        """Verify credentials and return a signed JWT token on success.

        Returns `None` if authentication fails.
        """
        user = self.user_repo.get_by_email(email.strip().lower())
        if not user:
            return None
        if not PWD_CTX.verify(password, user.password_hash):
            return None
        return create_access_token(user)

    def profile(self, user_id: str) -> dict:
        """Return the user's public fields merged with their ledger."""
        user = self.user_repo.get(user_id)
        progress = self.progress_repo.get(user_id)
        if not user or not progress:
            raise errors.NotFound("user not found")
        out = user_summary(user)
        out.update({
            "email": user.email,
            "bio": user.bio,
            "followers_count": user.followers_count,
            "following_count": user.following_count,
        })
        out.update(progress_payload(progress))
        out["hours_display"] = format_study_time(progress.hours)
        return out

    def delete_account(self, user_id: str, password: str) -> None:
        """Delete the account after re-checking the password. Irreversible."""
        user = self.user_repo.get(user_id)
        if not user:
            raise errors.NotFound("user not found")
        if not PWD_CTX.verify(password, user.password_hash):
            raise errors.ValidationFailed("incorrect password")
        self.user_repo.delete_account(user_id)
        self.session.commit()
        _log_event("account_deleted", {"user_id": user_id})

    def update_profile(self, user_id: str, name: Optional[str] = None, bio: Optional[str] = None,
                       avatar: Optional[str] = None) -> dict:
        """Edit the public profile fields that were supplied."""
        user = self.user_repo.get(user_id)
        if not user:
            raise errors.NotFound("user not found")
        if name is not None:
            if not name.strip():
                raise errors.ValidationFailed("name must not be empty")
            user.name = name.strip()
        if bio is not None:
            user.bio = bio
        if avatar is not None:
            user.avatar = avatar
        self.session.add(user)
        self.session.commit()
        _log_event("profile_updated", {"user_id": user_id})
        return self.profile(user_id)

    def change_password(self, user_id: str, current_password: str, new_password: str) -> None:
        """Replace the password hash once the current password checks out."""
        user = self.user_repo.get(user_id)
        if not user:
            raise errors.NotFound("user not found")
        if not PWD_CTX.verify(current_password, user.password_hash):
            raise errors.ValidationFailed("current password is incorrect")
        if not new_password:
            raise errors.ValidationFailed("new password must not be empty")
        user.password_hash = PWD_CTX.hash(new_password)
        self.session.add(user)
        self.session.commit()
        _log_event("password_changed", {"user_id": user_id})


class ProgressService:
    """The progress ledger: additive updates, reset and reads."""
    def __init__(self, session: Session):
        self.session = session
        self.progress_repo = repositories.ProgressRepository(session)
        self.study_repo = repositories.StudySessionRepository(session)

    def read(self, user_id: str, requester_id: Optional[str] = None) -> models.UserProgress:
        """Return the ledger for `user_id`.

        When `requester_id` is given it must be the owner.
        """
        if requester_id is not None and requester_id != user_id:
            raise errors.Unauthorized("progress can only be read by its owner")
        progress = self.progress_repo.get(user_id)
        if not progress:
            raise errors.NotFound(f"progress not found for user: {user_id}")
        return progress

    def apply_delta(self, user_id: str, hours_delta: float = 0.0, points_delta: int = 0) -> models.UserProgress:
        """Add non-negative deltas to the ledger with one in-place UPDATE."""
        if not math.isfinite(hours_delta):
            raise errors.ValidationFailed("hours must be a finite number")
        if hours_delta < 0 or points_delta < 0:
            raise errors.ValidationFailed("deltas must be non-negative")
        touched = self.progress_repo.increment(user_id, hours=hours_delta, points=points_delta)
        if not touched:
            self.session.rollback()
            raise errors.NotFound(f"progress not found for user: {user_id}")
        self.session.commit()
        _log_event("progress_delta", {"user_id": user_id, "hours": hours_delta, "points": points_delta})
        return self.read(user_id)

    def reset(self, user_id: str, field: str, requester_id: str) -> models.UserProgress:
        """Zero `hours` or `points` on the owner's ledger, leaving the other field intact."""
        if requester_id != user_id:
            raise errors.Unauthorized("only the owner can reset progress")
        if field not in LEDGER_FIELDS:
            raise errors.ValidationFailed(f"unknown progress field: {field}")
        touched = self.progress_repo.reset_field(user_id, field)
        if not touched:
            self.session.rollback()
            raise errors.NotFound(f"progress not found for user: {user_id}")
        self.session.commit()
        _log_event("progress_reset", {"user_id": user_id, "field": field})
        return self.read(user_id)

    def log_session(self, user_id: str, subject: str, hours: float) -> Dict:
        """Record a study session and credit its duration to the ledger."""
        if not math.isfinite(hours) or hours <= 0:
            raise errors.ValidationFailed("session duration must be positive")
        record = models.StudySession(user_id=user_id, subject=subject.strip(), hours=hours)
        self.study_repo.create(record)
        if not self.progress_repo.increment(user_id, hours=hours):
            self.session.rollback()
            raise errors.NotFound(f"progress not found for user: {user_id}")
        self.session.commit()
        _log_event("study_session", {"user_id": user_id, "subject": record.subject, "hours": hours})
        return {
            "session": self._session_payload(record),
            "progress": progress_payload(self.read(user_id)),
        }

    def list_sessions(self, user_id: str, limit: int = 50) -> List[Dict]:
        return [self._session_payload(s) for s in self.study_repo.list_for_user(user_id, limit=limit)]

    @staticmethod
    def _session_payload(record: models.StudySession) -> Dict:
        return {
            "id": record.id,
            "subject": record.subject,
            "hours": record.hours,
            "hours_display": format_study_time(record.hours),
            "created_at": record.created_at,
        }


def _naive(ts: datetime) -> datetime:
    return ts.replace(tzinfo=None) if ts.tzinfo else ts


def _trend_for(rank: int, previous_rank: Optional[int]) -> models.Trend:
    if previous_rank is None or rank == previous_rank:
        return models.Trend.neutral
    return models.Trend.up if rank < previous_rank else models.Trend.down


class RankingService:
    """Leaderboard ordering with a persisted previous-rank baseline."""
    def __init__(self, session: Session):
        self.session = session
        self.progress_repo = repositories.ProgressRepository(session)
        self.snapshot_repo = repositories.RankSnapshotRepository(session)

    def compute_ranking(self, metric: str = "points") -> List[Dict]:
        """Return every user ranked by `metric` (points or hours).

        Order: metric descending, the other metric descending, then user
        creation time and id ascending, so repeated calls without writes
        give the same order. Rank is the 1-based position.

        Trend compares the rank with the rank recorded before its last
        change. Snapshots only move when a rank changes, which keeps the
        trend stable across repeated reads.
        """
        try:
            metric = models.Metric(metric)
        except ValueError:
            raise errors.ValidationFailed(f"unknown ranking metric: {metric}")
        primary = metric.value
        secondary = "hours" if metric is models.Metric.points else "points"
        rows = self.progress_repo.list_with_users()
        rows.sort(key=lambda row: (
            -getattr(row[0], primary),
            -getattr(row[0], secondary),
            _naive(row[1].created_at),
            row[1].id,
        ))
        snapshots = self.snapshot_repo.for_metric(metric)
        now = datetime.now(timezone.utc)
        entries = []
        for rank, (progress, user) in enumerate(rows, start=1):
            snap = snapshots.get(user.id)
            if snap is None:
                snap = self.snapshot_repo.save(models.RankSnapshot(user_id=user.id, metric=metric, rank=rank))
            elif snap.rank != rank:
                snap.previous_rank = snap.rank
                snap.rank = rank
                snap.updated_at = now
                self.snapshot_repo.save(snap)
            trend = _trend_for(snap.rank, snap.previous_rank)
            if metric is models.Metric.points and progress.trend != trend:
                progress.trend = trend
            entries.append({
                "rank": rank,
                "user": user_summary(user),
                "hours": progress.hours,
                "points": progress.points,
                "trend": trend.value,
                "hours_display": format_study_time(progress.hours),
            })
        try:
            self.session.commit()
        except IntegrityError:
            # a concurrent read inserted the same first snapshot; its baseline is equivalent
            self.session.rollback()
            logger.warning("rank snapshot write conflict for metric %s", primary)
        return entries


def _validate_quiz(quiz: schemas.QuizData) -> None:
    expected = settings.QUIZ_OPTION_COUNT
    if len(quiz.options) != expected:
        raise errors.ValidationFailed(f"quiz must have exactly {expected} options")
    if any(not o.strip() for o in quiz.options):
        raise errors.ValidationFailed("quiz options must not be empty")
    if not 0 <= quiz.correct_index < len(quiz.options):
        raise errors.ValidationFailed("correct_index out of range")


class GroupService:
    """Groups and the tagged posts (text, file, quiz) inside them."""
    def __init__(self, session: Session):
        self.session = session
        self.group_repo = repositories.GroupRepository(session)
        self.quiz_repo = repositories.QuizRepository(session)
        self.user_repo = repositories.UserRepository(session)

    def create_group(self, creator_id: str, name: str, description: Optional[str] = None) -> models.Group:
        group = models.Group(name=name.strip(), description=description, creator_id=creator_id)
        self.group_repo.create(group)
        self.session.commit()
        self.session.refresh(group)
        return group

    def list_groups(self) -> List[models.Group]:
        return self.group_repo.list_all()

    def create_post(self, group_id: str, user_id: str, content: schemas.PostContent) -> Dict:
        """Persist a post; quiz content also creates the immutable `QuizPost`."""
        if not self.group_repo.get(group_id):
            raise errors.NotFound(f"group not found: {group_id}")
        quiz = None
        if isinstance(content, schemas.QuizContent):
            _validate_quiz(content.quiz)
            post = models.GroupPost(group_id=group_id, user_id=user_id, kind=models.PostKind.quiz, text=content.text)
            quiz = models.QuizPost(
                id=post.id,
                author_id=user_id,
                question=content.quiz.question.strip(),
                options=list(content.quiz.options),
                correct_index=content.quiz.correct_index,
                points_award=content.quiz.points or settings.QUIZ_DEFAULT_POINTS,
            )
        elif isinstance(content, schemas.FileContent):
            post = models.GroupPost(
                group_id=group_id, user_id=user_id, kind=models.PostKind.file,
                text=content.text, file_name=content.file_name,
            )
        else:
            post = models.GroupPost(group_id=group_id, user_id=user_id, kind=models.PostKind.text, text=content.text)
        self.group_repo.create_post(post, quiz)
        self.session.commit()
        _log_event("group_post", {"post_id": post.id, "group_id": group_id, "kind": models.PostKind(post.kind).value})
        return self.post_payload(post, viewer_id=user_id)

    def list_posts(self, group_id: str, viewer_id: Optional[str] = None, limit: int = 50) -> List[Dict]:
        """Newest posts first, with the viewer's own quiz answers attached."""
        if not self.group_repo.get(group_id):
            raise errors.NotFound(f"group not found: {group_id}")
        posts = self.group_repo.list_posts(group_id, limit=limit)
        answers = {}
        if viewer_id:
            quiz_ids = [p.id for p in posts if p.kind == models.PostKind.quiz]
            answers = self.quiz_repo.answers_by_user(viewer_id, quiz_ids)
        return [self.post_payload(p, viewer_id=viewer_id, answer=answers.get(p.id)) for p in posts]

    def delete_post(self, group_id: str, post_id: str, user_id: str) -> None:
        """Delete a group post. Allowed for its author and the group's creator.

        A quiz post takes its answers with it; points already awarded for
        those answers stay on the ledgers.
        """
        post = self.group_repo.get_post(group_id, post_id)
        if not post:
            raise errors.NotFound(f"post not found: {post_id}")
        group = self.group_repo.get(group_id)
        if post.user_id != user_id and (group is None or group.creator_id != user_id):
            raise errors.Unauthorized("only the author or the group creator can delete this post")
        self.group_repo.delete_post(post_id)
        self.session.commit()
        _log_event("group_post_deleted", {"post_id": post_id, "group_id": group_id, "user_id": user_id})

    def post_payload(self, post: models.GroupPost, viewer_id: Optional[str] = None,
                     answer: Optional[models.QuizAnswer] = None) -> Dict:
        author = self.user_repo.get(post.user_id)
        out = {
            "id": post.id,
            "type": models.PostKind(post.kind).value,
            "text": post.text,
            "created_at": post.created_at,
            "user": user_summary(author) if author else None,
        }
        if post.kind == models.PostKind.file:
            out["file_name"] = post.file_name
        quiz = post.quiz if post.kind == models.PostKind.quiz else None
        if quiz is not None:
            reveal = answer is not None or viewer_id == quiz.author_id
            out["quiz"] = {
                "question": quiz.question,
                "options": list(quiz.options),
                "points": quiz.points_award,
                "correct_index": quiz.correct_index if reveal else None,
            }
            if answer is not None:
                out["user_answer"] = {"option_index": answer.option_index, "is_correct": answer.is_correct}
        return out


class QuizService:
    """One-shot quiz answering and point awards."""
    def __init__(self, session: Session):
        self.session = session
        self.quiz_repo = repositories.QuizRepository(session)
        self.group_repo = repositories.GroupRepository(session)
        self.progress_repo = repositories.ProgressRepository(session)

    def submit_answer(self, quiz_post_id: str, user_id: str, option_index: int,
                      group_id: Optional[str] = None) -> Dict:
        """Record `user_id`'s single answer to a quiz and award points if correct.

        Unanswered -> Answered(correct | incorrect) is the only
        transition; any later submission raises `errors.AlreadyAnswered`.
        The answer row and the ledger increment commit together. The
        composite primary key on answers closes the race between two
        concurrent submissions: the loser's flush fails with
        `IntegrityError` and is reported as `AlreadyAnswered`.
        """
        if group_id is not None and not self.group_repo.get_post(group_id, quiz_post_id):
            raise errors.QuizNotFound(f"quiz not found: {quiz_post_id}")
        quiz = self.quiz_repo.get_quiz(quiz_post_id)
        if not quiz:
            raise errors.QuizNotFound(f"quiz not found: {quiz_post_id}")
        if quiz.author_id == user_id:
            raise errors.SelfAnswerForbidden("authors cannot answer their own quiz")
        if not 0 <= option_index < len(quiz.options):
            raise errors.InvalidOption(f"option_index out of range: {option_index}")
        if self.quiz_repo.get_answer(quiz_post_id, user_id):
            raise errors.AlreadyAnswered("quiz already answered")

        is_correct = option_index == quiz.correct_index
        awarded = quiz.points_award if is_correct else 0
        answer = models.QuizAnswer(
            quiz_post_id=quiz_post_id, user_id=user_id,
            option_index=option_index, is_correct=is_correct,
        )
        try:
            self.quiz_repo.create_answer(answer)
            if awarded and not self.progress_repo.increment(user_id, points=awarded):
                raise errors.NotFound(f"progress not found for user: {user_id}")
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise errors.AlreadyAnswered("quiz already answered")
        except errors.StudyError:
            self.session.rollback()
            raise
        _log_event("quiz_answer", {
            "quiz_post_id": quiz_post_id,
            "user_id": user_id,
            "option_index": option_index,
            "is_correct": is_correct,
            "points_awarded": awarded,
        })
        return {"is_correct": is_correct, "points_awarded": awarded}


def _comment_payload(comment: models.PostComment, author: models.User) -> Dict:
    return {
        "id": comment.id,
        "post_id": comment.post_id,
        "content": comment.content,
        "created_at": comment.created_at,
        "user": user_summary(author),
    }


class FeedService:
    """Progress posts on the public feed, with likes and comments.

    Only the owner of a post or comment may edit or delete it. A missing
    row raises `errors.NotFound`; someone else's row raises
    `errors.Unauthorized`.
    """
    def __init__(self, session: Session):
        self.session = session
        self.feed_repo = repositories.FeedRepository(session)
        self.user_repo = repositories.UserRepository(session)

    def create_post(self, user_id: str, content: str, image_start: Optional[str] = None,
                    image_end: Optional[str] = None) -> Dict:
        if not content.strip():
            raise errors.ValidationFailed("content is required")
        post = models.Post(user_id=user_id, content=content, image_start=image_start or None,
                           image_end=image_end or None)
        self.feed_repo.create_post(post)
        self.session.commit()
        _log_event("feed_post", {"post_id": post.id, "user_id": user_id})
        return self.post_payload(post, self.user_repo.get(user_id))

    def list_posts(self, limit: int = 50) -> List[Dict]:
        return [self.post_payload(post, author) for post, author in self.feed_repo.list_posts(limit=limit)]

    def _owned_post(self, post_id: str, user_id: str) -> models.Post:
        post = self.feed_repo.get_post(post_id)
        if not post:
            raise errors.NotFound(f"post not found: {post_id}")
        if post.user_id != user_id:
            raise errors.Unauthorized("only the author can change this post")
        return post

    def update_post(self, post_id: str, user_id: str, content: str) -> Dict:
        if not content.strip():
            raise errors.ValidationFailed("content is required")
        post = self._owned_post(post_id, user_id)
        post.content = content
        self.session.add(post)
        self.session.commit()
        return self.post_payload(post, self.user_repo.get(user_id))

    def delete_post(self, post_id: str, user_id: str) -> None:
        self._owned_post(post_id, user_id)
        self.feed_repo.delete_post(post_id)
        self.session.commit()
        _log_event("feed_post_deleted", {"post_id": post_id, "user_id": user_id})

    def toggle_like(self, post_id: str, user_id: str) -> Dict:
        """Like the post, or remove the like if the user already gave one."""
        if not self.feed_repo.get_post(post_id):
            raise errors.NotFound(f"post not found: {post_id}")
        if self.feed_repo.get_like(post_id, user_id):
            self.feed_repo.remove_like(post_id, user_id)
            liked = False
        else:
            liked = True
            try:
                self.feed_repo.add_like(models.PostLike(post_id=post_id, user_id=user_id))
            except IntegrityError:
                # a concurrent request liked it first; the end state is the same
                self.session.rollback()
                return {"liked": True, "count": self.feed_repo.like_count(post_id)}
        self.session.commit()
        return {"liked": liked, "count": self.feed_repo.like_count(post_id)}

    def like_count(self, post_id: str) -> int:
        if not self.feed_repo.get_post(post_id):
            raise errors.NotFound(f"post not found: {post_id}")
        return self.feed_repo.like_count(post_id)

    def add_comment(self, post_id: str, user_id: str, content: str) -> Dict:
        if not content.strip():
            raise errors.ValidationFailed("content is required")
        if not self.feed_repo.get_post(post_id):
            raise errors.NotFound(f"post not found: {post_id}")
        comment = models.PostComment(post_id=post_id, user_id=user_id, content=content)
        self.feed_repo.create_comment(comment)
        self.session.commit()
        return _comment_payload(comment, self.user_repo.get(user_id))

    def list_comments(self, post_id: str) -> List[Dict]:
        if not self.feed_repo.get_post(post_id):
            raise errors.NotFound(f"post not found: {post_id}")
        return [_comment_payload(c, author) for c, author in self.feed_repo.list_comments(post_id)]

    def _owned_comment(self, comment_id: str, user_id: str) -> models.PostComment:
        comment = self.feed_repo.get_comment(comment_id)
        if not comment:
            raise errors.NotFound(f"comment not found: {comment_id}")
        if comment.user_id != user_id:
            raise errors.Unauthorized("only the author can change this comment")
        return comment

    def update_comment(self, comment_id: str, user_id: str, content: str) -> Dict:
        if not content.strip():
            raise errors.ValidationFailed("content is required")
        comment = self._owned_comment(comment_id, user_id)
        comment.content = content
        self.session.add(comment)
        self.session.commit()
        return _comment_payload(comment, self.user_repo.get(user_id))

    def delete_comment(self, comment_id: str, user_id: str) -> None:
        self.feed_repo.delete_comment(self._owned_comment(comment_id, user_id))
        self.session.commit()

    def post_payload(self, post: models.Post, author: Optional[models.User]) -> Dict:
        return {
            "id": post.id,
            "content": post.content,
            "image_start": post.image_start,
            "image_end": post.image_end,
            "created_at": post.created_at,
            "user": user_summary(author) if author else None,
            "likes": self.feed_repo.like_count(post.id),
        }


class FollowService:
    """Follow edges and the denormalized follower/following counters."""
    def __init__(self, session: Session):
        self.session = session
        self.follow_repo = repositories.FollowRepository(session)
        self.user_repo = repositories.UserRepository(session)

    def follow(self, follower_id: str, following_id: str) -> None:
        """Start following a user. The edge and both counters commit together."""
        if follower_id == following_id:
            raise errors.ValidationFailed("cannot follow yourself")
        if not self.user_repo.get(following_id):
            raise errors.NotFound(f"user not found: {following_id}")
        if self.follow_repo.get(follower_id, following_id):
            raise errors.Conflict("already following")
        try:
            self.follow_repo.create(models.Follow(follower_id=follower_id, following_id=following_id))
            self.user_repo.adjust_follow_counts(follower_id, following_id, 1)
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise errors.Conflict("already following")
        _log_event("follow", {"follower_id": follower_id, "following_id": following_id})

    def unfollow(self, follower_id: str, following_id: str) -> None:
        if not self.follow_repo.delete(follower_id, following_id):
            self.session.rollback()
            raise errors.NotFound("not following")
        self.user_repo.adjust_follow_counts(follower_id, following_id, -1)
        self.session.commit()
        _log_event("unfollow", {"follower_id": follower_id, "following_id": following_id})

    def is_following(self, follower_id: str, following_id: str) -> bool:
        return self.follow_repo.get(follower_id, following_id) is not None

    def suggestions(self, user_id: str, limit: int = 5) -> List[Dict]:
        return [_public_user(u) for u in self.user_repo.suggestions(user_id, limit=limit)]


def _public_user(user: models.User) -> Dict:
    out = user_summary(user)
    out.update({"bio": user.bio, "followers_count": user.followers_count})
    return out


class SearchService:
    """Name search over users and groups. A blank query matches nothing."""
    def __init__(self, session: Session):
        self.session = session
        self.user_repo = repositories.UserRepository(session)
        self.group_repo = repositories.GroupRepository(session)
        self.follow_repo = repositories.FollowRepository(session)

    def search_users(self, query: str, viewer_id: Optional[str] = None, limit: int = 10) -> List[Dict]:
        """Matching users; a signed-in viewer also gets `is_following` and `is_me`."""
        query = (query or "").strip()
        if not query:
            return []
        users = self.user_repo.search(query, limit=limit)
        results = [_public_user(u) for u in users]
        if viewer_id:
            following = self.follow_repo.following_ids(viewer_id)
            for out in results:
                out["is_following"] = out["id"] in following
                out["is_me"] = out["id"] == viewer_id
        return results

    def search_groups(self, query: str, limit: int = 10) -> List[Dict]:
        query = (query or "").strip()
        if not query:
            return []
        return [
            {"id": g.id, "name": g.name, "description": g.description, "creator_id": g.creator_id}
            for g in self.group_repo.search(query, limit=limit)
        ]

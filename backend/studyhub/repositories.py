"""Repository classes encapsulating database operations.

Each repository is small and focused on a single aggregate (users,
ledgers, study sessions, groups and posts, quiz answers, rank
snapshots, follows, the feed). Repositories add and flush but never commit: the service
that owns a unit of work commits it, so multi-row operations such as
"insert answer + credit points" land in one transaction.
"""

from typing import Dict, List, Optional, Sequence, Set, Tuple
from sqlmodel import Session, select
from sqlalchemy import delete, func, update
from . import models


class UserRepository:
    """CRUD operations for `User` objects."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, user: models.User) -> models.User:
        """Stage a new user and flush so constraint violations surface early."""
        self.session.add(user)
        self.session.flush()
        return user

    def get_by_email(self, email: str) -> Optional[models.User]:
        """Return a `User` by email or `None` if not found."""
        stmt = select(models.User).where(models.User.email == email)
        return self.session.exec(stmt).first()

    def get(self, user_id: str) -> Optional[models.User]:
        """Get a `User` by primary key."""
        return self.session.get(models.User, user_id)

    def delete_account(self, user_id: str) -> None:
        """Delete a user and every row that belongs to them.

        Covers the ledger, study sessions, rank snapshots, the user's own
        answers, groups the user created and posts the user authored
        (with their quizzes and the answers given to those quizzes),
        feed posts with their likes and comments, the user's own likes
        and comments, and follow edges in both directions. The follow
        counters of the users on the other side of those edges are
        decremented before the edges go.
        """
        owned_groups = select(models.Group.id).where(models.Group.creator_id == user_id)
        doomed_posts = select(models.GroupPost.id).where(
            (models.GroupPost.user_id == user_id) | (models.GroupPost.group_id.in_(owned_groups))
        )
        feed_posts = select(models.Post.id).where(models.Post.user_id == user_id)
        followed = select(models.Follow.following_id).where(models.Follow.follower_id == user_id)
        followers = select(models.Follow.follower_id).where(models.Follow.following_id == user_id)
        statements = [
            update(models.User).where(models.User.id.in_(followed))
            .values(followers_count=models.User.followers_count - 1),
            update(models.User).where(models.User.id.in_(followers))
            .values(following_count=models.User.following_count - 1),
            delete(models.Follow).where(
                (models.Follow.follower_id == user_id) | (models.Follow.following_id == user_id)
            ),
            delete(models.PostLike).where(
                (models.PostLike.user_id == user_id) | (models.PostLike.post_id.in_(feed_posts))
            ),
            delete(models.PostComment).where(
                (models.PostComment.user_id == user_id) | (models.PostComment.post_id.in_(feed_posts))
            ),
            delete(models.Post).where(models.Post.user_id == user_id),
            delete(models.QuizAnswer).where(
                (models.QuizAnswer.user_id == user_id) | (models.QuizAnswer.quiz_post_id.in_(doomed_posts))
            ),
            delete(models.QuizPost).where(models.QuizPost.id.in_(doomed_posts)),
            delete(models.GroupPost).where(models.GroupPost.id.in_(doomed_posts)),
            delete(models.Group).where(models.Group.creator_id == user_id),
            delete(models.StudySession).where(models.StudySession.user_id == user_id),
            delete(models.RankSnapshot).where(models.RankSnapshot.user_id == user_id),
            delete(models.UserProgress).where(models.UserProgress.user_id == user_id),
            delete(models.User).where(models.User.id == user_id),
        ]
        for stmt in statements:
            self.session.exec(stmt.execution_options(synchronize_session=False))
        self.session.expunge_all()

    def search(self, query: str, limit: int = 10) -> List[models.User]:
        """Users whose name contains `query` (case-insensitive), oldest first."""
        stmt = (
            select(models.User)
            .where(models.User.name.ilike(f"%{query}%"))
            .order_by(models.User.created_at, models.User.id)
            .limit(limit)
        )
        return list(self.session.exec(stmt).all())

    def suggestions(self, user_id: str, limit: int = 5) -> List[models.User]:
        """Users `user_id` does not follow yet, most followed first."""
        followed = select(models.Follow.following_id).where(models.Follow.follower_id == user_id)
        stmt = (
            select(models.User)
            .where(models.User.id != user_id, models.User.id.not_in(followed))
            .order_by(models.User.followers_count.desc(), models.User.created_at)
            .limit(limit)
        )
        return list(self.session.exec(stmt).all())

    def adjust_follow_counts(self, follower_id: str, following_id: str, step: int) -> None:
        """Move both denormalized follow counters by `step` with in-place UPDATEs."""
        self.session.exec(
            update(models.User)
            .where(models.User.id == following_id)
            .values(followers_count=models.User.followers_count + step)
        )
        self.session.exec(
            update(models.User)
            .where(models.User.id == follower_id)
            .values(following_count=models.User.following_count + step)
        )


class ProgressRepository:
    """Ledger rows. Mutations are single in-place UPDATE statements."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, user_id: str) -> models.UserProgress:
        progress = models.UserProgress(user_id=user_id)
        self.session.add(progress)
        self.session.flush()
        return progress

    def get(self, user_id: str) -> Optional[models.UserProgress]:
        return self.session.get(models.UserProgress, user_id)

    def increment(self, user_id: str, hours: float = 0.0, points: int = 0) -> int:
        """Add `hours`/`points` in place and return the number of rows touched.

        The arithmetic happens in the database (`hours = hours + :h`) so
        concurrent increments for the same user never overwrite each other.
        """
        stmt = (
            update(models.UserProgress)
            .where(models.UserProgress.user_id == user_id)
            .values(
                hours=models.UserProgress.hours + hours,
                points=models.UserProgress.points + points,
            )
        )
        return self.session.exec(stmt).rowcount

    def reset_field(self, user_id: str, field: str) -> int:
        """Set `field` (hours or points) to zero; returns rows touched."""
        stmt = (
            update(models.UserProgress)
            .where(models.UserProgress.user_id == user_id)
            .values({field: 0})
        )
        return self.session.exec(stmt).rowcount

    def list_with_users(self) -> List[Tuple[models.UserProgress, models.User]]:
        """Return every ledger joined with its user identity."""
        stmt = select(models.UserProgress, models.User).join(
            models.User, models.User.id == models.UserProgress.user_id
        )
        return list(self.session.exec(stmt).all())


class StudySessionRepository:
    """Append-only log of study sessions."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, study_session: models.StudySession) -> models.StudySession:
        self.session.add(study_session)
        self.session.flush()
        return study_session

    def list_for_user(self, user_id: str, limit: int = 50) -> List[models.StudySession]:
        """Most recent sessions first."""
        stmt = (
            select(models.StudySession)
            .where(models.StudySession.user_id == user_id)
            .order_by(models.StudySession.created_at.desc())
            .limit(limit)
        )
        return list(self.session.exec(stmt).all())


class GroupRepository:
    """Groups and the posts inside them."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, group: models.Group) -> models.Group:
        self.session.add(group)
        self.session.flush()
        return group

    def get(self, group_id: str) -> Optional[models.Group]:
        return self.session.get(models.Group, group_id)

    def list_all(self) -> List[models.Group]:
        stmt = select(models.Group).order_by(models.Group.created_at.desc())
        return list(self.session.exec(stmt).all())

    def create_post(self, post: models.GroupPost, quiz: Optional[models.QuizPost] = None) -> models.GroupPost:
        """Stage a post and, for quiz posts, its `QuizPost` row under the same id."""
        self.session.add(post)
        self.session.flush()
        if quiz is not None:
            quiz.id = post.id
            self.session.add(quiz)
            self.session.flush()
        return post

    def get_post(self, group_id: str, post_id: str) -> Optional[models.GroupPost]:
        stmt = select(models.GroupPost).where(
            models.GroupPost.id == post_id, models.GroupPost.group_id == group_id
        )
        return self.session.exec(stmt).first()

    def list_posts(self, group_id: str, limit: int = 50) -> List[models.GroupPost]:
        """Newest posts first, capped at `limit`."""
        stmt = (
            select(models.GroupPost)
            .where(models.GroupPost.group_id == group_id)
            .order_by(models.GroupPost.created_at.desc())
            .limit(limit)
        )
        return list(self.session.exec(stmt).all())

    def delete_post(self, post_id: str) -> None:
        """Remove a group post, its quiz and every answer given to it."""
        for stmt in (
            delete(models.QuizAnswer).where(models.QuizAnswer.quiz_post_id == post_id),
            delete(models.QuizPost).where(models.QuizPost.id == post_id),
            delete(models.GroupPost).where(models.GroupPost.id == post_id),
        ):
            self.session.exec(stmt)

    def search(self, query: str, limit: int = 10) -> List[models.Group]:
        """Groups whose name or description contains `query` (case-insensitive)."""
        pattern = f"%{query}%"
        stmt = (
            select(models.Group)
            .where(models.Group.name.ilike(pattern) | models.Group.description.ilike(pattern))
            .order_by(models.Group.created_at.desc())
            .limit(limit)
        )
        return list(self.session.exec(stmt).all())


class QuizRepository:
    """Quiz posts and the answers given to them."""
    def __init__(self, session: Session):
        self.session = session

    def get_quiz(self, quiz_post_id: str) -> Optional[models.QuizPost]:
        return self.session.get(models.QuizPost, quiz_post_id)

    def get_answer(self, quiz_post_id: str, user_id: str) -> Optional[models.QuizAnswer]:
        return self.session.get(models.QuizAnswer, (quiz_post_id, user_id))

    def create_answer(self, answer: models.QuizAnswer) -> models.QuizAnswer:
        """Stage an answer and flush; raises `IntegrityError` on a duplicate pair."""
        self.session.add(answer)
        self.session.flush()
        return answer

    def answers_by_user(self, user_id: str, quiz_post_ids: Sequence[str]) -> Dict[str, models.QuizAnswer]:
        """Map quiz post id to the user's answer for the given quizzes."""
        if not quiz_post_ids:
            return {}
        stmt = select(models.QuizAnswer).where(
            models.QuizAnswer.user_id == user_id,
            models.QuizAnswer.quiz_post_id.in_(list(quiz_post_ids)),
        )
        return {a.quiz_post_id: a for a in self.session.exec(stmt).all()}


class RankSnapshotRepository:
    """Persisted rank history used as the trend baseline."""
    def __init__(self, session: Session):
        self.session = session

    def for_metric(self, metric: models.Metric) -> Dict[str, models.RankSnapshot]:
        stmt = select(models.RankSnapshot).where(models.RankSnapshot.metric == metric)
        return {s.user_id: s for s in self.session.exec(stmt).all()}

    def save(self, snapshot: models.RankSnapshot) -> models.RankSnapshot:
        self.session.add(snapshot)
        return snapshot


class FollowRepository:
    """Directed follow edges between users."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, follow: models.Follow) -> models.Follow:
        """Stage an edge and flush; raises `IntegrityError` if it already exists."""
        self.session.add(follow)
        self.session.flush()
        return follow

    def get(self, follower_id: str, following_id: str) -> Optional[models.Follow]:
        return self.session.get(models.Follow, (follower_id, following_id))

    def delete(self, follower_id: str, following_id: str) -> int:
        stmt = delete(models.Follow).where(
            models.Follow.follower_id == follower_id, models.Follow.following_id == following_id
        )
        return self.session.exec(stmt).rowcount

    def following_ids(self, follower_id: str) -> Set[str]:
        stmt = select(models.Follow.following_id).where(models.Follow.follower_id == follower_id)
        return set(self.session.exec(stmt).all())


class FeedRepository:
    """Feed posts with their likes and comments."""
    def __init__(self, session: Session):
        self.session = session

    def create_post(self, post: models.Post) -> models.Post:
        self.session.add(post)
        self.session.flush()
        return post

    def get_post(self, post_id: str) -> Optional[models.Post]:
        return self.session.get(models.Post, post_id)

    def list_posts(self, limit: int = 50) -> List[Tuple[models.Post, models.User]]:
        """Newest posts first, each joined with its author."""
        stmt = (
            select(models.Post, models.User)
            .join(models.User, models.User.id == models.Post.user_id)
            .order_by(models.Post.created_at.desc())
            .limit(limit)
        )
        return list(self.session.exec(stmt).all())

    def delete_post(self, post_id: str) -> None:
        """Remove a post together with its likes and comments."""
        for stmt in (
            delete(models.PostLike).where(models.PostLike.post_id == post_id),
            delete(models.PostComment).where(models.PostComment.post_id == post_id),
            delete(models.Post).where(models.Post.id == post_id),
        ):
            self.session.exec(stmt)

    def get_like(self, post_id: str, user_id: str) -> Optional[models.PostLike]:
        return self.session.get(models.PostLike, (post_id, user_id))

    def add_like(self, like: models.PostLike) -> models.PostLike:
        self.session.add(like)
        self.session.flush()
        return like

    def remove_like(self, post_id: str, user_id: str) -> int:
        stmt = delete(models.PostLike).where(
            models.PostLike.post_id == post_id, models.PostLike.user_id == user_id
        )
        return self.session.exec(stmt).rowcount

    def like_count(self, post_id: str) -> int:
        stmt = select(func.count()).select_from(models.PostLike).where(models.PostLike.post_id == post_id)
        return self.session.exec(stmt).one()

    def create_comment(self, comment: models.PostComment) -> models.PostComment:
        self.session.add(comment)
        self.session.flush()
        return comment

    def get_comment(self, comment_id: str) -> Optional[models.PostComment]:
        return self.session.get(models.PostComment, comment_id)

    def list_comments(self, post_id: str) -> List[Tuple[models.PostComment, models.User]]:
        """Newest comments first, each joined with its author."""
        stmt = (
            select(models.PostComment, models.User)
            .join(models.User, models.User.id == models.PostComment.user_id)
            .where(models.PostComment.post_id == post_id)
            .order_by(models.PostComment.created_at.desc())
        )
        return list(self.session.exec(stmt).all())

    def delete_comment(self, comment: models.PostComment) -> None:
        self.session.delete(comment)
        self.session.flush()

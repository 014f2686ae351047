"""FastAPI application entrypoint and HTTP controllers.

This module defines the HTTP endpoints of the StudyHub backend.
Controllers are intentionally thin: they accept requests, delegate to
services, and translate `errors.StudyError` into HTTP errors.

Endpoints implemented:
- POST /auth/register
- POST /auth/login
- GET /users/me
- DELETE /users/me
- PUT /users/me/profile
- PUT /users/me/password
- GET /users/suggestions
- POST/DELETE /users/{user_id}/follow
- GET /users/{user_id}/is-following
- GET /users/{user_id}/progress
- POST /progress
- POST /progress/reset
- GET /progress/sessions
- POST /progress/sessions
- GET /rankings
- GET /groups
- POST /groups
- GET /groups/{group_id}/posts
- POST /groups/{group_id}/posts
- DELETE /groups/{group_id}/posts/{post_id}
- POST /groups/{group_id}/posts/{post_id}/answer
- GET/POST /posts, PUT/DELETE /posts/{post_id}
- POST /posts/{post_id}/like, GET /posts/{post_id}/likes
- GET/POST /posts/{post_id}/comments, PUT/DELETE /comments/{comment_id}
- GET /search/users, GET /search/groups
- GET /health
"""

from typing import List, Optional
from fastapi import FastAPI, Depends, HTTPException, Query, Request
from fastapi.responses import Response
from fastapi.middleware.cors import CORSMiddleware
from sqlmodel import Session
import json
import logging
import time
import uuid
from .database import create_db_and_tables, get_session
from . import errors, models, schemas, services
from .auth import get_current_user, get_optional_user
from .config import settings

app = FastAPI(title="StudyHub API")
logger = logging.getLogger("studyhub.api")
if not logger.handlers:
    logging.basicConfig(level=settings.LOG_LEVEL)

# Wide-open CORS keeps a local frontend dev server working without extra config.
if settings.ALLOW_DEV_CORS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

create_db_and_tables()


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    context = {
        "request_id": req_id,
        "path": request.url.path,
        "method": request.method,
        "client": request.client.host if request.client else "unknown",
    }
    response: Response
    try:
        response = await call_next(request)
    except Exception:
        context["duration_ms"] = round((time.perf_counter() - started) * 1000.0, 2)
        logger.exception("request_failed %s", json.dumps(context, ensure_ascii=True))
        raise
    response.headers["X-Request-ID"] = req_id
    context["status_code"] = response.status_code
    context["duration_ms"] = round((time.perf_counter() - started) * 1000.0, 2)
    logger.info("request_done %s", json.dumps(context, ensure_ascii=True))
    return response


def _http_error(exc: errors.StudyError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=str(exc))


@app.post('/auth/register', status_code=201, response_model=schemas.TokenOut)
def register(payload: schemas.RegisterIn, db: Session = Depends(get_session)):
    """Register a new user and return a token for immediate use.

    The user's progress ledger is created in the same transaction.
    """
    auth = services.AuthService(db)
    try:
        user = auth.register(payload.name, payload.email, payload.password)
    except errors.StudyError as e:
        raise _http_error(e)
    return {'access_token': services.create_access_token(user), 'user': services.user_summary(user)}


@app.post('/auth/login', response_model=schemas.TokenOut)
def login(payload: schemas.LoginIn, db: Session = Depends(get_session)):
    """Authenticate a user and return a short-lived JWT token."""
    auth = services.AuthService(db)
    token = auth.authenticate(payload.email, payload.password)
    if not token:
        raise HTTPException(status_code=401, detail='invalid credentials')
    user = auth.user_repo.get_by_email(payload.email.strip().lower())
    return {'access_token': token, 'user': services.user_summary(user)}


@app.get('/users/me')
def me(db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """Return the authenticated user's profile together with hours, points and trend."""
    try:
        return services.AuthService(db).profile(user.id)
    except errors.StudyError as e:
        raise _http_error(e)


@app.delete('/users/me')
def delete_me(payload: schemas.DeleteAccountIn, db: Session = Depends(get_session),
              user: models.User = Depends(get_current_user)):
    """Delete the authenticated account and everything it owns."""
    try:
        services.AuthService(db).delete_account(user.id, payload.password)
    except errors.StudyError as e:
        raise _http_error(e)
    return {'status': 'deleted'}


@app.put('/users/me/profile')
def update_profile(payload: schemas.ProfileIn, db: Session = Depends(get_session),
                   user: models.User = Depends(get_current_user)):
    """Edit name, bio or avatar; returns the refreshed profile."""
    try:
        return services.AuthService(db).update_profile(user.id, payload.name, payload.bio, payload.avatar)
    except errors.StudyError as e:
        raise _http_error(e)


@app.put('/users/me/password')
def change_password(payload: schemas.PasswordChangeIn, db: Session = Depends(get_session),
                    user: models.User = Depends(get_current_user)):
    try:
        services.AuthService(db).change_password(user.id, payload.current_password, payload.new_password)
    except errors.StudyError as e:
        raise _http_error(e)
    return {'status': 'updated'}


@app.get('/users/suggestions')
def follow_suggestions(db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """Up to five users the caller does not follow yet, most followed first."""
    return services.FollowService(db).suggestions(user.id)


@app.post('/users/{user_id}/follow')
def follow_user(user_id: str, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    try:
        services.FollowService(db).follow(user.id, user_id)
    except errors.StudyError as e:
        raise _http_error(e)
    return {'status': 'following'}


@app.delete('/users/{user_id}/follow')
def unfollow_user(user_id: str, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    try:
        services.FollowService(db).unfollow(user.id, user_id)
    except errors.StudyError as e:
        raise _http_error(e)
    return {'status': 'unfollowed'}


@app.get('/users/{user_id}/is-following')
def is_following(user_id: str, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    return {'is_following': services.FollowService(db).is_following(user.id, user_id)}


@app.get('/users/{user_id}/progress', response_model=schemas.ProgressOut)
def read_progress(user_id: str, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """Read a ledger. Only the owner may read it."""
    try:
        progress = services.ProgressService(db).read(user_id, requester_id=user.id)
    except errors.StudyError as e:
        raise _http_error(e)
    return services.progress_payload(progress)


@app.post('/progress', response_model=schemas.ProgressOut)
def add_progress(payload: schemas.ProgressDeltaIn, db: Session = Depends(get_session),
                 user: models.User = Depends(get_current_user)):
    """Add non-negative hours/points deltas to the caller's ledger."""
    try:
        progress = services.ProgressService(db).apply_delta(user.id, payload.hours, payload.points)
    except errors.StudyError as e:
        raise _http_error(e)
    return services.progress_payload(progress)


@app.post('/progress/reset', response_model=schemas.ProgressOut)
def reset_progress(payload: schemas.ResetIn, db: Session = Depends(get_session),
                   user: models.User = Depends(get_current_user)):
    """Zero the caller's hours or points. This cannot be undone."""
    try:
        progress = services.ProgressService(db).reset(user.id, payload.field, requester_id=user.id)
    except errors.StudyError as e:
        raise _http_error(e)
    return services.progress_payload(progress)


@app.post('/progress/sessions', status_code=201)
def log_study_session(payload: schemas.StudySessionIn, db: Session = Depends(get_session),
                      user: models.User = Depends(get_current_user)):
    """Log a finished study session; its duration is added to the caller's hours."""
    try:
        return services.ProgressService(db).log_session(user.id, payload.subject, payload.hours)
    except errors.StudyError as e:
        raise _http_error(e)


@app.get('/progress/sessions')
def list_study_sessions(limit: int = Query(50, ge=1, le=200), db: Session = Depends(get_session),
                        user: models.User = Depends(get_current_user)):
    return services.ProgressService(db).list_sessions(user.id, limit=limit)


@app.get('/rankings', response_model=List[schemas.RankingEntryOut])
def rankings(metric: str = 'points', db: Session = Depends(get_session)):
    """Return the leaderboard ordered by `metric` (`points` or `hours`)."""
    try:
        return services.RankingService(db).compute_ranking(metric)
    except errors.StudyError as e:
        raise _http_error(e)


@app.get('/groups')
def list_groups(db: Session = Depends(get_session)):
    groups = services.GroupService(db).list_groups()
    return [
        {'id': g.id, 'name': g.name, 'description': g.description, 'creator_id': g.creator_id}
        for g in groups
    ]


@app.post('/groups', status_code=201)
def create_group(payload: schemas.GroupIn, db: Session = Depends(get_session),
                 user: models.User = Depends(get_current_user)):
    g = services.GroupService(db).create_group(user.id, payload.name, payload.description)
    return {'id': g.id, 'name': g.name, 'description': g.description, 'creator_id': g.creator_id}


@app.get('/groups/{group_id}/posts')
def list_group_posts(group_id: str, db: Session = Depends(get_session),
                     user: Optional[models.User] = Depends(get_optional_user)):
    """List the newest group posts.

    When called with a valid token, quiz posts the caller has answered
    carry a `user_answer` and reveal their correct option.
    """
    try:
        return services.GroupService(db).list_posts(group_id, viewer_id=user.id if user else None)
    except errors.StudyError as e:
        raise _http_error(e)


@app.post('/groups/{group_id}/posts', status_code=201)
def create_group_post(group_id: str, payload: schemas.GroupPostIn, db: Session = Depends(get_session),
                      user: models.User = Depends(get_current_user)):
    """Post a text, file or quiz message to a group."""
    try:
        return services.GroupService(db).create_post(group_id, user.id, payload.content)
    except errors.StudyError as e:
        raise _http_error(e)


@app.delete('/groups/{group_id}/posts/{post_id}')
def delete_group_post(group_id: str, post_id: str, db: Session = Depends(get_session),
                      user: models.User = Depends(get_current_user)):
    """Delete a group post. The author and the group creator may do this."""
    try:
        services.GroupService(db).delete_post(group_id, post_id, user.id)
    except errors.StudyError as e:
        raise _http_error(e)
    return {'status': 'deleted'}


@app.post('/groups/{group_id}/posts/{post_id}/answer', response_model=schemas.AnswerOut)
def answer_quiz(group_id: str, post_id: str, payload: schemas.AnswerIn, db: Session = Depends(get_session),
                user: models.User = Depends(get_current_user)):
    """Answer a quiz post once. Correct answers credit the quiz's points to the caller."""
    try:
        return services.QuizService(db).submit_answer(post_id, user.id, payload.option_index, group_id=group_id)
    except errors.StudyError as e:
        raise _http_error(e)


@app.get('/posts')
def list_feed(limit: int = Query(50, ge=1, le=200), db: Session = Depends(get_session)):
    """Newest progress posts first, each with its like count."""
    return services.FeedService(db).list_posts(limit=limit)


@app.post('/posts', status_code=201)
def create_feed_post(payload: schemas.PostIn, db: Session = Depends(get_session),
                     user: models.User = Depends(get_current_user)):
    try:
        return services.FeedService(db).create_post(user.id, payload.content, payload.image_start, payload.image_end)
    except errors.StudyError as e:
        raise _http_error(e)


@app.put('/posts/{post_id}')
def update_feed_post(post_id: str, payload: schemas.PostUpdateIn, db: Session = Depends(get_session),
                     user: models.User = Depends(get_current_user)):
    try:
        return services.FeedService(db).update_post(post_id, user.id, payload.content)
    except errors.StudyError as e:
        raise _http_error(e)


@app.delete('/posts/{post_id}')
def delete_feed_post(post_id: str, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """Delete one of the caller's posts along with its likes and comments."""
    try:
        services.FeedService(db).delete_post(post_id, user.id)
    except errors.StudyError as e:
        raise _http_error(e)
    return {'status': 'deleted'}


@app.post('/posts/{post_id}/like', response_model=schemas.LikeOut)
def toggle_like(post_id: str, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """Like a post, or take the like back if the caller already liked it."""
    try:
        return services.FeedService(db).toggle_like(post_id, user.id)
    except errors.StudyError as e:
        raise _http_error(e)


@app.get('/posts/{post_id}/likes')
def like_count(post_id: str, db: Session = Depends(get_session)):
    try:
        return {'count': services.FeedService(db).like_count(post_id)}
    except errors.StudyError as e:
        raise _http_error(e)


@app.get('/posts/{post_id}/comments')
def list_comments(post_id: str, db: Session = Depends(get_session)):
    try:
        return services.FeedService(db).list_comments(post_id)
    except errors.StudyError as e:
        raise _http_error(e)


@app.post('/posts/{post_id}/comments', status_code=201)
def add_comment(post_id: str, payload: schemas.CommentIn, db: Session = Depends(get_session),
                user: models.User = Depends(get_current_user)):
    try:
        return services.FeedService(db).add_comment(post_id, user.id, payload.content)
    except errors.StudyError as e:
        raise _http_error(e)


@app.put('/comments/{comment_id}')
def update_comment(comment_id: str, payload: schemas.CommentIn, db: Session = Depends(get_session),
                   user: models.User = Depends(get_current_user)):
    try:
        return services.FeedService(db).update_comment(comment_id, user.id, payload.content)
    except errors.StudyError as e:
        raise _http_error(e)


@app.delete('/comments/{comment_id}')
def delete_comment(comment_id: str, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    try:
        services.FeedService(db).delete_comment(comment_id, user.id)
    except errors.StudyError as e:
        raise _http_error(e)
    return {'status': 'deleted'}


@app.get('/search/users')
def search_users(q: str = '', db: Session = Depends(get_session),
                 user: Optional[models.User] = Depends(get_optional_user)):
    """Users whose name contains `q`. A signed-in caller also sees follow state."""
    return services.SearchService(db).search_users(q, viewer_id=user.id if user else None)


@app.get('/search/groups')
def search_groups(q: str = '', db: Session = Depends(get_session)):
    return services.SearchService(db).search_groups(q)


@app.get("/health")
def health():
    """Lightweight health check for uptime monitoring."""
    return {"status": "ok"}

"""Post action endpoints: like, bookmark, flag, undo and flag review."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Query, status
from sqlalchemy.orm import Session

from forum_stage.api.v1.dependencies import (
    CurrentUserDep,
    PostActionServiceDep,
    SessionDep,
    StaffUserDep,
)
from forum_stage.core.errors import AlreadyActed, MessageCreationFailed, RateLimitExceeded
from forum_stage.models import Post, PostAction
from forum_stage.schemas.post_action import (
    FlagCountsResponse,
    FlagDispositionRequest,
    FlagDispositionResponse,
    FlaggedCountResponse,
    PostActionCreate,
    PostActionResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/post_actions", tags=["post_actions"])


def _get_post_or_404(db: Session, post_id: int) -> Post:
    post = db.query(Post).filter(Post.id == post_id, Post.deleted_at.is_(None)).first()
    if post is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Post not found")
    return post


def _rate_limited(err: RateLimitExceeded) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail=str(err),
        headers={"Retry-After": str(err.available_in)},
    )


@router.post("", response_model=PostActionResponse, status_code=status.HTTP_201_CREATED)
async def create_post_action(
    payload: PostActionCreate,
    db: SessionDep,
    current_user: CurrentUserDep,
    service: PostActionServiceDep,
) -> PostAction:
    """Act on a post as the current user."""
    post = _get_post_or_404(db, payload.post_id)
    try:
        return service.act(
            current_user,
            post,
            payload.post_action_type_id,
            message=payload.message,
            is_warning=payload.is_warning,
            take_action=payload.take_action,
            flag_topic=payload.flag_topic,
        )
    except ValueError as err:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Unknown post action type",
        ) from err
    except AlreadyActed as err:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(err)) from err
    except RateLimitExceeded as err:
        raise _rate_limited(err) from err
    except MessageCreationFailed as err:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(err),
        ) from err


@router.delete("/{post_id}")
async def delete_post_action(
    post_id: int,
    db: SessionDep,
    current_user: CurrentUserDep,
    service: PostActionServiceDep,
    post_action_type_id: int = Query(..., ge=1),
) -> dict[str, object]:
    """Undo the current user's action on a post."""
    post = _get_post_or_404(db, post_id)
    try:
        action = service.remove_act(current_user, post, post_action_type_id)
    except ValueError as err:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Unknown post action type",
        ) from err
    except RateLimitExceeded as err:
        raise _rate_limited(err) from err
    return {"post_id": post_id, "removed": action is not None}


@router.get("/flagged_count", response_model=FlaggedCountResponse)
async def flagged_count(
    _staff: StaffUserDep,
    service: PostActionServiceDep,
) -> FlaggedCountResponse:
    """Number of posts waiting in the flag review queue."""
    return FlaggedCountResponse(total=service.flagged_posts_count())


@router.get("/{post_id}/flag_counts", response_model=FlagCountsResponse)
async def flag_counts(
    post_id: int,
    db: SessionDep,
    _staff: StaffUserDep,
    service: PostActionServiceDep,
) -> FlagCountsResponse:
    post = _get_post_or_404(db, post_id)
    old_flags, new_flags = service.flag_counts_for(post.id)
    return FlagCountsResponse(old_flags=old_flags, new_flags=new_flags)


@router.post("/{post_id}/agree", response_model=FlagDispositionResponse)
async def agree_flags(
    post_id: int,
    db: SessionDep,
    staff: StaffUserDep,
    service: PostActionServiceDep,
    payload: FlagDispositionRequest | None = None,
) -> FlagDispositionResponse:
    """Uphold every pending flag on the post."""
    post = _get_post_or_404(db, post_id)
    delete_post = payload.delete_post if payload else False
    resolved = service.agree_flags(post, staff, delete_post=delete_post)
    return FlagDispositionResponse(post_id=post_id, disposition="agreed", resolved=len(resolved))


@router.post("/{post_id}/disagree", response_model=FlagDispositionResponse)
async def disagree_flags(
    post_id: int,
    db: SessionDep,
    staff: StaffUserDep,
    service: PostActionServiceDep,
) -> FlagDispositionResponse:
    """Reject every pending flag on the post."""
    post = _get_post_or_404(db, post_id)
    resolved = service.clear_flags(post, staff)
    return FlagDispositionResponse(
        post_id=post_id, disposition="disagreed", resolved=len(resolved)
    )


@router.post("/{post_id}/defer", response_model=FlagDispositionResponse)
async def defer_flags(
    post_id: int,
    db: SessionDep,
    staff: StaffUserDep,
    service: PostActionServiceDep,
    payload: FlagDispositionRequest | None = None,
) -> FlagDispositionResponse:
    """Set the pending flags aside without judging them."""
    post = _get_post_or_404(db, post_id)
    delete_post = payload.delete_post if payload else False
    resolved = service.defer_flags(post, staff, delete_post=delete_post)
    return FlagDispositionResponse(post_id=post_id, disposition="deferred", resolved=len(resolved))

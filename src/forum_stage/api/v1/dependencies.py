"""Shared API dependencies for authentication and common functionality."""

from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from forum_stage.core.settings import settings
from forum_stage.db.session import get_db
from forum_stage.models import User
from forum_stage.services.post_actions import PostActionService, build_post_action_service

# HTTP Bearer scheme for JWT authentication
bearer_scheme = HTTPBearer()

# Type alias for database session dependency
SessionDep = Annotated[Session, Depends(get_db)]


def _decode_user_id(subject: str) -> int:
    """Parse the numeric user id carried in the token subject.

    Raises:
        HTTPException: If the subject is not an integer
    """
    try:
        return int(subject)
    except ValueError as err:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        ) from err


def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(bearer_scheme)],
    db: SessionDep,
) -> User:
    """Get the current authenticated user from JWT token.

    Args:
        credentials: HTTP Bearer token credentials
        db: Database session

    Returns:
        User object for the authenticated user

    Raises:
        HTTPException: If token is invalid or user not found
    """
    try:
        payload = jwt.decode(
            credentials.credentials,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
        subject = payload.get("sub")
        if subject is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Could not validate credentials",
            )
        user_id = _decode_user_id(subject)

        user = db.query(User).filter(User.id == user_id).first()
        if user is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="User not found",
            )
        return user
    except JWTError as err:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        ) from err


# Type alias for current user dependency
CurrentUserDep = Annotated[User, Depends(get_current_user)]


def get_staff_user(user: CurrentUserDep) -> User:
    """Reject callers who are neither moderators nor admins."""
    if not user.staff:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Staff only",
        )
    return user


StaffUserDep = Annotated[User, Depends(get_staff_user)]


def get_post_action_service(db: SessionDep) -> PostActionService:
    """Build the post action service for the request's session."""
    return build_post_action_service(db)


PostActionServiceDep = Annotated[PostActionService, Depends(get_post_action_service)]

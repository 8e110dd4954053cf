# src/forum_stage/schemas/post_action.py
"""Post action Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class PostActionCreate(BaseModel):
    """Schema for acting on a post."""

    post_id: int = Field(..., description="Post receiving the action")
    post_action_type_id: int = Field(..., ge=1, description="Action type identifier")
    message: str | None = Field(
        None, max_length=5000, description="Text for notify and spam private messages"
    )
    is_warning: bool = Field(False, description="Send the notify message as a warning")
    take_action: bool = Field(False, description="Staff only: agree with every flag on the post")
    flag_topic: bool = Field(False, description="Flag the whole topic rather than the post")


class PostActionResponse(BaseModel):
    """Schema for a post action returned by the API."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    post_id: int
    user_id: int
    post_action_type_id: int
    targets_topic: bool
    staff_took_action: bool
    related_post_id: int | None
    created_at: datetime
    deleted_at: datetime | None
    disposition: str | None


class FlagDispositionRequest(BaseModel):
    """Options for agreeing with or deferring flags."""

    delete_post: bool = Field(False, description="Soft-delete the post while resolving")


class FlagDispositionResponse(BaseModel):
    """Outcome of a bulk flag resolution."""

    post_id: int
    disposition: str
    resolved: int


class FlagCountsResponse(BaseModel):
    """Weighted flag totals used by the auto-hide rule."""

    old_flags: int
    new_flags: int


class FlaggedCountResponse(BaseModel):
    """Number of posts waiting for flag review."""

    total: int

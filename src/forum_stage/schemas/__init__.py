# src/forum_stage/schemas/__init__.py
"""
Pydantic schemas for API request/response models.

These schemas define the structure of API data for serialization and validation.
"""

from .post_action import (
    FlagCountsResponse,
    FlagDispositionRequest,
    FlagDispositionResponse,
    FlaggedCountResponse,
    PostActionCreate,
    PostActionResponse,
)

__all__ = [
    "FlagCountsResponse", "FlagDispositionRequest", "FlagDispositionResponse",
    "FlaggedCountResponse", "PostActionCreate", "PostActionResponse",
]

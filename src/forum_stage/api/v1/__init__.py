# src/forum_stage/api/v1/__init__.py
"""Version 1 API endpoints."""

from .endpoints import post_actions_router

__all__ = ["post_actions_router"]

# src/forum_stage/api/v1/endpoints/__init__.py
"""API endpoint modules for version 1."""

from .post_actions import router as post_actions_router

__all__ = ["post_actions_router"]

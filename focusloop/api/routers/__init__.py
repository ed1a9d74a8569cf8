"""API routers for focusloop."""

from focusloop.api.routers import focus_sessions_router, missions_router

__all__ = [
    "focus_sessions_router",
    "missions_router",
]

"""
Service wiring for the API.

Routers receive the MissionService through Depends(get_service); tests
override it with app.dependency_overrides[get_service].
"""

from __future__ import annotations

import threading

from focusloop.engine import MissionService

_service: MissionService | None = None
_lock = threading.Lock()


def get_service() -> MissionService:
    """Get the process-wide service (built from settings on first use)."""
    global _service
    with _lock:
        if _service is None:
            _service = MissionService.from_settings()
        return _service


def reset_service() -> None:
    global _service
    with _lock:
        if _service is not None:
            _service.shutdown()
        _service = None

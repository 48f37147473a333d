from __future__ import annotations  # Session ownership checks shared by writers and readers

from typing import Optional

from storage.models import SessionRecord

from .errors import Forbidden, NotFound


def ensure_access(session: Optional[SessionRecord], session_id: str, caller: Optional[str]) -> SessionRecord:
    if session is None:
        raise NotFound(f"Interview not found: {session_id}")
    if session.owner_id is not None and session.owner_id != caller:
        raise Forbidden("You do not have access to this interview")
    return session


__all__ = ["ensure_access"]

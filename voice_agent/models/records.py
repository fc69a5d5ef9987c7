"""
Persistent user and session records.

A UserRecord is keyed by the normalized phone number and carries an append-only
log of SessionRecords, one per relay connection that completed its init handshake.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

SessionStatus = Literal["active", "ended"]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class SessionRecord(BaseModel):
    """One relay session owned by a user."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    started_at: str = Field(default_factory=_now_iso, alias="startedAt")
    status: SessionStatus = "active"
    metadata: Optional[Dict[str, Any]] = None


class UserRecord(BaseModel):
    """A caller identified by normalized phone number."""

    model_config = ConfigDict(populate_by_name=True)

    phone_number: str = Field(..., alias="phoneNumber")
    full_name: str = Field(..., alias="fullName")
    sessions: List[SessionRecord] = Field(default_factory=list)


def end_session(sessions: List[SessionRecord], session_id: str) -> List[SessionRecord]:
    """Return a copy of the session list with only the matching session marked ended."""
    return [
        session.model_copy(update={"status": "ended"}) if session.id == session_id else session
        for session in sessions
    ]

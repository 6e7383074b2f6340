from __future__ import annotations

import datetime as _dt
import uuid
from threading import RLock
from typing import Dict, List, Optional

from .contracts import DEFAULT_SESSION_STATUS, Session
from .errors import ValidationError


def _ts_iso() -> str:
    return _dt.datetime.now(_dt.timezone.utc).isoformat()


def _clean(value: Optional[str]) -> Optional[str]:
    # Empty strings from clients are treated as absent.
    if value is None:
        return None
    value = str(value)
    return value if value.strip() else None


class InMemorySessionStore:
    def __init__(self) -> None:
        self._lock = RLock()
        self._sessions: Dict[str, Session] = {}

    def create_session(
        self,
        user_id: Optional[str],
        *,
        patient_id: Optional[str] = None,
        patient_name: Optional[str] = None,
        status: Optional[str] = None,
        start_time: Optional[str] = None,
        template_id: Optional[str] = None,
    ) -> str:
        user_id = _clean(user_id)
        if user_id is None:
            raise ValidationError("userId is required")

        now = _ts_iso()
        with self._lock:
            session_id = str(uuid.uuid4())
            while session_id in self._sessions:
                session_id = str(uuid.uuid4())
            self._sessions[session_id] = Session(
                id=session_id,
                user_id=user_id,
                patient_id=_clean(patient_id),
                patient_name=_clean(patient_name),
                status=_clean(status) or DEFAULT_SESSION_STATUS,
                start_time=_clean(start_time) or now,
                template_id=_clean(template_id),
                created_at=now,
            )
        return session_id

    def get_session(self, session_id: str) -> Optional[Session]:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return None
            return session.model_copy(deep=True)

    def list_sessions_for_user(self, user_id: str) -> List[Session]:
        with self._lock:
            return [
                session.model_copy(deep=True)
                for session in self._sessions.values()
                if session.user_id == user_id
            ]

    def list_sessions_for_patient(self, patient_id: str) -> List[Session]:
        with self._lock:
            return [
                session.model_copy(deep=True)
                for session in self._sessions.values()
                if session.patient_id is not None and session.patient_id == patient_id
            ]

    def append_chunk_to_session(self, session_id: str, chunk_id: str) -> bool:
        """Append ``chunk_id`` once; returns False when it was already present."""
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return False
            if chunk_id in session.chunk_ids:
                return False
            session.chunk_ids.append(chunk_id)
            return True

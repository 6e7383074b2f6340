from __future__ import annotations

"""
In-memory registry of audio chunk metadata keyed by (session, chunk number).

Design intent:
- Chunk ids are a pure function of the key so repeated registrations collide.
- Every transition is accepted once the chunk exists; unknown ids return None.
- One lock serializes all writes, so concurrent upload/confirm calls on the
  same key apply in order instead of overwriting each other.
"""

import datetime as _dt
import logging
from threading import RLock
from typing import Any, Dict, List, Optional

from .contracts import DEFAULT_MIME_TYPE, Chunk

logger = logging.getLogger(__name__)


def _ts_iso() -> str:
    return _dt.datetime.now(_dt.timezone.utc).isoformat()


def chunk_id_for(session_id: str, chunk_number: int) -> str:
    return f"{session_id}_chunk_{int(chunk_number)}"


class InMemoryChunkRegistry:
    def __init__(self) -> None:
        self._lock = RLock()
        self._chunks: Dict[str, Chunk] = {}

    @staticmethod
    def _new_chunk(
        session_id: str,
        chunk_number: int,
        mime_type: Optional[str],
        gcs_path: str,
        public_url: Optional[str],
    ) -> Chunk:
        return Chunk(
            chunk_id=chunk_id_for(session_id, chunk_number),
            session_id=session_id,
            chunk_number=chunk_number,
            mime_type=mime_type or DEFAULT_MIME_TYPE,
            status="pending",
            gcs_path=gcs_path,
            public_url=public_url,
        )

    @staticmethod
    def _apply_uploaded(chunk: Chunk, byte_length: int) -> None:
        chunk.status = "uploaded"
        chunk.file_size = int(byte_length)
        chunk.uploaded_at = _ts_iso()

    @staticmethod
    def _apply_confirmed(
        chunk: Chunk,
        gcs_path: str,
        public_url: Optional[str],
        is_last: bool,
        mime_type: Optional[str],
        client_metadata: Optional[Dict[str, Any]],
    ) -> None:
        chunk.status = "confirmed"
        chunk.gcs_path = gcs_path
        chunk.public_url = public_url
        chunk.is_last = bool(is_last)
        if mime_type:
            chunk.mime_type = mime_type
        if client_metadata:
            chunk.client_metadata = dict(client_metadata)

    def register_pending_chunk(
        self,
        session_id: str,
        chunk_number: int,
        mime_type: Optional[str],
        gcs_path: str,
        public_url: Optional[str] = None,
    ) -> str:
        chunk = self._new_chunk(session_id, chunk_number, mime_type, gcs_path, public_url)
        with self._lock:
            replaced = chunk.chunk_id in self._chunks
            self._chunks[chunk.chunk_id] = chunk
        if replaced:
            logger.info("chunk_reregistered chunk_id=%s", chunk.chunk_id)
        return chunk.chunk_id

    def mark_uploaded(self, chunk_id: str, byte_length: int) -> Optional[Chunk]:
        with self._lock:
            chunk = self._chunks.get(chunk_id)
            if chunk is None:
                logger.warning("chunk_upload_unregistered chunk_id=%s size_bytes=%s", chunk_id, byte_length)
                return None
            self._apply_uploaded(chunk, byte_length)
            return chunk.model_copy(deep=True)

    def upload_or_register(
        self,
        session_id: str,
        chunk_number: int,
        byte_length: int,
        *,
        mime_type: Optional[str],
        gcs_path: str,
        public_url: Optional[str] = None,
    ) -> Chunk:
        """Mark the chunk uploaded, registering it first if it is unknown.

        Lookup, creation and transition share one lock hold so a confirm for
        the same key can't be overwritten by the registration.
        """
        chunk_id = chunk_id_for(session_id, chunk_number)
        with self._lock:
            chunk = self._chunks.get(chunk_id)
            if chunk is None:
                logger.warning("chunk_upload_unregistered chunk_id=%s size_bytes=%s", chunk_id, byte_length)
                chunk = self._new_chunk(session_id, chunk_number, mime_type, gcs_path, public_url)
                self._chunks[chunk_id] = chunk
            self._apply_uploaded(chunk, byte_length)
            return chunk.model_copy(deep=True)

    def mark_confirmed(
        self,
        chunk_id: str,
        gcs_path: str,
        public_url: Optional[str],
        is_last: bool,
        *,
        mime_type: Optional[str] = None,
        client_metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[Chunk]:
        with self._lock:
            chunk = self._chunks.get(chunk_id)
            if chunk is None:
                logger.warning("chunk_confirm_unregistered chunk_id=%s", chunk_id)
                return None
            self._apply_confirmed(chunk, gcs_path, public_url, is_last, mime_type, client_metadata)
            return chunk.model_copy(deep=True)

    def confirm_or_register(
        self,
        session_id: str,
        chunk_number: int,
        gcs_path: str,
        public_url: Optional[str],
        is_last: bool,
        *,
        mime_type: Optional[str] = None,
        client_metadata: Optional[Dict[str, Any]] = None,
    ) -> Chunk:
        chunk_id = chunk_id_for(session_id, chunk_number)
        with self._lock:
            chunk = self._chunks.get(chunk_id)
            if chunk is None:
                logger.warning("chunk_confirm_unregistered chunk_id=%s", chunk_id)
                chunk = self._new_chunk(session_id, chunk_number, mime_type, gcs_path, public_url)
                self._chunks[chunk_id] = chunk
            self._apply_confirmed(chunk, gcs_path, public_url, is_last, mime_type, client_metadata)
            return chunk.model_copy(deep=True)

    def get_chunk(self, chunk_id: str) -> Optional[Chunk]:
        with self._lock:
            chunk = self._chunks.get(chunk_id)
            return None if chunk is None else chunk.model_copy(deep=True)

    def list_by_session(self, session_id: str) -> List[Chunk]:
        with self._lock:
            items = [c.model_copy(deep=True) for c in self._chunks.values() if c.session_id == session_id]
        items.sort(key=lambda item: item.chunk_number)
        return items

    def list_all(self) -> List[Chunk]:
        with self._lock:
            items = [c.model_copy(deep=True) for c in self._chunks.values()]
        items.sort(key=lambda item: (item.session_id, item.chunk_number))
        return items

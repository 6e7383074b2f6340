from __future__ import annotations

"""
Chunked-upload session protocol: issue target -> raw upload -> confirm.

Design intent:
- Keep the session store and chunk registry dumb; this layer checks that the
  session exists and turns store-level misses into NotFoundError.
- Accept steps out of order: an upload without a prior target, or a
  confirmation before the upload, still lands on a chunk record.
- Record client passthrough metadata without interpreting it. Completeness
  of a session is never computed here.
"""

import logging
import re
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .chunk_registry import InMemoryChunkRegistry, chunk_id_for
from .contracts import DEFAULT_MIME_TYPE, Chunk, Session
from .errors import NotFoundError, PayloadTooLargeError, ValidationError
from .session_store import InMemorySessionStore

logger = logging.getLogger(__name__)

_DEFAULT_EXTENSION = "wav"
_EXTENSION_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9.+-]*$")


@dataclass(frozen=True)
class UploadTarget:
    url: str
    gcs_path: str
    public_url: str


def extension_for_mime_type(mime_type: Optional[str]) -> str:
    """Map ``audio/webm;codecs=opus`` to ``webm``; fall back to ``wav``."""
    raw = str(mime_type or "").strip()
    if "/" not in raw:
        return _DEFAULT_EXTENSION
    subtype = raw.split("/", 1)[1].split(";", 1)[0].strip().lower()
    if not subtype or not _EXTENSION_RE.match(subtype):
        return _DEFAULT_EXTENSION
    return subtype


def build_gcs_path(session_id: str, chunk_number: int, mime_type: Optional[str]) -> str:
    return f"sessions/{session_id}/chunk_{int(chunk_number)}.{extension_for_mime_type(mime_type)}"


def _require_chunk_number(chunk_number: Optional[int], message: str) -> int:
    if chunk_number is None or isinstance(chunk_number, bool):
        raise ValidationError(message)
    try:
        value = int(chunk_number)
    except (TypeError, ValueError) as exc:
        raise ValidationError("chunkNumber must be an integer") from exc
    if value < 0:
        raise ValidationError("chunkNumber must be a non-negative integer")
    return value


class UploadSessionProtocol:
    def __init__(
        self,
        sessions: InMemorySessionStore,
        chunks: InMemoryChunkRegistry,
        *,
        base_url: str,
        max_chunk_bytes: int = 50 * 1024 * 1024,
        default_mime_type: str = DEFAULT_MIME_TYPE,
    ) -> None:
        self.sessions = sessions
        self.chunks = chunks
        self._base_url = str(base_url).rstrip("/")
        self._max_chunk_bytes = int(max_chunk_bytes)
        self._default_mime_type = default_mime_type or DEFAULT_MIME_TYPE

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
        session_id = self.sessions.create_session(
            user_id,
            patient_id=patient_id,
            patient_name=patient_name,
            status=status,
            start_time=start_time,
            template_id=template_id,
        )
        logger.info(
            "session_created session_id=%s user_id=%s patient_id=%s",
            session_id,
            user_id,
            patient_id or "none",
        )
        return session_id

    def _require_session(self, session_id: str) -> Session:
        session = self.sessions.get_session(session_id)
        if session is None:
            logger.warning("session_not_found session_id=%s", session_id)
            raise NotFoundError("Session not found")
        return session

    def _public_url(self, gcs_path: str) -> str:
        return f"{self._base_url}/public/{gcs_path}"

    def issue_upload_target(
        self,
        session_id: Optional[str],
        chunk_number: Optional[int],
        mime_type: Optional[str] = None,
    ) -> UploadTarget:
        message = "sessionId and chunkNumber are required"
        if not str(session_id or "").strip():
            raise ValidationError(message)
        number = _require_chunk_number(chunk_number, message)
        self._require_session(session_id)

        resolved_mime = mime_type or self._default_mime_type
        gcs_path = build_gcs_path(session_id, number, resolved_mime)
        public_url = self._public_url(gcs_path)
        # Each issuance is signed separately; the chunk record itself is keyed
        # by (session, chunk number) and simply reset to pending.
        signature = uuid.uuid4().hex
        url = f"{self._base_url}/v1/upload-chunk/{session_id}/{number}?signature={signature}"

        self.chunks.register_pending_chunk(session_id, number, resolved_mime, gcs_path, public_url)
        logger.info(
            "upload_target_issued session_id=%s chunk_number=%s mime_type=%s gcs_path=%s",
            session_id,
            number,
            resolved_mime,
            gcs_path,
        )
        return UploadTarget(url=url, gcs_path=gcs_path, public_url=public_url)

    def accept_raw_upload(self, session_id: str, chunk_number: int, payload: Optional[bytes]) -> Chunk:
        size = len(payload) if payload else 0
        if size == 0:
            logger.warning(
                "chunk_upload_empty session_id=%s chunk_number=%s", session_id, chunk_number
            )
            raise ValidationError("Audio data is required")
        if size > self._max_chunk_bytes:
            raise PayloadTooLargeError(
                f"Audio chunk exceeds {self._max_chunk_bytes} byte limit"
            )
        number = _require_chunk_number(chunk_number, "chunkNumber is required")
        self._require_session(session_id)

        chunk_id = chunk_id_for(session_id, number)
        # Used only when the client skipped the upload-target step.
        gcs_path = build_gcs_path(session_id, number, self._default_mime_type)
        chunk = self.chunks.upload_or_register(
            session_id,
            number,
            size,
            mime_type=self._default_mime_type,
            gcs_path=gcs_path,
            public_url=self._public_url(gcs_path),
        )

        appended = self.sessions.append_chunk_to_session(session_id, chunk_id)
        logger.info(
            "chunk_uploaded session_id=%s chunk_number=%s size_bytes=%s size_kb=%.2f appended=%s",
            session_id,
            number,
            size,
            size / 1024.0,
            appended,
        )
        return chunk

    def confirm_upload(
        self,
        session_id: Optional[str],
        gcs_path: Optional[str],
        chunk_number: Optional[int],
        *,
        is_last: Optional[bool] = False,
        public_url: Optional[str] = None,
        mime_type: Optional[str] = None,
        client_metadata: Optional[Dict[str, Any]] = None,
    ) -> Chunk:
        message = "sessionId, gcsPath, and chunkNumber are required"
        if not str(session_id or "").strip() or not str(gcs_path or "").strip():
            raise ValidationError(message)
        number = _require_chunk_number(chunk_number, message)
        self._require_session(session_id)

        metadata = {key: value for key, value in (client_metadata or {}).items() if value is not None}
        chunk = self.chunks.confirm_or_register(
            session_id,
            number,
            gcs_path,
            public_url,
            bool(is_last),
            mime_type=mime_type,
            client_metadata=metadata,
        )

        if chunk.is_last:
            logger.info("last_chunk_received session_id=%s chunk_number=%s", session_id, number)
        logger.info(
            "chunk_confirmed session_id=%s chunk_number=%s is_last=%s total_chunks_client=%s",
            session_id,
            number,
            chunk.is_last,
            metadata.get("totalChunksClient", "unknown"),
        )
        return chunk

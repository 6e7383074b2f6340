from __future__ import annotations

from typing import List, Optional

from pydantic import Field

from .contracts import CamelModel, Chunk, ChunkStatus
from .upload_protocol import UploadSessionProtocol


class ChunkView(CamelModel):
    chunk_id: str
    session_id: str
    chunk_number: int
    status: ChunkStatus
    file_size: int = 0
    uploaded_at: Optional[str] = None
    gcs_path: str
    public_url: Optional[str] = None
    mime_type: str
    is_last: bool = False


class SessionChunksView(CamelModel):
    session_id: str
    session_status: str
    total_chunks: int
    chunks: List[ChunkView] = Field(default_factory=list)
    session_chunk_ids: List[str] = Field(default_factory=list)


class AllChunksView(CamelModel):
    total_chunks: int
    chunks: List[ChunkView] = Field(default_factory=list)


def _to_view(chunk: Chunk) -> ChunkView:
    return ChunkView(
        chunk_id=chunk.chunk_id,
        session_id=chunk.session_id,
        chunk_number=chunk.chunk_number,
        status=chunk.status,
        file_size=chunk.file_size or 0,
        uploaded_at=chunk.uploaded_at,
        gcs_path=chunk.gcs_path,
        public_url=chunk.public_url,
        mime_type=chunk.mime_type,
        is_last=chunk.is_last,
    )


def session_chunks_view(protocol: UploadSessionProtocol, session_id: str) -> Optional[SessionChunksView]:
    session = protocol.sessions.get_session(session_id)
    if session is None:
        return None
    chunks = [_to_view(item) for item in protocol.chunks.list_by_session(session_id)]
    return SessionChunksView(
        session_id=session_id,
        session_status=session.status,
        total_chunks=len(chunks),
        chunks=chunks,
        session_chunk_ids=list(session.chunk_ids),
    )


def all_chunks_view(protocol: UploadSessionProtocol) -> AllChunksView:
    chunks = [_to_view(item) for item in protocol.chunks.list_all()]
    return AllChunksView(total_chunks=len(chunks), chunks=chunks)

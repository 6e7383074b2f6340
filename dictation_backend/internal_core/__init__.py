from .chunk_registry import InMemoryChunkRegistry, chunk_id_for
from .config import ServiceConfig, load_config
from .patient_store import InMemoryPatientStore
from .session_store import InMemorySessionStore
from .upload_protocol import UploadSessionProtocol, UploadTarget

__all__ = [
    "InMemoryChunkRegistry",
    "InMemoryPatientStore",
    "InMemorySessionStore",
    "ServiceConfig",
    "UploadSessionProtocol",
    "UploadTarget",
    "chunk_id_for",
    "load_config",
]

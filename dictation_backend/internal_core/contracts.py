from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

ChunkStatus = Literal["pending", "uploaded", "confirmed"]

DEFAULT_SESSION_STATUS = "recording"
DEFAULT_MIME_TYPE = "audio/wav"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Session(CamelModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    user_id: str
    patient_id: Optional[str] = None
    patient_name: Optional[str] = None
    status: str = DEFAULT_SESSION_STATUS
    start_time: str
    end_time: Optional[str] = None
    template_id: Optional[str] = None
    chunk_ids: List[str] = Field(default_factory=list)
    created_at: str


class Chunk(CamelModel):
    model_config = ConfigDict(extra="forbid")

    chunk_id: str
    session_id: str
    chunk_number: int = Field(ge=0)
    mime_type: str = DEFAULT_MIME_TYPE
    status: ChunkStatus = "pending"
    gcs_path: str
    public_url: Optional[str] = None
    file_size: Optional[int] = Field(default=None, ge=0)
    uploaded_at: Optional[str] = None
    is_last: bool = False
    client_metadata: Dict[str, Any] = Field(default_factory=dict)


class Patient(CamelModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    user_id: str
    name: str
    phone_number: Optional[str] = None
    email: Optional[str] = None
    date_of_birth: Optional[str] = None
    gender: Optional[str] = None
    # Clinical profile fields are exposed snake_case on the wire.
    pronouns: Optional[str] = None
    background: Optional[str] = Field(default=None, alias="background")
    medical_history: Optional[str] = Field(default=None, alias="medical_history")
    family_history: Optional[str] = Field(default=None, alias="family_history")
    social_history: Optional[str] = Field(default=None, alias="social_history")
    previous_treatment: Optional[str] = Field(default=None, alias="previous_treatment")
    additional_info: Dict[str, Any] = Field(default_factory=dict)
    created_at: str

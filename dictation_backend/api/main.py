from __future__ import annotations

"""
HTTP surface for the dictation upload mock.

Design intent:
- Keep handlers thin: parse the camelCase wire payload, call the protocol,
  serialize the result.
- Render every failure as ``{"error": message}`` with the status carried by
  the raised ProtocolError.
- Serve the patient/session/template glue the mobile client expects next to
  the chunked-upload endpoints.
"""

import datetime as _dt
import logging
import threading
import time
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from dictation_backend.internal_core import (
    InMemoryChunkRegistry,
    InMemoryPatientStore,
    InMemorySessionStore,
    ServiceConfig,
    UploadSessionProtocol,
    load_config,
)
from dictation_backend.internal_core.contracts import CamelModel, Patient, Session
from dictation_backend.internal_core.errors import InternalError, ProtocolError, ValidationError
from dictation_backend.internal_core.inspection import (
    AllChunksView,
    SessionChunksView,
    all_chunks_view,
    session_chunks_view,
)


class CreateSessionRequest(CamelModel):
    user_id: str | None = None
    patient_id: str | None = None
    patient_name: str | None = None
    status: str | None = None
    start_time: str | None = None
    template_id: str | None = None


class CreateSessionResponse(BaseModel):
    id: str


class PresignedUrlRequest(CamelModel):
    session_id: str | None = None
    chunk_number: int | None = None
    mime_type: str | None = None


class PresignedUrlResponse(CamelModel):
    url: str
    gcs_path: str
    public_url: str


class NotifyChunkUploadedRequest(CamelModel):
    session_id: str | None = None
    gcs_path: str | None = None
    chunk_number: int | None = None
    is_last: bool | None = False
    total_chunks_client: int | None = None
    public_url: str | None = None
    mime_type: str | None = None
    selected_template: Any = None
    selected_template_id: str | None = None
    model: str | None = None


class AddPatientRequest(CamelModel):
    user_id: str | None = None
    name: str | None = None
    phone_number: str | None = None
    email: str | None = None
    date_of_birth: str | None = None
    gender: str | None = None
    pronouns: str | None = None
    background: str | None = None
    medical_history: str | None = None
    family_history: str | None = None
    social_history: str | None = None
    previous_treatment: str | None = None
    additional_info: dict[str, Any] | None = None


class AddPatientResponse(BaseModel):
    message: str
    patient: Patient


class PatientListResponse(BaseModel):
    patients: list[Patient] = Field(default_factory=list)
    count: int


class PatientDetailsResponse(BaseModel):
    id: str
    name: str
    pronouns: str | None = None
    email: str | None = None
    background: str | None = None
    medical_history: str | None = None
    family_history: str | None = None
    social_history: str | None = None
    previous_treatment: str | None = None


class PatientSessionItem(BaseModel):
    id: str
    date: str
    session_title: str
    session_summary: str
    start_time: str | None = None


class PatientSessionsResponse(BaseModel):
    sessions: list[PatientSessionItem] = Field(default_factory=list)


class UserSessionItem(BaseModel):
    id: str
    user_id: str
    patient_id: str | None = None
    session_title: str
    session_summary: str
    transcript_status: str = "pending"
    transcript: str = ""
    status: str
    date: str
    start_time: str | None = None
    end_time: str | None = None
    patient_name: str | None = None
    pronouns: str | None = None
    email: str | None = None
    background: str | None = None
    duration: str | None = None
    medical_history: str | None = None
    family_history: str | None = None
    social_history: str | None = None
    previous_treatment: str | None = None
    patient_pronouns: str | None = None
    clinical_notes: list[Any] = Field(default_factory=list)


class PatientMapEntry(BaseModel):
    name: str
    pronouns: str | None = None


class UserSessionsResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    sessions: list[UserSessionItem] = Field(default_factory=list)
    patient_map: dict[str, PatientMapEntry] = Field(default_factory=dict, alias="patientMap")


class TemplateItem(BaseModel):
    id: str
    title: str
    type: str


class TemplatesResponse(BaseModel):
    success: bool = True
    data: list[TemplateItem] = Field(default_factory=list)


class UserLookupResponse(BaseModel):
    id: str


_DEFAULT_TEMPLATES = (
    TemplateItem(id="new_patient_visit", title="New Patient Visit", type="default"),
    TemplateItem(id="follow_up_visit", title="Follow-up Visit", type="predefined"),
)
_DEFAULT_SESSION_TITLE = "Recording Session"
_DEFAULT_SESSION_SUMMARY = "Patient consultation summary"


app = FastAPI(title="dictation upload mock")
logger = logging.getLogger(__name__)
_STATE_LOCK = threading.Lock()

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _utc_now_iso() -> str:
    return _dt.datetime.now(_dt.timezone.utc).isoformat()


def _get_config() -> ServiceConfig:
    existing = getattr(app.state, "service_config", None)
    if isinstance(existing, ServiceConfig):
        return existing
    with _STATE_LOCK:
        existing = getattr(app.state, "service_config", None)
        if isinstance(existing, ServiceConfig):
            return existing
        created = load_config()
        setattr(app.state, "service_config", created)
        return created


def _get_upload_protocol() -> UploadSessionProtocol:
    existing = getattr(app.state, "upload_protocol", None)
    if isinstance(existing, UploadSessionProtocol):
        return existing
    cfg = _get_config()
    with _STATE_LOCK:
        existing = getattr(app.state, "upload_protocol", None)
        if isinstance(existing, UploadSessionProtocol):
            return existing
        created = UploadSessionProtocol(
            InMemorySessionStore(),
            InMemoryChunkRegistry(),
            base_url=cfg.base_url(),
            max_chunk_bytes=cfg.SCRIBE_MAX_CHUNK_BYTES,
            default_mime_type=cfg.SCRIBE_DEFAULT_MIME_TYPE,
        )
        setattr(app.state, "upload_protocol", created)
        return created


def _get_patient_store() -> InMemoryPatientStore:
    existing = getattr(app.state, "patient_store", None)
    if isinstance(existing, InMemoryPatientStore):
        return existing
    with _STATE_LOCK:
        existing = getattr(app.state, "patient_store", None)
        if isinstance(existing, InMemoryPatientStore):
            return existing
        created = InMemoryPatientStore()
        setattr(app.state, "patient_store", created)
        return created


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@app.middleware("http")
async def log_requests(request: Request, call_next):
    if not _get_config().SCRIBE_REQUEST_LOGGING:
        return await call_next(request)

    start = time.perf_counter()
    query = dict(request.query_params)
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        return response
    finally:
        logger.info(
            "request method=%s path=%s query=%s status=%s duration_ms=%.1f",
            request.method,
            request.url.path,
            query or "-",
            status_code,
            (time.perf_counter() - start) * 1000.0,
        )


@app.exception_handler(ProtocolError)
async def protocol_error_handler(request: Request, exc: ProtocolError) -> JSONResponse:
    if isinstance(exc, InternalError):
        logger.error(
            "internal_error path=%s code=%s detail=%s",
            request.url.path,
            exc.code,
            exc.detail,
            exc_info=exc,
        )
    else:
        logger.warning(
            "request_rejected path=%s status=%s code=%s message=%s",
            request.url.path,
            exc.status_code,
            exc.code,
            exc.message,
        )
    return _error_response(exc.status_code, exc.message)


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = []
    for item in exc.errors():
        loc = ".".join(str(part) for part in item.get("loc", ()) if part != "body")
        problems.append(f"{loc}: {item.get('msg', 'invalid')}" if loc else str(item.get("msg", "invalid")))
    message = "Invalid request: " + "; ".join(problems) if problems else "Invalid request"
    logger.warning("request_invalid path=%s message=%s", request.url.path, message)
    return _error_response(400, message)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_error method=%s path=%s", request.method, request.url.path)
    return _error_response(500, "Internal server error")


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok", "timestamp": _utc_now_iso()}


@app.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


# Chunked upload protocol


@app.post("/v1/upload-session", response_model=CreateSessionResponse, status_code=201)
async def create_upload_session(payload: CreateSessionRequest) -> CreateSessionResponse:
    session_id = _get_upload_protocol().create_session(
        payload.user_id,
        patient_id=payload.patient_id,
        patient_name=payload.patient_name,
        status=payload.status,
        start_time=payload.start_time,
        template_id=payload.template_id,
    )
    return CreateSessionResponse(id=session_id)


@app.post("/v1/get-presigned-url", response_model=PresignedUrlResponse)
async def get_presigned_url(payload: PresignedUrlRequest) -> PresignedUrlResponse:
    target = _get_upload_protocol().issue_upload_target(
        payload.session_id,
        payload.chunk_number,
        payload.mime_type,
    )
    return PresignedUrlResponse(url=target.url, gcs_path=target.gcs_path, public_url=target.public_url)


@app.put("/v1/upload-chunk/{session_id}/{chunk_number}")
async def upload_chunk(session_id: str, chunk_number: int, request: Request) -> Response:
    payload = await request.body()
    _get_upload_protocol().accept_raw_upload(session_id, chunk_number, payload)
    # Object stores answer a successful PUT with an empty body.
    return Response(status_code=200)


@app.post("/v1/notify-chunk-uploaded")
async def notify_chunk_uploaded(payload: NotifyChunkUploadedRequest) -> dict[str, Any]:
    _get_upload_protocol().confirm_upload(
        payload.session_id,
        payload.gcs_path,
        payload.chunk_number,
        is_last=payload.is_last,
        public_url=payload.public_url,
        mime_type=payload.mime_type,
        client_metadata={
            "totalChunksClient": payload.total_chunks_client,
            "selectedTemplate": payload.selected_template,
            "selectedTemplateId": payload.selected_template_id,
            "model": payload.model,
        },
    )
    return {}


@app.get("/v1/debug/session/{session_id}/chunks", response_model=SessionChunksView)
async def debug_session_chunks(session_id: str) -> SessionChunksView:
    view = session_chunks_view(_get_upload_protocol(), session_id)
    if view is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return view


@app.get("/v1/debug/chunks", response_model=AllChunksView)
async def debug_all_chunks() -> AllChunksView:
    return all_chunks_view(_get_upload_protocol())


# Patients, sessions and templates


def _require_query(value: Optional[str], message: str) -> str:
    normalized = str(value or "").strip()
    if not normalized:
        raise ValidationError(message)
    return normalized


def _session_date(session: Session) -> str:
    if session.start_time:
        return session.start_time.split("T")[0]
    return _utc_now_iso().split("T")[0]


def _parse_iso(value: str) -> _dt.datetime | None:
    try:
        return _dt.datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _session_duration(session: Session) -> str | None:
    if not session.start_time or not session.end_time:
        return None
    start = _parse_iso(session.start_time)
    end = _parse_iso(session.end_time)
    if start is None or end is None:
        return None
    try:
        minutes = round((end - start).total_seconds() / 60.0)
    except TypeError:
        # Mixed naive/aware timestamps from clients.
        return None
    return f"{minutes} minutes"


@app.get("/v1/patients", response_model=PatientListResponse)
async def list_patients(user_id: str | None = Query(default=None, alias="userId")) -> PatientListResponse:
    normalized = _require_query(user_id, "userId is required")
    patients = _get_patient_store().list_patients_for_user(normalized)
    return PatientListResponse(patients=patients, count=len(patients))


@app.post("/v1/add-patient-ext", response_model=AddPatientResponse, status_code=201)
async def add_patient(payload: AddPatientRequest) -> AddPatientResponse:
    patient = _get_patient_store().add_patient(
        payload.user_id,
        payload.name,
        profile=payload.model_dump(
            include={
                "phone_number",
                "email",
                "date_of_birth",
                "gender",
                "pronouns",
                "background",
                "medical_history",
                "family_history",
                "social_history",
                "previous_treatment",
            }
        ),
        additional_info=payload.additional_info,
    )
    logger.info("patient_added patient_id=%s user_id=%s", patient.id, patient.user_id)
    return AddPatientResponse(message="Patient added successfully", patient=patient)


@app.get("/v1/fetch-session-by-patient/{patient_id}", response_model=PatientSessionsResponse)
async def fetch_sessions_by_patient(patient_id: str) -> PatientSessionsResponse:
    sessions = _get_upload_protocol().sessions.list_sessions_for_patient(patient_id)
    return PatientSessionsResponse(
        sessions=[
            PatientSessionItem(
                id=item.id,
                date=_session_date(item),
                session_title=item.template_id or _DEFAULT_SESSION_TITLE,
                session_summary=_DEFAULT_SESSION_SUMMARY,
                start_time=item.start_time,
            )
            for item in sessions
        ]
    )


@app.get("/v1/patient-details/{patient_id}", response_model=PatientDetailsResponse)
async def patient_details(patient_id: str) -> PatientDetailsResponse:
    patient = _get_patient_store().get_patient(patient_id)
    if patient is None:
        raise HTTPException(status_code=404, detail="Patient not found")
    return PatientDetailsResponse(
        id=patient.id,
        name=patient.name,
        pronouns=patient.pronouns,
        email=patient.email,
        background=patient.background,
        medical_history=patient.medical_history,
        family_history=patient.family_history,
        social_history=patient.social_history,
        previous_treatment=patient.previous_treatment,
    )


@app.get("/v1/all-session", response_model=UserSessionsResponse)
async def list_user_sessions(user_id: str | None = Query(default=None, alias="userId")) -> UserSessionsResponse:
    normalized = _require_query(user_id, "userId is required")
    patient_store = _get_patient_store()
    items: list[UserSessionItem] = []
    patient_map: dict[str, PatientMapEntry] = {}

    for session in _get_upload_protocol().sessions.list_sessions_for_user(normalized):
        patient = patient_store.get_patient(session.patient_id) if session.patient_id else None
        if patient is not None and patient.id not in patient_map:
            patient_map[patient.id] = PatientMapEntry(name=patient.name, pronouns=patient.pronouns)
        items.append(
            UserSessionItem(
                id=session.id,
                user_id=session.user_id,
                patient_id=session.patient_id,
                session_title=session.template_id or _DEFAULT_SESSION_TITLE,
                session_summary=_DEFAULT_SESSION_SUMMARY,
                status=session.status,
                date=_session_date(session),
                start_time=session.start_time,
                end_time=session.end_time,
                patient_name=(patient.name if patient else None) or session.patient_name,
                pronouns=patient.pronouns if patient else None,
                email=patient.email if patient else None,
                background=patient.background if patient else None,
                duration=_session_duration(session),
                medical_history=patient.medical_history if patient else None,
                family_history=patient.family_history if patient else None,
                social_history=patient.social_history if patient else None,
                previous_treatment=patient.previous_treatment if patient else None,
                patient_pronouns=patient.pronouns if patient else None,
            )
        )

    return UserSessionsResponse(sessions=items, patient_map=patient_map)


@app.get("/v1/fetch-default-template-ext", response_model=TemplatesResponse)
async def fetch_default_templates(user_id: str | None = Query(default=None, alias="userId")) -> TemplatesResponse:
    _require_query(user_id, "userId is required")
    return TemplatesResponse(success=True, data=list(_DEFAULT_TEMPLATES))


@app.get("/users/asd3fd2faec", response_model=UserLookupResponse)
async def resolve_user(email: str | None = Query(default=None)) -> UserLookupResponse:
    normalized = _require_query(email, "email is required")
    # Mirrors the mobile client's expected id shape: first "@" and first "." only.
    return UserLookupResponse(id="user_" + normalized.replace("@", "_", 1).replace(".", "_", 1))

from dataclasses import replace

from fastapi.testclient import TestClient

from dictation_backend.api.main import PresignedUrlRequest, PresignedUrlResponse, app
from dictation_backend.internal_core import (
    InMemoryChunkRegistry,
    InMemorySessionStore,
    UploadSessionProtocol,
    load_config,
)
from dictation_backend.internal_core.errors import InternalError
from dictation_backend.internal_core.inspection import ChunkView


def _fresh_client(**kwargs) -> TestClient:
    app.state.upload_protocol = UploadSessionProtocol(
        InMemorySessionStore(),
        InMemoryChunkRegistry(),
        base_url="http://testserver",
        **kwargs,
    )
    return TestClient(app)


def test_create_session_without_user_id_returns_400() -> None:
    client = _fresh_client()
    response = client.post("/v1/upload-session", json={"patientId": "p1"})
    assert response.status_code == 400
    assert response.json() == {"error": "userId is required"}


def test_create_session_without_body_returns_400() -> None:
    client = _fresh_client()
    response = client.post("/v1/upload-session")
    assert response.status_code == 400
    assert "error" in response.json()


def test_presigned_url_missing_fields_returns_400() -> None:
    client = _fresh_client()
    response = client.post("/v1/get-presigned-url", json={"sessionId": "abc"})
    assert response.status_code == 400
    assert response.json() == {"error": "sessionId and chunkNumber are required"}


def test_presigned_url_non_integer_chunk_number_returns_400() -> None:
    client = _fresh_client()
    response = client.post("/v1/get-presigned-url", json={"sessionId": "abc", "chunkNumber": "first"})
    assert response.status_code == 400
    assert response.json()["error"].startswith("Invalid request")


def test_presigned_url_unknown_session_returns_404() -> None:
    client = _fresh_client()
    response = client.post("/v1/get-presigned-url", json={"sessionId": "ghost", "chunkNumber": 0})
    assert response.status_code == 404
    assert response.json() == {"error": "Session not found"}
    assert client.get("/v1/debug/chunks").json()["totalChunks"] == 0


def test_upload_empty_body_returns_400_without_mutation() -> None:
    client = _fresh_client()
    session_id = client.post("/v1/upload-session", json={"userId": "u1"}).json()["id"]

    response = client.put(f"/v1/upload-chunk/{session_id}/0", content=b"")

    assert response.status_code == 400
    assert response.json() == {"error": "Audio data is required"}
    payload = client.get(f"/v1/debug/session/{session_id}/chunks").json()
    assert payload["totalChunks"] == 0
    assert payload["sessionChunkIds"] == []


def test_upload_unknown_session_returns_404() -> None:
    client = _fresh_client()
    response = client.put("/v1/upload-chunk/ghost/0", content=b"\x01")
    assert response.status_code == 404
    assert response.json() == {"error": "Session not found"}


def test_upload_non_integer_chunk_number_returns_400() -> None:
    client = _fresh_client()
    response = client.put("/v1/upload-chunk/ghost/zero", content=b"\x01")
    assert response.status_code == 400


def test_upload_oversized_body_returns_413() -> None:
    client = _fresh_client(max_chunk_bytes=4)
    session_id = client.post("/v1/upload-session", json={"userId": "u1"}).json()["id"]

    response = client.put(f"/v1/upload-chunk/{session_id}/0", content=b"\x00" * 5)

    assert response.status_code == 413
    assert "error" in response.json()


def test_notify_missing_gcs_path_returns_400() -> None:
    client = _fresh_client()
    response = client.post("/v1/notify-chunk-uploaded", json={"sessionId": "abc", "chunkNumber": 0})
    assert response.status_code == 400
    assert response.json() == {"error": "sessionId, gcsPath, and chunkNumber are required"}


def test_notify_unknown_session_returns_404() -> None:
    client = _fresh_client()
    response = client.post(
        "/v1/notify-chunk-uploaded",
        json={"sessionId": "ghost", "gcsPath": "sessions/ghost/chunk_0.wav", "chunkNumber": 0, "isLast": True},
    )
    assert response.status_code == 404
    assert client.get("/v1/debug/chunks").json()["totalChunks"] == 0


def test_debug_unknown_session_returns_404() -> None:
    client = _fresh_client()
    response = client.get("/v1/debug/session/ghost/chunks")
    assert response.status_code == 404
    assert response.json() == {"error": "Session not found"}


def test_unknown_route_uses_error_envelope() -> None:
    client = _fresh_client()
    response = client.get("/v1/does-not-exist")
    assert response.status_code == 404
    assert "error" in response.json()


def test_unhandled_failure_returns_generic_500(monkeypatch) -> None:
    def broken_view(protocol):
        _ = protocol
        raise RuntimeError("registry exploded with secret detail")

    monkeypatch.setattr("dictation_backend.api.main.all_chunks_view", broken_view)
    client = TestClient(app, raise_server_exceptions=False)
    response = client.get("/v1/debug/chunks")

    assert response.status_code == 500
    assert response.json() == {"error": "Internal server error"}


def test_internal_error_is_logged_with_traceback(monkeypatch, caplog) -> None:
    def broken_view(protocol):
        _ = protocol
        raise InternalError("chunk index out of sync")

    monkeypatch.setattr("dictation_backend.api.main.all_chunks_view", broken_view)
    client = _fresh_client()
    with caplog.at_level("ERROR", logger="dictation_backend.api.main"):
        response = client.get("/v1/debug/chunks")

    assert response.status_code == 500
    assert response.json() == {"error": "Internal server error"}
    records = [r for r in caplog.records if r.getMessage().startswith("internal_error")]
    assert len(records) == 1
    assert "chunk index out of sync" in records[0].getMessage()
    assert records[0].exc_info is not None
    assert records[0].exc_info[0] is InternalError


def test_request_log_line_written_for_unhandled_failure(monkeypatch, caplog) -> None:
    def broken_view(protocol):
        _ = protocol
        raise RuntimeError("registry exploded")

    config = replace(load_config(), SCRIBE_REQUEST_LOGGING=True)
    monkeypatch.setattr(app.state, "service_config", config, raising=False)
    monkeypatch.setattr("dictation_backend.api.main.all_chunks_view", broken_view)
    client = TestClient(app, raise_server_exceptions=False)
    with caplog.at_level("INFO", logger="dictation_backend.api.main"):
        response = client.get("/v1/debug/chunks")

    assert response.status_code == 500
    lines = [r.getMessage() for r in caplog.records if r.getMessage().startswith("request ")]
    assert len(lines) == 1
    assert "path=/v1/debug/chunks" in lines[0]
    assert "status=500" in lines[0]


def test_camel_case_wire_names_shared_by_api_and_inspection() -> None:
    target = PresignedUrlResponse(url="u", gcs_path="g", public_url="p")
    view = ChunkView(
        chunk_id="s_chunk_0",
        session_id="s",
        chunk_number=0,
        status="pending",
        gcs_path="g",
        mime_type="audio/wav",
    )

    assert target.model_dump(by_alias=True) == {"url": "u", "gcsPath": "g", "publicUrl": "p"}
    assert {"chunkId", "sessionId", "chunkNumber", "gcsPath", "isLast"} <= set(view.model_dump(by_alias=True))
    assert PresignedUrlRequest.model_validate({"sessionId": "s", "chunkNumber": 1}).session_id == "s"

import pytest

from dictation_backend.internal_core.errors import ValidationError
from dictation_backend.internal_core.session_store import InMemorySessionStore


def test_create_session_issues_unique_ids_with_defaults() -> None:
    store = InMemorySessionStore()
    ids = {store.create_session("u1") for _ in range(50)}

    assert len(ids) == 50
    session = store.get_session(next(iter(ids)))
    assert session is not None
    assert session.user_id == "u1"
    assert session.status == "recording"
    assert session.start_time
    assert session.patient_id is None
    assert session.chunk_ids == []


def test_create_session_keeps_optional_fields() -> None:
    store = InMemorySessionStore()
    session_id = store.create_session(
        "u1",
        patient_id="p1",
        patient_name="Ada",
        status="paused",
        start_time="2024-05-01T10:00:00Z",
        template_id="follow_up_visit",
    )

    session = store.get_session(session_id)
    assert session.patient_id == "p1"
    assert session.patient_name == "Ada"
    assert session.status == "paused"
    assert session.start_time == "2024-05-01T10:00:00Z"
    assert session.template_id == "follow_up_visit"


@pytest.mark.parametrize("user_id", [None, "", "   "])
def test_create_session_requires_user_id(user_id) -> None:
    store = InMemorySessionStore()
    with pytest.raises(ValidationError) as exc_info:
        store.create_session(user_id)
    assert exc_info.value.message == "userId is required"
    assert store.list_sessions_for_user("") == []


def test_get_session_returns_none_for_unknown_id() -> None:
    assert InMemorySessionStore().get_session("missing") is None


def test_get_session_returns_a_copy() -> None:
    store = InMemorySessionStore()
    session_id = store.create_session("u1")

    snapshot = store.get_session(session_id)
    snapshot.chunk_ids.append("tampered")

    assert store.get_session(session_id).chunk_ids == []


def test_append_chunk_to_session_is_idempotent() -> None:
    store = InMemorySessionStore()
    session_id = store.create_session("u1")

    assert store.append_chunk_to_session(session_id, "c0") is True
    assert store.append_chunk_to_session(session_id, "c1") is True
    assert store.append_chunk_to_session(session_id, "c0") is False

    assert store.get_session(session_id).chunk_ids == ["c0", "c1"]


def test_append_chunk_to_unknown_session_is_noop() -> None:
    store = InMemorySessionStore()
    assert store.append_chunk_to_session("missing", "c0") is False


def test_list_sessions_filters_by_user_and_patient() -> None:
    store = InMemorySessionStore()
    a = store.create_session("u1", patient_id="p1")
    b = store.create_session("u1")
    c = store.create_session("u2", patient_id="p1")

    assert {s.id for s in store.list_sessions_for_user("u1")} == {a, b}
    assert {s.id for s in store.list_sessions_for_patient("p1")} == {a, c}
    assert store.list_sessions_for_patient("p2") == []

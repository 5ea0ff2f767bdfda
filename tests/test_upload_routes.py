"""Tests for the chunked upload endpoints."""

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from casitas.main import create_app
from casitas.models.status import SessionState

from conftest import CHUNK_SIZE, EVIDENCE_FIELDS, MEDIA_BASE_URL, FlakyMediaStore, FlakyRecordStore, make_service

PAYLOAD = b"0123456789abcdef" * 125_000  # 2,000,000 bytes


def init(client, upload_id="u1", file_size=2_000_000, record_id="r1", file_name="a.jpg", **extra):
    body = {"uploadId": upload_id, "fileName": file_name, "fileSize": file_size, "recordId": record_id}
    body.update(extra)
    return client.post("/upload/init", json=body)


def send_chunk(client, upload_id, index, total, data):
    return client.post(
        "/upload/chunk",
        data={"uploadId": upload_id, "chunkIndex": str(index), "totalChunks": str(total)},
        files={"chunk": ("blob", data, "application/octet-stream")},
    )


def finalize(client, upload_id="u1", record_id="r1", file_name="a.jpg", **extra):
    body = {"uploadId": upload_id, "fileName": file_name, "recordId": record_id}
    body.update(extra)
    return client.post("/upload/finalize", json=body)


def stored_bytes(media_store, url: str) -> bytes:
    relative = url[len(MEDIA_BASE_URL) + 1:]
    return (Path(media_store.base_path) / relative).read_bytes()


def media_files(media_store) -> list[Path]:
    return [p for p in Path(media_store.base_path).rglob("*") if p.is_file()]


def test_round_trip_two_chunks(client, record_store, media_store, scratch):
    """Test init, two chunks and finalize produce a stored file and evidence URL."""
    assert init(client).status_code == 200

    assert send_chunk(client, "u1", 0, 2, PAYLOAD[:CHUNK_SIZE]).status_code == 200
    response = send_chunk(client, "u1", 1, 2, PAYLOAD[CHUNK_SIZE:])
    assert response.status_code == 200
    assert response.json()["receivedChunks"] == 2

    response = finalize(client)

    assert response.status_code == 200
    url = response.json()["url"]
    assert url.startswith(MEDIA_BASE_URL)
    assert "/prueba-imagenes/03/semana_11/" in url
    assert stored_bytes(media_store, url) == PAYLOAD
    assert record_store.get("r1")["evidencias"] == [url]
    assert list(Path(scratch.base_path).iterdir()) == []


def test_finalize_reports_first_missing_chunk(client, record_store):
    """Test finalize with only chunk 0 of 2 names chunk 1."""
    init(client)
    send_chunk(client, "u1", 0, 2, PAYLOAD[:CHUNK_SIZE])

    response = finalize(client)

    assert response.status_code == 400
    body = response.json()
    assert "chunk 1" in body["error"]
    assert body["missingChunk"] == 1
    assert "url" not in body
    assert record_store.get("r1")["evidencias"] == []


def test_finalize_unknown_session(client):
    """Test finalize of an upload id that was never initialized."""
    response = finalize(client, upload_id="ghost")

    assert response.status_code == 404
    assert "ghost" in response.json()["error"]


def test_chunks_accepted_in_any_order(client, media_store):
    """Test chunks sent out of order are assembled by index."""
    parts = [b"aaaa", b"bbbb", b"cc"]
    init(client, file_size=10)
    for index in (2, 0, 1):
        assert send_chunk(client, "u1", index, 3, parts[index]).status_code == 200

    response = finalize(client)

    assert response.status_code == 200
    assert stored_bytes(media_store, response.json()["url"]) == b"aaaabbbbcc"


def test_smallest_missing_chunk_is_reported(client):
    """Test the lowest gap is named when several chunks are missing."""
    init(client, file_size=16)
    send_chunk(client, "u1", 0, 4, b"aaaa")
    send_chunk(client, "u1", 2, 4, b"cccc")

    response = finalize(client)

    assert response.status_code == 400
    assert response.json()["missingChunk"] == 1


def test_resent_chunk_overwrites_previous_bytes(client, media_store):
    """Test the last copy of a chunk index wins."""
    init(client, file_size=8)
    send_chunk(client, "u1", 0, 2, b"old!")
    send_chunk(client, "u1", 1, 2, b"tail")
    send_chunk(client, "u1", 0, 2, b"new!")

    response = finalize(client)

    assert response.status_code == 200
    assert stored_bytes(media_store, response.json()["url"]) == b"new!tail"


def test_sessions_are_isolated(client, media_store, record_store):
    """Test interleaved sessions never see each other's chunks."""
    init(client, upload_id="u1", file_size=8, record_id="r1")
    init(client, upload_id="u2", file_size=8, record_id="r2", file_name="b.jpg")
    send_chunk(client, "u1", 0, 2, b"1111")
    send_chunk(client, "u2", 0, 2, b"2222")
    send_chunk(client, "u2", 1, 2, b"2233")
    send_chunk(client, "u1", 1, 2, b"1133")

    first = finalize(client, upload_id="u1", record_id="r1")
    second = finalize(client, upload_id="u2", record_id="r2", file_name="b.jpg")

    assert first.status_code == 200
    assert second.status_code == 200
    assert stored_bytes(media_store, first.json()["url"]) == b"11111133"
    assert stored_bytes(media_store, second.json()["url"]) == b"22222233"
    assert record_store.get("r1")["evidencias"] == [first.json()["url"]]
    assert record_store.get("r2")["evidencias"] == [second.json()["url"]]


def test_init_missing_fields(client):
    """Test init without required fields is rejected with 400."""
    response = client.post("/upload/init", json={"uploadId": "u1", "fileName": "a.jpg"})

    assert response.status_code == 400
    assert response.json()["fields"] == ["fileSize", "recordId"]


def test_init_rejects_oversized_file(client):
    """Test init with a declared size above the limit."""
    response = init(client, file_size=11 * 1024 * 1024)

    assert response.status_code == 400
    assert "size" in response.json()["error"].lower()


def test_init_rejects_unknown_evidence_field(client):
    """Test init naming a slot the record does not have."""
    response = init(client, fieldName="foto_perfil")

    assert response.status_code == 400
    assert "foto_perfil" in response.json()["error"]


def test_chunk_for_unknown_session(client):
    """Test chunk for an upload id without session."""
    response = send_chunk(client, "ghost", 0, 1, b"data")

    assert response.status_code == 404


def test_chunk_without_data(client):
    """Test chunk request with no binary payload."""
    init(client)

    response = client.post(
        "/upload/chunk",
        data={"uploadId": "u1", "chunkIndex": "0", "totalChunks": "2"},
    )

    assert response.status_code == 400
    assert "chunk data" in response.json()["error"].lower()


def test_chunk_index_out_of_range(client):
    """Test chunk index beyond the declared total."""
    init(client)

    response = send_chunk(client, "u1", 5, 2, b"data")

    assert response.status_code == 400


def test_chunk_total_mismatch(client):
    """Test chunks disagreeing on the total count."""
    init(client)
    send_chunk(client, "u1", 0, 2, b"data")

    response = send_chunk(client, "u1", 1, 3, b"data")

    assert response.status_code == 400


def test_finalize_requires_record_id(client):
    """Test finalize without recordId."""
    init(client)

    response = client.post("/upload/finalize", json={"uploadId": "u1", "fileName": "a.jpg"})

    assert response.status_code == 400


def test_reinit_discards_received_chunks(client, service):
    """Test init with a reused upload id starts the session over."""
    init(client, file_size=8)
    send_chunk(client, "u1", 0, 2, b"aaaa")

    assert init(client, file_size=8).status_code == 200

    session = service.sessions.get("u1")
    assert session.chunks == {}
    assert session.state == SessionState.INITIATED
    assert finalize(client).json()["missingChunk"] == 0


def test_unknown_record_keeps_session_for_retry(client, record_store, media_store):
    """Test a missing record answers 404 and a retry reuses the stored media."""
    init(client, record_id="r9", file_size=4)
    send_chunk(client, "u1", 0, 1, b"data")

    response = finalize(client, record_id="r9")
    assert response.status_code == 404
    assert len(media_files(media_store)) == 1

    record_store.create("r9")
    response = finalize(client, record_id="r9")

    assert response.status_code == 200
    assert record_store.get("r9")["evidencias"] == [response.json()["url"]]
    assert len(media_files(media_store)) == 1


def test_media_store_failure_reports_diagnostics(scratch, media_store, record_store, clock):
    """Test a media store outage answers 500 and the retry succeeds."""
    flaky = FlakyMediaStore(media_store, failures=1)
    client = TestClient(create_app(service=make_service(scratch, flaky, record_store, clock)))
    init(client, file_size=4)
    send_chunk(client, "u1", 0, 1, b"data")

    response = finalize(client)

    assert response.status_code == 500
    body = response.json()
    assert body["step"] == "media_upload"
    assert body["mediaStore"] == {"backend": "flaky", "credentialsConfigured": False}
    assert "unreachable" in body["details"]

    response = finalize(client)

    assert response.status_code == 200
    assert flaky.calls == 2
    assert stored_bytes(media_store, response.json()["url"]) == b"data"


def test_finalize_fills_evidence_slot(client, record_store):
    """Test fieldName stores the URL in the slot, replacing the earlier one."""
    urls = []
    for upload_id in ("u1", "u2"):
        init(client, upload_id=upload_id, file_size=4, fieldName="evidencia_02")
        send_chunk(client, upload_id, 0, 1, upload_id.encode() * 2)
        response = finalize(client, upload_id=upload_id)
        assert response.status_code == 200
        urls.append(response.json()["url"])

    record = record_store.get("r1")
    assert record["evidencia_02"] == urls[1]
    assert record["evidencias"] == urls
    assert record["evidencia_01"] is None


@pytest.mark.parametrize("path", ["/upload/init", "/upload/finalize"])
def test_error_bodies_use_error_key(client, path):
    """Test service errors render as {"error": ...}."""
    response = client.post(path, json={})

    assert response.status_code in (400, 404)
    assert "error" in response.json()


@pytest.mark.parametrize("first, second", [("a/b", "a_b"), ("../x", "x"), ("p" * 200 + "1", "p" * 200 + "2")])
def test_similar_upload_ids_do_not_share_chunks(client, media_store, first, second):
    """Test ids differing only in path characters or past 200 chars stay isolated."""
    init(client, upload_id=first, file_size=4)
    init(client, upload_id=second, file_size=4, file_name="b.jpg")
    send_chunk(client, first, 0, 1, b"AAAA")
    send_chunk(client, second, 0, 1, b"BBBB")

    first_response = finalize(client, upload_id=first)
    second_response = finalize(client, upload_id=second, file_name="b.jpg")

    assert first_response.status_code == 200
    assert second_response.status_code == 200
    assert stored_bytes(media_store, first_response.json()["url"]) == b"AAAA"
    assert stored_bytes(media_store, second_response.json()["url"]) == b"BBBB"


def test_resent_chunk_is_counted_once(client, service):
    """Test received bytes reflect the latest copy of each chunk."""
    init(client, file_size=8)
    send_chunk(client, "u1", 0, 2, b"aaaa")
    send_chunk(client, "u1", 0, 2, b"aaaaaa")
    send_chunk(client, "u1", 1, 2, b"bb")

    assert service.sessions.get("u1").received_bytes == 8


def test_reinit_after_stored_media_resumes_finalize(scratch, media_store, clock):
    """Test a full retry after a record failure reuses the stored media."""
    records = FlakyRecordStore(EVIDENCE_FIELDS, failures=1)
    records.create("r1")
    service = make_service(scratch, media_store, records, clock)
    client = TestClient(create_app(service=service))
    init(client, file_size=4)
    send_chunk(client, "u1", 0, 1, b"data")
    assert finalize(client).status_code == 500

    assert init(client, file_size=4).status_code == 200
    assert send_chunk(client, "u1", 0, 1, b"data").status_code == 200
    response = finalize(client)

    assert response.status_code == 200
    assert records.get("r1")["evidencias"] == [response.json()["url"]]
    assert len(media_files(media_store)) == 1
    assert len(service.sessions) == 0

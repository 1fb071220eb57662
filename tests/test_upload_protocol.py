"""Tests for the chunked upload protocol: chunk ingestion and finalization."""

import hashlib
from datetime import datetime, timedelta

import pytest
from conftest import encode, upload_chunks
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from lingua.exceptions import (
    DuplicateRecordingError,
    IntegrityCheckError,
    SessionClosedError,
    StorageError,
    ValidationError,
)
from lingua.models.chunk import AudioChunk
from lingua.models.upload_session import AWAITING_CHUNKS, FINALIZED, FINALIZING, UploadSession
from lingua.services.chunk_store import ChunkStore
from lingua.services.reassembly import Reassembler
from lingua.services.recording import RecordingRegistry
from lingua.services.upload_session import FinalizeRequest, UploadSessionService


def make_service(cleanup_on_finalize: bool = True) -> UploadSessionService:
    return UploadSessionService(
        store=ChunkStore(AudioChunk),
        reassembler=Reassembler(),
        registry=RecordingRegistry(),
        cleanup_on_finalize=cleanup_on_finalize,
    )


def mark_finalizing(db: Session, recording_id: str, age: timedelta = timedelta(0)) -> None:
    """Put a session in finalizing as if a finalize claimed it ``age`` ago."""
    db.query(UploadSession).filter(UploadSession.recording_id == recording_id).update(
        {"state": FINALIZING, "updated_at": datetime.utcnow() - age}, synchronize_session=False
    )
    db.commit()


class TestUploadChunkEndpoint:
    """Tests for POST /api/audio/upload-chunk."""

    def test_upload_chunk(self, client: TestClient):
        resp = client.post(
            "/api/audio/upload-chunk",
            json={"recordingId": "r1", "chunkIndex": 0, "chunkData": encode(b"\x00" * 10)},
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["data"] == {"chunkIndex": 0, "size": 10}

    def test_missing_fields_is_400(self, client: TestClient):
        resp = client.post("/api/audio/upload-chunk", json={"recordingId": "r1"})
        assert resp.status_code == 400
        body = resp.json()
        assert body["success"] is False
        assert body["error"]

    def test_missing_recording_id_is_400(self, client: TestClient):
        resp = client.post("/api/audio/upload-chunk", json={"chunkIndex": 0, "chunkData": encode(b"x")})
        assert resp.status_code == 400

    def test_chunk_index_zero_is_accepted(self, client: TestClient):
        """Index 0 is a valid value, not a missing one."""
        resp = client.post(
            "/api/audio/upload-chunk", json={"recordingId": "r1", "chunkIndex": 0, "chunkData": encode(b"x")}
        )
        assert resp.status_code == 200

    def test_invalid_base64_is_400(self, client: TestClient):
        resp = client.post(
            "/api/audio/upload-chunk", json={"recordingId": "r1", "chunkIndex": 0, "chunkData": "not base64!!"}
        )
        assert resp.status_code == 400
        assert "base64" in resp.json()["error"]

    def test_non_integer_index_is_400(self, client: TestClient):
        resp = client.post(
            "/api/audio/upload-chunk", json={"recordingId": "r1", "chunkIndex": "first", "chunkData": encode(b"x")}
        )
        assert resp.status_code == 400
        assert "error" in resp.json()

    def test_negative_index_is_400(self, client: TestClient):
        resp = client.post(
            "/api/audio/upload-chunk", json={"recordingId": "r1", "chunkIndex": -1, "chunkData": encode(b"x")}
        )
        assert resp.status_code == 400

    def test_chunk_after_finalize_is_409(self, client: TestClient):
        upload_chunks(client, "r1", [b"abc"])
        client.post("/api/audio/finalize-chunked-upload", json={"recordingId": "r1"})

        resp = client.post(
            "/api/audio/upload-chunk", json={"recordingId": "r1", "chunkIndex": 1, "chunkData": encode(b"late")}
        )
        assert resp.status_code == 409
        assert resp.json()["success"] is False


class TestFinalizeEndpoint:
    """Tests for POST /api/audio/finalize-chunked-upload."""

    def test_three_chunks_scenario(self, client: TestClient):
        """Chunks of 10, 10 and 5 bytes finalize into a 25-byte recording."""
        chunks = [b"a" * 10, b"b" * 10, b"c" * 5]
        upload_chunks(client, "r1", chunks)

        resp = client.post("/api/audio/finalize-chunked-upload", json={"recordingId": "r1"})
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["id"] == "r1"
        assert data["size"] == 25
        assert data["uploadDate"]
        assert data["filename"].startswith("lingua_recording_")

        download = client.get("/api/audio/r1/download")
        assert download.content == b"".join(chunks)
        assert len(download.content) == 25

    def test_defaults(self, client: TestClient):
        upload_chunks(client, "r1", [b"x"])
        client.post("/api/audio/finalize-chunked-upload", json={"recordingId": "r1"})

        data = client.get("/api/audio/r1").json()["data"]
        assert data["original_name"] == "recording.m4a"
        assert data["mime_type"] == "audio/mp4"

    def test_metadata_is_used(self, client: TestClient):
        upload_chunks(client, "r1", [b"x" * 4])
        resp = client.post(
            "/api/audio/finalize-chunked-upload",
            json={"recordingId": "r1", "filename": "talk.webm", "originalName": "Talk.webm", "mimeType": "audio/webm"},
        )
        assert resp.json()["data"]["filename"] == "lingua_talk.webm"

        data = client.get("/api/audio/r1").json()["data"]
        assert data["original_name"] == "Talk.webm"
        assert data["mime_type"] == "audio/webm"

    def test_out_of_order_upload(self, client: TestClient):
        """Reassembly follows the stored index, not arrival order."""
        upload_chunks(client, "r1", [b"third", b"first", b"second"], indices=[2, 0, 1])
        client.post("/api/audio/finalize-chunked-upload", json={"recordingId": "r1"})
        assert client.get("/api/audio/r1/download").content == b"firstsecondthird"

    def test_finalize_without_chunks_is_empty_recording(self, client: TestClient):
        resp = client.post("/api/audio/finalize-chunked-upload", json={"recordingId": "never-seen"})
        assert resp.status_code == 200
        assert resp.json()["data"]["size"] == 0

        assert client.get("/api/audio/never-seen").json()["data"]["file_size"] == 0
        download = client.get("/api/audio/never-seen/download")
        assert download.status_code == 200
        assert download.content == b""

    def test_finalize_twice_fails(self, client: TestClient):
        upload_chunks(client, "r1", [b"abc"])
        first = client.post("/api/audio/finalize-chunked-upload", json={"recordingId": "r1"})
        assert first.status_code == 200

        second = client.post("/api/audio/finalize-chunked-upload", json={"recordingId": "r1"})
        assert second.status_code == 500
        assert second.json()["success"] is False
        assert "already" in second.json()["error"]

    def test_missing_recording_id_is_400(self, client: TestClient):
        resp = client.post("/api/audio/finalize-chunked-upload", json={"filename": "x.m4a"})
        assert resp.status_code == 400
        assert "error" in resp.json()

    def test_total_size_mismatch_is_422(self, client: TestClient):
        upload_chunks(client, "r1", [b"a" * 10])
        resp = client.post("/api/audio/finalize-chunked-upload", json={"recordingId": "r1", "totalSize": 25})
        assert resp.status_code == 422
        assert client.get("/api/audio/r1").status_code == 404

    def test_integrity_failure_allows_retry(self, client: TestClient):
        """After a failed check the session reopens and the missing chunk can still be sent."""
        upload_chunks(client, "r1", [b"a" * 10])
        resp = client.post("/api/audio/finalize-chunked-upload", json={"recordingId": "r1", "chunkCount": 2})
        assert resp.status_code == 422

        upload_chunks(client, "r1", [b"b" * 10], indices=[1])
        resp = client.post(
            "/api/audio/finalize-chunked-upload",
            json={
                "recordingId": "r1",
                "chunkCount": 2,
                "totalSize": 20,
                "checksum": hashlib.sha256(b"a" * 10 + b"b" * 10).hexdigest(),
            },
        )
        assert resp.status_code == 200
        assert resp.json()["data"]["size"] == 20

    def test_chunks_removed_after_finalize(self, client: TestClient, db_session: Session):
        upload_chunks(client, "r1", [b"abc", b"def"])
        client.post("/api/audio/finalize-chunked-upload", json={"recordingId": "r1"})
        assert ChunkStore(AudioChunk).count_chunks(db_session, "r1") == 0


class TestUploadSessionService:
    """Tests for the session state machine, called directly."""

    def test_session_lifecycle(self, db_session: Session):
        service = make_service()
        service.accept_chunk(db_session, "r1", 0, encode(b"abc"))

        session = service.get_session(db_session, "r1")
        assert session.state == AWAITING_CHUNKS
        assert session.chunks_received == 1
        assert session.bytes_received == 3

        result = service.finalize(db_session, FinalizeRequest(recording_id="r1"))
        assert result.size == 3

        db_session.expire_all()
        assert service.get_session(db_session, "r1").state == FINALIZED

    def test_late_chunk_rejected(self, db_session: Session):
        service = make_service()
        service.accept_chunk(db_session, "r1", 0, encode(b"abc"))
        service.finalize(db_session, FinalizeRequest(recording_id="r1"))

        db_session.expire_all()
        with pytest.raises(SessionClosedError):
            service.accept_chunk(db_session, "r1", 1, encode(b"def"))

    def test_second_finalize_raises_duplicate(self, db_session: Session):
        service = make_service()
        service.finalize(db_session, FinalizeRequest(recording_id="r1"))
        with pytest.raises(DuplicateRecordingError):
            service.finalize(db_session, FinalizeRequest(recording_id="r1"))

    def test_missing_fields(self, db_session: Session):
        service = make_service()
        with pytest.raises(ValidationError):
            service.accept_chunk(db_session, "r1", None, encode(b"abc"))
        with pytest.raises(ValidationError):
            service.accept_chunk(db_session, "r1", 0, "")
        with pytest.raises(ValidationError):
            service.finalize(db_session, FinalizeRequest(recording_id=None))

    def test_duplicate_chunk_duplicates_data(self, db_session: Session):
        service = make_service()
        service.accept_chunk(db_session, "r1", 0, encode(b"ab"))
        service.accept_chunk(db_session, "r1", 0, encode(b"ab"))
        result = service.finalize(db_session, FinalizeRequest(recording_id="r1"))
        assert result.size == 4

    def test_duplicate_chunk_caught_by_chunk_count(self, db_session: Session):
        service = make_service()
        service.accept_chunk(db_session, "r1", 0, encode(b"ab"))
        service.accept_chunk(db_session, "r1", 0, encode(b"ab"))
        with pytest.raises(IntegrityCheckError):
            service.finalize(db_session, FinalizeRequest(recording_id="r1", chunk_count=1))

    def test_chunks_kept_when_cleanup_disabled(self, db_session: Session):
        service = make_service(cleanup_on_finalize=False)
        service.accept_chunk(db_session, "r1", 0, encode(b"abc"))
        service.finalize(db_session, FinalizeRequest(recording_id="r1"))
        assert service.chunk_count(db_session, "r1") == 1
        assert service.cleanup(db_session, "r1") == 1


class TestFinalizeRecovery:
    """Sessions caught mid-finalize by a crash, a racing chunk or a failing state update."""

    def test_stale_finalizing_session_is_reclaimed(self, db_session: Session):
        service = make_service()
        service.accept_chunk(db_session, "r1", 0, encode(b"abc"))
        mark_finalizing(db_session, "r1", age=timedelta(hours=1))

        result = service.finalize(db_session, FinalizeRequest(recording_id="r1"))

        assert result.size == 3
        db_session.expire_all()
        assert service.get_session(db_session, "r1").state == FINALIZED

    def test_recent_finalizing_session_is_not_reclaimed(self, db_session: Session):
        service = make_service()
        service.accept_chunk(db_session, "r1", 0, encode(b"abc"))
        mark_finalizing(db_session, "r1")

        with pytest.raises(DuplicateRecordingError):
            service.finalize(db_session, FinalizeRequest(recording_id="r1"))
        assert service.chunk_count(db_session, "r1") == 1

    def test_chunk_refused_when_finalize_claims_first(self, db_session: Session, monkeypatch):
        """A finalize claim landing between session lookup and insert leaves no chunk behind."""
        service = make_service()
        service.accept_chunk(db_session, "r1", 0, encode(b"abc"))

        open_session = service._open_session

        def open_then_claim(db, recording_id, state=AWAITING_CHUNKS):
            opened = open_session(db, recording_id, state)
            mark_finalizing(db, recording_id)
            return opened

        monkeypatch.setattr(service, "_open_session", open_then_claim)

        with pytest.raises(SessionClosedError):
            service.accept_chunk(db_session, "r1", 1, encode(b"late"))

        assert service.chunk_count(db_session, "r1") == 1
        assert service.get_session(db_session, "r1").chunks_received == 1

    def test_failed_reset_keeps_original_error(self, db_session: Session, monkeypatch):
        service = make_service()
        service.accept_chunk(db_session, "r1", 0, encode(b"abc"))
        set_state = service._set_state

        def fail_on_reset(db, recording_id, state):
            if state == AWAITING_CHUNKS:
                raise StorageError("database is locked")
            set_state(db, recording_id, state)

        monkeypatch.setattr(service, "_set_state", fail_on_reset)

        with pytest.raises(IntegrityCheckError):
            service.finalize(db_session, FinalizeRequest(recording_id="r1", chunk_count=2))

        db_session.expire_all()
        assert service.get_session(db_session, "r1").state == FINALIZING
        assert service.chunk_count(db_session, "r1") == 1

        # Once the claim is stale the upload can still be finished
        mark_finalizing(db_session, "r1", age=timedelta(hours=1))
        assert service.finalize(db_session, FinalizeRequest(recording_id="r1", chunk_count=1)).size == 3

    def test_state_update_failure_after_save_still_succeeds(self, db_session: Session, monkeypatch):
        service = make_service()
        service.accept_chunk(db_session, "r1", 0, encode(b"abc"))
        set_state = service._set_state

        def fail_on_finalized(db, recording_id, state):
            if state == FINALIZED:
                raise StorageError("database is locked")
            set_state(db, recording_id, state)

        monkeypatch.setattr(service, "_set_state", fail_on_finalized)

        result = service.finalize(db_session, FinalizeRequest(recording_id="r1"))

        assert result.size == 3
        assert RecordingRegistry().fetch_payload(db_session, "r1") == b"abc"

        monkeypatch.undo()
        with pytest.raises(DuplicateRecordingError):
            service.finalize(db_session, FinalizeRequest(recording_id="r1"))


class TestHealth:
    def test_health(self, client: TestClient):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json()["success"] is True

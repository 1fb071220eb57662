"""Pytest configuration and fixtures."""

import base64

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from lingua.database import Database


@pytest.fixture(name="database")
def database_fixture():
    """Open a fresh in-memory SQLite database for each test."""
    database = Database("sqlite://")
    database.open()
    try:
        yield database
    finally:
        database.close()


@pytest.fixture(name="db_session")
def db_session_fixture(database: Database):
    """A session on the test database."""
    session = database.session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(name="client")
def client_fixture(database: Database):
    """Create a test client bound to the test database, with rate limiting disabled."""
    from lingua.rate_limit import limiter
    from main import create_app

    app = create_app(database)
    limiter.enabled = False
    with TestClient(app) as c:
        yield c
    limiter.enabled = True


def encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def upload_chunks(client: TestClient, recording_id: str, chunks: list[bytes], indices: list[int] | None = None) -> None:
    """Upload raw chunks at the given indices (0..N-1 by default), asserting each succeeds."""
    indices = indices if indices is not None else list(range(len(chunks)))
    for index, chunk in zip(indices, chunks):
        resp = client.post(
            "/api/audio/upload-chunk",
            json={"recordingId": recording_id, "chunkIndex": index, "chunkData": encode(chunk)},
        )
        assert resp.status_code == 200, resp.text


@pytest.fixture(name="stored_recording")
def stored_recording_fixture(client: TestClient, db_session: Session) -> dict:
    """Upload and finalize a small recording through the API."""
    upload_chunks(client, "rec-1", [b"RIFF" + b"\x01" * 12, b"\x02" * 8])
    resp = client.post(
        "/api/audio/finalize-chunked-upload",
        json={"recordingId": "rec-1", "filename": "memo.m4a", "originalName": "memo.m4a", "mimeType": "audio/mp4"},
    )
    assert resp.status_code == 200, resp.text
    return resp.json()["data"]

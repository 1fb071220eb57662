"""Upload session protocol: chunk ingestion and finalization into a recording.

Each recording identifier moves through ``awaiting_chunks -> finalizing ->
finalized``. The state lives in the ``upload_session`` table so that late
chunks are refused once finalization has started and a second finalize for
the same identifier fails instead of reassembling again.

A chunk is inserted in the same transaction as a conditional update of its
session, so it either lands before the finalize claim or is refused. A
session left in ``finalizing`` by a finalize that died midway can be claimed
again once it is older than the finalize timeout and no recording exists.
"""

import base64
import binascii
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import and_, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from lingua.config import get_settings
from lingua.exceptions import DuplicateRecordingError, SessionClosedError, StorageError, ValidationError
from lingua.models.recording import Recording
from lingua.models.upload_session import (
    AWAITING_CHUNKS,
    FINALIZED,
    FINALIZING,
    STREAMING_VARIANT,
    UPLOAD_VARIANT,
    UploadSession,
)
from lingua.services.chunk_store import (
    ChunkReceipt,
    ChunkStore,
    get_audio_chunk_store,
    get_streaming_chunk_store,
)
from lingua.services.reassembly import Reassembler, get_reassembler
from lingua.services.recording import RecordingRegistry, get_recording_registry

logger = logging.getLogger("lingua")

DEFAULT_ORIGINAL_NAME = "recording.m4a"
FILENAME_PREFIX = "lingua_"
DEFAULT_FINALIZE_TIMEOUT_SECONDS = 300


@dataclass
class FinalizeRequest:
    """Metadata sent by the client when it has uploaded every chunk."""

    recording_id: str | None
    filename: str | None = None
    original_name: str | None = None
    mime_type: str | None = None
    total_size: int | None = None
    chunk_count: int | None = None
    checksum: str | None = None


@dataclass
class FinalizeResult:
    """Summary of a freshly finalized recording."""

    id: str
    filename: str
    upload_date: datetime
    size: int


def decode_chunk(chunk_data: str) -> bytes:
    """Decode a base64 chunk. Raises ValidationError on malformed input."""
    try:
        return base64.b64decode(chunk_data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError("Chunk data is not valid base64") from e


class UploadSessionService:
    """Glues chunk ingestion, reassembly and the recording registry together."""

    def __init__(
        self,
        store: ChunkStore,
        reassembler: Reassembler,
        registry: RecordingRegistry,
        cleanup_on_finalize: bool = True,
        default_mime_type: str = "audio/mp4",
        variant: str = UPLOAD_VARIANT,
        finalize_timeout_seconds: int = DEFAULT_FINALIZE_TIMEOUT_SECONDS,
    ) -> None:
        self.store = store
        self.reassembler = reassembler
        self.registry = registry
        self.cleanup_on_finalize = cleanup_on_finalize
        self.default_mime_type = default_mime_type
        self.variant = variant
        self.finalize_timeout_seconds = finalize_timeout_seconds

    # --- Session state ---

    def _session_query(self, db: Session, recording_id: str):
        return db.query(UploadSession).filter(
            UploadSession.recording_id == recording_id, UploadSession.variant == self.variant
        )

    def get_session(self, db: Session, recording_id: str) -> UploadSession | None:
        return self._session_query(db, recording_id).first()

    def _open_session(
        self, db: Session, recording_id: str, state: str = AWAITING_CHUNKS
    ) -> tuple[UploadSession, bool]:
        """Return (session, created), creating the session in the given state if it does not exist."""
        session = self.get_session(db, recording_id)
        if session is not None:
            return session, False

        session = UploadSession(
            recording_id=recording_id, variant=self.variant, state=state, chunks_received=0, bytes_received=0
        )
        try:
            db.add(session)
            db.commit()
        except IntegrityError:
            # Another request opened it first
            db.rollback()
            session = self.get_session(db, recording_id)
            if session is None:
                raise StorageError("Failed to open upload session") from None
            return session, False
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageError("Failed to open upload session") from e
        return session, True

    def _claim_for_finalize(self, db: Session, recording_id: str) -> None:
        """Move a session to finalizing, at most once per finalize attempt."""
        session, created = self._open_session(db, recording_id, state=FINALIZING)
        if created:
            # Finalize without any chunk: the recording will be empty
            return

        if self.registry.fetch_by_id(db, recording_id) is not None:
            raise DuplicateRecordingError(f"Recording '{recording_id}' is already finalized")

        previous_state = session.state
        stale_before = datetime.utcnow() - timedelta(seconds=self.finalize_timeout_seconds)
        try:
            claimed = (
                self._session_query(db, recording_id)
                .filter(
                    or_(
                        UploadSession.state == AWAITING_CHUNKS,
                        and_(UploadSession.state == FINALIZING, UploadSession.updated_at < stale_before),
                    )
                )
                .update({"state": FINALIZING, "updated_at": datetime.utcnow()}, synchronize_session=False)
            )
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageError("Failed to update upload session") from e

        if not claimed:
            raise DuplicateRecordingError(f"Recording '{recording_id}' is already finalized or being finalized")
        if previous_state == FINALIZING:
            logger.warning("Reclaimed stale finalize for %s", recording_id)

    def _set_state(self, db: Session, recording_id: str, state: str) -> None:
        try:
            self._session_query(db, recording_id).update(
                {"state": state, "updated_at": datetime.utcnow()}, synchronize_session=False
            )
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageError("Failed to update upload session") from e

    def _restore_state(self, db: Session, recording_id: str, state: str) -> None:
        """Best-effort state change on a failure path; the caller re-raises its own error."""
        try:
            self._set_state(db, recording_id, state)
        except StorageError:
            logger.exception("Could not move upload session %s to %s", recording_id, state)

    # --- Protocol operations ---

    def accept_chunk(
        self,
        db: Session,
        recording_id: str | None,
        chunk_index: int | None,
        chunk_data: str | None,
        timestamp: int | None = None,
    ) -> ChunkReceipt:
        """Decode and store one chunk. Re-sending an index stores it again."""
        if not recording_id or chunk_index is None or not chunk_data:
            raise ValidationError("Missing chunk data: recordingId, chunkIndex and chunkData are required")
        if chunk_index < 0:
            raise ValidationError(f"Invalid chunk index {chunk_index}")

        payload = decode_chunk(chunk_data)

        self._open_session(db, recording_id)

        try:
            opened = (
                self._session_query(db, recording_id)
                .filter(UploadSession.state == AWAITING_CHUNKS)
                .update(
                    {
                        "chunks_received": UploadSession.chunks_received + 1,
                        "bytes_received": UploadSession.bytes_received + len(payload),
                        "updated_at": datetime.utcnow(),
                    },
                    synchronize_session=False,
                )
            )
            if not opened:
                db.rollback()
                session = self.get_session(db, recording_id)
                state = session.state if session is not None else "closed"
                raise SessionClosedError(f"Recording '{recording_id}' no longer accepts chunks ({state})")

            receipt = self.store.add_chunk(db, recording_id, chunk_index, payload, timestamp=timestamp)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageError("Failed to store chunk") from e

        logger.debug("Chunk %d stored for %s (%d bytes)", chunk_index, recording_id, receipt.size)
        return receipt

    def finalize(self, db: Session, request: FinalizeRequest) -> FinalizeResult:
        """Reassemble every stored chunk and persist the result as a recording."""
        recording_id = request.recording_id
        if not recording_id:
            raise ValidationError("Missing recording ID")

        self._claim_for_finalize(db, recording_id)

        try:
            payload = self.reassembler.reassemble(db, self.store, recording_id)
            if request.total_size is not None or request.chunk_count is not None or request.checksum:
                self.reassembler.verify(
                    payload,
                    self.store.fetch_indices(db, recording_id),
                    expected_size=request.total_size,
                    expected_chunks=request.chunk_count,
                    checksum=request.checksum,
                )

            now = datetime.utcnow()
            filename = FILENAME_PREFIX + (request.filename or f"recording_{int(time.time() * 1000)}.m4a")
            record = Recording(
                id=recording_id,
                filename=filename,
                original_name=request.original_name or DEFAULT_ORIGINAL_NAME,
                audio_data=payload,
                file_size=len(payload),
                mime_type=request.mime_type or self.default_mime_type,
                upload_date=now,
            )
            self.registry.create(db, record)
        except DuplicateRecordingError:
            # A recording already holds this id; nothing is left to finalize
            self._restore_state(db, recording_id, FINALIZED)
            raise
        except Exception:
            # Chunks stay in place so the client can fix the problem and finalize again
            self._restore_state(db, recording_id, AWAITING_CHUNKS)
            raise

        # The recording is durable from here on; bookkeeping failures are logged, not returned
        try:
            self._set_state(db, recording_id, FINALIZED)
            if self.cleanup_on_finalize:
                self.store.delete_chunks_for(db, recording_id)
        except StorageError:
            logger.exception("Recording %s saved but upload bookkeeping failed", recording_id)

        logger.info("Upload finalized: %s (%d bytes)", recording_id, len(payload))
        return FinalizeResult(id=recording_id, filename=filename, upload_date=now, size=len(payload))

    def chunk_count(self, db: Session, recording_id: str) -> int:
        return self.store.count_chunks(db, recording_id)

    def cleanup(self, db: Session, recording_id: str) -> int:
        """Drop every stored chunk of a recording. Returns the number removed."""
        return self.store.delete_chunks_for(db, recording_id)


_upload_service: UploadSessionService | None = None
_streaming_service: UploadSessionService | None = None


def get_upload_service() -> UploadSessionService:
    """Get singleton service for chunked uploads."""
    global _upload_service
    if _upload_service is None:
        settings = get_settings()
        _upload_service = UploadSessionService(
            store=get_audio_chunk_store(),
            reassembler=get_reassembler(),
            registry=get_recording_registry(),
            cleanup_on_finalize=settings.CLEANUP_CHUNKS_ON_FINALIZE,
            default_mime_type=settings.DEFAULT_MIME_TYPE,
            variant=UPLOAD_VARIANT,
            finalize_timeout_seconds=settings.FINALIZE_TIMEOUT_SECONDS,
        )
    return _upload_service


def get_streaming_service() -> UploadSessionService:
    """Get singleton service for streamed recordings. Chunks are cleaned up by the client."""
    global _streaming_service
    if _streaming_service is None:
        settings = get_settings()
        _streaming_service = UploadSessionService(
            store=get_streaming_chunk_store(),
            reassembler=get_reassembler(),
            registry=get_recording_registry(),
            cleanup_on_finalize=False,
            default_mime_type=settings.DEFAULT_MIME_TYPE,
            variant=STREAMING_VARIANT,
            finalize_timeout_seconds=settings.FINALIZE_TIMEOUT_SECONDS,
        )
    return _streaming_service

"""Recording registry: durable store of finalized recordings."""

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, undefer
from sqlalchemy.orm.exc import FlushError

from lingua.exceptions import DuplicateRecordingError, StorageError, ValidationError
from lingua.models.chunk import AudioChunk
from lingua.models.recording import Recording
from lingua.models.upload_session import UploadSession

logger = logging.getLogger("lingua")

UPDATABLE_FIELDS = {"filename", "original_name", "mime_type"}


@dataclass
class RegistryResult:
    """Outcome of a registry mutation."""

    id: str
    rows_affected: int


@dataclass
class RecordingStats:
    """Aggregates over every stored recording."""

    count: int
    total_bytes: int
    average_bytes: float
    earliest_created_at: datetime | None
    latest_created_at: datetime | None


class RecordingRegistry:
    """Create, read, update and delete finalized recordings."""

    def create(self, db: Session, record: Recording) -> RegistryResult:
        """Insert a recording. Raises DuplicateRecordingError if the id is taken."""
        record_id = record.id
        try:
            db.add(record)
            db.commit()
        except (IntegrityError, FlushError) as e:
            db.rollback()
            logger.error("Recording %s already exists", record_id)
            raise DuplicateRecordingError(f"Recording '{record_id}' already exists") from e
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Failed to save recording %s: %s", record_id, e)
            raise StorageError("Failed to save recording") from e

        logger.info("Recording saved: %s (%d bytes)", record_id, record.file_size)
        return RegistryResult(id=record_id, rows_affected=1)

    def list_summaries(self, db: Session) -> list[Recording]:
        """All recordings without their payload, newest first."""
        return db.query(Recording).order_by(Recording.created_at.desc(), Recording.id.asc()).all()

    def fetch_by_id(self, db: Session, recording_id: str) -> Recording | None:
        return db.query(Recording).filter(Recording.id == recording_id).first()

    def fetch_payload(self, db: Session, recording_id: str) -> bytes | None:
        """Raw audio bytes of a recording, or None if it does not exist or has no payload."""
        record = (
            db.query(Recording)
            .options(undefer(Recording.audio_data))
            .filter(Recording.id == recording_id)
            .first()
        )
        if record is None:
            return None
        return record.audio_data

    def update(self, db: Session, recording_id: str, fields: dict) -> RegistryResult:
        """Update metadata fields. An empty update is a successful no-op."""
        fields = {k: v for k, v in fields.items() if v is not None}
        if not fields:
            return RegistryResult(id=recording_id, rows_affected=0)

        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot update field(s): {', '.join(sorted(unknown))}")

        fields["updated_at"] = datetime.utcnow()
        try:
            updated = (
                db.query(Recording).filter(Recording.id == recording_id).update(fields, synchronize_session=False)
            )
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Failed to update recording %s: %s", recording_id, e)
            raise StorageError("Failed to update recording") from e

        return RegistryResult(id=recording_id, rows_affected=updated)

    def delete(self, db: Session, recording_id: str) -> RegistryResult:
        """Delete a recording together with its upload chunks and session."""
        try:
            deleted = db.query(Recording).filter(Recording.id == recording_id).delete(synchronize_session=False)
            db.query(AudioChunk).filter(AudioChunk.recording_id == recording_id).delete(synchronize_session=False)
            db.query(UploadSession).filter(UploadSession.recording_id == recording_id).delete(
                synchronize_session=False
            )
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Failed to delete recording %s: %s", recording_id, e)
            raise StorageError("Failed to delete recording") from e

        if deleted:
            logger.info("Recording deleted: %s", recording_id)
        return RegistryResult(id=recording_id, rows_affected=deleted)

    def stats(self, db: Session) -> RecordingStats:
        count, total, average, earliest, latest = db.query(
            func.count(Recording.id),
            func.sum(Recording.file_size),
            func.avg(Recording.file_size),
            func.min(Recording.created_at),
            func.max(Recording.created_at),
        ).one()
        return RecordingStats(
            count=count or 0,
            total_bytes=int(total or 0),
            average_bytes=float(average or 0),
            earliest_created_at=earliest,
            latest_created_at=latest,
        )


_recording_registry: RecordingRegistry | None = None


def get_recording_registry() -> RecordingRegistry:
    """Get singleton recording registry instance."""
    global _recording_registry
    if _recording_registry is None:
        _recording_registry = RecordingRegistry()
    return _recording_registry

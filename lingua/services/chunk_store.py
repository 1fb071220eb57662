"""Chunk store: durable, append-only holding area for upload fragments."""

import logging
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from lingua.exceptions import StorageError
from lingua.models.chunk import AudioChunk, StreamingChunk

logger = logging.getLogger("lingua")


@dataclass
class ChunkReceipt:
    """Acknowledgement for one stored chunk."""

    index: int
    size: int
    timestamp: int | None = None


class ChunkStore:
    """Stores and reads chunks for one chunk table.

    Insertion order is irrelevant: reads are ordered by chunk index. Nothing
    prevents the same index from being stored twice for a recording; both rows
    are kept and both are returned.
    """

    def __init__(self, model: type[AudioChunk] | type[StreamingChunk]) -> None:
        self.model = model

    @property
    def table_name(self) -> str:
        return self.model.__tablename__

    def store_chunk(
        self,
        db: Session,
        recording_id: str,
        index: int,
        payload: bytes,
        timestamp: int | None = None,
    ) -> ChunkReceipt:
        """Insert one chunk and commit."""
        receipt = self.add_chunk(db, recording_id, index, payload, timestamp=timestamp)
        try:
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Failed to store chunk %d for %s in %s: %s", index, recording_id, self.table_name, e)
            raise StorageError("Failed to store chunk") from e
        return receipt

    def add_chunk(
        self,
        db: Session,
        recording_id: str,
        index: int,
        payload: bytes,
        timestamp: int | None = None,
    ) -> ChunkReceipt:
        """Insert one chunk into the caller's transaction without committing it."""
        fields = {
            "recording_id": recording_id,
            "chunk_index": index,
            "chunk_data": payload,
            "chunk_size": len(payload),
        }
        if timestamp is not None and hasattr(self.model, "timestamp"):
            fields["timestamp"] = timestamp

        try:
            db.add(self.model(**fields))
            db.flush()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Failed to store chunk %d for %s in %s: %s", index, recording_id, self.table_name, e)
            raise StorageError("Failed to store chunk") from e

        return ChunkReceipt(index=index, size=len(payload), timestamp=timestamp)

    def fetch_ordered_payloads(self, db: Session, recording_id: str) -> list[bytes]:
        """Chunk payloads for a recording, ascending by index."""
        rows = (
            db.query(self.model.chunk_data)
            .filter(self.model.recording_id == recording_id)
            .order_by(self.model.chunk_index.asc(), self.model.id.asc())
            .all()
        )
        return [row.chunk_data for row in rows]

    def fetch_indices(self, db: Session, recording_id: str) -> list[int]:
        """Stored chunk indices for a recording, ascending, duplicates included."""
        rows = (
            db.query(self.model.chunk_index)
            .filter(self.model.recording_id == recording_id)
            .order_by(self.model.chunk_index.asc())
            .all()
        )
        return [row.chunk_index for row in rows]

    def count_chunks(self, db: Session, recording_id: str) -> int:
        return db.query(self.model).filter(self.model.recording_id == recording_id).count()

    def delete_chunks_for(self, db: Session, recording_id: str) -> int:
        """Delete every chunk of a recording. Returns the number of rows removed."""
        try:
            deleted = (
                db.query(self.model)
                .filter(self.model.recording_id == recording_id)
                .delete(synchronize_session=False)
            )
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Failed to delete chunks for %s in %s: %s", recording_id, self.table_name, e)
            raise StorageError("Failed to delete chunks") from e

        logger.info("Removed %d chunk(s) for %s from %s", deleted, recording_id, self.table_name)
        return deleted


_audio_chunk_store: ChunkStore | None = None
_streaming_chunk_store: ChunkStore | None = None


def get_audio_chunk_store() -> ChunkStore:
    """Get singleton store for chunked-upload fragments."""
    global _audio_chunk_store
    if _audio_chunk_store is None:
        _audio_chunk_store = ChunkStore(AudioChunk)
    return _audio_chunk_store


def get_streaming_chunk_store() -> ChunkStore:
    """Get singleton store for streaming fragments."""
    global _streaming_chunk_store
    if _streaming_chunk_store is None:
        _streaming_chunk_store = ChunkStore(StreamingChunk)
    return _streaming_chunk_store

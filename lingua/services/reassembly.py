"""Reassembly of stored chunks into one payload."""

import hashlib
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from lingua.exceptions import IntegrityCheckError, StorageError
from lingua.services.chunk_store import ChunkStore

logger = logging.getLogger("lingua")


class Reassembler:
    """Concatenates chunk payloads in index order and optionally checks the result."""

    def reassemble(self, db: Session, store: ChunkStore, recording_id: str) -> bytes:
        """Concatenate every stored chunk of a recording, ascending by index.

        Gaps and duplicate indices are not detected here; see :meth:`verify`.
        """
        try:
            payloads = store.fetch_ordered_payloads(db, recording_id)
        except SQLAlchemyError as e:
            logger.error("Failed to read chunks for %s: %s", recording_id, e)
            raise StorageError("Failed to reassemble chunks") from e

        data = b"".join(payloads)
        logger.info("Reassembled %s from %d chunk(s), %d bytes", recording_id, len(payloads), len(data))
        return data

    def verify(
        self,
        payload: bytes,
        indices: list[int],
        expected_size: int | None = None,
        expected_chunks: int | None = None,
        checksum: str | None = None,
    ) -> None:
        """Raise IntegrityCheckError if the payload disagrees with any given expectation."""
        if expected_size is not None and len(payload) != expected_size:
            raise IntegrityCheckError(f"Reassembled size {len(payload)} does not match expected size {expected_size}")

        if expected_chunks is not None and indices != list(range(expected_chunks)):
            raise IntegrityCheckError(
                f"Expected chunks 0..{expected_chunks - 1}, got {len(indices)} chunk(s) "
                f"with indices {describe_indices(indices)}"
            )

        if checksum is not None:
            actual = hashlib.sha256(payload).hexdigest()
            if actual != checksum.lower():
                raise IntegrityCheckError("Reassembled payload checksum mismatch")


def describe_indices(indices: list[int], limit: int = 10) -> str:
    """Short human-readable rendering of an index list for error messages."""
    if not indices:
        return "[]"
    shown = ", ".join(str(i) for i in indices[:limit])
    return f"[{shown}, ...]" if len(indices) > limit else f"[{shown}]"


_reassembler: Reassembler | None = None


def get_reassembler() -> Reassembler:
    """Get singleton reassembler instance."""
    global _reassembler
    if _reassembler is None:
        _reassembler = Reassembler()
    return _reassembler

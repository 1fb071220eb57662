"""Client-side chunked upload driver.

The payload is base64 encoded once, cut into slices that each carry at most
``chunk_size_bytes`` raw bytes, and sent one slice at a time. Every request
is awaited before the next one is sent; the first failure aborts the upload.
"""

import base64
import hashlib
import logging
import uuid
from dataclasses import dataclass
from pathlib import Path

import httpx

from lingua.exceptions import UploadError

logger = logging.getLogger("lingua")

DEFAULT_CHUNK_SIZE_BYTES = 64 * 1024
UPLOAD_CHUNK_PATH = "/api/audio/upload-chunk"
FINALIZE_PATH = "/api/audio/finalize-chunked-upload"


def encoded_slice_size(chunk_size_bytes: int) -> int:
    """Length of a base64 slice carrying at most ``chunk_size_bytes`` raw bytes.

    Slices are a whole number of 4-character base64 quanta so that the server
    can decode each one on its own.
    """
    if chunk_size_bytes < 3:
        raise ValueError(f"chunk_size_bytes must be at least 3, got {chunk_size_bytes}")
    return (chunk_size_bytes // 3) * 4


def split_encoded(encoded: str, slice_size: int) -> list[str]:
    """Cut text into contiguous slices of ``slice_size`` characters, the last one possibly shorter."""
    if slice_size <= 0:
        raise ValueError(f"slice_size must be positive, got {slice_size}")
    return [encoded[start : start + slice_size] for start in range(0, len(encoded), slice_size)]


def new_recording_id() -> str:
    """Collision-resistant identifier for a new recording."""
    return str(uuid.uuid4())


@dataclass
class UploadResult:
    """Outcome of a completed chunked upload."""

    recording_id: str
    chunk_count: int
    data: dict


class ChunkedUploader:
    """Drives the chunk upload and finalize calls against a Lingua server."""

    def __init__(self, client: httpx.Client, chunk_size_bytes: int = DEFAULT_CHUNK_SIZE_BYTES) -> None:
        self.client = client
        self.chunk_size_bytes = chunk_size_bytes
        self.slice_size = encoded_slice_size(chunk_size_bytes)

    def upload(
        self,
        payload: bytes,
        filename: str | None = None,
        original_name: str | None = None,
        mime_type: str | None = None,
        recording_id: str | None = None,
    ) -> UploadResult:
        """Upload ``payload`` chunk by chunk, then finalize it. Raises UploadError on the first failure."""
        recording_id = recording_id or new_recording_id()
        encoded = base64.b64encode(payload).decode("ascii")
        slices = split_encoded(encoded, self.slice_size)
        total = len(slices)

        logger.info("Uploading %s: %d bytes in %d chunk(s)", recording_id, len(payload), total)

        for index, chunk_data in enumerate(slices):
            self._post(
                UPLOAD_CHUNK_PATH,
                {"recordingId": recording_id, "chunkIndex": index, "chunkData": chunk_data},
                recording_id,
                chunk_index=index,
            )
            logger.debug("Chunk %d/%d uploaded for %s", index + 1, total, recording_id)

        body = {
            "recordingId": recording_id,
            "filename": filename,
            "originalName": original_name or filename,
            "mimeType": mime_type,
            "totalSize": len(payload),
            "chunkCount": total,
            "checksum": hashlib.sha256(payload).hexdigest(),
        }
        result = self._post(FINALIZE_PATH, {k: v for k, v in body.items() if v is not None}, recording_id)

        logger.info("Upload complete: %s", recording_id)
        return UploadResult(recording_id=recording_id, chunk_count=total, data=result.get("data") or {})

    def upload_file(self, path: str | Path, mime_type: str | None = None) -> UploadResult:
        """Read a local recording and upload it under its file name."""
        path = Path(path)
        return self.upload(path.read_bytes(), filename=path.name, original_name=path.name, mime_type=mime_type)

    def _post(self, url: str, body: dict, recording_id: str, chunk_index: int | None = None) -> dict:
        what = f"chunk {chunk_index}" if chunk_index is not None else "finalize"
        try:
            response = self.client.post(url, json=body)
        except httpx.HTTPError as e:
            raise UploadError(f"{what} failed: {e}", recording_id, chunk_index) from e

        try:
            result = response.json()
        except ValueError as e:
            raise UploadError(
                f"{what} failed: HTTP {response.status_code} with a non-JSON body", recording_id, chunk_index
            ) from e

        if response.is_error or not isinstance(result, dict) or not result.get("success"):
            error = result.get("error") if isinstance(result, dict) else None
            raise UploadError(
                f"{what} failed: HTTP {response.status_code}: {error or 'unknown error'}", recording_id, chunk_index
            )
        return result

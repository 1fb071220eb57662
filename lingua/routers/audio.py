"""Audio recording API endpoints: chunked upload, listing, download, update and delete."""

import dataclasses

from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response
from sqlalchemy.orm import Session

from lingua.config import get_settings
from lingua.database import get_db
from lingua.exceptions import NotFoundError
from lingua.rate_limit import limiter
from lingua.schemas.recording import (
    MutationResponse,
    MutationResult,
    RecordingListResponse,
    RecordingResponse,
    RecordingStatsData,
    RecordingStatsResponse,
    RecordingSummary,
    RecordingUpdateRequest,
)
from lingua.schemas.upload import (
    ChunkAck,
    ChunkAckResponse,
    ChunkUploadRequest,
    FinalizeData,
    FinalizeResponse,
    FinalizeUploadRequest,
)
from lingua.services.recording import get_recording_registry
from lingua.services.upload_session import FinalizeRequest, get_upload_service

router = APIRouter(prefix="/api/audio", tags=["Audio"])

settings = get_settings()


def to_finalize_request(body: FinalizeUploadRequest) -> FinalizeRequest:
    return FinalizeRequest(
        recording_id=body.recording_id,
        filename=body.filename,
        original_name=body.original_name,
        mime_type=body.mime_type,
        total_size=body.total_size,
        chunk_count=body.chunk_count,
        checksum=body.checksum,
    )


@router.post("/upload-chunk", response_model=ChunkAckResponse, response_model_exclude_none=True)
@limiter.limit(settings.CHUNK_RATE_LIMIT)
def upload_chunk(request: Request, body: ChunkUploadRequest, db: Session = Depends(get_db)) -> ChunkAckResponse:
    """Store one base64-encoded chunk of a recording."""
    service = get_upload_service()
    receipt = service.accept_chunk(db, body.recording_id, body.chunk_index, body.chunk_data)
    return ChunkAckResponse(
        message="Chunk saved",
        data=ChunkAck(chunk_index=receipt.index, size=receipt.size),
    )


@router.post("/finalize-chunked-upload", response_model=FinalizeResponse)
@limiter.limit(settings.FINALIZE_RATE_LIMIT)
def finalize_chunked_upload(
    request: Request, body: FinalizeUploadRequest, db: Session = Depends(get_db)
) -> FinalizeResponse:
    """Reassemble the uploaded chunks into a recording."""
    service = get_upload_service()
    result = service.finalize(db, to_finalize_request(body))
    return FinalizeResponse(
        message="Chunked upload finalized",
        data=FinalizeData(id=result.id, filename=result.filename, upload_date=result.upload_date, size=result.size),
    )


@router.get("", response_model=RecordingListResponse)
def list_recordings(db: Session = Depends(get_db)) -> RecordingListResponse:
    """List every recording, newest first, without audio data."""
    registry = get_recording_registry()
    records = registry.list_summaries(db)
    return RecordingListResponse(data=[RecordingSummary.model_validate(r) for r in records])


@router.get("/stats", response_model=RecordingStatsResponse)
def recording_stats(db: Session = Depends(get_db)) -> RecordingStatsResponse:
    """Count and size statistics over all recordings."""
    stats = get_recording_registry().stats(db)
    return RecordingStatsResponse(data=RecordingStatsData(**dataclasses.asdict(stats)))


@router.get("/{recording_id}", response_model=RecordingResponse)
def get_recording(recording_id: str, db: Session = Depends(get_db)) -> RecordingResponse:
    """Get a single recording's metadata."""
    record = get_recording_registry().fetch_by_id(db, recording_id)
    if not record:
        raise NotFoundError("Recording not found")
    return RecordingResponse(data=RecordingSummary.model_validate(record))


@router.patch("/{recording_id}", response_model=MutationResponse)
def update_recording(
    recording_id: str, body: RecordingUpdateRequest, db: Session = Depends(get_db)
) -> MutationResponse:
    """Update a recording's filename, original name or MIME type."""
    registry = get_recording_registry()
    if not registry.fetch_by_id(db, recording_id):
        raise NotFoundError("Recording not found")
    result = registry.update(db, recording_id, body.model_dump(exclude_none=True))
    return MutationResponse(
        message="Recording updated",
        data=MutationResult(id=result.id, rows_affected=result.rows_affected),
    )


@router.get("/{recording_id}/download")
def download_recording(recording_id: str, db: Session = Depends(get_db)) -> Response:
    """Download the raw audio of a recording."""
    registry = get_recording_registry()
    record = registry.fetch_by_id(db, recording_id)
    if not record:
        raise NotFoundError("Recording not found")

    audio_data = registry.fetch_payload(db, recording_id)
    if audio_data is None:
        raise NotFoundError("Audio data not found")

    filename = record.original_name or record.filename
    return Response(
        content=audio_data,
        media_type=record.mime_type or settings.DEFAULT_MIME_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.delete("/{recording_id}", response_model=MutationResponse, response_model_exclude_none=True)
def delete_recording(recording_id: str, db: Session = Depends(get_db)) -> MutationResponse:
    """Delete a recording and any chunks left for it."""
    registry = get_recording_registry()
    if not registry.fetch_by_id(db, recording_id):
        raise NotFoundError("Recording not found")
    registry.delete(db, recording_id)
    return MutationResponse(message="Recording deleted")

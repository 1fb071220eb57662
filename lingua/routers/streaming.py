"""Streaming upload API endpoints.

Chunks captured while recording are kept in their own table with the client
timestamp. They are not removed on finalize; the client counts them and asks
for cleanup once it is satisfied with the result.
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from lingua.config import get_settings
from lingua.database import get_db
from lingua.rate_limit import limiter
from lingua.routers.audio import to_finalize_request
from lingua.schemas.upload import (
    ChunkAck,
    ChunkAckResponse,
    ChunkCountData,
    ChunkCountResponse,
    CleanupData,
    CleanupResponse,
    FinalizeData,
    FinalizeResponse,
    FinalizeUploadRequest,
    StreamingChunkRequest,
)
from lingua.services.upload_session import get_streaming_service

router = APIRouter(prefix="/api/audio/stream", tags=["Streaming"])

settings = get_settings()


@router.post("/chunk", response_model=ChunkAckResponse)
@limiter.limit(settings.CHUNK_RATE_LIMIT)
def upload_streaming_chunk(
    request: Request, body: StreamingChunkRequest, db: Session = Depends(get_db)
) -> ChunkAckResponse:
    """Store one streamed chunk with its capture timestamp."""
    service = get_streaming_service()
    receipt = service.accept_chunk(db, body.recording_id, body.chunk_index, body.chunk_data, timestamp=body.timestamp)
    return ChunkAckResponse(
        message="Streaming chunk saved",
        data=ChunkAck(chunk_index=receipt.index, size=receipt.size, timestamp=receipt.timestamp),
    )


@router.get("/{recording_id}/count", response_model=ChunkCountResponse)
def streaming_chunk_count(recording_id: str, db: Session = Depends(get_db)) -> ChunkCountResponse:
    """Number of streamed chunks currently stored for a recording."""
    count = get_streaming_service().chunk_count(db, recording_id)
    return ChunkCountResponse(data=ChunkCountData(recording_id=recording_id, count=count))


@router.post("/finalize", response_model=FinalizeResponse)
@limiter.limit(settings.FINALIZE_RATE_LIMIT)
def finalize_streaming_upload(
    request: Request, body: FinalizeUploadRequest, db: Session = Depends(get_db)
) -> FinalizeResponse:
    """Assemble the streamed chunks into a recording."""
    result = get_streaming_service().finalize(db, to_finalize_request(body))
    return FinalizeResponse(
        message="Streaming upload finalized",
        data=FinalizeData(id=result.id, filename=result.filename, upload_date=result.upload_date, size=result.size),
    )


@router.delete("/{recording_id}", response_model=CleanupResponse)
def cleanup_streaming_chunks(recording_id: str, db: Session = Depends(get_db)) -> CleanupResponse:
    """Remove every streamed chunk of a recording."""
    deleted = get_streaming_service().cleanup(db, recording_id)
    return CleanupResponse(
        message="Streaming chunks cleaned up",
        data=CleanupData(recording_id=recording_id, deleted_chunks=deleted),
    )

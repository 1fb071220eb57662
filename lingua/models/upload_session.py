"""Upload session model."""

from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String

from lingua.database import Base

AWAITING_CHUNKS = "awaiting_chunks"
FINALIZING = "finalizing"
FINALIZED = "finalized"

UPLOAD_VARIANT = "upload"
STREAMING_VARIANT = "stream"


class UploadSession(Base):
    """Tracks where a recording identifier is in the chunked upload protocol.

    Plain and streamed uploads keep separate sessions for the same identifier.
    """

    __tablename__ = "upload_session"

    recording_id = Column(String(128), primary_key=True)
    variant = Column(String(16), primary_key=True, default=UPLOAD_VARIANT)  # upload, stream
    state = Column(String(32), nullable=False, default=AWAITING_CHUNKS)  # awaiting_chunks, finalizing, finalized
    chunks_received = Column(Integer, nullable=False, default=0)
    bytes_received = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

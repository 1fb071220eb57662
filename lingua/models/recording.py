"""Finalized recording model."""

from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, LargeBinary, String
from sqlalchemy.orm import deferred

from lingua.database import Base


class Recording(Base):
    """Reassembled audio recording with its full payload."""

    __tablename__ = "audio_recording"

    id = Column(String(128), primary_key=True)
    filename = Column(String(512), nullable=False)
    original_name = Column(String(512), nullable=True)
    audio_data = deferred(Column(LargeBinary, nullable=True))
    file_size = Column(Integer, nullable=False, default=0)
    mime_type = Column(String(128), nullable=True)
    upload_date = Column(DateTime, nullable=False, default=datetime.utcnow)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

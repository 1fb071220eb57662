"""Chunk models for in-flight uploads."""

from datetime import datetime

from sqlalchemy import BigInteger, Column, DateTime, Integer, LargeBinary, String

from lingua.database import Base


class AudioChunk(Base):
    """Fragment of a chunked upload. Removed with its recording."""

    __tablename__ = "audio_chunk"

    id = Column(Integer, primary_key=True, autoincrement=True)
    recording_id = Column(String(128), nullable=False, index=True)
    chunk_index = Column(Integer, nullable=False)
    chunk_data = Column(LargeBinary, nullable=False)
    chunk_size = Column(Integer, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class StreamingChunk(Base):
    """Fragment captured while recording. Kept until the client asks for cleanup."""

    __tablename__ = "streaming_chunk"

    id = Column(Integer, primary_key=True, autoincrement=True)
    recording_id = Column(String(128), nullable=False, index=True)
    chunk_index = Column(Integer, nullable=False)
    chunk_data = Column(LargeBinary, nullable=False)
    chunk_size = Column(Integer, nullable=False)
    timestamp = Column(BigInteger, nullable=True)  # client clock, epoch ms
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

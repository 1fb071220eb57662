"""Pydantic schemas for the chunked upload protocol.

Field names follow the mobile client's camelCase JSON. Every field is
optional at the schema level so that missing fields reach the upload service
and are reported as a 400 with an ``error`` message.
"""

from datetime import datetime

from pydantic import BaseModel
from pydantic.alias_generators import to_camel

CAMEL = {"alias_generator": to_camel, "populate_by_name": True}


class ChunkUploadRequest(BaseModel):
    recording_id: str | None = None
    chunk_index: int | None = None
    chunk_data: str | None = None

    model_config = CAMEL


class StreamingChunkRequest(ChunkUploadRequest):
    timestamp: int | None = None


class FinalizeUploadRequest(BaseModel):
    recording_id: str | None = None
    filename: str | None = None
    original_name: str | None = None
    mime_type: str | None = None
    total_size: int | None = None
    chunk_count: int | None = None
    checksum: str | None = None

    model_config = CAMEL


class ChunkAck(BaseModel):
    chunk_index: int
    size: int
    timestamp: int | None = None

    model_config = CAMEL


class ChunkAckResponse(BaseModel):
    success: bool = True
    message: str
    data: ChunkAck


class FinalizeData(BaseModel):
    id: str
    filename: str
    upload_date: datetime
    size: int

    model_config = {**CAMEL, "from_attributes": True}


class FinalizeResponse(BaseModel):
    success: bool = True
    message: str
    data: FinalizeData


class ChunkCountData(BaseModel):
    recording_id: str
    count: int

    model_config = CAMEL


class ChunkCountResponse(BaseModel):
    success: bool = True
    data: ChunkCountData


class CleanupData(BaseModel):
    recording_id: str
    deleted_chunks: int

    model_config = CAMEL


class CleanupResponse(BaseModel):
    success: bool = True
    message: str
    data: CleanupData

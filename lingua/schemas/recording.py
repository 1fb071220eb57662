"""Pydantic schemas for recording endpoints."""

from datetime import datetime

from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class RecordingSummary(BaseModel):
    id: str
    filename: str
    original_name: str | None
    file_size: int
    mime_type: str | None
    upload_date: datetime
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class RecordingResponse(BaseModel):
    success: bool = True
    data: RecordingSummary


class RecordingListResponse(BaseModel):
    success: bool = True
    data: list[RecordingSummary]


class RecordingUpdateRequest(BaseModel):
    filename: str | None = None
    original_name: str | None = None
    mime_type: str | None = None

    model_config = {"alias_generator": to_camel, "populate_by_name": True}


class MutationResult(BaseModel):
    id: str
    rows_affected: int

    model_config = {"alias_generator": to_camel, "populate_by_name": True}


class MutationResponse(BaseModel):
    success: bool = True
    message: str | None = None
    data: MutationResult | None = None


class RecordingStatsData(BaseModel):
    count: int
    total_bytes: int
    average_bytes: float
    earliest_created_at: datetime | None
    latest_created_at: datetime | None

    model_config = {"alias_generator": to_camel, "populate_by_name": True, "from_attributes": True}


class RecordingStatsResponse(BaseModel):
    success: bool = True
    data: RecordingStatsData

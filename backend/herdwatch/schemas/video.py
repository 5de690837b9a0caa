from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from herdwatch.models import Alert
from herdwatch.schemas.analysis import LogEntry


class VideoOut(BaseModel):
    id: str
    upload_date: datetime
    status: str
    filename: str
    original_name: str
    file_size: int = 0
    mime_type: str = "application/octet-stream"
    file_type: str = "video"
    frame_count: int = 0
    lat: float | None = None
    lon: float | None = None
    has_abnormal_behavior: bool | None = None
    error_message: str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None


class UploadResponse(BaseModel):
    video_id: str
    filename: str
    status: str


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class VideoListResponse(BaseModel):
    videos: list[VideoOut]
    pagination: Pagination


class AlertOut(BaseModel):
    id: int
    created_at: datetime
    type: str
    severity: str
    title: str
    message: str
    video_id: str | None = None
    source: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)
    is_read: bool = False
    is_active: bool = True

    @classmethod
    def from_row(cls, alert: Alert) -> AlertOut:
        try:
            data = json.loads(alert.data_json) if alert.data_json else {}
        except ValueError:
            data = {}
        return cls(
            id=alert.id,
            created_at=alert.created_at,
            type=alert.type,
            severity=alert.severity,
            title=alert.title,
            message=alert.message,
            video_id=alert.video_id,
            source=alert.source,
            data=data,
            is_read=alert.is_read,
            is_active=alert.is_active,
        )


class AlertStats(BaseModel):
    total: int
    unread: int
    by_severity: dict[str, int] = Field(default_factory=dict)


class AlertListResponse(BaseModel):
    alerts: list[AlertOut]
    pagination: Pagination
    stats: AlertStats


class AnalysisStatus(BaseModel):
    video_id: str
    status: str
    result: dict[str, Any] | None = None
    weather: dict[str, Any] | None = None
    alerts: list[AlertOut] = Field(default_factory=list)
    started_at: datetime | None = None
    finished_at: datetime | None = None


class LogListResponse(BaseModel):
    logs: list[LogEntry]
    total: int

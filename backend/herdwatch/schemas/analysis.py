from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

Severity = Literal["low", "medium", "high", "critical"]
BBox = tuple[float, float, float, float]


class Detection(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    class_name: str = Field(alias="class")
    bbox: BBox
    confidence: float = Field(ge=0.0, le=1.0)

    @field_validator("bbox", mode="before")
    @classmethod
    def _coerce_bbox(cls, value: Any) -> Any:
        # detector may send {"x1": .., "y1": .., "x2": .., "y2": ..}
        if isinstance(value, dict):
            try:
                return (value["x1"], value["y1"], value["x2"], value["y2"])
            except KeyError as exc:
                raise ValueError(f"bbox missing corner {exc}") from exc
        return value


class TaggedDetection(Detection):
    frame_index: int = Field(ge=0)


class BehaviorEvent(BaseModel):
    type: str
    count: int = Field(ge=0)
    average_confidence: float = Field(ge=0.0, le=1.0)
    message: str


class FrameResult(BaseModel):
    frame_index: int = Field(ge=0)
    detections: list[Detection] = Field(default_factory=list)
    behaviors: list[BehaviorEvent] = Field(default_factory=list)
    processing_time_ms: float = Field(default=0.0, ge=0.0)


class AggregatedResult(BaseModel):
    detections: list[TaggedDetection] = Field(default_factory=list)
    average_confidence: float = 0.0
    total_processing_time_ms: float = 0.0
    behavior_summary: dict[str, int] = Field(default_factory=dict)
    behaviors: list[BehaviorEvent] = Field(default_factory=list)
    has_abnormal_behavior: bool = False
    total_detections: int = 0
    frames_analyzed: int = 0
    failed_frames: list[int] = Field(default_factory=list)


class DetectionPayload(BaseModel):
    """Successful response of the detection service."""

    status: Literal["ok"] = "ok"
    predictions: list[Detection]
    confidence: float = 0.0
    processing_time_ms: float = Field(default=0.0, ge=0.0)


class DetectionFailure(BaseModel):
    """Explicit error payload returned by the detection service."""

    status: Literal["error"] = "error"
    error: str = "detection service reported an error"


class RealtimeBehaviorSummary(BaseModel):
    model_config = ConfigDict(extra="allow")

    abnormal_count: int = 0


class RealtimeAnalysis(BaseModel):
    model_config = ConfigDict(extra="allow")

    cattle_count: int = Field(default=0, ge=0)
    has_abnormal_behavior: bool = False
    cattle: list[dict[str, Any]] = Field(default_factory=list)
    behavior_summary: RealtimeBehaviorSummary = Field(default_factory=RealtimeBehaviorSummary)
    processing_time: float = 0.0


class RealtimeFrame(BaseModel):
    """Frame pushed by a live client over the realtime channel."""

    model_config = ConfigDict(populate_by_name=True)

    frame_base64: str = Field(alias="frameBase64", min_length=1)
    video_id: str | None = Field(default=None, alias="videoId")
    video_time: float = Field(default=0.0, alias="videoTime", ge=0.0)
    timestamp: str | float | None = None


class CurrentWeather(BaseModel):
    temperature: float
    humidity: float
    description: str = ""
    pressure: float | None = None
    wind_speed: float | None = None
    rain: float = 0.0


class WeatherRisk(BaseModel):
    type: str
    severity: Severity
    message: str


class WeatherReport(BaseModel):
    current: CurrentWeather
    alerts: list[WeatherRisk] = Field(default_factory=list)
    location: dict[str, Any] = Field(default_factory=dict)


class AlertDraft(BaseModel):
    type: str
    severity: Severity = "medium"
    title: str
    message: str
    video_id: str | None = None
    source: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)


class LogEntry(BaseModel):
    id: str
    ts: str
    category: str
    severity: Severity
    camera: str
    location: str
    title: str
    message: str
    video_time: float = 0.0
    cattle_count: int = 0
    confidence: float | None = None
    is_realtime: bool = True

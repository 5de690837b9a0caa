from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from herdwatch.schemas.video import AlertOut


class WeatherStat(BaseModel):
    description: str
    count: int
    avg_temperature: float | None = None


class AnalysisSummary(BaseModel):
    period_days: int
    total_videos: int
    class_totals: dict[str, int] = Field(default_factory=dict)
    average_confidence: float = 0.0
    recent_alerts: list[AlertOut] = Field(default_factory=list)
    weather_stats: list[WeatherStat] = Field(default_factory=list)


class BehaviorPattern(BaseModel):
    count: int = 0
    dates: list[datetime] = Field(default_factory=list)
    messages: list[str] = Field(default_factory=list)


class BehaviorPatterns(BaseModel):
    period_days: int
    patterns: dict[str, BehaviorPattern] = Field(default_factory=dict)
    hourly: dict[int, int] = Field(default_factory=dict)
    total_abnormal_videos: int = 0


class DailyCount(BaseModel):
    videos: int = 0
    counts: dict[str, int] = Field(default_factory=dict)


class CattleTracking(BaseModel):
    period_days: int
    daily: dict[str, DailyCount] = Field(default_factory=dict)
    averages: dict[str, float] = Field(default_factory=dict)
    total_videos: int = 0


class AlertTimeline(BaseModel):
    period_days: int
    timeline: dict[str, list[AlertOut]] = Field(default_factory=dict)
    total_events: int = 0


class SeverityCount(BaseModel):
    count: int = 0
    high_severity: int = 0


class AlertStatistics(BaseModel):
    period_days: int
    total: int = 0
    unread: int = 0
    high_severity: int = 0
    by_type: dict[str, SeverityCount] = Field(default_factory=dict)
    daily: dict[str, SeverityCount] = Field(default_factory=dict)

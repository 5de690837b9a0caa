"""Period reports computed over stored videos and alerts.

Every report covers the trailing ``days`` window ending at ``now`` (UTC).
Videos count only once their analysis has completed.
"""

from __future__ import annotations

import json
import logging
from collections import Counter, defaultdict
from collections.abc import Sequence
from datetime import datetime, timedelta

from sqlalchemy import desc, select
from sqlalchemy.orm import Session

from herdwatch.models import Alert, Video
from herdwatch.schemas.report import (
    AlertStatistics,
    AlertTimeline,
    AnalysisSummary,
    BehaviorPattern,
    BehaviorPatterns,
    CattleTracking,
    DailyCount,
    SeverityCount,
    WeatherStat,
)
from herdwatch.schemas.video import AlertOut

logger = logging.getLogger(__name__)

HIGH_SEVERITIES = {"high", "critical"}


def _since(days: int, now: datetime | None) -> datetime:
    return (now or datetime.utcnow()) - timedelta(days=days)


def _load(raw: str | None) -> dict:
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _completed_videos(db: Session, since: datetime) -> Sequence[Video]:
    query = (
        select(Video)
        .where(Video.status == "completed", Video.upload_date >= since)
        .order_by(Video.upload_date)
    )
    return db.execute(query).scalars().all()


def _class_counts(result: dict, classes: Sequence[str]) -> dict[str, int]:
    counts = Counter(d.get("class") for d in result.get("detections") or [])
    return {name: counts.get(name, 0) for name in classes}


def summarize(
    db: Session,
    days: int,
    tracked_classes: Sequence[str],
    recent_limit: int,
    now: datetime | None = None,
) -> AnalysisSummary:
    since = _since(days, now)
    videos = _completed_videos(db, since)

    totals = dict.fromkeys(tracked_classes, 0)
    confidences: list[float] = []
    weather: dict[str, list[float]] = defaultdict(list)
    for video in videos:
        result = _load(video.analysis_result_json)
        for name, count in _class_counts(result, tracked_classes).items():
            totals[name] += count
        if "average_confidence" in result:
            confidences.append(float(result["average_confidence"]))
        current = _load(video.weather_json).get("current")
        if current:
            weather[current.get("description", "")].append(float(current.get("temperature", 0.0)))

    alerts = (
        db.execute(
            select(Alert)
            .where(Alert.created_at >= since)
            .order_by(desc(Alert.created_at), desc(Alert.id))
            .limit(recent_limit)
        )
        .scalars()
        .all()
    )

    return AnalysisSummary(
        period_days=days,
        total_videos=len(videos),
        class_totals=totals,
        average_confidence=sum(confidences) / len(confidences) if confidences else 0.0,
        recent_alerts=[AlertOut.from_row(a) for a in alerts],
        weather_stats=[
            WeatherStat(description=label, count=len(temps), avg_temperature=sum(temps) / len(temps))
            for label, temps in weather.items()
        ],
    )


def behavior_patterns(db: Session, days: int, now: datetime | None = None) -> BehaviorPatterns:
    videos = [v for v in _completed_videos(db, _since(days, now)) if v.has_abnormal_behavior]

    patterns: dict[str, BehaviorPattern] = {}
    hourly: Counter[int] = Counter()
    for video in videos:
        for behavior in _load(video.analysis_result_json).get("behaviors") or []:
            pattern = patterns.setdefault(behavior.get("type", "unknown"), BehaviorPattern())
            pattern.count += 1
            pattern.dates.append(video.upload_date)
            pattern.messages.append(behavior.get("message", ""))
        hourly[video.upload_date.hour] += 1

    return BehaviorPatterns(
        period_days=days,
        patterns=patterns,
        hourly=dict(sorted(hourly.items())),
        total_abnormal_videos=len(videos),
    )


def cattle_tracking(
    db: Session,
    days: int,
    tracked_classes: Sequence[str],
    now: datetime | None = None,
) -> CattleTracking:
    videos = _completed_videos(db, _since(days, now))

    daily: dict[str, DailyCount] = {}
    for video in videos:
        day = daily.setdefault(
            video.upload_date.date().isoformat(), DailyCount(counts=dict.fromkeys(tracked_classes, 0))
        )
        day.videos += 1
        for name, count in _class_counts(_load(video.analysis_result_json), tracked_classes).items():
            day.counts[name] += count

    averages = {
        name: round(sum(d.counts[name] for d in daily.values()) / len(daily), 2) if daily else 0.0
        for name in tracked_classes
    }
    return CattleTracking(period_days=days, daily=daily, averages=averages, total_videos=len(videos))


def alert_timeline(
    db: Session,
    days: int,
    alert_type: str | None = None,
    now: datetime | None = None,
) -> AlertTimeline:
    query = select(Alert).where(Alert.created_at >= _since(days, now))
    if alert_type:
        query = query.where(Alert.type == alert_type)
    rows = db.execute(query.order_by(desc(Alert.created_at), desc(Alert.id))).scalars().all()

    timeline: dict[str, list[AlertOut]] = {}
    for alert in rows:
        timeline.setdefault(alert.created_at.date().isoformat(), []).append(AlertOut.from_row(alert))
    return AlertTimeline(period_days=days, timeline=timeline, total_events=len(rows))


def alert_statistics(db: Session, days: int, now: datetime | None = None) -> AlertStatistics:
    rows = db.execute(select(Alert).where(Alert.created_at >= _since(days, now))).scalars().all()

    stats = AlertStatistics(period_days=days)
    for alert in rows:
        high = alert.severity in HIGH_SEVERITIES
        stats.total += 1
        stats.unread += 0 if alert.is_read else 1
        stats.high_severity += high
        for bucket in (
            stats.by_type.setdefault(alert.type, SeverityCount()),
            stats.daily.setdefault(alert.created_at.date().isoformat(), SeverityCount()),
        ):
            bucket.count += 1
            bucket.high_severity += high
    stats.daily = dict(sorted(stats.daily.items()))
    logger.debug("alert statistics over %d days: %d alerts", days, stats.total)
    return stats

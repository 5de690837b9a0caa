from __future__ import annotations

import json
import logging
from collections.abc import Sequence

from sqlalchemy.orm import Session

from herdwatch.models import Alert
from herdwatch.schemas.analysis import AggregatedResult, AlertDraft, RealtimeAnalysis, WeatherRisk

logger = logging.getLogger(__name__)

BEHAVIOR_TITLES: dict[str, str] = {
    "lying": "Abnormal behavior detected: Cattle lying down",
    "fighting": "Abnormal behavior detected: Cattle fighting",
}


def derive_alerts(
    result: AggregatedResult,
    weather_risks: Sequence[WeatherRisk],
    primary_count: int,
    video_id: str | None = None,
) -> list[AlertDraft]:
    alerts: list[AlertDraft] = []

    for behavior in result.behaviors:
        alerts.append(
            AlertDraft(
                type="behavior",
                severity="high" if behavior.type == "fighting" else "medium",
                title=BEHAVIOR_TITLES.get(behavior.type, f"Abnormal behavior detected: {behavior.type}"),
                message=behavior.message,
                video_id=video_id,
                data=behavior.model_dump(),
            )
        )

    for risk in weather_risks:
        alerts.append(
            AlertDraft(
                type="weather",
                severity=risk.severity,
                title="Weather information",
                message=risk.message,
                video_id=video_id,
                data=risk.model_dump(),
            )
        )

    if primary_count == 0:
        alerts.append(
            AlertDraft(
                type="detection",
                severity="medium",
                title="Cattle detection failed",
                message="No cattle detected in the video. Verification required.",
                video_id=video_id,
            )
        )

    return alerts


def save_alerts(db: Session, drafts: Sequence[AlertDraft]) -> list[Alert]:
    """Stage all drafts as one batch; the caller owns the commit."""
    rows = [
        Alert(
            type=draft.type,
            severity=draft.severity,
            title=draft.title,
            message=draft.message,
            video_id=draft.video_id,
            source=draft.source,
            data_json=json.dumps(draft.data, default=str),
        )
        for draft in drafts
    ]
    if rows:
        db.add_all(rows)
    return rows


def realtime_candidate(
    analysis: RealtimeAnalysis,
    source: str,
    video_time: float = 0.0,
) -> tuple[AlertDraft, bool]:
    """Build the alert for one accepted realtime emission.

    Returns the draft and whether it reports an anomaly. Without an anomaly a
    low-severity status entry is produced instead.
    """
    abnormal_count = analysis.behavior_summary.abnormal_count
    data = {"video_time": video_time, "cattle_count": analysis.cattle_count, "cattle": analysis.cattle}

    if analysis.has_abnormal_behavior or abnormal_count > 0:
        draft = AlertDraft(
            type="behavior_analysis",
            severity="high" if abnormal_count > 0 else "medium",
            title="Abnormal Behavior Detected",
            message=f"Detected abnormal behavior in {abnormal_count} out of {analysis.cattle_count} cattle",
            source=source,
            data=data,
        )
        return draft, True

    if analysis.cattle_count > 0:
        message = f"Normal behavior detected in {analysis.cattle_count} cattle"
    else:
        message = "No cattle detected in current frame"
    draft = AlertDraft(
        type="behavior_status",
        severity="low",
        title="Normal Activity",
        message=message,
        source=source,
        data=data,
    )
    return draft, False

"""Period reports over stored videos and alerts."""

import json
from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from herdwatch.main import create_app
from herdwatch.models import Alert, Video
from herdwatch.services import analytics

NOW = datetime(2026, 3, 10, 12, 0, 0)
CLASSES = ["cow", "calf"]


def _result(classes: list[str], confidence: float = 0.8, behaviors: list[dict] | None = None) -> str:
    return json.dumps(
        {
            "detections": [{"class": name, "confidence": confidence, "frame_index": 0} for name in classes],
            "average_confidence": confidence,
            "behaviors": behaviors or [],
            "has_abnormal_behavior": bool(behaviors),
        }
    )


def _video(video_id: str, uploaded: datetime, status: str = "completed", **fields) -> Video:
    return Video(
        id=video_id,
        upload_date=uploaded,
        status=status,
        filename=f"{video_id}.mp4",
        original_name=f"{video_id}.mp4",
        file_path=f"/tmp/{video_id}.mp4",
        **fields,
    )


def _alert(created: datetime, type_: str = "behavior", severity: str = "medium", **fields) -> Alert:
    return Alert(created_at=created, type=type_, severity=severity, title=type_, message=f"{type_} alert", **fields)


@pytest.fixture
def db(session_factory):
    with session_factory() as session:
        yield session


@pytest.fixture
def herd(db):
    fight = {"type": "fighting", "count": 2, "average_confidence": 0.7, "message": "2 cattle fighting"}
    lying = {"type": "lying", "count": 1, "average_confidence": 0.6, "message": "1 cattle lying"}
    db.add_all(
        [
            _video(
                "mon",
                datetime(2026, 3, 9, 6, 30),
                analysis_result_json=_result(["cow", "cow", "calf"], 0.9, [fight]),
                weather_json=json.dumps({"current": {"temperature": 30.0, "humidity": 40, "description": "clear sky"}}),
                has_abnormal_behavior=True,
            ),
            _video(
                "mon_late",
                datetime(2026, 3, 9, 18, 0),
                analysis_result_json=_result(["cow"], 0.7),
                weather_json=json.dumps({"current": {"temperature": 20.0, "humidity": 40, "description": "clear sky"}}),
                has_abnormal_behavior=False,
            ),
            _video(
                "tue",
                datetime(2026, 3, 10, 6, 45),
                analysis_result_json=_result(["cow", "cow"], 0.8, [fight, lying]),
                has_abnormal_behavior=True,
            ),
            _video("pending", datetime(2026, 3, 10, 7, 0), status="processing"),
            _video("old", datetime(2026, 2, 1), analysis_result_json=_result(["cow"] * 9), has_abnormal_behavior=True),
        ]
    )
    db.add_all(
        [
            _alert(datetime(2026, 3, 9, 6, 31), "behavior", "high", video_id="mon"),
            _alert(datetime(2026, 3, 9, 9, 0), "weather", "medium", is_read=True),
            _alert(datetime(2026, 3, 10, 6, 46), "behavior", "critical", video_id="tue"),
            _alert(datetime(2026, 3, 10, 8, 0), "detection", "low"),
            _alert(datetime(2026, 1, 1), "behavior", "high"),
        ]
    )
    db.commit()
    return db


def test_summary_counts_completed_videos_in_window(herd) -> None:
    summary = analytics.summarize(herd, 7, CLASSES, recent_limit=2, now=NOW)

    assert summary.total_videos == 3
    assert summary.class_totals == {"cow": 5, "calf": 1}
    assert summary.average_confidence == pytest.approx(0.8)
    assert [a.type for a in summary.recent_alerts] == ["detection", "behavior"]
    assert [(w.description, w.count, w.avg_temperature) for w in summary.weather_stats] == [("clear sky", 2, 25.0)]


def test_summary_of_empty_window(db) -> None:
    summary = analytics.summarize(db, 7, CLASSES, recent_limit=10, now=NOW)
    assert summary.total_videos == 0
    assert summary.class_totals == {"cow": 0, "calf": 0}
    assert summary.average_confidence == 0.0
    assert summary.recent_alerts == []


def test_behavior_patterns_group_by_type_and_hour(herd) -> None:
    report = analytics.behavior_patterns(herd, 30, now=NOW)

    assert report.total_abnormal_videos == 2
    assert report.patterns["fighting"].count == 2
    assert report.patterns["fighting"].messages == ["2 cattle fighting", "2 cattle fighting"]
    assert report.patterns["lying"].dates == [datetime(2026, 3, 10, 6, 45)]
    assert report.hourly == {6: 2}


def test_cattle_tracking_averages_per_day(herd) -> None:
    report = analytics.cattle_tracking(herd, 7, CLASSES, now=NOW)

    assert report.total_videos == 3
    assert report.daily["2026-03-09"].videos == 2
    assert report.daily["2026-03-09"].counts == {"cow": 3, "calf": 1}
    assert report.daily["2026-03-10"].counts == {"cow": 2, "calf": 0}
    assert report.averages == {"cow": 2.5, "calf": 0.5}


def test_alert_timeline_groups_newest_first(herd) -> None:
    report = analytics.alert_timeline(herd, 7, now=NOW)

    assert report.total_events == 4
    assert list(report.timeline) == ["2026-03-10", "2026-03-09"]
    assert [a.type for a in report.timeline["2026-03-10"]] == ["detection", "behavior"]

    only_behavior = analytics.alert_timeline(herd, 7, alert_type="behavior", now=NOW)
    assert only_behavior.total_events == 2


def test_alert_statistics_count_high_and_critical(herd) -> None:
    stats = analytics.alert_statistics(herd, 30, now=NOW)

    assert (stats.total, stats.unread, stats.high_severity) == (4, 3, 2)
    assert stats.by_type["behavior"].count == 2
    assert stats.by_type["behavior"].high_severity == 2
    assert stats.by_type["weather"].high_severity == 0
    assert {day: s.count for day, s in stats.daily.items()} == {"2026-03-09": 2, "2026-03-10": 2}


@pytest.fixture
def client(settings, services):
    with TestClient(create_app(settings, services=services)) as test_client:
        yield test_client


@pytest.mark.parametrize("path", ["/api/analysis/summary", "/api/analysis/patterns", "/api/analysis/tracking"])
def test_report_paths_are_not_taken_for_video_ids(client, path) -> None:
    response = client.get(path)
    assert response.status_code == 200
    assert "period_days" in response.json()


def test_log_reports_over_http(client, services) -> None:
    with services.session_factory() as session:
        session.add(_alert(datetime.utcnow(), "weather", "high"))
        session.add(_alert(datetime.utcnow(), "behavior", "low"))
        session.commit()

    stats = client.get("/api/logs/statistics", params={"days": 1}).json()
    assert stats["total"] == 2
    assert stats["high_severity"] == 1

    timeline = client.get("/api/logs/timeline", params={"type": "weather"}).json()
    assert timeline["total_events"] == 1
    assert [a["type"] for alerts in timeline["timeline"].values() for a in alerts] == ["weather"]


def test_report_window_must_be_positive(client) -> None:
    assert client.get("/api/analysis/summary", params={"days": 0}).status_code == 422

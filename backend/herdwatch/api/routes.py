from __future__ import annotations

import json
import logging
import math
import shutil
import uuid
from pathlib import Path

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from sqlalchemy import desc, func, select, update
from sqlalchemy.orm import Session

from herdwatch.api.deps import Services, get_db, get_services
from herdwatch.models import Alert, Video
from herdwatch.schemas.analysis import LogEntry
from herdwatch.schemas.report import AlertStatistics, AlertTimeline, AnalysisSummary, BehaviorPatterns, CattleTracking
from herdwatch.schemas.video import (
    AlertListResponse,
    AlertOut,
    AlertStats,
    AnalysisStatus,
    LogListResponse,
    Pagination,
    UploadResponse,
    VideoListResponse,
    VideoOut,
)
from herdwatch.services import analytics
from herdwatch.services.frames import VIDEO_SUFFIXES
from herdwatch.services.orchestrator import JobSubmission

logger = logging.getLogger(__name__)

router = APIRouter()

IMAGE_SUFFIXES = {".jpg", ".jpeg", ".png", ".bmp", ".webp"}


def _load_json(raw: str | None, default):
    if not raw:
        return default
    try:
        return json.loads(raw)
    except ValueError:
        return default


def _video_to_out(video: Video) -> VideoOut:
    return VideoOut(
        id=video.id,
        upload_date=video.upload_date,
        status=video.status,
        filename=video.filename,
        original_name=video.original_name,
        file_size=video.file_size,
        mime_type=video.mime_type,
        file_type=video.file_type,
        frame_count=len(_load_json(video.frame_paths_json, [])),
        lat=video.lat,
        lon=video.lon,
        has_abnormal_behavior=video.has_abnormal_behavior,
        error_message=video.error_message,
        started_at=video.started_at,
        finished_at=video.finished_at,
    )


def _pagination(page: int, limit: int, total: int) -> Pagination:
    return Pagination(page=page, limit=limit, total=total, pages=math.ceil(total / limit) if total else 0)


def _save_upload(upload: UploadFile, out: Path, max_bytes: int) -> int:
    out.parent.mkdir(parents=True, exist_ok=True)
    with out.open("wb") as handle:
        shutil.copyfileobj(upload.file, handle)
    size = out.stat().st_size
    if size > max_bytes:
        out.unlink(missing_ok=True)
        raise HTTPException(status_code=413, detail=f"{upload.filename} exceeds the upload size limit")
    return size


def _job_dir(services: Services, job_id: str) -> Path:
    return Path(services.settings.upload_dir) / job_id


@router.post("/upload", response_model=UploadResponse, status_code=201)
async def upload_media(
    file: UploadFile = File(...),
    lat: float | None = Form(None),
    lon: float | None = Form(None),
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
) -> UploadResponse:
    original = Path(file.filename or "").name
    suffix = Path(original).suffix.lower()
    if suffix not in VIDEO_SUFFIXES | IMAGE_SUFFIXES:
        raise HTTPException(status_code=400, detail="Unsupported file type")

    job_id = str(uuid.uuid4())
    stored_name = f"{job_id}{suffix}"
    out = _job_dir(services, job_id) / stored_name
    size = _save_upload(file, out, services.settings.max_upload_mb * 1024 * 1024)

    video = Video(
        id=job_id,
        filename=stored_name,
        original_name=original,
        file_path=str(out),
        file_size=size,
        mime_type=file.content_type or "application/octet-stream",
        file_type="video" if suffix in VIDEO_SUFFIXES else "image",
        lat=lat,
        lon=lon,
    )
    db.add(video)
    db.commit()

    services.orchestrator.submit(JobSubmission(job_id=job_id, media_path=str(out), lat=lat, lon=lon))
    return UploadResponse(video_id=job_id, filename=original, status="pending")


@router.post("/upload/frames", response_model=UploadResponse, status_code=201)
async def upload_frames(
    files: list[UploadFile] = File(...),
    lat: float | None = Form(None),
    lon: float | None = Form(None),
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
) -> UploadResponse:
    frames = [f for f in files if f.filename and Path(f.filename).suffix.lower() in IMAGE_SUFFIXES]
    if not frames:
        raise HTTPException(status_code=400, detail="At least one image frame is required")

    job_id = str(uuid.uuid4())
    frame_dir = _job_dir(services, job_id) / "frames"
    max_bytes = services.settings.max_upload_mb * 1024 * 1024
    paths: list[str] = []
    total = 0
    for idx, upload in enumerate(frames):
        out = frame_dir / f"frame_{idx:04d}{Path(upload.filename).suffix.lower()}"
        total += _save_upload(upload, out, max_bytes)
        paths.append(str(out))

    video = Video(
        id=job_id,
        filename=f"{job_id}_frames",
        original_name=Path(frames[0].filename).name,
        file_path=str(frame_dir),
        file_size=total,
        mime_type=frames[0].content_type or "image/jpeg",
        file_type="frames",
        lat=lat,
        lon=lon,
    )
    db.add(video)
    db.commit()

    services.orchestrator.submit(
        JobSubmission(job_id=job_id, media_path=str(frame_dir), frame_paths=paths, lat=lat, lon=lon)
    )
    return UploadResponse(video_id=job_id, filename=video.original_name, status="pending")


@router.get("/videos", response_model=VideoListResponse)
def list_videos(
    status: str | None = None,
    has_abnormal: bool | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
) -> VideoListResponse:
    query = select(Video)
    if status:
        query = query.where(Video.status == status)
    if has_abnormal is not None:
        query = query.where(Video.has_abnormal_behavior == has_abnormal)

    total = db.execute(select(func.count()).select_from(query.subquery())).scalar_one()
    rows = (
        db.execute(query.order_by(desc(Video.upload_date)).offset((page - 1) * limit).limit(limit))
        .scalars()
        .all()
    )
    return VideoListResponse(videos=[_video_to_out(v) for v in rows], pagination=_pagination(page, limit, total))


@router.get("/videos/{video_id}", response_model=VideoOut)
def get_video(video_id: str, db: Session = Depends(get_db)) -> VideoOut:
    video = db.get(Video, video_id)
    if not video:
        raise HTTPException(status_code=404, detail="Video not found")
    return _video_to_out(video)


@router.delete("/videos/{video_id}")
def delete_video(
    video_id: str,
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
) -> dict:
    """Delete a video record, its alerts and its files on disk."""
    video = db.get(Video, video_id)
    if not video:
        raise HTTPException(status_code=404, detail="Video not found")
    db.delete(video)
    db.commit()
    shutil.rmtree(_job_dir(services, video_id), ignore_errors=True)
    shutil.rmtree(Path(services.settings.upload_dir) / "frames" / video_id, ignore_errors=True)
    if services.orchestrator.task(video_id) is not None:
        logger.info("video %s deleted while its analysis is still running", video_id)
    return {"deleted": video_id}


@router.get("/analysis/ai-status")
async def ai_status(services: Services = Depends(get_services)) -> dict:
    return await services.detection.health()


@router.get("/analysis/summary", response_model=AnalysisSummary)
def analysis_summary(
    days: int = Query(7, ge=1, le=365),
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
) -> AnalysisSummary:
    settings = services.settings
    return analytics.summarize(db, days, settings.tracked_classes, settings.recent_alerts_limit)


@router.get("/analysis/patterns", response_model=BehaviorPatterns)
def analysis_patterns(days: int = Query(30, ge=1, le=365), db: Session = Depends(get_db)) -> BehaviorPatterns:
    return analytics.behavior_patterns(db, days)


@router.get("/analysis/tracking", response_model=CattleTracking)
def analysis_tracking(
    days: int = Query(7, ge=1, le=365),
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
) -> CattleTracking:
    return analytics.cattle_tracking(db, days, services.settings.tracked_classes)


@router.get("/analysis/{video_id}", response_model=AnalysisStatus, response_model_exclude_none=True)
def get_analysis(video_id: str, db: Session = Depends(get_db)) -> AnalysisStatus:
    video = db.get(Video, video_id)
    if not video:
        raise HTTPException(status_code=404, detail="Video not found")

    if video.status == "failed":
        raise HTTPException(status_code=500, detail=video.error_message or "Analysis failed")
    if video.status != "completed":
        return AnalysisStatus(video_id=video.id, status=video.status, started_at=video.started_at)

    alerts = db.execute(select(Alert).where(Alert.video_id == video_id).order_by(Alert.id)).scalars().all()
    return AnalysisStatus(
        video_id=video.id,
        status=video.status,
        result=_load_json(video.analysis_result_json, {}),
        weather=_load_json(video.weather_json, None),
        alerts=[AlertOut.from_row(a) for a in alerts],
        started_at=video.started_at,
        finished_at=video.finished_at,
    )


@router.get("/alerts", response_model=AlertListResponse)
def list_alerts(
    alert_type: str | None = Query(None, alias="type"),
    severity: str | None = None,
    is_read: bool | None = None,
    video_id: str | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
) -> AlertListResponse:
    query = select(Alert).where(Alert.is_active.is_(True))
    if alert_type:
        query = query.where(Alert.type == alert_type)
    if severity:
        query = query.where(Alert.severity == severity)
    if is_read is not None:
        query = query.where(Alert.is_read.is_(is_read))
    if video_id:
        query = query.where(Alert.video_id == video_id)

    total = db.execute(select(func.count()).select_from(query.subquery())).scalar_one()
    rows = (
        db.execute(query.order_by(desc(Alert.created_at), desc(Alert.id)).offset((page - 1) * limit).limit(limit))
        .scalars()
        .all()
    )

    active = Alert.is_active.is_(True)
    unread = db.execute(select(func.count(Alert.id)).where(active, Alert.is_read.is_(False))).scalar_one()
    by_severity = dict(
        db.execute(select(Alert.severity, func.count(Alert.id)).where(active).group_by(Alert.severity)).all()
    )
    all_active = db.execute(select(func.count(Alert.id)).where(active)).scalar_one()

    return AlertListResponse(
        alerts=[AlertOut.from_row(a) for a in rows],
        pagination=_pagination(page, limit, total),
        stats=AlertStats(total=all_active, unread=unread, by_severity=by_severity),
    )


@router.get("/alerts/recent", response_model=list[AlertOut])
def recent_alerts(limit: int = Query(10, ge=1, le=100), db: Session = Depends(get_db)) -> list[AlertOut]:
    rows = (
        db.execute(
            select(Alert).where(Alert.is_active.is_(True)).order_by(desc(Alert.created_at), desc(Alert.id)).limit(limit)
        )
        .scalars()
        .all()
    )
    return [AlertOut.from_row(a) for a in rows]


@router.patch("/alerts/read-all")
def mark_all_alerts_read(db: Session = Depends(get_db)) -> dict:
    result = db.execute(update(Alert).where(Alert.is_read.is_(False)).values(is_read=True))
    db.commit()
    return {"updated": result.rowcount}


@router.patch("/alerts/{alert_id}/read", response_model=AlertOut)
def mark_alert_read(alert_id: int, db: Session = Depends(get_db)) -> AlertOut:
    alert = db.get(Alert, alert_id)
    if not alert:
        raise HTTPException(status_code=404, detail="Alert not found")
    alert.is_read = True
    db.commit()
    return AlertOut.from_row(alert)


@router.delete("/alerts/{alert_id}")
def delete_alert(alert_id: int, db: Session = Depends(get_db)) -> dict:
    alert = db.get(Alert, alert_id)
    if not alert:
        raise HTTPException(status_code=404, detail="Alert not found")
    db.delete(alert)
    db.commit()
    return {"deleted": alert_id}


@router.get("/logs", response_model=LogListResponse)
def list_logs(
    category: str | None = None,
    severity: str | None = None,
    camera: str | None = None,
    limit: int = Query(100, ge=1, le=1000),
    services: Services = Depends(get_services),
) -> LogListResponse:
    entries = services.log_book.list(category=category, severity=severity, camera=camera)
    return LogListResponse(logs=entries[:limit], total=len(entries))


@router.get("/logs/statistics", response_model=AlertStatistics)
def log_statistics(days: int = Query(30, ge=1, le=365), db: Session = Depends(get_db)) -> AlertStatistics:
    return analytics.alert_statistics(db, days)


@router.get("/logs/timeline", response_model=AlertTimeline)
def log_timeline(
    days: int = Query(7, ge=1, le=365),
    alert_type: str | None = Query(None, alias="type"),
    db: Session = Depends(get_db),
) -> AlertTimeline:
    return analytics.alert_timeline(db, days, alert_type)


@router.delete("/logs/{log_id}", response_model=LogEntry)
def delete_log(log_id: str, services: Services = Depends(get_services)) -> LogEntry:
    entry = services.log_book.delete(log_id)
    if entry is None:
        raise HTTPException(status_code=404, detail="Log not found")
    return entry


@router.delete("/logs")
def clear_logs(services: Services = Depends(get_services)) -> dict:
    return {"cleared": services.log_book.clear()}

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from functools import partial
from pathlib import Path

from sqlalchemy.orm import Session, sessionmaker

from herdwatch.core.config import Settings
from herdwatch.detectors.behavior import detect_behaviors
from herdwatch.models import Video
from herdwatch.schemas.analysis import AggregatedResult, AlertDraft, FrameResult, WeatherReport
from herdwatch.services.aggregator import aggregate, primary_count
from herdwatch.services.alerts import derive_alerts, save_alerts
from herdwatch.services.detection import DetectionClient
from herdwatch.services.frame_scheduler import analyze_frames
from herdwatch.services.frames import extract_frames, is_video
from herdwatch.services.retry import RetryPolicy, with_retry
from herdwatch.services.weather import WeatherClient, evaluate_weather_risk

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = {"completed", "failed"}
TRANSITIONS: dict[str, set[str]] = {
    "pending": {"processing", "failed"},
    "processing": {"completed", "failed"},
    "completed": set(),
    "failed": set(),
}


@dataclass
class JobSubmission:
    job_id: str
    media_path: str
    frame_paths: list[str] = field(default_factory=list)
    lat: float | None = None
    lon: float | None = None

    @property
    def has_location(self) -> bool:
        return self.lat is not None and self.lon is not None


class VideoRepository:
    """Status transitions of the job record; every write is one short transaction."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def get(self, job_id: str) -> Video | None:
        with self._session_factory() as db:
            return db.get(Video, job_id)

    def mark_pending(self, submission: JobSubmission) -> None:
        with self._session_factory() as db:
            video = db.get(Video, submission.job_id)
            if video is None:
                name = Path(submission.media_path).name
                video = Video(
                    id=submission.job_id,
                    filename=name,
                    original_name=name,
                    file_path=submission.media_path,
                    file_type="frames" if submission.frame_paths else "video",
                    lat=submission.lat,
                    lon=submission.lon,
                )
                db.add(video)
            elif video.status != "pending":
                raise ValueError(f"job {submission.job_id} is already {video.status}")
            video.status = "pending"
            video.frame_paths_json = json.dumps(submission.frame_paths)
            db.commit()

    def _transition(self, db: Session, job_id: str, target: str) -> Video | None:
        video = db.get(Video, job_id)
        if video is None:
            logger.warning("job %s disappeared before it could move to %s", job_id, target)
            return None
        if target not in TRANSITIONS.get(video.status, set()):
            logger.warning("ignoring transition %s -> %s for job %s", video.status, target, job_id)
            return None
        video.status = target
        return video

    def mark_processing(self, job_id: str) -> bool:
        with self._session_factory() as db:
            video = self._transition(db, job_id, "processing")
            if video is None:
                return False
            video.started_at = datetime.utcnow()
            db.commit()
            return True

    def complete(
        self,
        job_id: str,
        result: AggregatedResult,
        weather: WeatherReport | None,
        alerts: list[AlertDraft],
    ) -> bool:
        with self._session_factory() as db:
            video = self._transition(db, job_id, "completed")
            if video is None:
                db.rollback()
                return False
            video.analysis_result_json = json.dumps(result.model_dump(mode="json", by_alias=True))
            video.weather_json = json.dumps(weather.model_dump(mode="json")) if weather else None
            video.has_abnormal_behavior = result.has_abnormal_behavior
            video.error_message = None
            video.finished_at = datetime.utcnow()
            save_alerts(db, alerts)
            db.commit()
            return True

    def fail(self, job_id: str, message: str) -> bool:
        with self._session_factory() as db:
            video = self._transition(db, job_id, "failed")
            if video is None:
                db.rollback()
                return False
            video.error_message = message
            video.finished_at = datetime.utcnow()
            db.commit()
            return True


class AnalysisOrchestrator:
    """Runs each submitted job as its own background task.

    Jobs are not cancellable: once a task starts it runs to a terminal status.
    Task handles are kept until they finish so shutdown can drain them.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        detection_client: DetectionClient,
        weather_client: WeatherClient | None,
        settings: Settings,
        frame_extractor: Callable[[str, Path, int], list[Path]] = extract_frames,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self.videos = VideoRepository(session_factory)
        self.settings = settings
        self.retry = RetryPolicy(settings.retry_max_attempts, settings.retry_base_delay_ms)
        self._detection = detection_client
        self._weather = weather_client
        self._extract = frame_extractor
        self._sleep = sleep
        self._tasks: dict[str, asyncio.Task] = {}

    def submit(self, submission: JobSubmission) -> str:
        self.videos.mark_pending(submission)
        loop = asyncio.get_running_loop()
        task = loop.create_task(self.run(submission), name=f"analysis-{submission.job_id}")
        self._tasks[submission.job_id] = task
        task.add_done_callback(partial(self._task_done, submission.job_id))
        logger.info("job %s queued", submission.job_id)
        return submission.job_id

    def task(self, job_id: str) -> asyncio.Task | None:
        return self._tasks.get(job_id)

    def active_jobs(self) -> list[str]:
        return list(self._tasks)

    async def drain(self) -> None:
        tasks = list(self._tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _task_done(self, job_id: str, task: asyncio.Task) -> None:
        self._tasks.pop(job_id, None)
        if task.cancelled():
            logger.warning("job %s task was cancelled", job_id)
        elif task.exception() is not None:
            logger.error("job %s task crashed: %s", job_id, task.exception())

    async def run(self, submission: JobSubmission) -> None:
        job_id = submission.job_id
        if not self.videos.mark_processing(job_id):
            return
        logger.info("job %s processing", job_id)

        try:
            result = await self._detect(submission)

            weather: WeatherReport | None = None
            if submission.has_location and self._weather is not None and self._weather.enabled:
                weather = await with_retry(
                    partial(self._weather.current, submission.lat, submission.lon),
                    self.retry.max_attempts,
                    self.retry.base_delay_ms,
                    label=f"weather for job {job_id}",
                    sleep=self._sleep,
                )
            elif submission.has_location:
                logger.info("job %s: weather lookup disabled, skipping", job_id)

            alerts = derive_alerts(
                result,
                evaluate_weather_risk(weather),
                primary_count(result, self.settings.primary_class),
                video_id=job_id,
            )
            if self.videos.complete(job_id, result, weather, alerts):
                logger.info("job %s completed with %d alerts", job_id, len(alerts))
        except Exception as exc:
            message = str(exc) or type(exc).__name__
            logger.exception("job %s failed: %s", job_id, message)
            self.videos.fail(job_id, message)

    async def _detect(self, submission: JobSubmission) -> AggregatedResult:
        frames = list(submission.frame_paths)
        if not frames and self.settings.frames_per_video > 0 and is_video(submission.media_path):
            out_dir = Path(self.settings.upload_dir) / "frames" / submission.job_id
            extracted = await asyncio.to_thread(
                self._extract, submission.media_path, out_dir, self.settings.frames_per_video
            )
            frames = [str(p) for p in extracted]

        if not frames:
            frame = await with_retry(
                partial(self._analyze_frame, 0, submission.media_path),
                self.retry.max_attempts,
                self.retry.base_delay_ms,
                label=f"detection for job {submission.job_id}",
                sleep=self._sleep,
            )
            return aggregate([frame])

        outcomes = await analyze_frames(
            frames,
            self._analyze_frame,
            batch_size=self.settings.batch_size,
            batch_delay_ms=self.settings.batch_delay_ms,
            retry=self.retry,
            sleep=self._sleep,
        )
        succeeded = [o.result for o in outcomes if o.ok]
        failed = [o.frame_index for o in outcomes if not o.ok]
        return aggregate(succeeded, failed_frames=failed)

    async def _analyze_frame(self, frame_index: int, path: str) -> FrameResult:
        payload = await self._detection.detect(path)
        return FrameResult(
            frame_index=frame_index,
            detections=payload.predictions,
            behaviors=detect_behaviors(payload.predictions, self.settings.subject_classes),
            processing_time_ms=payload.processing_time_ms,
        )

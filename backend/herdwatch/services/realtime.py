from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from herdwatch.schemas.analysis import AlertDraft, RealtimeAnalysis, RealtimeFrame
from herdwatch.services.alerts import realtime_candidate, save_alerts
from herdwatch.services.detection import DetectionClient
from herdwatch.services.log_book import LogBook
from herdwatch.services.throttle import ThrottleGate

logger = logging.getLogger(__name__)

Emit = Callable[[str, dict[str, Any]], Awaitable[None]]


def _now_ms() -> int:
    return int(time.time() * 1000)


class RealtimeAnalyzer:
    """Handles frames arriving on live connections.

    Every frame yields an ``analysis_result``. Alerts and log updates are only
    derived when the shared throttle gate accepts the frame's emission key
    (the video id, or the connection id when the client sent none).
    """

    def __init__(
        self,
        detection_client: DetectionClient,
        throttle: ThrottleGate,
        log_book: LogBook,
        session_factory: sessionmaker,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self._detection = detection_client
        self._throttle = throttle
        self._log_book = log_book
        self._session_factory = session_factory
        self._clock = clock

    async def handle_frame(self, connection_id: str, frame: RealtimeFrame, emit: Emit) -> None:
        """Analyze one frame and push the resulting events to its connection.

        A failure on this connection never leaves the shared gate closed for
        other connections watching the same key: if the fan-out raises, the
        acceptance is reverted.
        """
        key = frame.video_id or connection_id
        try:
            analysis = await self._detection.analyze_realtime(frame.frame_base64, frame.video_id, frame.video_time)
        except Exception as exc:
            logger.exception("realtime analysis failed for connection %s", connection_id)
            await self._report_error(frame, exc, emit)
            return

        logger.debug(
            "realtime %s @%.2fs: %d cattle, abnormal=%s",
            key,
            frame.video_time,
            analysis.cattle_count,
            analysis.has_abnormal_behavior,
        )

        now = self._clock()
        if self._throttle.try_emit(key, now):
            try:
                await self._fan_out(key, frame, analysis, emit)
            except Exception as exc:
                self._throttle.revert(key, now)
                logger.exception("realtime fan-out failed for connection %s, reopened %s", connection_id, key)
                await self._report_error(frame, exc, emit)
        else:
            logger.debug("emission for %s throttled", key)

        await emit(
            "analysis_result",
            {
                "timestamp": frame.timestamp,
                "videoTime": frame.video_time,
                "result": analysis.model_dump(mode="json"),
            },
        )

    async def _report_error(self, frame: RealtimeFrame, exc: Exception, emit: Emit) -> None:
        await emit(
            "analysis_error",
            {"error": str(exc) or type(exc).__name__, "videoId": frame.video_id, "videoTime": frame.video_time},
        )

    async def _fan_out(self, key: str, frame: RealtimeFrame, analysis: RealtimeAnalysis, emit: Emit) -> None:
        draft, abnormal = realtime_candidate(analysis, key, frame.video_time)
        entry = self._log_book.record(draft, analysis, category="behavior")
        self._persist(draft)

        if abnormal:
            await emit(
                "abnormal_behavior_alert",
                {
                    **draft.model_dump(mode="json"),
                    "videoId": frame.video_id,
                    "videoTime": frame.video_time,
                    "timestamp": entry.ts,
                },
            )
        await emit("log_update", entry.model_dump(mode="json"))

    def _persist(self, draft: AlertDraft) -> None:
        try:
            with self._session_factory() as db:
                save_alerts(db, [draft])
                db.commit()
        except SQLAlchemyError:
            # the live push still goes out
            logger.exception("failed to store realtime alert for %s", draft.source)

from __future__ import annotations

import threading
import uuid
from datetime import datetime, timezone

from herdwatch.schemas.analysis import AlertDraft, LogEntry, RealtimeAnalysis

DEFAULT_CAPACITY = 100


def _camera_label(source: str | None) -> str:
    # "video_3" -> "Camera 3"
    if source and "_" in source:
        suffix = source.split("_", 1)[1]
        if suffix:
            return f"Camera {suffix}"
    return "Camera 1"


class LogBook:
    """Newest-first in-memory log of realtime emissions, bounded to ``capacity`` entries."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        self.capacity = capacity
        self._lock = threading.Lock()
        self._entries: list[LogEntry] = []

    def record(self, draft: AlertDraft, analysis: RealtimeAnalysis, category: str = "behavior") -> LogEntry:
        now = datetime.now(timezone.utc).isoformat()
        entry = LogEntry(
            id=f"LOG-{uuid.uuid4().hex[:12]}",
            ts=now,
            category=category,
            severity=draft.severity,
            camera=_camera_label(draft.source),
            location=str(draft.data.get("location", "Farm Area")),
            title=draft.title,
            message=draft.message,
            video_time=float(draft.data.get("video_time", 0.0)),
            cattle_count=analysis.cattle_count,
            confidence=draft.data.get("confidence"),
            is_realtime=True,
        )
        self.append(entry)
        return entry

    def append(self, entry: LogEntry) -> None:
        with self._lock:
            self._entries.insert(0, entry)
            del self._entries[self.capacity :]

    def list(self, category: str | None = None, severity: str | None = None, camera: str | None = None) -> list[LogEntry]:
        with self._lock:
            entries = list(self._entries)
        if category and category != "all":
            entries = [e for e in entries if e.category == category]
        if severity:
            entries = [e for e in entries if e.severity == severity]
        if camera:
            entries = [e for e in entries if camera in e.camera]
        return entries

    def delete(self, log_id: str) -> LogEntry | None:
        with self._lock:
            for idx, entry in enumerate(self._entries):
                if entry.id == log_id:
                    return self._entries.pop(idx)
        return None

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            return count

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

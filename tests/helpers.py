from __future__ import annotations

from collections.abc import Callable
from typing import Any

from herdwatch.schemas.analysis import (
    CurrentWeather,
    Detection,
    DetectionPayload,
    RealtimeAnalysis,
    WeatherReport,
)


def cow(x1: float, y1: float, x2: float, y2: float, confidence: float = 0.9) -> Detection:
    return Detection(class_name="cow", bbox=(x1, y1, x2, y2), confidence=confidence)


class FakeSleep:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class FakeDetection:
    """Stands in for DetectionClient; ``respond`` maps a media path to a payload or an exception."""

    def __init__(
        self,
        respond: Callable[[str], DetectionPayload | Exception] | None = None,
        realtime: RealtimeAnalysis | Exception | None = None,
    ) -> None:
        self.respond = respond or (lambda path: DetectionPayload(predictions=[]))
        self.realtime = realtime or RealtimeAnalysis()
        self.detect_calls: list[str] = []
        self.realtime_calls: list[tuple[str, str | None, float]] = []
        self.closed = False

    async def detect(self, path) -> DetectionPayload:
        self.detect_calls.append(str(path))
        outcome = self.respond(str(path))
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def analyze_realtime(self, frame_b64: str, video_id: str | None, video_time: float) -> RealtimeAnalysis:
        self.realtime_calls.append((frame_b64, video_id, video_time))
        if isinstance(self.realtime, Exception):
            raise self.realtime
        return self.realtime

    async def health(self) -> dict[str, Any]:
        return {"status": "healthy", "service": "fake-detector", "version": "test", "features": None}

    async def aclose(self) -> None:
        self.closed = True


class FakeWeather:
    def __init__(self, report: WeatherReport | Exception | None = None, enabled: bool = True) -> None:
        self.report = report or WeatherReport(current=CurrentWeather(temperature=20.0, humidity=50.0, description="clear sky"))
        self.enabled = enabled
        self.calls: list[tuple[float, float]] = []

    async def current(self, lat: float, lon: float) -> WeatherReport:
        self.calls.append((lat, lon))
        if isinstance(self.report, Exception):
            raise self.report
        return self.report

    async def aclose(self) -> None:
        pass



from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass

from fastapi import Request
from sqlalchemy.orm import Session, sessionmaker

from herdwatch.core.config import Settings
from herdwatch.services.detection import DetectionClient
from herdwatch.services.log_book import LogBook
from herdwatch.services.orchestrator import AnalysisOrchestrator
from herdwatch.services.realtime import RealtimeAnalyzer
from herdwatch.services.throttle import ThrottleGate
from herdwatch.services.weather import WeatherClient


@dataclass
class Services:
    """Process-wide collaborators, built once when the app starts."""

    settings: Settings
    session_factory: sessionmaker
    throttle: ThrottleGate
    log_book: LogBook
    detection: DetectionClient
    weather: WeatherClient
    orchestrator: AnalysisOrchestrator
    realtime: RealtimeAnalyzer

    async def aclose(self) -> None:
        await self.orchestrator.drain()
        await self.detection.aclose()
        await self.weather.aclose()


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_db(request: Request) -> Iterator[Session]:
    db = request.app.state.services.session_factory()
    try:
        yield db
    finally:
        db.close()

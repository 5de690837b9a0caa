from __future__ import annotations

import pytest

import herdwatch.models  # noqa: F401  registers tables on Base.metadata
from helpers import FakeDetection, FakeSleep, FakeWeather
from herdwatch.api.deps import Services
from herdwatch.core.config import Settings
from herdwatch.db import build_session_factory, create_schema
from herdwatch.services.log_book import LogBook
from herdwatch.services.orchestrator import AnalysisOrchestrator
from herdwatch.services.realtime import RealtimeAnalyzer
from herdwatch.services.throttle import ThrottleGate


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'herdwatch.db'}",
        upload_dir=str(tmp_path / "uploads"),
        weather_api_key="",
        allowed_origins=["*"],
    )


@pytest.fixture
def session_factory(settings):
    # file-backed so that request threads and the event loop get separate connections
    factory = build_session_factory(settings.database_url)
    create_schema(factory)
    return factory


@pytest.fixture
def detection() -> FakeDetection:
    return FakeDetection()


@pytest.fixture
def weather() -> FakeWeather:
    return FakeWeather()


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
def services(settings, session_factory, detection, weather, fake_sleep) -> Services:
    throttle = ThrottleGate(settings.throttle_interval_ms)
    log_book = LogBook(settings.log_capacity)
    return Services(
        settings=settings,
        session_factory=session_factory,
        throttle=throttle,
        log_book=log_book,
        detection=detection,
        weather=weather,
        orchestrator=AnalysisOrchestrator(session_factory, detection, weather, settings, sleep=fake_sleep),
        realtime=RealtimeAnalyzer(detection, throttle, log_book, session_factory),
    )

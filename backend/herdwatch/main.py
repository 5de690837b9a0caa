from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from herdwatch.api.deps import Services
from herdwatch.api.routes import router
from herdwatch.api.ws import LiveConnections, ws_router
from herdwatch.core.config import Settings
from herdwatch.core.config import settings as default_settings
from herdwatch.core.logging import setup_logging
from herdwatch.db import build_session_factory, create_schema
from herdwatch.services.detection import DetectionClient
from herdwatch.services.log_book import LogBook
from herdwatch.services.orchestrator import AnalysisOrchestrator
from herdwatch.services.realtime import RealtimeAnalyzer
from herdwatch.services.throttle import ThrottleGate
from herdwatch.services.weather import WeatherClient

logger = logging.getLogger(__name__)


def build_services(settings: Settings) -> Services:
    session_factory = build_session_factory(settings.database_url)
    throttle = ThrottleGate(settings.throttle_interval_ms, max_keys=settings.throttle_max_keys)
    log_book = LogBook(settings.log_capacity)
    detection = DetectionClient(settings.ai_api_url, timeout_sec=settings.ai_api_timeout_sec)
    weather = WeatherClient(
        settings.weather_api_key,
        base_url=settings.weather_api_url,
        timeout_sec=settings.weather_timeout_sec,
    )
    return Services(
        settings=settings,
        session_factory=session_factory,
        throttle=throttle,
        log_book=log_book,
        detection=detection,
        weather=weather,
        orchestrator=AnalysisOrchestrator(session_factory, detection, weather, settings),
        realtime=RealtimeAnalyzer(detection, throttle, log_book, session_factory),
    )


def create_app(settings: Settings | None = None, services: Services | None = None) -> FastAPI:
    settings = settings or default_settings
    setup_logging(settings.log_level, settings.log_file)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        built = services or build_services(settings)
        Path(settings.upload_dir).mkdir(parents=True, exist_ok=True)
        create_schema(built.session_factory)
        app.state.services = built
        app.state.connections = LiveConnections(built.throttle)
        logger.info("%s started", settings.app_name)
        try:
            yield
        finally:
            await built.aclose()
            logger.info("%s stopped", settings.app_name)

    app = FastAPI(title=settings.app_name, version="1.0.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router, prefix="/api")
    app.include_router(ws_router)

    @app.get("/health")
    def health() -> dict:
        state = app.state
        return {
            "status": "ok",
            "active_jobs": len(state.services.orchestrator.active_jobs()),
            "realtime_clients": len(state.connections),
        }

    return app


app = create_app()

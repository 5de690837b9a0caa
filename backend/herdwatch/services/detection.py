from __future__ import annotations

import logging
import mimetypes
from pathlib import Path
from typing import Any

import httpx
from pydantic import ValidationError

from herdwatch.schemas.analysis import DetectionFailure, DetectionPayload, RealtimeAnalysis

logger = logging.getLogger(__name__)


class DetectionServiceError(RuntimeError):
    """The detection service failed, timed out or answered with an unusable payload."""


def parse_detection_response(payload: Any) -> DetectionPayload | DetectionFailure:
    if not isinstance(payload, dict):
        raise DetectionServiceError(f"unexpected detection response type: {type(payload).__name__}")

    if payload.get("status") == "error":
        return DetectionFailure(error=str(payload.get("error") or "detection service reported an error"))

    if not isinstance(payload.get("predictions"), list):
        raise DetectionServiceError("detection response has no predictions list")

    data = {
        "predictions": payload["predictions"],
        "confidence": payload.get("confidence", 0.0) or 0.0,
        "processing_time_ms": payload.get("processingTimeMs", payload.get("processing_time_ms", 0.0)) or 0.0,
    }
    try:
        return DetectionPayload.model_validate(data)
    except ValidationError as exc:
        raise DetectionServiceError(f"malformed detection response: {exc.error_count()} invalid fields") from exc


class DetectionClient:
    def __init__(self, base_url: str, timeout_sec: float = 60.0, client: httpx.AsyncClient | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout_sec)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _post(self, path: str, **kwargs: Any) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = await self._client.post(url, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as exc:
            raise DetectionServiceError(f"detection service returned HTTP {exc.response.status_code}") from exc
        except httpx.TimeoutException as exc:
            raise DetectionServiceError(f"detection service timed out: {url}") from exc
        except httpx.HTTPError as exc:
            raise DetectionServiceError(f"detection service unreachable: {exc}") from exc
        except ValueError as exc:
            raise DetectionServiceError("detection service returned invalid JSON") from exc

    async def detect(self, path: str | Path) -> DetectionPayload:
        file_path = Path(path)
        mime = mimetypes.guess_type(file_path.name)[0] or "application/octet-stream"
        with file_path.open("rb") as handle:
            payload = await self._post("/analyze/file", files={"file": (file_path.name, handle, mime)})

        parsed = parse_detection_response(payload)
        if isinstance(parsed, DetectionFailure):
            raise DetectionServiceError(parsed.error)
        logger.debug("detected %d objects in %s", len(parsed.predictions), file_path.name)
        return parsed

    async def analyze_realtime(self, frame_b64: str, video_id: str | None, video_time: float) -> RealtimeAnalysis:
        payload = await self._post(
            "/analyze/realtime",
            json={"frame": frame_b64, "video_id": video_id, "video_time": video_time},
        )
        if isinstance(payload, dict) and payload.get("status") == "error":
            raise DetectionServiceError(str(payload.get("error") or "realtime analysis failed"))
        try:
            return RealtimeAnalysis.model_validate(payload)
        except ValidationError as exc:
            raise DetectionServiceError("malformed realtime analysis response") from exc

    async def health(self) -> dict[str, Any]:
        try:
            response = await self._client.get(f"{self.base_url}/health", timeout=5.0)
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("detection service health check failed: %s", exc)
            return {"status": "unhealthy", "error": str(exc)}
        if not isinstance(body, dict):
            body = {}
        return {
            "status": "healthy",
            "service": body.get("service"),
            "version": body.get("version"),
            "features": body.get("features"),
        }

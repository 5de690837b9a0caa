from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from herdwatch.schemas.analysis import CurrentWeather, WeatherReport, WeatherRisk

logger = logging.getLogger(__name__)

HIGH_TEMPERATURE_C = 30.0
LOW_TEMPERATURE_C = 5.0
HIGH_HUMIDITY_PCT = 80.0
BAD_WEATHER_KEYWORDS = ("rain", "snow", "storm", "thunder")
HEAVY_RAIN_MM_PER_HOUR = 5.0
THUNDERSTORM_KEYWORDS = ("thunder", "lightning")


class WeatherServiceError(RuntimeError):
    pass


def parse_weather(payload: Any) -> WeatherReport:
    """Convert an OpenWeather ``/weather`` response into a WeatherReport."""
    if not isinstance(payload, dict):
        raise WeatherServiceError("unexpected weather response type")
    try:
        main = payload["main"]
        conditions = payload.get("weather") or [{}]
        rain = payload.get("rain") or {}
        current = CurrentWeather(
            temperature=main["temp"],
            humidity=main["humidity"],
            pressure=main.get("pressure"),
            description=str(conditions[0].get("description", "")),
            wind_speed=(payload.get("wind") or {}).get("speed"),
            rain=rain.get("1h", 0.0),
        )
    except (KeyError, TypeError, IndexError, AttributeError, ValidationError) as exc:
        raise WeatherServiceError(f"malformed weather response: {exc}") from exc

    coord = payload.get("coord") or {}
    location = {
        "name": payload.get("name"),
        "country": (payload.get("sys") or {}).get("country"),
        "lat": coord.get("lat"),
        "lon": coord.get("lon"),
    }
    return WeatherReport(current=current, alerts=_condition_alerts(current, conditions), location=location)


def _condition_alerts(current: CurrentWeather, conditions: list) -> list[WeatherRisk]:
    """Alerts carried by the observed conditions themselves (heavy rain, thunderstorms)."""
    alerts: list[WeatherRisk] = []
    if current.rain > HEAVY_RAIN_MM_PER_HOUR:
        alerts.append(
            WeatherRisk(type="rain", severity="medium", message=f"Rainfall: {current.rain}mm/h - Rain is falling")
        )

    for cond in conditions:
        if not isinstance(cond, dict):
            continue
        description = str(cond.get("description", "")).lower()
        if cond.get("main") == "Thunderstorm" or any(word in description for word in THUNDERSTORM_KEYWORDS):
            alerts.append(
                WeatherRisk(
                    type="thunderstorm",
                    severity="high",
                    message="Thunderstorm is occurring - Check cattle safety",
                )
            )
            break
    return alerts


def evaluate_weather_risk(report: WeatherReport | None) -> list[WeatherRisk]:
    if report is None:
        return []

    current = report.current
    risks: list[WeatherRisk] = []

    if current.temperature > HIGH_TEMPERATURE_C:
        risks.append(
            WeatherRisk(
                type="high_temperature",
                severity="high",
                message=f"Temperature is {current.temperature}°C, which is high for cattle",
            )
        )
    elif current.temperature < LOW_TEMPERATURE_C:
        risks.append(
            WeatherRisk(
                type="low_temperature",
                severity="high",
                message=f"Temperature is {current.temperature}°C, which is low for cattle",
            )
        )

    if current.humidity > HIGH_HUMIDITY_PCT:
        risks.append(
            WeatherRisk(type="high_humidity", severity="medium", message=f"Humidity is {current.humidity}%, which is high")
        )

    description = current.description.lower()
    if any(keyword in description for keyword in BAD_WEATHER_KEYWORDS):
        risks.append(
            WeatherRisk(type="bad_weather", severity="medium", message=f"Bad weather detected: {current.description}")
        )

    # alerts already issued by the weather provider pass through unchanged
    risks.extend(report.alerts)
    return risks


class WeatherClient:
    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.openweathermap.org/data/2.5",
        timeout_sec: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout_sec)

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def current(self, lat: float, lon: float) -> WeatherReport:
        params = {"lat": lat, "lon": lon, "appid": self.api_key, "units": "metric", "lang": "en"}
        try:
            response = await self._client.get(f"{self.base_url}/weather", params=params)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            raise WeatherServiceError(f"weather service returned HTTP {exc.response.status_code}") from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise WeatherServiceError(f"weather service unavailable: {exc}") from exc

        report = parse_weather(payload)
        logger.debug("weather at (%s, %s): %s", lat, lon, report.current.description)
        return report

import asyncio

import httpx
import pytest

from herdwatch.schemas.analysis import CurrentWeather, WeatherReport, WeatherRisk
from herdwatch.services.weather import WeatherClient, WeatherServiceError, evaluate_weather_risk, parse_weather

OPENWEATHER_SAMPLE = {
    "coord": {"lon": 36.8, "lat": -1.3},
    "weather": [{"id": 500, "main": "Rain", "description": "light rain"}],
    "main": {"temp": 32.5, "pressure": 1012, "humidity": 85},
    "wind": {"speed": 3.1},
    "rain": {"1h": 0.4},
    "sys": {"country": "KE"},
    "name": "Nairobi",
}


def _report(temperature: float, humidity: float = 50.0, description: str = "clear sky") -> WeatherReport:
    return WeatherReport(current=CurrentWeather(temperature=temperature, humidity=humidity, description=description))


def test_parse_openweather_payload() -> None:
    report = parse_weather(OPENWEATHER_SAMPLE)

    assert report.current.temperature == 32.5
    assert report.current.humidity == 85
    assert report.current.description == "light rain"
    assert report.current.rain == 0.4
    assert report.location["name"] == "Nairobi"


def test_parse_rejects_missing_main() -> None:
    with pytest.raises(WeatherServiceError):
        parse_weather({"weather": []})


def test_risks_for_hot_humid_rainy_day() -> None:
    risks = evaluate_weather_risk(parse_weather(OPENWEATHER_SAMPLE))
    assert [(r.type, r.severity) for r in risks] == [
        ("high_temperature", "high"),
        ("high_humidity", "medium"),
        ("bad_weather", "medium"),
    ]


def test_cold_day_is_high_risk() -> None:
    risks = evaluate_weather_risk(_report(2.0))
    assert [(r.type, r.severity) for r in risks] == [("low_temperature", "high")]


def test_mild_day_and_missing_report_have_no_risk() -> None:
    assert evaluate_weather_risk(_report(20.0)) == []
    assert evaluate_weather_risk(None) == []


def test_provider_alerts_are_appended() -> None:
    report = _report(20.0)
    report.alerts.append(WeatherRisk(type="provider", severity="critical", message="flood warning"))
    assert evaluate_weather_risk(report)[-1].message == "flood warning"


def test_client_fetches_metric_weather() -> None:
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(request.url.params)
        return httpx.Response(200, json=OPENWEATHER_SAMPLE)

    async def run() -> WeatherReport:
        client = WeatherClient("key", "https://weather.test", client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
        try:
            return await client.current(-1.3, 36.8)
        finally:
            await client.aclose()

    report = asyncio.run(run())
    assert report.current.temperature == 32.5
    assert seen["units"] == "metric"
    assert seen["appid"] == "key"


def test_client_maps_http_errors() -> None:
    async def run() -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(401, json={"message": "bad key"}))
        client = WeatherClient("key", "https://weather.test", client=httpx.AsyncClient(transport=transport))
        try:
            await client.current(0, 0)
        finally:
            await client.aclose()

    with pytest.raises(WeatherServiceError, match="HTTP 401"):
        asyncio.run(run())


def test_client_disabled_without_key() -> None:
    assert WeatherClient("").enabled is False


def test_heavy_rain_and_thunderstorm_become_report_alerts() -> None:
    payload = {
        **OPENWEATHER_SAMPLE,
        "weather": [{"id": 202, "main": "Thunderstorm", "description": "thunderstorm with heavy rain"}],
        "main": {"temp": 22.0, "humidity": 60},
        "rain": {"1h": 7.5},
    }

    report = parse_weather(payload)

    assert [(a.type, a.severity) for a in report.alerts] == [("rain", "medium"), ("thunderstorm", "high")]
    risks = evaluate_weather_risk(report)
    assert [r.type for r in risks] == ["bad_weather", "rain", "thunderstorm"]


def test_light_rain_raises_no_report_alert() -> None:
    assert parse_weather(OPENWEATHER_SAMPLE).alerts == []

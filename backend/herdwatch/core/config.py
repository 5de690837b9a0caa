from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "HerdWatch Cattle Monitoring API"
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    database_url: str = "sqlite:///./herdwatch.db"
    upload_dir: str = "uploads"
    max_upload_mb: int = 100
    allowed_origins: list[str] = Field(default_factory=lambda: ["http://localhost:5173"])
    log_level: str = "INFO"
    log_file: str | None = None

    ai_api_url: str = "http://localhost:5002"
    ai_api_timeout_sec: float = 60.0

    retry_max_attempts: int = Field(default=3, ge=1)
    retry_base_delay_ms: int = Field(default=1000, ge=0)
    batch_size: int = Field(default=3, ge=1)
    batch_delay_ms: int = Field(default=1000, ge=0)
    # 0 sends an uploaded video to the detector as a single file
    frames_per_video: int = Field(default=0, ge=0)

    throttle_interval_ms: int = Field(default=30_000, ge=0)
    throttle_max_keys: int | None = 10_000
    log_capacity: int = Field(default=100, ge=1)

    weather_api_key: str = ""
    weather_api_url: str = "https://api.openweathermap.org/data/2.5"
    weather_timeout_sec: float = 10.0

    primary_class: str = "cow"
    subject_classes: list[str] = Field(default_factory=lambda: ["cow"])
    tracked_classes: list[str] = Field(default_factory=lambda: ["cow", "calf"])
    recent_alerts_limit: int = Field(default=10, ge=1)


settings = Settings()

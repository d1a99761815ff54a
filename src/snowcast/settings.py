from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal
from urllib.parse import urlparse
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .adapters.weather.open_meteo import DEFAULT_TIMEOUT_SECONDS, OPEN_METEO_FORECAST_URL
from .domain.models import Location
from .domain.registry import DEFAULT_LOCATIONS, LocationRegistry

PROJECT_ROOT = Path(__file__).resolve().parents[2]


class LocationSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    lat: float = Field(ge=-90, le=90)
    lon: float = Field(ge=-180, le=180)
    elevation_m: int

    @field_validator("id", "name")
    @classmethod
    def validate_non_empty_text(cls, value: str) -> str:
        text = value.strip()
        if not text:
            raise ValueError("locations[].id and locations[].name must not be empty")
        return text

    def to_location(self) -> Location:
        return Location(
            id=self.id,
            name=self.name,
            lat=self.lat,
            lon=self.lon,
            elevation_m=self.elevation_m,
        )


class UpstreamSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    base_url: str = OPEN_METEO_FORECAST_URL
    timezone: str = "Europe/Paris"
    timeout_seconds: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0, le=60)
    user_agent: str = "snowcast/0.1"

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, value: str) -> str:
        text = value.strip()
        parsed = urlparse(text)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError("upstream.base_url must be an absolute http(s) URL")
        return text

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except ZoneInfoNotFoundError as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value


class AggregationSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    max_workers: int | None = Field(default=None, ge=1, le=64)
    source: str = "Open-Meteo"


class HttpSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    cache_max_age_seconds: int = Field(default=3600, ge=0)
    stale_while_revalidate_seconds: int = Field(default=7200, ge=0)
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    @property
    def cache_control(self) -> str:
        return (
            f"s-maxage={self.cache_max_age_seconds}, "
            f"stale-while-revalidate={self.stale_while_revalidate_seconds}"
        )


class ForecastYamlSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    locations: list[LocationSettings] = Field(
        default_factory=lambda: [
            LocationSettings.model_validate(location.model_dump()) for location in DEFAULT_LOCATIONS
        ]
    )
    upstream: UpstreamSettings = Field(default_factory=UpstreamSettings)
    aggregation: AggregationSettings = Field(default_factory=AggregationSettings)
    http: HttpSettings = Field(default_factory=HttpSettings)


class EnvSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    snowcast_env: Literal["dev", "test", "prod"] = "dev"
    snowcast_config_path: Path = Path("config/forecast.yaml")
    snowcast_log_level: str = "INFO"
    snowcast_host: str = "127.0.0.1"
    snowcast_port: int = Field(default=8000, ge=1, le=65535)

    @field_validator("snowcast_log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {value}")
        return level


class AppSettings(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    env: EnvSettings
    yaml: ForecastYamlSettings
    project_root: Path
    config_path: Path
    registry: LocationRegistry


def build_registry(yaml_settings: ForecastYamlSettings) -> LocationRegistry:
    return LocationRegistry(location.to_location() for location in yaml_settings.locations)


def _resolve_project_path(path: Path) -> Path:
    if path.is_absolute():
        return path
    return (PROJECT_ROOT / path).resolve()


def _load_yaml_settings(path: Path) -> ForecastYamlSettings:
    if not path.exists():
        raise FileNotFoundError(f"Forecast config file not found: {path}")

    raw_config = yaml.safe_load(path.read_text(encoding="utf-8"))
    if raw_config is None:
        raw_config = {}
    if not isinstance(raw_config, dict):
        raise ValueError("Forecast config must be a YAML mapping/object at the top level")
    return ForecastYamlSettings.model_validate(raw_config)


def settings_from_yaml(
    yaml_settings: ForecastYamlSettings,
    *,
    env: EnvSettings | None = None,
    config_path: Path | None = None,
) -> AppSettings:
    env = env or EnvSettings()
    return AppSettings(
        env=env,
        yaml=yaml_settings,
        project_root=PROJECT_ROOT,
        config_path=config_path or _resolve_project_path(env.snowcast_config_path),
        registry=build_registry(yaml_settings),
    )


@lru_cache(maxsize=1)
def load_settings() -> AppSettings:
    env = EnvSettings()
    config_path = _resolve_project_path(env.snowcast_config_path)
    yaml_settings = _load_yaml_settings(config_path)
    return settings_from_yaml(yaml_settings, env=env, config_path=config_path)

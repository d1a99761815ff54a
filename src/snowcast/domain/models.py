from __future__ import annotations

from datetime import date, datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator


def isoformat_utc(value: datetime) -> str:
    """Render a timestamp as ISO-8601 UTC with millisecond precision and a ``Z`` suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    text = value.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return text.replace("+00:00", "Z")


class Location(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str
    name: str
    lat: float
    lon: float
    elevation_m: int

    @field_validator("id", "name")
    @classmethod
    def validate_non_empty_text(cls, value: str) -> str:
        text = value.strip()
        if not text:
            raise ValueError("location text fields must not be empty")
        return text


class RawForecast(BaseModel):
    """The ``daily`` object of an Open-Meteo forecast response.

    Arrays are index-aligned with ``time``. Numeric arrays may hold ``null``
    entries and may be missing entirely; the transformer applies defaults.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    time: list[date]
    temperature_2m_max: list[float | None] = Field(default_factory=list)
    temperature_2m_min: list[float | None] = Field(default_factory=list)
    snowfall_sum: list[float | None] = Field(default_factory=list)
    precipitation_sum: list[float | None] = Field(default_factory=list)
    weathercode: list[int | None] = Field(default_factory=list)
    windspeed_10m_max: list[float | None] = Field(default_factory=list)
    winddirection_10m_dominant: list[float | None] = Field(default_factory=list)


class DayRecord(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    date: date
    label: str = Field(alias="day")
    high_c: int = Field(alias="high")
    low_c: int = Field(alias="low")
    snow_label: str = Field(alias="snow")
    rain_label: str | None = Field(default=None, alias="rain")
    weather_text: str = Field(alias="wx")
    wind_max_label: str = Field(alias="windMax")
    wind_direction: str = Field(alias="windDir")

    @field_serializer("high_c", "low_c")
    def serialize_temperature(self, value: int) -> str:
        return f"{value}°C"


class ResortForecast(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    days: list[DayRecord]
    summary: str
    elevation_label: str = Field(alias="elevation")
    name: str


class AggregateResponse(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    forecasts: dict[str, ResortForecast] = Field(default_factory=dict)
    resort_count: int = Field(alias="resortCount", ge=0)
    source: str
    fetched_at: datetime = Field(alias="fetchedAt")

    @field_serializer("fetched_at")
    def serialize_fetched_at(self, value: datetime) -> str:
        return isoformat_utc(value)

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)

"""
Sensor reading model and conversion from raw documents.

Raw readings arrive as JSON documents from the ``devices/<id>/readings``
collections. Anything without the required structure is dropped here so the
chart pipeline only ever sees well-formed readings.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)


class InvalidTimestamp(ValueError):
    """A timestamp value has none of the supported shapes."""


def to_datetime(value: Any) -> datetime:
    """
    Normalize a timestamp to an aware UTC datetime.

    Accepted shapes:
    - store timestamp mapping: ``{"seconds", "nanoseconds"}`` or
      ``{"_seconds", "_nanoseconds"}``
    - any object with a ``to_datetime()`` method
    - ``datetime`` (naive values are taken as UTC)
    - ISO-8601 string
    - epoch number in milliseconds

    Raises:
        InvalidTimestamp: for anything else
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    if isinstance(value, Mapping):
        seconds = value.get("seconds", value.get("_seconds"))
        nanos = value.get("nanoseconds", value.get("_nanoseconds", 0)) or 0
        if _is_number(seconds) and _is_number(nanos):
            return datetime.fromtimestamp(seconds + nanos / 1e9, tz=timezone.utc)
        raise InvalidTimestamp(f"Timestamp mapping without seconds: {value!r}")

    converter = getattr(value, "to_datetime", None)
    if callable(converter):
        return to_datetime(converter())

    if _is_number(value):
        try:
            return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as e:
            raise InvalidTimestamp(f"Epoch out of range: {value!r}") from e

    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError as e:
            raise InvalidTimestamp(f"Unparseable timestamp: {value!r}") from e
        return to_datetime(parsed)

    raise InvalidTimestamp(f"Unsupported timestamp type: {type(value).__name__}")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _number_or_zero(value: Any) -> float:
    # Devices occasionally send null or garbage for a single axis
    return float(value) if _is_number(value) else 0.0


class Vector3(BaseModel):
    model_config = ConfigDict(frozen=True)

    x: float = Field(0.0, description="X axis")
    y: float = Field(0.0, description="Y axis")
    z: float = Field(0.0, description="Z axis")

    @field_validator("x", "y", "z", mode="before")
    @classmethod
    def axis_value(cls, value):
        return _number_or_zero(value)


class AverageSample(BaseModel):
    model_config = ConfigDict(frozen=True)

    accel: Vector3 = Field(..., description="Windowed average accelerometer (m/s²)")
    gyro: Vector3 = Field(..., description="Windowed average gyroscope (rad/s)")


class LastSample(AverageSample):
    ts_local: float = Field(0.0, description="Device clock at sampling time (ms)")

    @field_validator("ts_local", mode="before")
    @classmethod
    def local_time(cls, value):
        return _number_or_zero(value)


class SensorReading(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    ts: datetime = Field(..., description="Server timestamp, normalized to UTC")
    count: int = Field(0, description="Samples in the averaging window")
    last: LastSample
    avg: AverageSample

    @field_validator("id", mode="before")
    @classmethod
    def document_id(cls, value):
        return "" if value is None else str(value)

    @field_validator("ts", mode="before")
    @classmethod
    def normalize_ts(cls, value):
        return to_datetime(value)

    @field_validator("count", mode="before")
    @classmethod
    def sample_count(cls, value):
        return int(value) if _is_number(value) else 0


def parse_reading(raw: Any) -> Optional[SensorReading]:
    """Build a reading from a raw document, or None if it is malformed."""
    if not isinstance(raw, Mapping):
        return None
    try:
        return SensorReading.model_validate(dict(raw))
    except ValidationError as e:
        logger.debug(f"Skipping reading {raw.get('id')}: {e.error_count()} validation errors")
        return None


def parse_readings(raw_items: Optional[Iterable[Any]]) -> List[SensorReading]:
    """Convert raw documents, dropping the ones that fail validation."""
    readings = []
    for raw in raw_items or ():
        reading = parse_reading(raw)
        if reading is not None:
            readings.append(reading)
    return readings


def reading_summary(reading: SensorReading) -> Dict[str, Any]:
    """Flat view of the instantaneous sample, for the detail page."""
    return {
        "accel_x": reading.last.accel.x,
        "accel_y": reading.last.accel.y,
        "accel_z": reading.last.accel.z,
        "gyro_x": reading.last.gyro.x,
        "gyro_y": reading.last.gyro.y,
        "gyro_z": reading.last.gyro.z,
        "ts_local": reading.last.ts_local,
        "count": reading.count,
    }

"""
Time-series preparation for the sensor charts.

Raw documents -> validated readings -> window filter -> chronological sort ->
per-point frame (axes, magnitudes, time labels) -> snapshot views.
Everything here is pure; ``now`` is always passed in.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Any, Dict, Iterable, List, Optional, Tuple
from zoneinfo import ZoneInfo

import numpy as np
import pandas as pd

from sensorwatch import config
from sensorwatch.frontend.readings import SensorReading, parse_readings

# (key, label, minutes)
TIME_RANGES = [
    ("30d", "30 días", 30 * 24 * 60),
    ("14d", "14 días", 14 * 24 * 60),
    ("7d", "7 días", 7 * 24 * 60),
    ("5d", "5 días", 5 * 24 * 60),
    ("3d", "3 días", 3 * 24 * 60),
    ("2d", "2 días", 2 * 24 * 60),
    ("24h", "24 horas", 24 * 60),
    ("12h", "12 horas", 12 * 60),
    ("1h", "1 hora", 60),
    ("30m", "30 minutos", 30),
    ("15m", "15 minutos", 15),
    ("5m", "5 minutos", 5),
    ("1m", "1 minuto", 1),
]
RANGE_KEY = "range"
RANGE_LABEL = "Rango"
DEFAULT_RANGE = "5d"
# An explicit range without both dates behaves like a one hour span
INCOMPLETE_RANGE_MINUTES = 60

RANGE_MINUTES = {key: minutes for key, _, minutes in TIME_RANGES}
RANGE_LABELS = {key: label for key, label, _ in TIME_RANGES}

CHART_TYPES = [
    ("lines", "Líneas"),
    ("area", "Área"),
    ("bars", "Barras"),
    ("radar", "Radar"),
    ("radial", "Radial"),
]
POLAR_TYPES = ("radar", "radial")

MIN_CHART_WIDTH = 800
MAX_CHART_WIDTH = 3000
PIXELS_PER_POINT = 8

END_OF_DAY = time(23, 59, 59, 999000)

FRAME_COLUMNS = [
    "timestamp", "time",
    "accel_x", "accel_y", "accel_z", "accel_magnitude",
    "gyro_x", "gyro_y", "gyro_z", "gyro_magnitude",
]


def display_timezone() -> tzinfo:
    if config.DISPLAY_TIMEZONE.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(config.DISPLAY_TIMEZONE)


@dataclass(frozen=True)
class ChartWindow:
    """
    Either a relative span (``range_key`` in ``TIME_RANGES``) or an explicit
    date range (``range_key == "range"`` with ``start``/``end``).
    """

    range_key: str = DEFAULT_RANGE
    start: Optional[date] = None
    end: Optional[date] = None

    @classmethod
    def relative(cls, range_key: Optional[str] = None) -> "ChartWindow":
        key = range_key or DEFAULT_RANGE
        if key != RANGE_KEY and key not in RANGE_MINUTES:
            raise ValueError(f"Unknown time range: {key!r}")
        return cls(range_key=key)

    @classmethod
    def between(cls, start: date, end: date) -> "ChartWindow":
        if end < start:
            start, end = end, start
        return cls(range_key=RANGE_KEY, start=start, end=end)

    @property
    def is_explicit(self) -> bool:
        return self.range_key == RANGE_KEY and self.start is not None and self.end is not None

    @property
    def minutes(self) -> int:
        return RANGE_MINUTES.get(self.range_key, INCOMPLETE_RANGE_MINUTES)

    @property
    def minute_granularity(self) -> bool:
        return self.range_key.endswith("m")

    def bounds(self, now: datetime, tz: Optional[tzinfo] = None) -> Tuple[datetime, Optional[datetime]]:
        """Inclusive (lower, upper) bounds; upper is None for relative spans."""
        if self.is_explicit:
            tz = tz or display_timezone()
            return (datetime.combine(self.start, time.min, tzinfo=tz),
                    datetime.combine(self.end, END_OF_DAY, tzinfo=tz))
        return now - timedelta(minutes=self.minutes), None

    def label(self) -> str:
        """Window label used in export file names."""
        if self.range_key == RANGE_KEY:
            return f"rango-{self.start.strftime('%d-%m-%Y') if self.start else 'custom'}"
        return RANGE_LABELS.get(self.range_key, self.range_key).replace(" ", "-")


def resolve_window(range_key: Optional[str], start_date: Optional[str] = None,
                   end_date: Optional[str] = None) -> ChartWindow:
    """Build the active window from the dashboard controls."""
    if range_key == RANGE_KEY:
        if start_date and end_date:
            return ChartWindow.between(date.fromisoformat(start_date[:10]), date.fromisoformat(end_date[:10]))
        return ChartWindow(range_key=RANGE_KEY)
    if range_key not in RANGE_MINUTES:
        return ChartWindow.relative(DEFAULT_RANGE)
    return ChartWindow.relative(range_key)


def filter_window(readings: Iterable[SensorReading], window: Optional[ChartWindow], now: datetime,
                  tz: Optional[tzinfo] = None) -> List[SensorReading]:
    """Readings inside the window, oldest first (ties keep input order)."""
    window = window or ChartWindow()
    lower, upper = window.bounds(now, tz)
    kept = [r for r in readings if r.ts >= lower and (upper is None or r.ts <= upper)]
    return sorted(kept, key=lambda r: r.ts)


def magnitude(x: float, y: float, z: float) -> float:
    return float(np.sqrt(x * x + y * y + z * z))


def time_label(ts: datetime, window: ChartWindow, tz: Optional[tzinfo] = None) -> str:
    local = ts.astimezone(tz or display_timezone())
    return local.strftime("%H:%M:%S" if window.minute_granularity else "%H:%M")


def build_chart_frame(readings: List[SensorReading], window: ChartWindow,
                      tz: Optional[tzinfo] = None) -> pd.DataFrame:
    """One row per reading with axis values, magnitudes and a time label."""
    if not readings:
        return pd.DataFrame(columns=FRAME_COLUMNS)

    tz = tz or display_timezone()
    df = pd.DataFrame({
        "timestamp": [r.ts.astimezone(tz) for r in readings],
        "time": [time_label(r.ts, window, tz) for r in readings],
        "accel_x": [r.avg.accel.x for r in readings],
        "accel_y": [r.avg.accel.y for r in readings],
        "accel_z": [r.avg.accel.z for r in readings],
        "gyro_x": [r.avg.gyro.x for r in readings],
        "gyro_y": [r.avg.gyro.y for r in readings],
        "gyro_z": [r.avg.gyro.z for r in readings],
    })
    df["accel_magnitude"] = np.sqrt(df["accel_x"] ** 2 + df["accel_y"] ** 2 + df["accel_z"] ** 2)
    df["gyro_magnitude"] = np.sqrt(df["gyro_x"] ** 2 + df["gyro_y"] ** 2 + df["gyro_z"] ** 2)
    return df[FRAME_COLUMNS]


def radar_data(readings: List[SensorReading]) -> List[Dict[str, Any]]:
    """Absolute per-axis values of the latest reading."""
    if not readings:
        return []
    latest = readings[-1].avg
    return [
        {"axis": "Accel X", "accel": abs(latest.accel.x), "gyro": abs(latest.gyro.x)},
        {"axis": "Accel Y", "accel": abs(latest.accel.y), "gyro": abs(latest.gyro.y)},
        {"axis": "Accel Z", "accel": abs(latest.accel.z), "gyro": abs(latest.gyro.z)},
    ]


def radial_data(frame: pd.DataFrame) -> List[Dict[str, Any]]:
    """Current magnitudes from the latest chart point."""
    if frame.empty:
        return []
    latest = frame.iloc[-1]
    return [
        {"name": "Acelerómetro", "value": float(latest["accel_magnitude"])},
        {"name": "Giroscopio", "value": float(latest["gyro_magnitude"])},
    ]


def chart_width(points: int, chart_type: str) -> int:
    if chart_type in POLAR_TYPES:
        return MIN_CHART_WIDTH
    return max(MIN_CHART_WIDTH, min(MAX_CHART_WIDTH, points * PIXELS_PER_POINT))


def needs_scroll(width: int) -> bool:
    return width > MIN_CHART_WIDTH


@dataclass
class ChartData:
    window: ChartWindow
    chart_type: str
    readings: List[SensorReading]
    frame: pd.DataFrame
    radar: List[Dict[str, Any]] = field(default_factory=list)
    radial: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.readings

    @property
    def width(self) -> int:
        return chart_width(len(self.frame), self.chart_type)

    @property
    def needs_scroll(self) -> bool:
        return needs_scroll(self.width)


def prepare_chart_data(raw_items: Optional[Iterable[Any]], window: Optional[ChartWindow],
                       chart_type: str, now: datetime, tz: Optional[tzinfo] = None) -> ChartData:
    """Run the whole chain from raw documents to chart-ready data."""
    window = window or ChartWindow()
    readings = filter_window(parse_readings(raw_items), window, now, tz)
    frame = build_chart_frame(readings, window, tz)
    return ChartData(
        window=window,
        chart_type=chart_type,
        readings=readings,
        frame=frame,
        radar=radar_data(readings),
        radial=radial_data(frame),
    )

"""Device status and "last seen" labels. Status is never stored, only derived."""

from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sensorwatch.frontend.readings import InvalidTimestamp, to_datetime

ONLINE_WINDOW = timedelta(minutes=3)
IDLE_WINDOW = timedelta(minutes=30)

ONLINE = "online"
OFFLINE = "offline"

STATUS_LABELS = {ONLINE: "En línea", OFFLINE: "Desconectado"}


def last_active(device: Optional[Dict[str, Any]], last_reading: Optional[Dict[str, Any]]) -> Optional[datetime]:
    """Timestamp of the newest reading, falling back to the device's lastActive."""
    for value in ((last_reading or {}).get("ts"), (device or {}).get("lastActive")):
        if value is None:
            continue
        try:
            return to_datetime(value)
        except InvalidTimestamp:
            continue
    return None


def device_status(last_seen: Optional[datetime], now: datetime) -> str:
    if last_seen is None:
        return OFFLINE
    return ONLINE if now - last_seen <= ONLINE_WINDOW else OFFLINE


def detailed_status(last_seen: Optional[datetime], now: datetime) -> Dict[str, str]:
    """Three-level status shown on the device page: label + bootstrap color."""
    if last_seen is None:
        return {"status": "Desconectado", "color": "danger"}
    elapsed = now - last_seen
    if elapsed < ONLINE_WINDOW:
        return {"status": "Activo", "color": "success"}
    if elapsed < IDLE_WINDOW:
        return {"status": "Inactivo", "color": "warning"}
    return {"status": "Desconectado", "color": "danger"}


def relative_label(last_seen: Optional[datetime], now: datetime) -> str:
    if last_seen is None:
        return "Nunca"
    minutes = int((now - last_seen).total_seconds() // 60)
    if minutes < 1:
        return "Ahora"
    if minutes < 60:
        return f"Hace {minutes} min"
    hours = minutes // 60
    if hours < 24:
        return f"Hace {hours} h"
    return f"Hace {hours // 24} días"


def format_timestamp(value: Optional[datetime], tz=None) -> str:
    """dd/mm/yyyy HH:MM:SS in the display timezone, or "Nunca"."""
    if value is None:
        return "Nunca"
    return value.astimezone(tz).strftime("%d/%m/%Y %H:%M:%S")

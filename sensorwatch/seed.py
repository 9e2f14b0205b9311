#!/usr/bin/env python3
"""
Seed the document service with demo devices and realistic IMU readings.

Each reading carries the windowed average and the last instantaneous sample
of a 3-axis accelerometer (m/s²) and gyroscope (rad/s), timestamped as a
store timestamp (``{"seconds", "nanoseconds"}``).
"""

import logging
import math
import random
from datetime import datetime, timedelta, timezone

from sensorwatch.frontend.gateway import Gateway, RemoteError

logger = logging.getLogger(__name__)

GRAVITY = 9.81


def store_timestamp(moment):
    seconds = moment.timestamp()
    whole = int(seconds)
    return {"seconds": whole, "nanoseconds": int(round((seconds - whole) * 1e9))}


def generate_readings(duration_hours=24.0, interval_seconds=60, active_ratio=0.3, end=None):
    """
    Generate readings ending at ``end`` (default now).

    Args:
        duration_hours: How far back the readings go
        interval_seconds: Time between readings
        active_ratio: Share of readings taken while the device was moving
    """
    end = end or datetime.now(timezone.utc)
    count = int(duration_hours * 3600 / interval_seconds)
    readings = []

    for i in range(count):
        moment = end - timedelta(seconds=(count - 1 - i) * interval_seconds)
        phase = i / max(count - 1, 1) * 2 * math.pi

        # Resting: gravity on Z plus sensor noise. Moving: vibration and rotation.
        moving = random.random() < active_ratio
        shake = 2.5 if moving else 0.05
        spin = 1.5 if moving else 0.01

        avg_accel = {
            "x": round(random.uniform(-shake, shake) + 0.3 * math.sin(phase), 3),
            "y": round(random.uniform(-shake, shake) + 0.3 * math.cos(phase), 3),
            "z": round(GRAVITY + random.uniform(-shake, shake), 3),
        }
        avg_gyro = {
            "x": round(random.uniform(-spin, spin), 3),
            "y": round(random.uniform(-spin, spin), 3),
            "z": round(random.uniform(-spin, spin) + (0.2 * math.sin(phase * 3) if moving else 0), 3),
        }
        last_accel = {axis: round(value + random.uniform(-0.1, 0.1), 3) for axis, value in avg_accel.items()}
        last_gyro = {axis: round(value + random.uniform(-0.02, 0.02), 3) for axis, value in avg_gyro.items()}

        readings.append({
            "ts": store_timestamp(moment),
            "count": random.randint(40, 60),
            "last": {
                "accel": last_accel,
                "gyro": last_gyro,
                "ts_local": int(moment.timestamp() * 1000),
            },
            "avg": {"accel": avg_accel, "gyro": avg_gyro},
        })

    return readings


def seed_device(gateway, name, readings):
    """Create a device and upload its readings. Returns the device id."""
    last_ts = readings[-1]["ts"] if readings else None
    device_id = gateway.create("devices", {"name": name, "lastActive": last_ts})
    collection = f"devices/{device_id}/readings"
    for reading in readings:
        gateway.create(collection, reading)
    logger.info(f"Seeded {name} ({device_id}) with {len(readings)} readings")
    return device_id


def main():
    logging.basicConfig(level=logging.INFO)
    gateway = Gateway()

    now = datetime.now(timezone.utc)
    devices = [
        # Reporting right now -> online
        {"name": "Sensor Nave A", "hours": 6, "interval": 60, "end": now},
        # Quiet for ten minutes -> offline, "Inactivo" on its page
        {"name": "Sensor Nave B", "hours": 24, "interval": 300, "end": now - timedelta(minutes=10)},
        # Silent for two days
        {"name": "Sensor Almacén", "hours": 72, "interval": 900, "end": now - timedelta(days=2)},
    ]

    for device in devices:
        readings = generate_readings(device["hours"], device["interval"], end=device["end"])
        try:
            seed_device(gateway, device["name"], readings)
        except RemoteError as e:
            logger.error(f"Error seeding {device['name']}: {e}")
            return 1

    logger.info("All demo devices uploaded")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

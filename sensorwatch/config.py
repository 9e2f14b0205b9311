"""
Runtime settings for the SensorWatch dashboard and document service.

Values come from the environment (a local .env file is loaded first).
"""

import os

from dotenv import load_dotenv

load_dotenv()

# Dashboard -> document service
API_URL = os.getenv("API_URL", "http://localhost:8000")
API_TIMEOUT = float(os.getenv("API_TIMEOUT", "10"))
WATCH_INTERVAL = float(os.getenv("WATCH_INTERVAL", "5"))

# Day boundaries for explicit date ranges and time labels
DISPLAY_TIMEZONE = os.getenv("DISPLAY_TIMEZONE", "UTC")

FRONTEND_HOST = os.getenv("FRONTEND_HOST", "0.0.0.0")
FRONTEND_PORT = int(os.getenv("FRONTEND_PORT", "8050"))

# Document service
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./sensorwatch.db")
BACKEND_HOST = os.getenv("BACKEND_HOST", "0.0.0.0")
BACKEND_PORT = int(os.getenv("BACKEND_PORT", "8000"))

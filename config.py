"""Stack Warden configuration — loads from environment variables."""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def _list(name):
    """Parse a comma-separated environment variable into a list."""
    raw = os.getenv(name, "")
    return [item.strip() for item in raw.split(",") if item.strip()]


# Paths
BASE_DIR = Path(__file__).resolve().parent

# Warden API
PORT = int(os.getenv("WARDEN_PORT", os.getenv("PORT", "3000")))
HOST = os.getenv("WARDEN_HOST", "0.0.0.0")
LOG_LEVEL = os.getenv("WARDEN_LOG_LEVEL", "INFO")

# Compose stack
COMPOSE_FILE = os.getenv("COMPOSE_FILE", "/docker-compose/docker-compose.yml")
WORKING_DIR = os.getenv("WARDEN_WORKING_DIR", "")
TOPOLOGY_PATH = os.getenv("WARDEN_TOPOLOGY_PATH", "")
CRITICAL_SERVICES = _list("WARDEN_CRITICAL_SERVICES")
RESTART_ONLY = _list("WARDEN_RESTART_ONLY")

# Restart orchestration
SETTLE_SECONDS = float(os.getenv("WARDEN_SETTLE_SECONDS", "2"))
COMMAND_TIMEOUT = float(os.getenv("WARDEN_COMMAND_TIMEOUT", "0"))
HISTORY_SIZE = int(os.getenv("WARDEN_HISTORY_SIZE", "50"))

# Log monitor
MONITOR_SERVICE = os.getenv("WARDEN_MONITOR_SERVICE", "")
MONITOR_TRIGGER = os.getenv(
    "WARDEN_MONITOR_TRIGGER", "Failed to stream with initial link"
)
MONITOR_COOLDOWN = float(os.getenv("WARDEN_MONITOR_COOLDOWN", "60"))
MONITOR_BACKOFF = float(os.getenv("WARDEN_MONITOR_BACKOFF", "5"))

# Download manager (qBittorrent Web API)
QBIT_URL = os.getenv("QBIT_URL", "http://debridav:8080")
QBIT_USER = os.getenv("QBIT_USER", "admin")
QBIT_PASS = os.getenv("QBIT_PASS", "adminadmin")
QBIT_SAVE_ROOT = os.getenv("QBIT_SAVE_ROOT", "/data")
QBIT_TIMEOUT = float(os.getenv("QBIT_TIMEOUT", "10"))

# Version
VERSION = "1.0.0"

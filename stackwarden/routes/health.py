"""Health check endpoint for the Stack Warden API."""

import time

from flask import Blueprint, current_app, jsonify

import config

health_bp = Blueprint("health", __name__)

# Recorded at module load — used for uptime calculation.
_start_time = time.time()


@health_bp.route("/api/health", methods=["GET"])
def health():
    """Return Stack Warden health status."""
    monitor = current_app.config.get("LOG_MONITOR")
    orchestrator = current_app.config.get("ORCHESTRATOR")
    return jsonify(
        {
            "status": "operational",
            "uptime_seconds": round(time.time() - _start_time, 1),
            "version": config.VERSION,
            "restart_in_flight": orchestrator.in_flight if orchestrator else False,
            "monitor": monitor.snapshot() if monitor else None,
        }
    )

"""Compose stack API routes.

Endpoints:
    GET  /api/status      → {"status": "online" | "offline"}
    POST /api/restart     → tiered restart, or {"services": [...]} override
    GET  /api/restarts    → recent restart history
"""

from flask import Blueprint, current_app, jsonify, request

stack_bp = Blueprint("stack", __name__)


def _orch():
    """Retrieve the RestartOrchestrator from the app context."""
    return current_app.config["ORCHESTRATOR"]


@stack_bp.route("/api/status", methods=["GET"])
def status():
    """Report whether the stack has running containers."""
    return jsonify(_orch().check_status())


@stack_bp.route("/api/restart", methods=["POST"])
def restart():
    """Restart the stack.  Blocks until the sequence finishes."""
    body = request.get_json(silent=True) or {}
    services = body.get("services")
    if services is not None and (
        not isinstance(services, list)
        or not all(isinstance(s, str) and s for s in services)
    ):
        return jsonify({"success": False,
                        "error": "services must be a list of service names."}), 400

    outcome = _orch().restart(services or None, source="operator")
    data = outcome.to_dict()
    if outcome.succeeded:
        data["message"] = "Containers restarted"
        return jsonify(data)
    if outcome.busy:
        return jsonify(data), 409
    return jsonify(data), 500


@stack_bp.route("/api/restarts", methods=["GET"])
def restarts():
    """Return recent restart records, newest first."""
    limit = request.args.get("limit", 20, type=int)
    return jsonify(_orch().history.recent(limit=max(1, min(limit, 200))))

"""Torrent API routes — forwarded to the qBittorrent backend.

Endpoints:
    POST /api/torrents          → add a magnet {"magnet", "category", "name"}
    GET  /api/torrents/<hash>   → download status (?category=)
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from stackwarden.errors import AuthFailure, JobRequestError, TransportFailure
from stackwarden.services.qbittorrent import hash_from_magnet

log = logging.getLogger(__name__)

torrents_bp = Blueprint("torrents", __name__)


def _client():
    """Retrieve the QbittorrentClient from the app context."""
    return current_app.config["QBIT_CLIENT"]


def _error(exc):
    if isinstance(exc, AuthFailure):
        return jsonify({"success": False, "error": str(exc)}), 401
    return jsonify({"success": False, "error": str(exc)}), 502


@torrents_bp.route("/api/torrents", methods=["POST"])
def add_torrent():
    """Add a torrent to the download manager."""
    body = request.get_json(silent=True) or {}
    magnet = (body.get("magnet") or "").strip()
    category = (body.get("category") or "").strip()
    if not magnet or not category:
        return jsonify({"success": False,
                        "error": "magnet and category are required."}), 400

    try:
        _client().add_job(magnet, category, body.get("name"))
    except (AuthFailure, JobRequestError, TransportFailure) as exc:
        log.error("Add torrent failed: %s", exc)
        return _error(exc)

    return jsonify({"success": True, "hash": hash_from_magnet(magnet)}), 201


@torrents_bp.route("/api/torrents/<torrent_hash>", methods=["GET"])
def torrent_status(torrent_hash):
    """Return the download status of one torrent."""
    try:
        status = _client().query_job(torrent_hash, request.args.get("category"))
    except (AuthFailure, JobRequestError, TransportFailure) as exc:
        log.error("Torrent status failed for %s: %s", torrent_hash, exc)
        return _error(exc)
    return jsonify(status.to_dict())

"""qBittorrent client — session-authenticated Web API access.

The download manager hands out an ``SID`` cookie on login.  The client
logs in lazily, attaches the cookie to every request and, when a request
comes back 403 (session expired), logs in once more and retries once.
A second 403 is an AuthFailure; there is no retry loop.

Without a configured username/password the client never logs in.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

import requests

import config
from stackwarden.errors import AuthFailure, JobRequestError, TransportFailure

log = logging.getLogger(__name__)

FAILURE_SENTINEL = "Fails."
LOGIN_OK = "Ok."
DOWNLOADED_STATES = {"uploading", "pausedUP", "queuedUP", "completed"}

_MAGNET_HASH = re.compile(r"xt=urn:btih:([a-zA-Z0-9]+)")


def hash_from_magnet(magnet):
    """Extract the info-hash from a magnet link, lower-cased, or None."""
    match = _MAGNET_HASH.search(magnet or "")
    return match.group(1).lower() if match else None


class AuthSession:
    """Holds the session cookie for one backend."""

    def __init__(self, username=None, password=None):
        self.username = username
        self.password = password
        self.token = None

    @property
    def has_credentials(self):
        return bool(self.username and self.password)

    @property
    def authenticated(self):
        return self.token is not None

    def invalidate(self):
        self.token = None

    def headers(self):
        return {"Cookie": self.token} if self.token else {}


@dataclass
class JobStatus:
    """State of one torrent as reported by the download manager."""

    found: bool
    name: Optional[str] = None
    state: Optional[str] = None
    progress: Optional[float] = None
    is_downloaded: Optional[bool] = None

    def to_dict(self):
        if not self.found:
            return {"found": False}
        return {
            "found": True,
            "name": self.name,
            "state": self.state,
            "progress": self.progress,
            "isDownloaded": self.is_downloaded,
        }


class QbittorrentClient:
    """Adds torrents and reports their status."""

    def __init__(self, base_url=None, username=None, password=None,
                 save_root=None, timeout=None):
        self._base_url = (base_url or config.QBIT_URL).rstrip("/")
        self._save_root = (save_root or config.QBIT_SAVE_ROOT).rstrip("/")
        self._timeout = timeout or config.QBIT_TIMEOUT
        self.session = AuthSession(
            config.QBIT_USER if username is None else username,
            config.QBIT_PASS if password is None else password,
        )

    # ── Session ────────────────────────────────────────────────────────────

    def login(self):
        """Log in and store the session cookie from ``Set-Cookie``."""
        log.info("Logging into qBittorrent at %s...", self._base_url)
        self.session.invalidate()
        try:
            resp = requests.post(
                f"{self._base_url}/api/v2/auth/login",
                data={
                    "username": self.session.username,
                    "password": self.session.password,
                },
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise TransportFailure(f"qBittorrent unreachable: {exc}") from exc

        if not resp.ok or resp.text.strip() == FAILURE_SENTINEL:
            raise AuthFailure(f"Login failed: {resp.status_code} {resp.text.strip()}")

        cookie = resp.headers.get("Set-Cookie")
        if cookie:
            self.session.token = cookie.split(";")[0].strip()
            log.info("qBittorrent session established.")
        elif resp.text.strip() == LOGIN_OK:
            log.warning("Login returned Ok. but no Set-Cookie header; "
                        "continuing without a session.")
        else:
            raise AuthFailure("Login failed: no session cookie received")

    def _ensure_auth(self):
        if self.session.has_credentials and not self.session.authenticated:
            self.login()

    def _request(self, method, path, **kwargs):
        """Send a request, re-authenticating once on 403."""
        self._ensure_auth()
        resp = self._send(method, path, **kwargs)

        if resp.status_code == 403 and self.session.has_credentials:
            log.info("qBittorrent session expired, logging in again...")
            self.login()
            resp = self._send(method, path, **kwargs)
            if resp.status_code == 403:
                self.session.invalidate()
                raise AuthFailure(f"{method} {path} still forbidden after re-login")
        return resp

    def _send(self, method, path, **kwargs):
        try:
            return requests.request(
                method,
                f"{self._base_url}{path}",
                headers=self.session.headers(),
                timeout=self._timeout,
                **kwargs,
            )
        except requests.RequestException as exc:
            raise TransportFailure(f"qBittorrent unreachable: {exc}") from exc

    # ── Jobs ───────────────────────────────────────────────────────────────

    def add_job(self, identifier, category, display_name=None):
        """Add a torrent (magnet link or URL) under ``<save_root>/<category>``."""
        fields = {
            "urls": (None, identifier),
            "savepath": (None, f"{self._save_root}/{category}"),
            "category": (None, category),
        }
        if display_name:
            fields["rename"] = (None, display_name)

        log.info("Adding torrent %s to %s/%s", display_name or identifier,
                 self._save_root, category)
        resp = self._request("POST", "/api/v2/torrents/add", files=fields)

        text = resp.text.strip()
        if not resp.ok or text == FAILURE_SENTINEL:
            raise JobRequestError(f"Failed to add torrent: {resp.status_code} {text}")

    def query_job(self, identifier, category=None):
        """Return the JobStatus of the torrent with info-hash *identifier*."""
        params = {"hashes": identifier}
        if category:
            params["category"] = category
        resp = self._request("GET", "/api/v2/torrents/info", params=params)
        if not resp.ok:
            raise JobRequestError(f"Failed to get status: {resp.status_code} {resp.text.strip()}")

        try:
            records = resp.json()
        except ValueError as exc:
            raise JobRequestError(f"Invalid status response: {exc}") from exc

        wanted = identifier.lower()
        for torrent in records if isinstance(records, list) else []:
            if not isinstance(torrent, dict):
                log.warning("Skipping malformed torrent record: %r", torrent)
                continue
            if str(torrent.get("hash", "")).lower() != wanted:
                continue
            try:
                percent = float(torrent.get("progress", 0)) * 100
            except (TypeError, ValueError) as exc:
                raise JobRequestError(f"Invalid progress value: {exc}") from exc
            state = torrent.get("state")
            return JobStatus(
                found=True,
                name=torrent.get("name"),
                state=state,
                # Rounded for display only; completion uses the raw value.
                progress=round(percent, 2),
                is_downloaded=percent == 100 or state in DOWNLOADED_STATES,
            )
        return JobStatus(found=False)

"""Beast + Edge-case tests for the QbittorrentClient.

requests is monkeypatched; every test scripts the backend's answers.

Covers:
  - Login cookie extraction and lazy authentication
  - One re-login + retry on 403, failure on a second 403
  - add_job failure sentinel handling
  - query_job progress / isDownloaded derivation
"""

import pytest
import requests

from stackwarden.errors import AuthFailure, JobRequestError, TransportFailure
from stackwarden.services import qbittorrent
from stackwarden.services.qbittorrent import QbittorrentClient, hash_from_magnet

HASH = "ABCDEF0123456789ABCDEF0123456789ABCDEF01"
MAGNET = f"magnet:?xt=urn:btih:{HASH}&dn=Some.Show"


class FakeResponse:
    def __init__(self, status_code=200, text="", headers=None, json_data=None):
        self.status_code = status_code
        self.text = text
        self.headers = headers or {}
        self._json = json_data

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self._json is None:
            raise ValueError("No JSON")
        return self._json


class FakeBackend:
    """Plays back scripted responses for login and API requests."""

    def __init__(self, responses=None, logins=None):
        self.responses = list(responses or [])
        self.logins = list(logins or [])
        self.login_calls = 0
        self.requests = []

    def post(self, url, data=None, timeout=None):
        self.login_calls += 1
        if self.logins:
            return self.logins.pop(0)
        return FakeResponse(200, "Ok.", {"Set-Cookie": f"SID=s{self.login_calls}; HttpOnly; path=/"})

    def request(self, method, url, headers=None, timeout=None, **kwargs):
        self.requests.append({"method": method, "url": url,
                              "headers": dict(headers or {}), **kwargs})
        return self.responses.pop(0)


@pytest.fixture
def backend(monkeypatch):
    fake = FakeBackend()
    monkeypatch.setattr(qbittorrent.requests, "post", fake.post)
    monkeypatch.setattr(qbittorrent.requests, "request", fake.request)
    return fake


@pytest.fixture
def client():
    return QbittorrentClient(base_url="http://qbit:8080", username="admin",
                             password="secret", save_root="/data", timeout=1)


def info(progress, state, torrent_hash=HASH.lower()):
    return FakeResponse(200, json_data=[
        {"hash": torrent_hash, "name": "Some.Show", "state": state, "progress": progress}
    ])


# ── Helpers ────────────────────────────────────────────────────────────────

def test_hash_from_magnet():
    """Smoke: info-hash is extracted and lower-cased."""
    assert hash_from_magnet(MAGNET) == HASH.lower()
    assert hash_from_magnet("https://example.com/file.torrent") is None


# ── Login ──────────────────────────────────────────────────────────────────

def test_login_extracts_cookie_from_header(backend, client):
    """Beast: the SID cookie comes from Set-Cookie, attributes stripped."""
    backend.responses = [FakeResponse(200, "Ok.")]
    client.add_job(MAGNET, "tv")
    assert client.session.token == "SID=s1"
    assert backend.requests[0]["headers"] == {"Cookie": "SID=s1"}


def test_login_is_lazy_and_reused(backend, client):
    """Beast: only one login for several requests."""
    backend.responses = [FakeResponse(200, "Ok."), info(0.5, "downloading")]
    client.add_job(MAGNET, "tv")
    client.query_job(HASH)
    assert backend.login_calls == 1


def test_login_ok_without_cookie_stays_unauthenticated(backend, client):
    """4% edge: 'Ok.' without Set-Cookie is not treated as a session."""
    backend.logins = [FakeResponse(200, "Ok.")]
    backend.responses = [FakeResponse(200, "Ok.")]
    client.add_job(MAGNET, "tv")
    assert client.session.authenticated is False
    assert backend.requests[0]["headers"] == {}


def test_login_rejected_raises_auth_failure(backend, client):
    """Beast: a 'Fails.' login body is an AuthFailure."""
    backend.logins = [FakeResponse(200, "Fails.")]
    with pytest.raises(AuthFailure):
        client.add_job(MAGNET, "tv")
    assert backend.requests == []


def test_no_credentials_never_logs_in(backend):
    """Beast: without credentials the client runs unauthenticated."""
    anon = QbittorrentClient(base_url="http://qbit:8080", username="", password="")
    backend.responses = [FakeResponse(403, "Forbidden")]
    with pytest.raises(JobRequestError):
        anon.add_job(MAGNET, "tv")
    assert backend.login_calls == 0
    assert len(backend.requests) == 1


# ── Re-login on 403 ────────────────────────────────────────────────────────

def test_expired_session_relogs_and_retries(backend, client):
    """Beast: one 403 → fresh login → retried request succeeds."""
    backend.responses = [FakeResponse(403, "Forbidden"), info(1.0, "uploading")]
    status = client.query_job(HASH)
    assert status.found is True
    assert backend.login_calls == 2
    assert backend.requests[1]["headers"] == {"Cookie": "SID=s2"}


def test_double_403_is_fatal(backend, client):
    """Beast: 403 after re-login surfaces an AuthFailure, no third try."""
    backend.responses = [FakeResponse(403, "Forbidden"), FakeResponse(403, "Forbidden")]
    with pytest.raises(AuthFailure):
        client.add_job(MAGNET, "tv")
    assert len(backend.requests) == 2
    assert backend.login_calls == 2
    assert client.session.authenticated is False


# ── add_job ────────────────────────────────────────────────────────────────

def test_add_job_sends_multipart_fields(backend, client):
    """Beast: urls, savepath, category and rename are posted."""
    backend.responses = [FakeResponse(200, "Ok.")]
    client.add_job(MAGNET, "movies", "My Movie")
    sent = backend.requests[0]
    assert sent["method"] == "POST"
    assert sent["url"] == "http://qbit:8080/api/v2/torrents/add"
    assert sent["files"] == {
        "urls": (None, MAGNET),
        "savepath": (None, "/data/movies"),
        "category": (None, "movies"),
        "rename": (None, "My Movie"),
    }


def test_add_job_without_name_omits_rename(backend, client):
    """4% edge: no display name means no rename field."""
    backend.responses = [FakeResponse(200, "Ok.")]
    client.add_job(MAGNET, "tv")
    assert "rename" not in backend.requests[0]["files"]


def test_add_job_fails_sentinel_with_200(backend, client):
    """Beast: 'Fails.' with HTTP 200 is a failure."""
    backend.responses = [FakeResponse(200, "Fails.")]
    with pytest.raises(JobRequestError):
        client.add_job(MAGNET, "tv")


def test_add_job_server_error(backend, client):
    """4% edge: a 500 from the backend is a failure."""
    backend.responses = [FakeResponse(500, "Internal error")]
    with pytest.raises(JobRequestError, match="500"):
        client.add_job(MAGNET, "tv")


def test_transport_error_is_wrapped(monkeypatch, client):
    """4% edge: connection errors surface as TransportFailure."""
    def refuse(*args, **kwargs):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(qbittorrent.requests, "post", refuse)
    with pytest.raises(TransportFailure):
        client.add_job(MAGNET, "tv")


# ── query_job ──────────────────────────────────────────────────────────────

def test_query_complete_uploading_is_downloaded(backend, client):
    """Beast: progress 1.0 + uploading → isDownloaded."""
    backend.responses = [info(1.0, "uploading")]
    status = client.query_job(HASH)
    assert status.progress == 100
    assert status.is_downloaded is True
    assert status.to_dict()["isDownloaded"] is True


def test_query_partial_downloading_not_downloaded(backend, client):
    """Beast: progress 0.4 + downloading → not downloaded."""
    backend.responses = [info(0.4, "downloading")]
    status = client.query_job(HASH)
    assert status.progress == 40
    assert status.is_downloaded is False


def test_query_seeding_state_counts_as_downloaded(backend, client):
    """Beast: a pausedUP torrent is done even if progress rounds below 100."""
    backend.responses = [info(0.999, "pausedUP")]
    assert client.query_job(HASH).is_downloaded is True


def test_query_nearly_complete_is_not_downloaded(backend, client):
    """4% edge: 99.996% still downloading is not finished, even if it displays as 100."""
    backend.responses = [info(0.99996, "downloading")]
    status = client.query_job(HASH)
    assert status.progress == 100.0
    assert status.is_downloaded is False


def test_query_skips_malformed_records(backend, client):
    """4% edge: non-dict entries are ignored, the real record still matches."""
    backend.responses = [FakeResponse(200, json_data=[
        "garbage", None,
        {"hash": HASH.lower(), "name": "Some.Show", "state": "downloading", "progress": 0.5},
    ])]
    status = client.query_job(HASH)
    assert status.found is True
    assert status.progress == 50


def test_query_bad_progress_raises(backend, client):
    """4% edge: a non-numeric progress value is a JobRequestError."""
    backend.responses = [FakeResponse(200, json_data=[
        {"hash": HASH.lower(), "name": "x", "state": "downloading", "progress": "n/a"},
    ])]
    with pytest.raises(JobRequestError):
        client.query_job(HASH)


def test_query_matches_case_insensitively(backend, client):
    """Beast: upper-case request matches the lower-case record."""
    backend.responses = [info(0.1, "downloading", torrent_hash=HASH.lower())]
    assert client.query_job(HASH.upper()).found is True


def test_query_not_found(backend, client):
    """4% edge: empty result means found=False."""
    backend.responses = [FakeResponse(200, json_data=[])]
    status = client.query_job(HASH)
    assert status.found is False
    assert status.to_dict() == {"found": False}


def test_query_passes_category(backend, client):
    """Smoke: category filter is forwarded as a query parameter."""
    backend.responses = [FakeResponse(200, json_data=[])]
    client.query_job(HASH, "tv")
    assert backend.requests[0]["params"] == {"hashes": HASH, "category": "tv"}


def test_query_error_status(backend, client):
    """4% edge: non-2xx status raises."""
    backend.responses = [FakeResponse(500, "oops")]
    with pytest.raises(JobRequestError):
        client.query_job(HASH)

"""Tests for utils/errors.py — error code classification and hint matching."""
import json

from commerce_ingest.exceptions import (
    ApiError,
    AuthError,
    CredentialsError,
    DownloadError,
    RateLimitedError,
    ReportFailedError,
    ReportTimeoutError,
)
from commerce_ingest.utils.errors import _get_hint, handle_error


# ── _get_hint tests ───────────────────────────────────────────────────

def test_hint_encryption_key():
    assert "keygen" in _get_hint("CONFIG_ENCRYPTION_KEY is not set")


def test_hint_missing_credentials():
    assert "credentials set" in _get_hint("No credentials stored for amazon_ads (org 1)")


def test_hint_401():
    assert "credentials test" in _get_hint("API error (HTTP 401): Unauthorized")


def test_hint_429():
    assert "rate" in _get_hint("HTTP 429 Too Many Requests").lower()


def test_hint_report_timed_out():
    assert "re-run later" in _get_hint("Report r1 timed out after 30 polls").lower()


def test_hint_connection():
    assert "network" in _get_hint("Connection refused").lower()


def test_hint_uninitialised_database():
    assert "db init" in _get_hint("(sqlite3.OperationalError) no such table: products")


def test_hint_no_match():
    assert _get_hint("some random error") is None


# ── handle_error JSON output ──────────────────────────────────────────

def _code(capsys, error):
    handle_error(error)
    return json.loads(capsys.readouterr().out)["code"]


def test_handle_error_shape(capsys):
    handle_error(AuthError("Token refresh failed (HTTP 400)", status=400))
    data = json.loads(capsys.readouterr().out)
    assert data["error"] is True
    assert data["code"] == "AUTH_ERROR"
    assert data["message"] == "Token refresh failed (HTTP 400)"
    assert "hint" in data


def test_codes_by_type(capsys):
    assert _code(capsys, CredentialsError("bad")) == "CREDENTIALS_ERROR"
    assert _code(capsys, RateLimitedError("slow down", status=429)) == "RATE_LIMITED"
    assert _code(capsys, ReportTimeoutError("r1")) == "TIMEOUT"
    assert _code(capsys, ReportFailedError("r1", "FATAL")) == "REPORT_FAILED"
    assert _code(capsys, DownloadError("gone")) == "DOWNLOAD_ERROR"
    assert _code(capsys, ApiError("missing", status=404)) == "NOT_FOUND"


def test_codes_by_message(capsys):
    assert _code(capsys, RuntimeError("HTTP 401 Unauthorized")) == "AUTH_ERROR"
    assert _code(capsys, RuntimeError("429 Too Many Requests")) == "RATE_LIMITED"
    assert _code(capsys, RuntimeError("request timeout")) == "TIMEOUT"
    assert _code(capsys, RuntimeError("connection refused")) == "CONNECTION_ERROR"


def test_invalid_argument_code(capsys):
    assert _code(capsys, ValueError("Invalid timeframe: weekly")) == "INVALID_ARGUMENT"


def test_generic_code_has_no_hint(capsys):
    handle_error(RuntimeError("something went wrong"))
    data = json.loads(capsys.readouterr().out)
    assert data["code"] == "RUNTIME_ERROR"
    assert "hint" not in data

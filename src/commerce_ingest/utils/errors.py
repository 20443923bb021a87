"""Structured error handling for scriptable CLI output."""

from __future__ import annotations

import json
import sys

from rich.console import Console

from commerce_ingest.exceptions import (
    ApiError,
    AuthError,
    CredentialsError,
    DownloadError,
    RateLimitedError,
    ReportFailedError,
    ReportTimeoutError,
)

console = Console(stderr=True)

# Actionable hints keyed by error substring
_ERROR_HINTS: list[tuple[str, str]] = [
    ("CONFIG_ENCRYPTION_KEY", "Set CONFIG_ENCRYPTION_KEY in .env (64 hex chars, see `commerce-ingest credentials keygen`)"),
    ("decrypt", "The stored credentials were encrypted with a different CONFIG_ENCRYPTION_KEY"),
    ("no credentials", "Store them first with `commerce-ingest credentials set`"),
    ("token refresh failed", "Refresh token rejected. Re-authorize and run `commerce-ingest credentials set`"),
    ("401", "Token may be expired. Check the stored refresh token with `commerce-ingest credentials test`"),
    ("unauthorized", "Token may be expired. Check the stored refresh token with `commerce-ingest credentials test`"),
    ("429", "Rate limited. Wait a moment and re-run; existing dates are skipped"),
    ("rate limit", "Rate limited. Wait a moment and re-run; existing dates are skipped"),
    ("timed out", "Report still processing. Re-run later; existing dates are skipped"),
    ("timeout", "Request timed out. Try again or check network connectivity"),
    ("connection", "Connection error. Check network connectivity and DATABASE_URL"),
    ("no such table", "Database not initialised. Run `commerce-ingest db init`"),
    ("does not exist", "Database not initialised. Run `commerce-ingest db init`"),
]


def _get_hint(error_message: str) -> str | None:
    """Match an error message to an actionable hint."""
    lower = error_message.lower()
    for pattern, hint in _ERROR_HINTS:
        if pattern.lower() in lower:
            return hint
    return None


def _error_code(error: Exception) -> str:
    """Classify by exception type first, then by message."""
    if isinstance(error, CredentialsError):
        return "CREDENTIALS_ERROR"
    if isinstance(error, AuthError):
        return "AUTH_ERROR"
    if isinstance(error, RateLimitedError):
        return "RATE_LIMITED"
    if isinstance(error, ReportTimeoutError):
        return "TIMEOUT"
    if isinstance(error, ReportFailedError):
        return "REPORT_FAILED"
    if isinstance(error, DownloadError):
        return "DOWNLOAD_ERROR"
    if isinstance(error, ApiError) and error.status == 404:
        return "NOT_FOUND"

    message = str(error).lower()
    if "401" in message or "unauthorized" in message:
        return "AUTH_ERROR"
    if "429" in message or "rate limit" in message:
        return "RATE_LIMITED"
    if "timeout" in message:
        return "TIMEOUT"
    if "connection" in message:
        return "CONNECTION_ERROR"
    if isinstance(error, (ValueError, FileNotFoundError)):
        return "INVALID_ARGUMENT"
    return "RUNTIME_ERROR"


def handle_error(error: Exception) -> None:
    """Handle an error with structured output to stdout and human-readable output to stderr.

    Outputs a JSON error object to stdout:
    {"error": true, "code": "AUTH_ERROR", "message": "...", "hint": "..."}

    Also prints a human-readable error to stderr.
    """
    message = str(error)
    hint = _get_hint(message)

    error_obj: dict[str, object] = {
        "error": True,
        "code": _error_code(error),
        "message": message,
    }
    if hint:
        error_obj["hint"] = hint

    json.dump(error_obj, sys.stdout)
    sys.stdout.write("\n")

    console.print(f"[red]Error:[/red] {message}")
    if hint:
        console.print(f"[dim]Hint: {hint}[/dim]")

"""Login with Amazon token payloads."""

from __future__ import annotations

from datetime import datetime
from pydantic import BaseModel


class TokenResponse(BaseModel):
    """Body returned by the refresh-token grant. Unknown keys are ignored."""
    access_token: str
    expires_in: int = 3600
    token_type: str = "bearer"
    refresh_token: str | None = None


class TokenStatus(BaseModel):
    """What ``credentials test`` reports about a freshly acquired token."""
    has_token: bool
    is_expired: bool
    expires_at: datetime | None = None
    seconds_remaining: int | None = None

"""Encrypted credential store backed by the settings table."""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, ValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from commerce_ingest.crypto import decrypt, encrypt
from commerce_ingest.db.models import Setting
from commerce_ingest.db.upsert import upsert
from commerce_ingest.exceptions import CredentialsError
from commerce_ingest.models.credentials import INTEGRATIONS, SECRET_FIELDS


def _model_for(integration: str) -> type[BaseModel]:
    try:
        return INTEGRATIONS[integration]
    except KeyError:
        available = ", ".join(sorted(INTEGRATIONS))
        raise ValueError(f"Unknown integration '{integration}'. Available: {available}") from None


class CredentialStore:
    """Reads and writes one encrypted JSON blob per (org, integration)."""

    def __init__(self, session: Session, encryption_key: str) -> None:
        self._session = session
        self._key = encryption_key

    def get(self, org_id: int, integration: str) -> Any:
        """Load, decrypt and validate the credentials for one integration.

        Returns:
            The integration's credential model (e.g. AmazonAdsCredentials).

        Raises:
            CredentialsError: If the row is missing, undecryptable or invalid.
        """
        model = _model_for(integration)
        stored = self._session.scalar(
            select(Setting.value).where(Setting.org_id == org_id, Setting.key == integration)
        )
        if stored is None:
            raise CredentialsError(f"No credentials stored for '{integration}' (org {org_id})")

        raw = decrypt(stored, self._key)
        try:
            return model(**json.loads(raw))
        except (ValueError, ValidationError) as e:
            raise CredentialsError(f"Stored '{integration}' credentials are invalid: {e}") from e

    def set(self, org_id: int, integration: str, values: dict[str, Any]) -> BaseModel:
        """Validate, encrypt and store credentials. Replaces any existing blob."""
        model = _model_for(integration)
        try:
            credentials = model(**values)
        except ValidationError as e:
            raise CredentialsError(f"Invalid '{integration}' credentials: {e}") from e

        blob = encrypt(credentials.model_dump_json(), self._key)
        upsert(self._session, Setting, {"org_id": org_id, "key": integration, "value": blob})
        self._session.commit()
        return credentials

    def configured(self, org_id: int) -> list[str]:
        """Integration names that have a stored blob for this org."""
        keys = self._session.scalars(select(Setting.key).where(Setting.org_id == org_id)).all()
        return sorted(k for k in keys if k in INTEGRATIONS)


def mask_secrets(credentials: BaseModel) -> dict[str, str]:
    """Credential fields with secrets reduced to their last four characters."""
    masked = {}
    for name, value in credentials.model_dump().items():
        text = str(value)
        if name in SECRET_FIELDS and text:
            masked[name] = "****" + text[-4:] if len(text) > 8 else "****"
        else:
            masked[name] = text
    return masked

"""
Credential store for the Gmail refresh token.

A single JSON file holds the only durable secret:

    {
      "refreshToken": "1//0g...",
      "updatedAt": "2026-10-19T09:12:44.120000+00:00",
      "updatedBy": "OAuth2 callback - support@example.com"
    }

An absent file is a normal state (credential-less boot): load() returns None
and the service waits for /oauth/auth. A corrupt file is logged and treated
the same way. Saves go through a temporary file and os.replace so a crash
mid-write never leaves a truncated record behind.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

from relay.models.delivery import CredentialRecord, utcnow

logger = logging.getLogger(__name__)


class CredentialStore:
    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> Optional[CredentialRecord]:
        """Return the stored record, or None when there is no usable record."""
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.warning(f"{self.path} not found. Please authorize via /oauth/auth endpoint")
            return None
        except OSError as exc:
            logger.error(f"Error reading credential record from {self.path}: {exc}")
            return None

        try:
            record = CredentialRecord.from_json(json.loads(raw))
        except (ValueError, TypeError, AttributeError) as exc:
            logger.warning(f"No usable refresh token in {self.path}: {exc}")
            return None

        logger.info(f"Refresh token loaded from file (updated: {record.updated_at.isoformat()})")
        return record

    def load_refresh_token(self) -> Optional[str]:
        record = self.load()
        return record.refresh_token if record else None

    def save(self, refresh_token: str, updated_by: str = "System") -> CredentialRecord:
        """
        Overwrite the stored record.

        Raises:
            ValueError: if refresh_token is empty
            OSError: if the file cannot be written
        """
        if not refresh_token:
            raise ValueError("refresh_token must not be empty")

        record = CredentialRecord(
            refresh_token=refresh_token,
            updated_at=utcnow(),
            updated_by=updated_by,
        )
        payload = json.dumps(record.to_json(), indent=2)

        directory = self.path.parent
        directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".tokens-", suffix=".json", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as tmp:
                tmp.write(payload)
            os.replace(tmp_name, self.path)
        except OSError:
            logger.exception(f"Error saving refresh token to {self.path}")
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

        logger.info(f"Refresh token saved to file by: {updated_by}")
        return record

    def metadata(self) -> Optional[dict]:
        """Lifecycle metadata without the secret, for diagnostics."""
        record = self.load()
        if record is None:
            return None
        return {
            "updatedAt": record.updated_at.isoformat(),
            "updatedBy": record.updated_by,
        }

"""Session credential persistence."""

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from pydantic import ValidationError as PydanticValidationError

from services.data_access.app.auth.models import SessionCredential
from shared.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class StorageKeys:
    """Fixed keys a credential is persisted under."""

    access_token: str = "access_token"
    refresh_token: str = "refresh_token"
    user: str = "user"
    expires_at: str = "token_expires_at"
    login_timestamp: str = "login_timestamp"

    @classmethod
    def from_settings(cls, settings: Any) -> "StorageKeys":
        return cls(
            access_token=settings.access_token_key,
            refresh_token=settings.refresh_token_key,
            user=settings.user_key,
            expires_at=settings.expires_at_key,
            login_timestamp=settings.login_timestamp_key,
        )

    def all(self) -> tuple[str, ...]:
        return (self.access_token, self.refresh_token, self.user, self.expires_at, self.login_timestamp)


def credential_to_record(credential: SessionCredential, keys: StorageKeys) -> dict[str, Any]:
    return {
        keys.access_token: credential.access_token,
        keys.refresh_token: credential.refresh_token,
        keys.user: credential.user,
        keys.expires_at: credential.expires_at,
        keys.login_timestamp: credential.login_timestamp,
    }


def record_to_credential(record: dict[str, Any], keys: StorageKeys) -> SessionCredential | None:
    """Rebuild a credential, None when any required key is missing or malformed."""
    if not record.get(keys.access_token) or not record.get(keys.refresh_token):
        return None
    try:
        return SessionCredential(
            access_token=record[keys.access_token],
            refresh_token=record[keys.refresh_token],
            user=record.get(keys.user),
            expires_at=record.get(keys.expires_at),
            login_timestamp=record.get(keys.login_timestamp),
        )
    except PydanticValidationError:
        return None


class SessionStore(Protocol):
    """Persistence for the single active credential."""

    def get(self) -> SessionCredential | None: ...

    def set(self, credential: SessionCredential) -> None: ...

    def clear(self) -> None: ...


class MemorySessionStore:
    """Session store held in process memory."""

    def __init__(self, keys: StorageKeys | None = None):
        self.keys = keys or StorageKeys()
        self.values: dict[str, Any] = {}

    def get(self) -> SessionCredential | None:
        return record_to_credential(self.values, self.keys)

    def set(self, credential: SessionCredential) -> None:
        # Replace all keys together so readers never see a mixed credential
        self.values = credential_to_record(credential, self.keys)

    def clear(self) -> None:
        self.values = {}


class FileSessionStore:
    """Session store persisted as one JSON document."""

    def __init__(self, path: str | Path, keys: StorageKeys | None = None):
        """Initialize file session store.

        Args:
            path: JSON file holding the credential
            keys: Key names used inside the document
        """
        self.path = Path(path)
        self.keys = keys or StorageKeys()

    def get(self) -> SessionCredential | None:
        if not self.path.exists():
            return None
        try:
            record = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("session_store_read_failed", path=str(self.path), error=str(e))
            return None
        if not isinstance(record, dict):
            return None
        return record_to_credential(record, self.keys)

    def set(self, credential: SessionCredential) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(".tmp")
        tmp_path.write_text(json.dumps(credential_to_record(credential, self.keys)), encoding="utf-8")
        os.replace(tmp_path, self.path)

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)

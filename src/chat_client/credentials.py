"""
Bearer token storage.

Credentials are an explicit capability handed to the clients rather than a
module-level global: set on login, cleared on logout or when the backend
rejects the token.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Protocol, runtime_checkable

import structlog

logger = structlog.get_logger(__name__)


@runtime_checkable
class CredentialProvider(Protocol):
    """Supplies an optional bearer token."""

    def get_token(self) -> str | None: ...

    def set_token(self, token: str) -> None: ...

    def clear(self) -> None: ...


def is_authenticated(credentials: CredentialProvider) -> bool:
    return credentials.get_token() is not None


class InMemoryCredentialStore:
    """Token held for the lifetime of the process."""

    def __init__(self, token: str | None = None):
        self._token = token or None

    def get_token(self) -> str | None:
        return self._token

    def set_token(self, token: str) -> None:
        if not token:
            raise ValueError("token must be a non-empty string")
        self._token = token

    def clear(self) -> None:
        self._token = None


class FileCredentialStore:
    """Token persisted as JSON so it survives restarts."""

    TOKEN_KEY = "access_token"

    def __init__(self, path: str | os.PathLike[str]):
        self.path = Path(path).expanduser()

    def get_token(self) -> str | None:
        if not self.path.exists():
            return None
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(
                "Unreadable credential file", path=str(self.path), error=str(e)
            )
            return None
        token = data.get(self.TOKEN_KEY) if isinstance(data, dict) else None
        return token if isinstance(token, str) and token else None

    def set_token(self, token: str) -> None:
        if not token:
            raise ValueError("token must be a non-empty string")
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump({self.TOKEN_KEY: token}, f)
        os.replace(tmp_path, self.path)
        os.chmod(self.path, 0o600)
        logger.debug("Stored credential", path=str(self.path))

    def clear(self) -> None:
        try:
            self.path.unlink()
            logger.debug("Cleared credential", path=str(self.path))
        except FileNotFoundError:
            pass

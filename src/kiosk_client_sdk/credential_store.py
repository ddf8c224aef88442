from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from platformdirs import user_data_dir
from pydantic import ValidationError

from .models import Credential, Identity, StoredAccess, StoredRefresh

logger = logging.getLogger(__name__)


class CredentialStore(Protocol):
    def load(self) -> tuple[Credential, Identity | None] | None: ...

    def save(self, credential: Credential, identity: Identity | None) -> None: ...

    def clear_access(self) -> None: ...

    def clear(self) -> None: ...


@dataclass
class FileCredentialStore:
    """Durable credential records under the platform user-data directory.

    Access data (token + expiry) and the refresh token are kept as separate
    files so access data can be evicted on its own. Anything unreadable is
    treated as absent and removed.
    """

    app_name: str = "kiosk-client"
    base_dir: Path | None = None
    access_filename: str = "access.json"
    refresh_filename: str = "refresh.json"
    identity_filename: str = "identity.json"

    def _dir(self) -> Path:
        base = self.base_dir or Path(user_data_dir(self.app_name, "Kiosk"))
        base.mkdir(parents=True, exist_ok=True)
        return base

    def _path(self, filename: str) -> Path:
        return self._dir() / filename

    def _write(self, filename: str, data: dict) -> None:
        path = self._path(filename)
        path.write_text(json.dumps(data, indent=2))
        try:
            path.chmod(0o600)
        except OSError:
            pass

    def _read(self, filename: str) -> dict | None:
        path = self._path(filename)
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text())
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.warning("credential_record_corrupt", extra={"record": filename})
            path.unlink(missing_ok=True)
            return None
        if not isinstance(data, dict):
            path.unlink(missing_ok=True)
            return None
        return data

    def save(self, credential: Credential, identity: Identity | None) -> None:
        access = StoredAccess(access_token=credential.access_token, expires_at=credential.expires_at)
        self._write(self.access_filename, access.model_dump(mode="json"))
        if credential.refresh_token:
            self._write(self.refresh_filename, {"refresh_token": credential.refresh_token})
        else:
            self._path(self.refresh_filename).unlink(missing_ok=True)
        if identity is not None:
            self._write(self.identity_filename, identity.model_dump(mode="json"))
        else:
            self._path(self.identity_filename).unlink(missing_ok=True)

    def load(self) -> tuple[Credential, Identity | None] | None:
        access_data = self._read(self.access_filename)
        refresh_data = self._read(self.refresh_filename)
        if access_data is None or refresh_data is None:
            return None
        try:
            access = StoredAccess.model_validate(access_data)
            refresh = StoredRefresh.model_validate(refresh_data)
        except ValidationError:
            logger.warning("credential_record_invalid")
            self.clear()
            return None
        credential = Credential(
            access_token=access.access_token,
            refresh_token=refresh.refresh_token,
            expires_at=access.expires_at,
        )
        identity = None
        identity_data = self._read(self.identity_filename)
        if identity_data is not None:
            try:
                identity = Identity.model_validate(identity_data)
            except ValidationError:
                self._path(self.identity_filename).unlink(missing_ok=True)
        return credential, identity

    def clear_access(self) -> None:
        self._path(self.access_filename).unlink(missing_ok=True)

    def clear(self) -> None:
        for filename in (self.access_filename, self.refresh_filename, self.identity_filename):
            self._path(filename).unlink(missing_ok=True)


@dataclass
class InMemoryCredentialStore:
    credential: Credential | None = None
    identity: Identity | None = None
    saves: list[Credential] = field(default_factory=list)

    def load(self) -> tuple[Credential, Identity | None] | None:
        if self.credential is None or not self.credential.refresh_token:
            return None
        return self.credential, self.identity

    def save(self, credential: Credential, identity: Identity | None) -> None:
        self.credential = credential
        self.identity = identity
        self.saves.append(credential)

    def clear_access(self) -> None:
        self.credential = None

    def clear(self) -> None:
        self.credential = None
        self.identity = None

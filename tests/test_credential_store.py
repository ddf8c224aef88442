from __future__ import annotations

import json
import os
import stat
from datetime import datetime, timezone
from pathlib import Path

import pytest

from kiosk_client_sdk.credential_store import FileCredentialStore, InMemoryCredentialStore
from kiosk_client_sdk.models import Credential, Identity

EXPIRES = datetime(2024, 3, 1, 13, 0, tzinfo=timezone.utc)


def _credential(refresh: str = "refresh-1") -> Credential:
    return Credential(access_token="access-1", refresh_token=refresh, expires_at=EXPIRES)


def test_file_store_roundtrip(tmp_path: Path) -> None:
    store = FileCredentialStore(base_dir=tmp_path)
    identity = Identity(id="user-1", email="kiosk@example.com", display_name="Front Kiosk")
    store.save(_credential(), identity)

    loaded = store.load()
    assert loaded is not None
    credential, loaded_identity = loaded
    assert credential == _credential()
    assert loaded_identity == identity
    assert json.loads((tmp_path / "refresh.json").read_text()) == {"refresh_token": "refresh-1"}
    assert "refresh_token" not in json.loads((tmp_path / "access.json").read_text())


@pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")
def test_file_store_owner_only_permissions(tmp_path: Path) -> None:
    store = FileCredentialStore(base_dir=tmp_path)
    store.save(_credential(), None)
    mode = stat.S_IMODE((tmp_path / "access.json").stat().st_mode)
    assert mode == 0o600


def test_file_store_corrupt_record_reads_as_absent(tmp_path: Path) -> None:
    store = FileCredentialStore(base_dir=tmp_path)
    store.save(_credential(), None)
    (tmp_path / "access.json").write_text("{not json")

    assert store.load() is None
    assert not (tmp_path / "access.json").exists()


def test_file_store_invalid_shape_clears_everything(tmp_path: Path) -> None:
    store = FileCredentialStore(base_dir=tmp_path)
    store.save(_credential(), None)
    (tmp_path / "access.json").write_text(json.dumps({"access_token": "a"}))

    assert store.load() is None
    assert not (tmp_path / "refresh.json").exists()


def test_file_store_requires_refresh_record(tmp_path: Path) -> None:
    store = FileCredentialStore(base_dir=tmp_path)
    store.save(_credential(refresh=""), None)

    assert not (tmp_path / "refresh.json").exists()
    assert store.load() is None


def test_file_store_clear(tmp_path: Path) -> None:
    store = FileCredentialStore(base_dir=tmp_path)
    store.save(_credential(), Identity(id="user-1", email="kiosk@example.com"))
    store.clear()
    store.clear()

    assert store.load() is None
    assert list(tmp_path.iterdir()) == []


def test_file_store_clear_access_only(tmp_path: Path) -> None:
    store = FileCredentialStore(base_dir=tmp_path)
    store.save(_credential(), None)
    store.clear_access()

    assert (tmp_path / "refresh.json").exists()
    assert store.load() is None


def test_in_memory_store() -> None:
    store = InMemoryCredentialStore()
    assert store.load() is None
    store.save(_credential(), None)
    assert store.load() == (_credential(), None)
    assert len(store.saves) == 1
    store.clear()
    assert store.load() is None


def test_file_store_save_without_identity_drops_previous_one(tmp_path: Path) -> None:
    store = FileCredentialStore(base_dir=tmp_path)
    store.save(_credential(), Identity(id="user-a", email="a@example.com"))
    store.save(_credential("refresh-2"), None)

    loaded = store.load()
    assert loaded is not None
    credential, identity = loaded
    assert credential.refresh_token == "refresh-2"
    assert identity is None
    assert not (tmp_path / "identity.json").exists()


def test_in_memory_store_save_without_identity_drops_previous_one() -> None:
    store = InMemoryCredentialStore()
    store.save(_credential(), Identity(id="user-a", email="a@example.com"))
    store.save(_credential("refresh-2"), None)

    assert store.identity is None
    assert store.load() == (_credential("refresh-2"), None)

import json
import os
import platform
import stat
import time

import pytest

from conftest import make_credential
from errors import ExchangeError, StorageError
from google_oauth.token_manager import TokenManager
from utils.storage import TokenStorage


class FakeRefresher:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = []

    async def refresh(self, credential):
        self.calls.append(credential)
        if self.error:
            raise self.error
        return self.result


def test_save_and_load(tmp_path):
    storage = TokenStorage(tmp_path / "nested" / "tokens.json")
    credential = make_credential()

    storage.save_credential(credential)

    assert storage.load_credential() == credential
    assert not (tmp_path / "nested" / "tokens.json.tmp").exists()


@pytest.mark.skipif(platform.system() == "Windows", reason="POSIX permissions")
def test_saved_file_is_owner_only(tmp_path):
    storage = TokenStorage(tmp_path / "secure" / "tokens.json")
    storage.save_credential(make_credential())

    assert stat.S_IMODE(os.stat(storage.token_file).st_mode) == 0o600
    assert stat.S_IMODE(os.stat(storage.token_file.parent).st_mode) == 0o700


def test_save_overwrites_previous_credential(tmp_path):
    storage = TokenStorage(tmp_path / "tokens.json")
    storage.save_credential(make_credential(access_token="first"))
    storage.save_credential(make_credential(access_token="second"))

    assert storage.load_credential().access_token == "second"


def test_missing_file_loads_none(tmp_path):
    assert TokenStorage(tmp_path / "tokens.json").load_credential() is None


def test_invalid_json_raises(tmp_path):
    path = tmp_path / "tokens.json"
    path.write_text("{oops", encoding="utf-8")

    with pytest.raises(StorageError, match="not valid JSON"):
        TokenStorage(path).load_credential()


def test_file_without_access_token_raises(tmp_path):
    path = tmp_path / "tokens.json"
    path.write_text(json.dumps({"refresh_token": "r"}), encoding="utf-8")

    with pytest.raises(StorageError, match="access_token"):
        TokenStorage(path).load_credential()


def test_save_failure_raises_storage_error(tmp_path):
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("", encoding="utf-8")
    storage = TokenStorage(blocker / "tokens.json")

    with pytest.raises(StorageError):
        storage.save_credential(make_credential())


def test_status_without_tokens(tmp_path):
    status = TokenStorage(tmp_path / "tokens.json").get_status()

    assert status["has_tokens"] is False
    assert status["time_until_expiry"] == "No tokens"


def test_status_with_valid_tokens(tmp_path):
    storage = TokenStorage(tmp_path / "tokens.json")
    storage.save_credential(make_credential(expiry_date=int((time.time() + 5400) * 1000)))

    status = storage.get_status()

    assert status["has_tokens"] is True
    assert status["is_expired"] is False
    assert status["has_refresh_token"] is True
    assert status["time_until_expiry"].startswith("1h")


def test_status_with_expired_tokens(tmp_path):
    storage = TokenStorage(tmp_path / "tokens.json")
    storage.save_credential(make_credential(expiry_date=int((time.time() - 600) * 1000)))

    status = storage.get_status()

    assert status["is_expired"] is True
    assert status["time_until_expiry"].endswith("ago")


@pytest.mark.asyncio
async def test_manager_without_credential(tmp_path):
    manager = TokenManager(TokenStorage(tmp_path / "tokens.json"))
    assert await manager.has_valid_credential() is False


@pytest.mark.asyncio
async def test_manager_with_unexpired_credential(tmp_path):
    storage = TokenStorage(tmp_path / "tokens.json")
    storage.save_credential(make_credential())
    refresher = FakeRefresher()

    assert await TokenManager(storage, refresher).has_valid_credential() is True
    assert refresher.calls == []


@pytest.mark.asyncio
async def test_manager_refreshes_expired_credential_once(tmp_path):
    storage = TokenStorage(tmp_path / "tokens.json")
    storage.save_credential(make_credential(access_token="old", expiry_date=0))
    refresher = FakeRefresher(result=make_credential(access_token="fresh"))

    assert await TokenManager(storage, refresher).has_valid_credential() is True
    assert len(refresher.calls) == 1
    assert storage.load_credential().access_token == "fresh"


@pytest.mark.asyncio
async def test_manager_failed_refresh_means_invalid(tmp_path):
    storage = TokenStorage(tmp_path / "tokens.json")
    storage.save_credential(make_credential(access_token="old", expiry_date=0))
    refresher = FakeRefresher(error=ExchangeError("invalid_grant", 400))

    assert await TokenManager(storage, refresher).has_valid_credential() is False
    assert storage.load_credential().access_token == "old"


@pytest.mark.asyncio
async def test_manager_expired_without_refresh_token(tmp_path):
    storage = TokenStorage(tmp_path / "tokens.json")
    storage.save_credential(make_credential(refresh_token=None, expiry_date=0))
    refresher = FakeRefresher()

    assert await TokenManager(storage, refresher).has_valid_credential() is False
    assert refresher.calls == []


@pytest.mark.asyncio
async def test_manager_propagates_unreadable_file(tmp_path):
    path = tmp_path / "tokens.json"
    path.write_text("garbage", encoding="utf-8")

    with pytest.raises(StorageError):
        await TokenManager(TokenStorage(path)).has_valid_credential()


@pytest.mark.asyncio
async def test_manager_persist(tmp_path):
    storage = TokenStorage(tmp_path / "tokens.json")
    credential = make_credential()

    await TokenManager(storage).persist(credential)

    assert storage.load_credential() == credential

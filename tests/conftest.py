import time
from typing import Optional

import pytest

from kf_relay.config import Settings
from kf_relay.services.errors import StorageError
from kf_relay.services.kv_store import KeyValueStore


class FakeKeyValueStore(KeyValueStore):
    """In-memory KeyValueStore honouring TTLs against time.monotonic()."""

    def __init__(self):
        self.data: dict[str, tuple[str, float]] = {}
        self.ttls: dict[str, int] = {}

    async def get(self, key: str) -> Optional[str]:
        item = self.data.get(key)
        if item is None:
            return None
        value, expires_at = item
        if time.monotonic() >= expires_at:
            del self.data[key]
            return None
        return value

    async def put(self, key: str, value: str, ttl_seconds: int) -> None:
        self.data[key] = (value, time.monotonic() + ttl_seconds)
        self.ttls[key] = ttl_seconds

    async def delete(self, key: str) -> None:
        self.data.pop(key, None)

    def expire(self, key: str) -> None:
        value, _ = self.data[key]
        self.data[key] = (value, 0.0)


class FailingKeyValueStore(KeyValueStore):
    async def get(self, key: str) -> Optional[str]:
        raise StorageError("store unreachable")

    async def put(self, key: str, value: str, ttl_seconds: int) -> None:
        raise StorageError("store unreachable")

    async def delete(self, key: str) -> None:
        raise StorageError("store unreachable")


@pytest.fixture
def kv_store():
    return FakeKeyValueStore()


@pytest.fixture
def failing_store():
    return FailingKeyValueStore()


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        wechat_corp_id="corp-id",
        wechat_kf_secret="kf-secret",
        wechat_kf_token="kf-token",
        wechat_kf_encoding_aes_key="aes-key",
        openai_api_key="test-key",
        admin_token="admin-secret",
    )

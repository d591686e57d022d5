import asyncio
from unittest.mock import AsyncMock, Mock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from kf_relay.services.errors import StorageError
from kf_relay.services.kv_store import RedisKeyValueStore


def _redis(**overrides):
    client = Mock()
    client.get = AsyncMock(return_value="value")
    client.set = AsyncMock(return_value=True)
    client.delete = AsyncMock(return_value=1)
    client.aclose = AsyncMock()
    for name, value in overrides.items():
        setattr(client, name, value)
    return client


class TestRedisKeyValueStore:
    def test_get(self):
        store = RedisKeyValueStore(_redis())
        assert asyncio.run(store.get("k")) == "value"

    def test_put_uses_expiry(self):
        client = _redis()
        asyncio.run(RedisKeyValueStore(client).put("k", "v", 60))
        client.set.assert_awaited_once_with("k", "v", ex=60)

    def test_delete(self):
        client = _redis()
        asyncio.run(RedisKeyValueStore(client).delete("k"))
        client.delete.assert_awaited_once_with("k")

    @pytest.mark.parametrize("method,args", [("get", ("k",)), ("put", ("k", "v", 1)), ("delete", ("k",))])
    def test_redis_errors_become_storage_errors(self, method, args):
        failing = AsyncMock(side_effect=RedisConnectionError("refused"))
        client = _redis(get=failing, set=failing, delete=failing)
        with pytest.raises(StorageError):
            asyncio.run(getattr(RedisKeyValueStore(client), method)(*args))

    def test_close(self):
        client = _redis()
        asyncio.run(RedisKeyValueStore(client).close())
        client.aclose.assert_awaited_once()

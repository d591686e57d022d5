import asyncio
import json

import pytest

from kf_relay.services.errors import StorageError
from kf_relay.services.ledger import DedupLedger


class TestIsProcessed:
    def test_unknown_id_is_not_processed(self, kv_store):
        ledger = DedupLedger(kv_store)
        assert asyncio.run(ledger.is_processed("msg-1")) is False

    def test_marked_id_is_processed(self, kv_store):
        ledger = DedupLedger(kv_store)
        asyncio.run(ledger.mark_processed("msg-1", {"content": "hi"}))
        assert asyncio.run(ledger.is_processed("msg-1")) is True

    def test_failed_record_still_counts_as_processed(self, kv_store):
        ledger = DedupLedger(kv_store)
        asyncio.run(ledger.mark_processed("msg-1", {"error": "boom"}, success=False))
        assert asyncio.run(ledger.is_processed("msg-1")) is True

    def test_expired_record_is_not_processed(self, kv_store):
        ledger = DedupLedger(kv_store)
        asyncio.run(ledger.mark_processed("msg-1"))
        kv_store.expire("processed_msg:msg-1")
        assert asyncio.run(ledger.is_processed("msg-1")) is False

    def test_store_failure_fails_open(self, failing_store):
        ledger = DedupLedger(failing_store)
        assert asyncio.run(ledger.is_processed("msg-1")) is False


class TestMarkProcessed:
    def test_writes_record_with_ttl_under_namespaced_key(self, kv_store):
        ledger = DedupLedger(kv_store, ttl_seconds=600)
        record = asyncio.run(ledger.mark_processed("msg-1", {"reply": "ok"}))

        stored = json.loads(asyncio.run(kv_store.get("processed_msg:msg-1")))
        assert stored["id"] == "msg-1"
        assert stored["success"] is True
        assert stored["metadata"] == {"reply": "ok"}
        assert stored["processed_at"] == record.processed_at
        assert kv_store.ttls["processed_msg:msg-1"] == 600

    def test_overwrite_replaces_record(self, kv_store):
        ledger = DedupLedger(kv_store)
        asyncio.run(ledger.mark_processed("msg-1", success=False))
        asyncio.run(ledger.mark_processed("msg-1", success=True))
        record = asyncio.run(ledger.get_record("msg-1"))
        assert record.success is True

    def test_store_failure_is_raised(self, failing_store):
        ledger = DedupLedger(failing_store)
        with pytest.raises(StorageError):
            asyncio.run(ledger.mark_processed("msg-1"))


class TestGetRecord:
    def test_missing_record(self, kv_store):
        assert asyncio.run(DedupLedger(kv_store).get_record("nope")) is None

    def test_undecodable_record(self, kv_store):
        asyncio.run(kv_store.put("processed_msg:bad", "not json", 60))
        assert asyncio.run(DedupLedger(kv_store).get_record("bad")) is None

    def test_store_failure_returns_none(self, failing_store):
        assert asyncio.run(DedupLedger(failing_store).get_record("msg-1")) is None

    def test_strict_store_failure_raises(self, failing_store):
        with pytest.raises(StorageError):
            asyncio.run(DedupLedger(failing_store).get_record("msg-1", strict=True))


class TestRemove:
    def test_remove_then_unprocessed(self, kv_store):
        ledger = DedupLedger(kv_store)
        asyncio.run(ledger.mark_processed("msg-1"))
        asyncio.run(ledger.remove("msg-1"))
        assert asyncio.run(ledger.is_processed("msg-1")) is False

    def test_remove_missing_is_noop(self, kv_store):
        asyncio.run(DedupLedger(kv_store).remove("never-written"))

    def test_remove_propagates_store_failure(self, failing_store):
        with pytest.raises(StorageError):
            asyncio.run(DedupLedger(failing_store).remove("msg-1"))


class TestBatchOperations:
    def test_check_many(self, kv_store):
        ledger = DedupLedger(kv_store)
        asyncio.run(ledger.mark_processed("a"))
        result = asyncio.run(ledger.check_many(["a", "b", "a"]))
        assert result == {"a": True, "b": False}

    def test_check_many_fails_open(self, failing_store):
        result = asyncio.run(DedupLedger(failing_store).check_many(["a", "b"]))
        assert result == {"a": False, "b": False}

    def test_remove_many(self, kv_store):
        ledger = DedupLedger(kv_store)
        asyncio.run(ledger.mark_processed("a"))
        asyncio.run(ledger.mark_processed("b"))
        removed = asyncio.run(ledger.remove_many(["a", "b", "b"]))
        assert removed == ["a", "b"]
        assert asyncio.run(ledger.check_many(["a", "b"])) == {"a": False, "b": False}

    def test_describe_has_no_key_listing(self, kv_store):
        info = DedupLedger(kv_store, ttl_seconds=30).describe()
        assert info == {"key_prefix": "processed_msg", "ttl_seconds": 30, "auto_expiry": True}

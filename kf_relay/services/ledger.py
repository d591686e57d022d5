"""Idempotency ledger for webhook calls and inbox messages.

Reads fail open: when the store cannot be reached the id is reported as not
yet processed, so a message may be handled twice but is never silently
dropped. Writes fail loud and raise StorageError.
"""

import asyncio
from typing import Any, Iterable, Optional

from kf_relay.logging_config import get_logger
from kf_relay.models import ProcessingRecord
from kf_relay.services.errors import StorageError
from kf_relay.services.kv_store import KeyValueStore

logger = get_logger("ledger")

DEFAULT_KEY_PREFIX = "processed_msg"
DEFAULT_TTL_SECONDS = 86400


class DedupLedger:
    def __init__(
        self,
        store: KeyValueStore,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        key_prefix: str = DEFAULT_KEY_PREFIX,
    ):
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.key_prefix = key_prefix

    def key_for(self, record_id: str) -> str:
        return f"{self.key_prefix}:{record_id}"

    async def is_processed(self, record_id: str) -> bool:
        try:
            value = await self.store.get(self.key_for(record_id))
        except StorageError as e:
            logger.warning(
                "Ledger read failed, treating as unprocessed",
                extra={"context": {"id": record_id, "error": e.message}},
            )
            return False
        return value is not None

    async def mark_processed(
        self,
        record_id: str,
        metadata: Optional[dict[str, Any]] = None,
        *,
        success: bool = True,
    ) -> ProcessingRecord:
        record = ProcessingRecord.create(record_id, metadata, success=success)
        try:
            await self.store.put(self.key_for(record_id), record.to_json(), self.ttl_seconds)
        except StorageError as e:
            logger.error(
                "Ledger write failed",
                extra={"context": {"id": record_id, "success": success, "error": e.message}},
            )
            raise
        return record

    async def get_record(self, record_id: str, strict: bool = False) -> Optional[ProcessingRecord]:
        """Load a record; with strict=True a store failure raises instead of reading as absent."""
        try:
            raw = await self.store.get(self.key_for(record_id))
        except StorageError as e:
            logger.warning(f"Ledger record lookup failed for {record_id}: {e.message}")
            if strict:
                raise
            return None
        if raw is None:
            return None
        try:
            return ProcessingRecord.from_json(raw)
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Ledger record for {record_id} is unreadable: {e}")
            return None

    async def remove(self, record_id: str) -> None:
        await self.store.delete(self.key_for(record_id))
        logger.info("Ledger record removed", extra={"context": {"id": record_id}})

    async def check_many(self, record_ids: Iterable[str]) -> dict[str, bool]:
        ids = list(dict.fromkeys(record_ids))
        results = await asyncio.gather(*(self.is_processed(record_id) for record_id in ids), return_exceptions=True)
        checked: dict[str, bool] = {}
        for record_id, result in zip(ids, results):
            if isinstance(result, BaseException):
                logger.warning(f"Batch check failed for {record_id}: {result}")
                checked[record_id] = False
            else:
                checked[record_id] = result
        return checked

    async def remove_many(self, record_ids: Iterable[str]) -> list[str]:
        ids = list(dict.fromkeys(record_ids))
        await asyncio.gather(*(self.remove(record_id) for record_id in ids))
        return ids

    def describe(self) -> dict[str, Any]:
        return {
            "key_prefix": self.key_prefix,
            "ttl_seconds": self.ttl_seconds,
            "auto_expiry": True,
        }


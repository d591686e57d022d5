"""Bounded per-user conversation window kept in the key-value store.

The stored window never owns its system preamble: every read strips a stored
leading system entry and prepends the currently configured one, so changing
SYSTEM_PROMPT takes effect without clearing history.

Known limitation: append_user/append_assistant are read-modify-write without
compare-and-swap. Two concurrent callbacks for the same user carrying
different messages can lose one of the appended entries.
"""

import json
import time

from kf_relay.logging_config import get_logger
from kf_relay.models import ConversationEntry, ConversationStats, ConversationWindow, Role
from kf_relay.services.errors import StorageError
from kf_relay.services.kv_store import KeyValueStore

logger = get_logger("conversation_service")

DEFAULT_MAX_HISTORY_LENGTH = 10
DEFAULT_TTL_SECONDS = 86400


class ConversationStore:
    def __init__(
        self,
        store: KeyValueStore,
        system_prompt: str,
        max_history_length: int = DEFAULT_MAX_HISTORY_LENGTH,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
    ):
        self.store = store
        self.system_prompt = system_prompt
        self.max_history_length = max_history_length
        self.ttl_seconds = ttl_seconds

    def key_for(self, user_id: str) -> str:
        return f"conversation:{user_id}"

    def _preamble(self) -> ConversationEntry:
        return ConversationEntry(role=Role.SYSTEM, content=self.system_prompt)

    def _trim(self, window: ConversationWindow) -> ConversationWindow:
        """Keep the preamble plus the newest max_history_length entries."""
        history = window[1:]
        if len(history) > self.max_history_length:
            history = history[-self.max_history_length :]
        return [window[0], *history]

    async def get_window(self, user_id: str) -> ConversationWindow:
        """Load the window for user_id; never raises."""
        try:
            raw = await self.store.get(self.key_for(user_id))
            entries = [ConversationEntry.from_dict(item) for item in json.loads(raw)] if raw else []
        except StorageError as e:
            logger.warning(
                "Conversation read failed, starting fresh window",
                extra={"context": {"user_id": user_id, "error": e.message}},
            )
            entries = []
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(
                "Stored conversation is unreadable, starting fresh window",
                extra={"context": {"user_id": user_id, "error": str(e)}},
            )
            entries = []

        if entries and entries[0].role == Role.SYSTEM:
            entries = entries[1:]
        return self._trim([self._preamble(), *entries])

    async def _append(self, user_id: str, role: Role, content: str) -> ConversationWindow:
        window = await self.get_window(user_id)
        window.append(ConversationEntry(role=role, content=content, timestamp=time.time()))
        window = self._trim(window)

        payload = json.dumps([entry.to_dict() for entry in window], ensure_ascii=False)
        await self.store.put(self.key_for(user_id), payload, self.ttl_seconds)
        return window

    async def append_user(self, user_id: str, content: str) -> ConversationWindow:
        return await self._append(user_id, Role.USER, content)

    async def append_assistant(self, user_id: str, content: str) -> ConversationWindow:
        return await self._append(user_id, Role.ASSISTANT, content)

    async def clear(self, user_id: str) -> None:
        await self.store.delete(self.key_for(user_id))
        logger.info("Conversation cleared", extra={"context": {"user_id": user_id}})

    async def stats(self, user_id: str) -> ConversationStats:
        window = await self.get_window(user_id)
        history = window[1:]
        return ConversationStats(
            total_messages=len(history),
            user_messages=sum(1 for entry in history if entry.role == Role.USER),
            assistant_messages=sum(1 for entry in history if entry.role == Role.ASSISTANT),
            last_activity=history[-1].timestamp if history else None,
        )

    def describe(self) -> dict:
        return {
            "key_prefix": "conversation",
            "max_history_length": self.max_history_length,
            "ttl_seconds": self.ttl_seconds,
        }


def to_model_messages(window: ConversationWindow) -> list[dict]:
    """Project a window onto the role/content messages a chat model expects."""
    return [{"role": entry.role.value, "content": entry.content} for entry in window]

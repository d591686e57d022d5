"""Pull new inbox messages through the cursor-paginated sync protocol."""

from typing import Optional

from kf_relay.logging_config import get_logger
from kf_relay.models import InboxMessage
from kf_relay.services.errors import SyncError
from kf_relay.services.ledger import DedupLedger
from kf_relay.services.wecom_client import RemoteMailbox

logger = get_logger("inbox_service")

DEFAULT_PAGE_SIZE = 100
DEFAULT_MAX_PAGES = 50


class InboxSynchronizer:
    def __init__(
        self,
        mailbox: RemoteMailbox,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_pages: int = DEFAULT_MAX_PAGES,
    ):
        self.mailbox = mailbox
        self.page_size = page_size
        self.max_pages = max_pages

    async def pull_all(self, token: str, mailbox_id: str) -> list[InboxMessage]:
        """Drain the mailbox from the start, following next_cursor until exhausted.

        Raises SyncError if the remote fails or the page cap is hit.
        """
        messages: list[InboxMessage] = []
        cursor: Optional[str] = None
        for page_number in range(1, self.max_pages + 1):
            page = await self.mailbox.sync(token, mailbox_id, cursor, self.page_size)
            messages.extend(page.messages)
            logger.debug(
                f"Sync page {page_number}: {len(page.messages)} messages, next_cursor={page.next_cursor!r}"
            )
            if not page.messages or not page.next_cursor:
                return messages
            cursor = page.next_cursor

        raise SyncError(f"Sync did not terminate within {self.max_pages} pages")

    async def fetch_unprocessed(self, token: str, mailbox_id: str, ledger: DedupLedger) -> list[InboxMessage]:
        """Return the newest message if it is an unprocessed text message.

        Only the newest message of the sync is examined; older unprocessed
        messages in the same batch are not returned.
        """
        messages = await self.pull_all(token, mailbox_id)
        if not messages:
            logger.info("Sync returned no messages", extra={"context": {"mailbox_id": mailbox_id}})
            return []

        newest = sorted(messages, key=lambda m: m.send_time or 0, reverse=True)[0]
        context = {"mailbox_id": mailbox_id, "msg_id": newest.msg_id, "msg_type": newest.msg_type, "synced": len(messages)}

        if not newest.is_text or not newest.content or not newest.msg_id:
            logger.info("Newest message is not a usable text message", extra={"context": context})
            return []

        if await ledger.is_processed(newest.msg_id):
            logger.info("Newest message already processed", extra={"context": context})
            return []

        return [newest]

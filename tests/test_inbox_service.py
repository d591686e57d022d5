import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from kf_relay.models import InboxMessage, SyncPage
from kf_relay.services.errors import SyncError
from kf_relay.services.inbox_service import InboxSynchronizer
from kf_relay.services.ledger import DedupLedger


def _text(msg_id, send_time, content="hello", user="ext-1"):
    return InboxMessage(msg_id=msg_id, external_user_id=user, content=content, send_time=send_time, msg_type="text")


def _mailbox(*pages):
    mailbox = Mock()
    mailbox.sync = AsyncMock(side_effect=list(pages))
    return mailbox


class TestPagination:
    def test_follows_cursor_until_exhausted(self, kv_store):
        mailbox = _mailbox(
            SyncPage([_text("m1", 1)], next_cursor="c1"),
            SyncPage([_text("m2", 2)], next_cursor="c2"),
            SyncPage([_text("m3", 3)], next_cursor=None),
        )
        synchronizer = InboxSynchronizer(mailbox, page_size=1)

        messages = asyncio.run(synchronizer.pull_all("tok", "kf-1"))

        assert [m.msg_id for m in messages] == ["m1", "m2", "m3"]
        cursors = [c.args[2] for c in mailbox.sync.call_args_list]
        assert cursors == [None, "c1", "c2"]
        assert all(c.args[3] == 1 for c in mailbox.sync.call_args_list)

    def test_stops_on_empty_page(self, kv_store):
        mailbox = _mailbox(SyncPage([_text("m1", 1)], next_cursor="c1"), SyncPage([], next_cursor="c2"))
        messages = asyncio.run(InboxSynchronizer(mailbox).pull_all("tok", "kf-1"))
        assert [m.msg_id for m in messages] == ["m1"]
        assert mailbox.sync.await_count == 2

    def test_page_cap_raises(self, kv_store):
        mailbox = Mock()
        mailbox.sync = AsyncMock(return_value=SyncPage([_text("m1", 1)], next_cursor="again"))
        synchronizer = InboxSynchronizer(mailbox, max_pages=3)

        with pytest.raises(SyncError):
            asyncio.run(synchronizer.pull_all("tok", "kf-1"))
        assert mailbox.sync.await_count == 3

    def test_remote_failure_propagates(self, kv_store):
        mailbox = Mock()
        mailbox.sync = AsyncMock(side_effect=SyncError("errcode=95007"))
        with pytest.raises(SyncError):
            asyncio.run(InboxSynchronizer(mailbox).fetch_unprocessed("tok", "kf-1", DedupLedger(kv_store)))


class TestFetchUnprocessed:
    def test_returns_only_newest_message(self, kv_store):
        mailbox = _mailbox(SyncPage([_text("older", 100), _text("newer", 200)]))
        result = asyncio.run(InboxSynchronizer(mailbox).fetch_unprocessed("tok", "kf-1", DedupLedger(kv_store)))
        assert [m.msg_id for m in result] == ["newer"]

    def test_older_unprocessed_messages_are_not_returned(self, kv_store):
        ledger = DedupLedger(kv_store)
        asyncio.run(ledger.mark_processed("newer"))
        mailbox = _mailbox(SyncPage([_text("older", 100), _text("newer", 200)]))

        result = asyncio.run(InboxSynchronizer(mailbox).fetch_unprocessed("tok", "kf-1", ledger))
        assert result == []

    def test_newest_non_text_message_yields_nothing(self, kv_store):
        image = InboxMessage("img", "ext-1", "", 300, "image")
        mailbox = _mailbox(SyncPage([_text("m1", 100), image]))
        result = asyncio.run(InboxSynchronizer(mailbox).fetch_unprocessed("tok", "kf-1", DedupLedger(kv_store)))
        assert result == []

    def test_empty_content_yields_nothing(self, kv_store):
        mailbox = _mailbox(SyncPage([_text("m1", 100, content="")]))
        result = asyncio.run(InboxSynchronizer(mailbox).fetch_unprocessed("tok", "kf-1", DedupLedger(kv_store)))
        assert result == []

    def test_empty_sync(self, kv_store):
        mailbox = _mailbox(SyncPage([]))
        result = asyncio.run(InboxSynchronizer(mailbox).fetch_unprocessed("tok", "kf-1", DedupLedger(kv_store)))
        assert result == []

    def test_ledger_outage_does_not_drop_message(self, failing_store):
        mailbox = _mailbox(SyncPage([_text("m1", 100)]))
        result = asyncio.run(
            InboxSynchronizer(mailbox).fetch_unprocessed("tok", "kf-1", DedupLedger(failing_store))
        )
        assert [m.msg_id for m in result] == ["m1"]


class TestInboxMessageFromRemote:
    def test_maps_remote_fields(self):
        message = InboxMessage.from_remote(
            {
                "msgid": "m1",
                "external_userid": "ext-1",
                "send_time": "1700000000",
                "msgtype": "text",
                "text": {"content": "hi"},
            }
        )
        assert message == InboxMessage("m1", "ext-1", "hi", 1700000000, "text")
        assert message.is_text

    def test_missing_fields_default(self):
        message = InboxMessage.from_remote({"msgtype": "event", "event": {}})
        assert message.send_time == 0
        assert message.content == ""
        assert not message.is_text

"""Webhook callback pipeline: verify, sync, dedup, converse, reply, record.

Every collaborator failure ends the callback in a terminal state; handle()
itself never raises because it runs detached from the HTTP response.
"""

from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from kf_relay.logging_config import ContextLogger, get_logger
from kf_relay.models import InboundEnvelope, InboxMessage
from kf_relay.services.ai_service import ReplyGenerator
from kf_relay.services.alert_service import alert_error
from kf_relay.services.conversation_service import ConversationStore
from kf_relay.services.crypto_service import WeComMessageCrypt
from kf_relay.services.dispatch_service import ReplyDispatcher
from kf_relay.services.errors import CryptoError, GatewayError, GenerationError, StorageError, SyncError
from kf_relay.services.inbox_service import InboxSynchronizer
from kf_relay.services.ledger import DedupLedger
from kf_relay.services.state_machine import CallbackState, transition
from kf_relay.services.wecom_client import MessagingGateway

logger = get_logger("callback_service")

Alert = Callable[[str, Optional[dict]], Awaitable[bool]]

RESPOND_ERRORS = (GenerationError, GatewayError, StorageError)


@dataclass
class CallbackOutcome:
    call_id: str
    state: CallbackState
    reason: Optional[str] = None
    msg_id: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.state == CallbackState.FAILED


class CallbackOrchestrator:
    def __init__(
        self,
        crypto: WeComMessageCrypt,
        synchronizer: InboxSynchronizer,
        ledger: DedupLedger,
        conversations: ConversationStore,
        generator: ReplyGenerator,
        dispatcher: ReplyDispatcher,
        gateway: MessagingGateway,
        fallback_reply: str,
        alert: Alert = alert_error,
    ):
        self.crypto = crypto
        self.synchronizer = synchronizer
        self.ledger = ledger
        self.conversations = conversations
        self.generator = generator
        self.dispatcher = dispatcher
        self.gateway = gateway
        self.fallback_reply = fallback_reply
        self.alert = alert

    async def handle(self, envelope: InboundEnvelope) -> CallbackOutcome:
        call_id = envelope.signature
        log = ContextLogger(logger, {"call_id": call_id})

        try:
            if await self.ledger.is_processed(call_id):
                log.info("Callback already handled, skipping")
                return CallbackOutcome(call_id, CallbackState.SKIPPED, "duplicate callback")
            outcome = await self._run(envelope, log)
        except Exception as e:
            log.exception("Unexpected error while handling callback")
            outcome = CallbackOutcome(call_id, CallbackState.FAILED, f"unexpected error: {e}")
            await self._notify("Unexpected error while handling callback", {"call_id": call_id, "error": str(e)})

        await self._record_call(envelope, outcome, log)
        log.info(
            f"Callback finished: {outcome.state.value}",
            extra={"context": {"reason": outcome.reason, "msg_id": outcome.msg_id}},
        )
        return outcome

    async def _run(self, envelope: InboundEnvelope, log: ContextLogger) -> CallbackOutcome:
        call_id = envelope.signature
        state = CallbackState.RECEIVED

        def finish(target: CallbackState, reason: Optional[str] = None, msg_id: Optional[str] = None):
            return CallbackOutcome(call_id, transition(state, target), reason, msg_id)

        try:
            payload = await self.crypto.open_envelope(envelope)
        except CryptoError as e:
            log.warning(f"Callback verification failed: {e.message}")
            return finish(CallbackState.FAILED, f"crypto: {e.message}")
        state = transition(state, CallbackState.VERIFIED)

        try:
            messages = await self.synchronizer.fetch_unprocessed(payload.token, payload.mailbox_id, self.ledger)
        except SyncError as e:
            log.error(f"Inbox sync failed: {e.message}")
            return finish(CallbackState.FAILED, f"sync: {e.message}")
        if not messages:
            return finish(CallbackState.SKIPPED, "no new message")
        state = transition(state, CallbackState.SYNCED)

        message = messages[0]
        if await self.ledger.is_processed(message.msg_id):
            return finish(CallbackState.SKIPPED, "duplicate message", message.msg_id)
        state = transition(state, CallbackState.DEDUPLICATED)

        log.info(
            "Responding to message",
            extra={"context": {"msg_id": message.msg_id, "user_id": message.external_user_id}},
        )
        try:
            reply = await self._respond(message, payload.mailbox_id)
        except RESPOND_ERRORS as e:
            log.error(f"Reply failed for {message.msg_id}: {type(e).__name__}: {e.message}")
            await self._apologize(message, payload.mailbox_id, log)
            await self._mark_message_failed(message, e, log)
            return finish(CallbackState.FAILED, f"respond: {e.message}", message.msg_id)
        except Exception as e:
            log.exception(f"Unexpected error replying to {message.msg_id}")
            await self._apologize(message, payload.mailbox_id, log)
            await self._mark_message_failed(message, e, log)
            await self._notify(
                "Unexpected error while replying",
                {"call_id": call_id, "msg_id": message.msg_id, "error": str(e)},
            )
            return finish(CallbackState.FAILED, f"respond: unexpected error: {e}", message.msg_id)
        state = transition(state, CallbackState.RESPONDED)

        try:
            await self.ledger.mark_processed(
                message.msg_id,
                {"external_user_id": message.external_user_id, "content": message.content, "reply": reply},
            )
        except StorageError as e:
            return finish(CallbackState.FAILED, f"record: {e.message}", message.msg_id)
        return finish(CallbackState.RECORDED, msg_id=message.msg_id)

    async def _respond(self, message: InboxMessage, mailbox_id: str) -> str:
        window = await self.conversations.append_user(message.external_user_id, message.content)
        reply = await self.generator.complete(window)
        await self.conversations.append_assistant(message.external_user_id, reply)
        await self.dispatcher.dispatch(
            message.external_user_id,
            mailbox_id,
            message.msg_id,
            reply,
            self.gateway.send_text,
            self._send_file,
            question=message.content,
        )
        return reply

    async def _send_file(self, user_id: str, mailbox_id: str, filename: str, content: bytes) -> None:
        media_id = await self.gateway.upload_file(content, filename)
        await self.gateway.send_file(user_id, mailbox_id, media_id)

    async def _apologize(self, message: InboxMessage, mailbox_id: str, log: ContextLogger) -> None:
        try:
            await self.gateway.send_text(message.external_user_id, mailbox_id, self.fallback_reply)
        except GatewayError as e:
            log.error(f"Fallback reply could not be sent: {e.message}")

    async def _mark_message_failed(self, message: InboxMessage, error: Exception, log: ContextLogger) -> None:
        metadata = {
            "external_user_id": message.external_user_id,
            "content": message.content,
            "error": str(error),
            "error_type": type(error).__name__,
        }
        try:
            await self.ledger.mark_processed(message.msg_id, metadata, success=False)
        except StorageError as e:
            log.error(f"Could not record failure for {message.msg_id}: {e.message}")

    async def _record_call(self, envelope: InboundEnvelope, outcome: CallbackOutcome, log: ContextLogger) -> None:
        metadata = {
            "timestamp": envelope.timestamp,
            "nonce": envelope.nonce,
            "state": outcome.state.value,
            "reason": outcome.reason,
        }
        try:
            await self.ledger.mark_processed(outcome.call_id, metadata, success=not outcome.failed)
        except StorageError as e:
            log.error(f"Could not record callback: {e.message}")
            await self._notify("Could not record callback", {"call_id": outcome.call_id, "error": e.message})

    async def _notify(self, message: str, context: dict) -> None:
        try:
            await self.alert(message, context)
        except Exception as e:
            logger.error(f"Alert delivery failed: {e}")

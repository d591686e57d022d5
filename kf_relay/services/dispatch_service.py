"""Split a generated reply into chat-sized chunks, overflowing to a text file."""

import re
from typing import Awaitable, Callable

from kf_relay.logging_config import get_logger

logger = get_logger("dispatch_service")

DEFAULT_CHUNK_SIZE = 1024
DEFAULT_MAX_CHUNKS = 5
QUESTION_FILENAME_LENGTH = 20

SendChunk = Callable[[str, str, str], Awaitable[object]]
SendFile = Callable[[str, str, str, bytes], Awaitable[object]]

_UNSAFE_FILENAME_CHARS = re.compile(r'[\\/:*?"<>|\x00-\x1f\x7f\s]+')


def split_reply(reply: str, chunk_size: int) -> list[str]:
    """Cut reply into consecutive slices of at most chunk_size characters."""
    if chunk_size < 1:
        raise ValueError("chunk_size must be at least 1")
    return [reply[i : i + chunk_size] for i in range(0, len(reply), chunk_size)]


def attachment_filename(question: str, correlation_id: str) -> str:
    stem = _UNSAFE_FILENAME_CHARS.sub("_", question).strip("_.")[:QUESTION_FILENAME_LENGTH] or "reply"
    safe_id = _UNSAFE_FILENAME_CHARS.sub("_", correlation_id)
    return f"{stem}-full-reply-{safe_id}.txt"


class ReplyDispatcher:
    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE, max_chunks: int = DEFAULT_MAX_CHUNKS):
        self.chunk_size = chunk_size
        self.max_chunks = max_chunks

    async def dispatch(
        self,
        user_id: str,
        mailbox_id: str,
        correlation_id: str,
        reply: str,
        send_chunk: SendChunk,
        send_file: SendFile,
        question: str = "",
    ) -> int:
        """Send reply to user_id; returns the number of text chunks sent.

        Replies needing fewer than max_chunks chunks go out entirely as text.
        Otherwise the first max_chunks - 1 chunks go out as text and the whole
        reply follows once as a .txt attachment. Sends are sequential and the
        first failure propagates.
        """
        text = reply.strip()
        chunks = [text] if len(text) <= self.chunk_size else split_reply(text, self.chunk_size)
        context = {"user_id": user_id, "correlation_id": correlation_id, "length": len(text), "chunks": len(chunks)}

        if len(chunks) < self.max_chunks:
            for chunk in chunks:
                await send_chunk(user_id, mailbox_id, chunk)
            logger.info("Reply sent as text", extra={"context": context})
            return len(chunks)

        text_chunks = chunks[: self.max_chunks - 1]
        for chunk in text_chunks:
            await send_chunk(user_id, mailbox_id, chunk)

        filename = attachment_filename(question, correlation_id)
        await send_file(user_id, mailbox_id, filename, text.encode("utf-8"))
        logger.info("Reply overflowed to attachment", extra={"context": {**context, "filename": filename}})
        return len(text_chunks)

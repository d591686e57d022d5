"""Shared clients and pipeline services exposed as FastAPI dependencies."""

from functools import lru_cache
from typing import Optional

from fastapi import Depends, HTTPException

from kf_relay.config import Settings, get_settings
from kf_relay.services.ai_service import ReplyGenerator
from kf_relay.services.callback_service import CallbackOrchestrator
from kf_relay.services.conversation_service import ConversationStore
from kf_relay.services.crypto_service import RemoteCryptoService, WeComMessageCrypt
from kf_relay.services.dispatch_service import ReplyDispatcher
from kf_relay.services.inbox_service import InboxSynchronizer
from kf_relay.services.kv_store import KeyValueStore, RedisKeyValueStore
from kf_relay.services.ledger import DedupLedger
from kf_relay.services.llm import OpenAIProvider
from kf_relay.services.wecom_client import WeComClient


@lru_cache
def get_kv_store() -> RedisKeyValueStore:
    settings = get_settings()
    return RedisKeyValueStore.from_url(settings.redis_url, settings.redis_socket_timeout_seconds)


@lru_cache
def get_wecom_client() -> WeComClient:
    settings = get_settings()
    return WeComClient(
        corp_id=settings.wechat_corp_id or "",
        corp_secret=settings.wechat_kf_secret or "",
        base_url=settings.wechat_api_base_url,
        timeout=settings.http_timeout_seconds,
    )


@lru_cache
def get_llm_provider() -> OpenAIProvider:
    settings = get_settings()
    return OpenAIProvider(
        api_key=settings.openai_api_key or "",
        default_model=settings.openai_model,
        base_url=settings.openai_base_url,
        timeout=settings.openai_timeout,
        organization=settings.openai_organization,
        project=settings.openai_project,
    )


def get_ledger(
    store: KeyValueStore = Depends(get_kv_store), settings: Settings = Depends(get_settings)
) -> DedupLedger:
    return DedupLedger(store, ttl_seconds=settings.dedup_ttl_seconds)


def get_conversation_store(
    store: KeyValueStore = Depends(get_kv_store), settings: Settings = Depends(get_settings)
) -> ConversationStore:
    return ConversationStore(
        store,
        system_prompt=settings.system_prompt,
        max_history_length=settings.max_history_length,
        ttl_seconds=settings.conversation_ttl_seconds,
    )


def get_optional_message_crypt(settings: Settings = Depends(get_settings)) -> Optional[WeComMessageCrypt]:
    if not settings.crypto_configured:
        return None
    boundary = RemoteCryptoService(
        service_url=settings.crypto_service_url,
        token=settings.wechat_kf_token,
        encoding_aes_key=settings.wechat_kf_encoding_aes_key,
        corp_id=settings.wechat_corp_id,
        timeout=settings.http_timeout_seconds,
    )
    return WeComMessageCrypt(boundary)


def get_message_crypt(
    crypt: Optional[WeComMessageCrypt] = Depends(get_optional_message_crypt),
) -> WeComMessageCrypt:
    if crypt is None:
        raise HTTPException(status_code=500, detail="WeCom callback crypto not configured")
    return crypt


def get_reply_generator(provider: OpenAIProvider = Depends(get_llm_provider)) -> ReplyGenerator:
    return ReplyGenerator(provider)


def get_orchestrator(
    settings: Settings = Depends(get_settings),
    crypt: WeComMessageCrypt = Depends(get_message_crypt),
    ledger: DedupLedger = Depends(get_ledger),
    conversations: ConversationStore = Depends(get_conversation_store),
    generator: ReplyGenerator = Depends(get_reply_generator),
    wecom: WeComClient = Depends(get_wecom_client),
) -> CallbackOrchestrator:
    return CallbackOrchestrator(
        crypto=crypt,
        synchronizer=InboxSynchronizer(wecom, page_size=settings.sync_page_size, max_pages=settings.sync_max_pages),
        ledger=ledger,
        conversations=conversations,
        generator=generator,
        dispatcher=ReplyDispatcher(chunk_size=settings.reply_chunk_size, max_chunks=settings.reply_max_chunks),
        gateway=wecom,
        fallback_reply=settings.fallback_reply,
    )

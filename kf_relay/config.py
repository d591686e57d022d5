from functools import lru_cache
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SYSTEM_PROMPT = "you are helpful assistant"
DEFAULT_FALLBACK_REPLY = "Sorry, the AI service is temporarily unavailable. Please try again later."


class Settings(BaseSettings):
    # WeCom customer service
    wechat_corp_id: Optional[str] = None
    wechat_kf_secret: Optional[str] = None
    wechat_kf_token: Optional[str] = None
    wechat_kf_encoding_aes_key: Optional[str] = None
    wechat_api_base_url: str = "https://qyapi.weixin.qq.com/cgi-bin"
    crypto_service_url: str = "https://wecom-crypto.deno.dev"
    http_timeout_seconds: float = 30.0

    # Reply generator
    openai_api_key: Optional[str] = None
    openai_base_url: str = "https://api.openai.com"
    openai_model: str = "gpt-3.5-turbo"
    openai_timeout: float = 30.0
    openai_organization: Optional[str] = None
    openai_project: Optional[str] = None
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    fallback_reply: str = DEFAULT_FALLBACK_REPLY

    # Storage
    redis_url: str = "redis://localhost:6379/0"
    redis_socket_timeout_seconds: float = 5.0
    dedup_ttl_seconds: int = 86400
    conversation_ttl_seconds: int = 86400
    max_history_length: int = 10

    # Pipeline limits
    reply_chunk_size: int = 1024
    reply_max_chunks: int = 5
    sync_page_size: int = 100
    sync_max_pages: int = 50

    # Operations
    admin_token: Optional[str] = None
    alert_bot_token: Optional[str] = None
    alert_chat_id: Optional[str] = None
    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @field_validator(
        "wechat_corp_id",
        "wechat_kf_secret",
        "wechat_kf_token",
        "wechat_kf_encoding_aes_key",
        "openai_api_key",
        "openai_organization",
        "openai_project",
        "admin_token",
        "alert_bot_token",
        "alert_chat_id",
        mode="before",
    )
    @classmethod
    def _empty_str_to_none(cls, value):
        if isinstance(value, str) and value.strip() == "":
            return None
        return value

    @field_validator("max_history_length", "reply_chunk_size", "reply_max_chunks", "sync_page_size", "sync_max_pages")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be at least 1")
        return value

    @property
    def wechat_configured(self) -> bool:
        return bool(self.wechat_corp_id and self.wechat_kf_secret)

    @property
    def crypto_configured(self) -> bool:
        return bool(self.wechat_kf_token and self.wechat_kf_encoding_aes_key and self.wechat_corp_id)


@lru_cache
def get_settings() -> Settings:
    return Settings()

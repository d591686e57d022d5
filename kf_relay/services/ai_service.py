from typing import Optional

from kf_relay.config import Settings
from kf_relay.logging_config import get_logger
from kf_relay.models import ConversationWindow
from kf_relay.services.conversation_service import to_model_messages
from kf_relay.services.errors import GenerationError
from kf_relay.services.llm import LLMProvider

logger = get_logger("ai_service")


class ReplyGenerator:
    """Turns a conversation window into the assistant's next reply."""

    def __init__(
        self,
        provider: LLMProvider,
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
    ):
        self.provider = provider
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def complete(self, window: ConversationWindow) -> str:
        """Raises GenerationError on provider failure or an empty reply."""
        response = await self.provider.generate(
            to_model_messages(window),
            model=self.model,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
        reply = (response.content or "").strip()
        if not reply:
            logger.warning(f"Empty reply from model {response.model}")
            raise GenerationError("Reply generator returned an empty reply")
        logger.info(
            "Reply generated",
            extra={"context": {"model": response.model, "usage": response.usage, "length": len(reply)}},
        )
        return reply


def get_service_status(settings: Settings) -> dict:
    return {
        "service": "OpenAI",
        "base_url": settings.openai_base_url,
        "model": settings.openai_model,
        "has_api_key": bool(settings.openai_api_key),
        "timeout": settings.openai_timeout,
    }

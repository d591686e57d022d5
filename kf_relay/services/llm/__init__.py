from kf_relay.services.llm.base import LLMProvider, LLMResponse
from kf_relay.services.llm.openai_provider import OpenAIProvider

__all__ = ["LLMProvider", "LLMResponse", "OpenAIProvider"]

from typing import List, Optional

import httpx

from kf_relay.logging_config import get_logger
from kf_relay.services.errors import GenerationError
from kf_relay.services.llm.base import LLMProvider, LLMResponse

logger = get_logger("llm.openai")


class OpenAIProvider(LLMProvider):
    """OpenAI-compatible chat completions provider."""

    def __init__(
        self,
        api_key: str,
        default_model: str = "gpt-3.5-turbo",
        base_url: str = "https://api.openai.com",
        timeout: float = 30.0,
        organization: Optional[str] = None,
        project: Optional[str] = None,
    ):
        self.api_key = api_key
        self.default_model = default_model
        self.base_url = f"{base_url.rstrip('/')}/v1/chat/completions"
        self.timeout = timeout
        self.organization = organization
        self.project = project

    def _headers(self) -> dict:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if self.organization:
            headers["OpenAI-Organization"] = self.organization
        if self.project:
            headers["OpenAI-Project"] = self.project
        return headers

    async def generate(
        self,
        messages: List[dict],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
    ) -> LLMResponse:
        """Generate response from the chat completions endpoint."""

        model = model or self.default_model
        payload = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
        }
        if max_tokens:
            payload["max_tokens"] = max_tokens
        logger.debug(f"OpenAI request: model={model}, messages_count={len(messages)}")

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.base_url, headers=self._headers(), json=payload)
        except httpx.HTTPError as e:
            logger.error(f"OpenAI request failed: {e}")
            raise GenerationError(f"OpenAI request failed: {e}") from e

        logger.debug(f"OpenAI response status: {response.status_code}")

        if response.status_code != 200:
            logger.error(f"OpenAI error: {response.text}")
            raise GenerationError(f"OpenAI API error: {response.status_code} - {_error_message(response)}")

        try:
            data = response.json()
        except ValueError as e:
            logger.error(f"OpenAI returned non-JSON body: {response.text[:200]}")
            raise GenerationError("OpenAI returned non-JSON body") from e
        if not isinstance(data, dict):
            raise GenerationError(f"OpenAI returned unexpected body: {response.text[:200]}")

        content = ""
        choices = data.get("choices")
        if choices:
            choice = choices[0] if isinstance(choices, list) else None
            message = choice.get("message") if isinstance(choice, dict) else None
            if not isinstance(message, dict):
                raise GenerationError("OpenAI returned malformed choices")
            content = message.get("content") or ""
        logger.debug(f"OpenAI content: {content[:100] if content else 'EMPTY'}")

        return LLMResponse(
            content=content,
            model=data.get("model", model),
            usage=data.get("usage"),
        )


def _error_message(response: httpx.Response) -> str:
    try:
        error = response.json().get("error")
    except ValueError:
        return response.text
    if isinstance(error, dict) and error.get("message"):
        return error["message"]
    return response.text

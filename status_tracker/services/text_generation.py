import logging
from typing import Dict, Optional, Tuple

from langchain_openai import ChatOpenAI

logger = logging.getLogger(__name__)


class TextGenerationError(Exception):
    """Raised when the model call fails or generation is not configured."""


class TextGenerator:
    async def generate(self, prompt: str, model: str, max_tokens: int) -> str:
        raise NotImplementedError

    def close(self) -> None:
        pass


class DisabledTextGenerator(TextGenerator):
    """Used when AI_MODE is disabled or no API key is configured; every call fails."""

    def __init__(self, reason: str = "AI generation is disabled") -> None:
        self.reason = reason

    async def generate(self, prompt, model, max_tokens):
        raise TextGenerationError(self.reason)


class OpenAITextGenerator(TextGenerator):
    def __init__(self, api_key: str, temperature: float = 0.7) -> None:
        self._api_key = api_key
        self._temperature = temperature
        self._clients: Dict[Tuple[str, int], ChatOpenAI] = {}

    def _client(self, model: str, max_tokens: int) -> ChatOpenAI:
        key = (model, max_tokens)
        client = self._clients.get(key)
        if client is None:
            client = ChatOpenAI(
                api_key=self._api_key,
                model=model,
                temperature=self._temperature,
                max_tokens=max_tokens,
            )
            self._clients[key] = client
        return client

    async def generate(self, prompt, model, max_tokens):
        logger.info(f"Sending prompt to OpenAI ({model}, {len(prompt)} chars)")
        try:
            response = await self._client(model, max_tokens).ainvoke(prompt)
        except Exception as exc:
            raise TextGenerationError(f"OpenAI call failed: {exc}") from exc
        content = response.content if isinstance(response.content, str) else str(response.content)
        if not content.strip():
            raise TextGenerationError("OpenAI returned an empty response")
        logger.info("Received response from OpenAI")
        return content.strip()

    def close(self) -> None:
        self._clients.clear()


def get_text_generator(api_key: Optional[str], ai_mode: str, temperature: float = 0.7) -> TextGenerator:
    if ai_mode == "disabled":
        return DisabledTextGenerator()
    if not api_key:
        logger.warning("OPENAI_API_KEY not found in settings, AI replies will fall back to the apology message")
        return DisabledTextGenerator("OpenAI API key not configured")
    return OpenAITextGenerator(api_key=api_key, temperature=temperature)

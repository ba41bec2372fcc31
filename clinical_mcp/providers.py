from typing import Any, Dict, List, Optional

from anthropic import AsyncAnthropic
from loguru import logger
from openai import AsyncOpenAI
from pydantic import BaseModel

from clinical_mcp.config import Settings
from clinical_mcp.errors import UpstreamCompletionFailure
from clinical_mcp.schemas import AIProvider


class Completion(BaseModel):
    text: str
    usage: Dict[str, Any] = {}
    model: Optional[str] = None


class CompletionProvider:
    """One hosted text-generation backend.

    ``complete`` takes a system prompt plus a list of ``{"role", "content"}``
    messages and returns the raw reply text. It raises on network/auth
    failures; callers decide how to degrade.
    """

    name: str = ""

    @property
    def available(self) -> bool:
        return True

    async def complete(self, system_prompt: str, messages: List[Dict[str, str]]) -> Completion:
        raise NotImplementedError


def _usage_dict(usage: Any) -> Dict[str, Any]:
    if usage is None:
        return {}
    if hasattr(usage, "model_dump"):
        return usage.model_dump()
    return dict(usage)


class OpenAIProvider(CompletionProvider):
    name = AIProvider.OPENAI.value

    def __init__(self, api_key: Optional[str], model: str, temperature: float = 0.2,
                 max_tokens: int = 2500, base_url: Optional[str] = None):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._client = AsyncOpenAI(api_key=api_key, base_url=base_url) if api_key else None

    @property
    def available(self) -> bool:
        return self._client is not None

    async def complete(self, system_prompt: str, messages: List[Dict[str, str]]) -> Completion:
        if self._client is None:
            raise UpstreamCompletionFailure(f"{self.name} not initialized - check API key")

        resp = await self._client.chat.completions.create(
            model=self.model,
            messages=[{"role": "system", "content": system_prompt}, *messages],
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            top_p=0.9,
        )
        content = resp.choices[0].message.content if resp.choices else None
        return Completion(text=(content or "").strip(), usage=_usage_dict(resp.usage), model=self.model)


class GeminiProvider(OpenAIProvider):
    """Gemini through Google's OpenAI-compatible endpoint."""

    name = AIProvider.GEMINI.value


class AnthropicProvider(CompletionProvider):
    name = AIProvider.ANTHROPIC.value

    def __init__(self, api_key: Optional[str], model: str, temperature: float = 0.2,
                 max_tokens: int = 2500):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._client = AsyncAnthropic(api_key=api_key) if api_key else None

    @property
    def available(self) -> bool:
        return self._client is not None

    async def complete(self, system_prompt: str, messages: List[Dict[str, str]]) -> Completion:
        if self._client is None:
            raise UpstreamCompletionFailure(f"{self.name} not initialized - check API key")

        # Anthropic takes the system prompt separately from the turns.
        turns = [m for m in messages if m.get("role") != "system"]
        resp = await self._client.messages.create(
            model=self.model,
            system=system_prompt,
            messages=turns,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
        text = "".join(block.text for block in resp.content if getattr(block, "type", None) == "text")
        return Completion(text=text.strip(), usage=_usage_dict(resp.usage), model=self.model)


def build_providers(settings: Settings) -> Dict[str, CompletionProvider]:
    providers: Dict[str, CompletionProvider] = {
        AIProvider.OPENAI.value: OpenAIProvider(
            settings.openai_api_key, settings.openai_model,
            temperature=settings.temperature, max_tokens=settings.max_tokens,
        ),
        AIProvider.ANTHROPIC.value: AnthropicProvider(
            settings.anthropic_api_key, settings.anthropic_model,
            temperature=settings.temperature, max_tokens=settings.max_tokens,
        ),
        AIProvider.GEMINI.value: GeminiProvider(
            settings.gemini_api_key, settings.gemini_model,
            temperature=settings.temperature, max_tokens=settings.max_tokens,
            base_url=settings.gemini_base_url,
        ),
    }
    for name, provider in providers.items():
        if provider.available:
            logger.info(f"AI provider ready: {name}")
        else:
            logger.warning(f"No API key for {name}; its calls will fall back to manual review")
    return providers

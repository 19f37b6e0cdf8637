from typing import Any

from .base import LLMProvider
from .models import LLMProviderType
from .providers import AnthropicProvider, GeminiProvider, OpenAIProvider


def parse_provider_type(provider: LLMProviderType | str) -> LLMProviderType:
    """Coerce a provider identifier into the closed provider enum.

    Raises:
        ValueError: If the identifier is not a supported provider
    """
    if isinstance(provider, LLMProviderType):
        return provider
    try:
        return LLMProviderType(str(provider).lower())
    except ValueError:
        supported = ", ".join(f"'{p.value}'" for p in LLMProviderType)
        raise ValueError(
            f"Unsupported provider: {provider}. Supported providers: {supported}"
        ) from None


class ProviderRegistry:
    """Maps provider identifiers to their wire-protocol implementation.

    One provider instance exists per protocol. CUSTOM shares the OpenAI
    instance: OpenAI-compatible servers speak the same wire format, and the
    caller supplies the endpoint through ``ProviderConfig.base_url``.
    """

    def __init__(
        self,
        gemini: GeminiProvider,
        openai: OpenAIProvider,
        anthropic: AnthropicProvider,
    ):
        self._providers: dict[LLMProviderType, LLMProvider] = {
            LLMProviderType.GEMINI: gemini,
            LLMProviderType.OPENAI: openai,
            LLMProviderType.ANTHROPIC: anthropic,
            LLMProviderType.CUSTOM: openai,
        }

    def resolve(self, provider: LLMProviderType | str) -> LLMProvider:
        """Get the provider implementation for an identifier.

        Raises:
            ValueError: If the identifier is not a supported provider
        """
        return self._providers[parse_provider_type(provider)]

    async def close(self) -> None:
        """Close every distinct provider client."""
        for provider in {id(p): p for p in self._providers.values()}.values():
            await provider.close()

    async def __aenter__(self) -> "ProviderRegistry":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()


def create_provider_registry(**client_kwargs: Any) -> ProviderRegistry:
    """Create a registry with one instance of each protocol.

    This factory function hides the instantiation logic for the providers.

    Args:
        **client_kwargs: Shared kwargs for every provider's httpx.AsyncClient
            (e.g. timeout, transport, proxy)

    Returns:
        Registry resolving 'gemini', 'openai', 'anthropic' and 'custom'

    Examples:
        >>> registry = create_provider_registry()
        >>> provider = registry.resolve("custom")
        >>> await provider.stream_chat(config, messages, callbacks)
    """
    return ProviderRegistry(
        gemini=GeminiProvider(**client_kwargs),
        openai=OpenAIProvider(**client_kwargs),
        anthropic=AnthropicProvider(**client_kwargs),
    )

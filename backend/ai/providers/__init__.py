from ai.providers.base import AIProvider, AIProviderError
from ai.providers.openai_provider import OpenAIProvider


def get_provider(
    provider_name: str,
    api_key: str,
    model: str | None = None,
    timeout_seconds: float = 60,
    base_url: str | None = None,
) -> AIProvider:
    providers = {
        "openai": OpenAIProvider,
    }
    cls = providers.get(provider_name)
    if not cls:
        raise ValueError(f"Unknown provider: {provider_name}")
    return cls(api_key=api_key, model=model, timeout_seconds=timeout_seconds, base_url=base_url)


__all__ = ["AIProvider", "AIProviderError", "OpenAIProvider", "get_provider"]

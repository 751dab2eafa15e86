from typing import Any

import httpx

from ai.providers.base import AIProvider, AIProviderError

# Newer reasoning models only accept ``max_completion_tokens``.
_COMPLETION_TOKEN_PREFIXES = ("o", "gpt-5", "gpt-4.1")
_TOKEN_FIELDS = ("max_tokens", "max_completion_tokens")


def token_limit_field(model: str) -> str:
    name = (model or "").strip().lower()
    if name.startswith(_COMPLETION_TOKEN_PREFIXES):
        return "max_completion_tokens"
    return "max_tokens"


def rejects_token_field(resp: httpx.Response) -> bool:
    """A 400 complaining that the token-limit parameter is unsupported."""
    if resp.status_code != 400:
        return False
    text = (resp.text or "").lower()
    return "unsupported parameter" in text and any(field in text for field in _TOKEN_FIELDS)


def with_other_token_field(payload: dict[str, Any]) -> dict[str, Any]:
    swapped = dict(payload)
    if "max_tokens" in swapped:
        swapped["max_completion_tokens"] = swapped.pop("max_tokens")
    elif "max_completion_tokens" in swapped:
        swapped["max_tokens"] = swapped.pop("max_completion_tokens")
    return swapped


class OpenAIProvider(AIProvider):
    """OpenAI chat-completions provider used for habit plans."""

    BASE_URL = "https://api.openai.com/v1/chat/completions"
    DEFAULT_MODEL = "gpt-4o-mini"
    DEFAULT_MAX_COMPLETION_TOKENS = 8192

    def __init__(
        self,
        api_key: str,
        model: str | None = None,
        timeout_seconds: float = 60,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(api_key, model, timeout_seconds)
        self.base_url = base_url or self.BASE_URL
        self._transport = transport
        self._headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def chat(
        self,
        messages: list[dict],
        model: str,
        system: str = "",
        json_response: bool = False,
        temperature: float | None = None,
    ) -> dict:
        full_messages = list(messages)
        if system:
            full_messages.insert(0, {"role": "system", "content": system})

        payload: dict[str, Any] = {
            "model": model,
            "messages": full_messages,
            token_limit_field(model): self.DEFAULT_MAX_COMPLETION_TOKENS,
        }
        if temperature is not None:
            payload["temperature"] = temperature
        if json_response:
            payload["response_format"] = {"type": "json_object"}

        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                resp = await client.post(self.base_url, headers=self._headers, json=payload)
                if rejects_token_field(resp):
                    resp = await client.post(
                        self.base_url,
                        headers=self._headers,
                        json=with_other_token_field(payload),
                    )
        except httpx.HTTPError as exc:
            raise AIProviderError(f"OpenAI request failed: {exc}") from exc

        if resp.status_code != 200:
            raise AIProviderError(f"OpenAI API error: {resp.text}", status_code=resp.status_code)
        try:
            data = resp.json()
        except ValueError as exc:
            raise AIProviderError("OpenAI API returned a non-JSON body", status_code=resp.status_code) from exc

        choice = (data.get("choices") or [{}])[0]
        content = (choice.get("message") or {}).get("content") or ""
        usage = data.get("usage") or {}

        return {
            "content": content,
            "tokens_in": usage.get("prompt_tokens", 0),
            "tokens_out": usage.get("completion_tokens", 0),
            "model": data.get("model", payload["model"]),
        }

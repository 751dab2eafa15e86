from abc import ABC, abstractmethod


class AIProviderError(Exception):
    """Raised when a provider call fails at the transport or API level."""

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code

    @property
    def transient(self) -> bool:
        """Transport failures, rate limits and server errors are worth retrying."""
        if self.status_code is None:
            return True
        return self.status_code == 429 or self.status_code >= 500


class AIProvider(ABC):
    """Abstract base class for all AI providers."""

    DEFAULT_MODEL: str = ""

    def __init__(self, api_key: str, model: str | None = None, timeout_seconds: float = 60):
        self.api_key = api_key
        self._model = model
        self.timeout_seconds = timeout_seconds

    @abstractmethod
    async def chat(
        self,
        messages: list[dict],
        model: str,
        system: str = "",
        json_response: bool = False,
        temperature: float | None = None,
    ) -> dict:
        """Send a non-streaming chat request to the provider.

        Args:
            messages: List of message dicts with role and content.
            model: Model identifier to use.
            system: Optional system prompt.
            json_response: Ask the provider to return a JSON object.
            temperature: Optional sampling temperature.

        Returns:
            dict with content, tokens_in, tokens_out, model.

        Raises:
            AIProviderError if the request fails.
        """
        ...

    def get_model(self) -> str:
        return self._model or self.DEFAULT_MODEL

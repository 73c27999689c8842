"""Abstract base class for generative-model service providers.

Defines the contract for the text-completion backend used during
``ai_processing``.  Implementations wrap the Anthropic API, any
OpenAI-compatible endpoint, or a local Ollama server.  Prompts are owned by
:class:`~src.services.generation_service.GenerationService`; providers only
move text in and out and translate SDK failures into the error taxonomy.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations: AnthropicLLMProvider, OpenAILLMProvider, OllamaLLMProvider
# Located in: src/providers/llm/
class ILLMProvider(ABC):
    """Contract for generative-model services."""

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 4000,
    ) -> str:
        """Generate a text completion from the model.

        Parameters
        ----------
        system_prompt:
            The system/instruction message that sets the model's behaviour.
        user_prompt:
            The prompt carrying the request and the retrieved context.
        temperature:
            Sampling temperature (0.0 = deterministic, 1.0 = creative).
        max_tokens:
            Upper bound on the number of tokens in the response.

        Returns
        -------
        str
            The model's text response.

        Raises
        ------
        src.utils.errors.TransientServiceError
            On rate limits, timeouts, connection failures and 5xx responses.
        src.utils.errors.LLMError
            If the request is rejected or the response is empty.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this LLM provider."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured.

        Implementations check credentials / base URL without making an
        inference call.
        """

"""LLM provider adapters.

Three concrete implementations of ILLMProvider (src/interfaces/llm_provider.py):
    - AnthropicLLMProvider — Claude via the Messages API
    - OpenAILLMProvider    — OpenAI or any OpenAI-compatible endpoint
    - OllamaLLMProvider    — local models via an Ollama server

main.py picks the first configured one (Anthropic → OpenAI → Ollama).
"""

from src.providers.llm.anthropic_provider import AnthropicLLMProvider
from src.providers.llm.ollama_provider import OllamaLLMProvider
from src.providers.llm.openai_provider import OpenAILLMProvider

__all__ = ["AnthropicLLMProvider", "OllamaLLMProvider", "OpenAILLMProvider"]

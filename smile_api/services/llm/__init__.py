from smile_api.services.llm.base import LLMProvider, LLMResponse
from smile_api.services.llm.openai_provider import OpenAIProvider

__all__ = ["LLMProvider", "LLMResponse", "OpenAIProvider"]

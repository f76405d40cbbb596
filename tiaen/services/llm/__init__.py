from tiaen.services.llm.base import LLMResponse, ModelProvider, ModelProviderError
from tiaen.services.llm.openai_provider import OpenAIProvider

__all__ = ["LLMResponse", "ModelProvider", "ModelProviderError", "OpenAIProvider"]

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Sequence


class ModelProviderError(Exception):
    pass


@dataclass
class LLMResponse:
    content: str
    model: str
    usage: Optional[dict] = None


class ModelProvider(ABC):
    """Embedding and completion capability."""

    @abstractmethod
    def embed(self, text: str) -> List[float]:
        pass

    @abstractmethod
    def generate(
        self,
        messages: List[dict],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ) -> LLMResponse:
        """Generate a chat completion from role/content messages."""
        pass

    def complete(
        self,
        system_prompts: Sequence[str],
        user_prompt: str,
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ) -> str:
        """Each system prompt becomes its own system message, followed by the user message."""
        messages = [{"role": "system", "content": prompt} for prompt in system_prompts if prompt]
        messages.append({"role": "user", "content": user_prompt})
        return self.generate(messages, temperature=temperature, max_tokens=max_tokens).content

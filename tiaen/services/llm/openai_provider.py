from typing import List, Optional

import httpx

from tiaen.logging_config import get_logger
from tiaen.services.llm.base import LLMResponse, ModelProvider, ModelProviderError

logger = get_logger("llm.openai")


class OpenAIProvider(ModelProvider):
    """OpenAI-compatible chat completions and embeddings API."""

    def __init__(
        self,
        api_key: Optional[str],
        default_model: str = "gpt-4o-mini",
        embedding_model: str = "text-embedding-ada-002",
        base_url: str = "https://api.openai.com/v1",
        timeout_seconds: float = 60.0,
    ):
        self.api_key = api_key
        self.default_model = default_model
        self.embedding_model = embedding_model
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds

    def _post(self, path: str, payload: dict) -> dict:
        if not self.api_key:
            raise ModelProviderError("OpenAI API key is not configured")
        try:
            with httpx.Client(timeout=self.timeout_seconds) as client:
                response = client.post(
                    f"{self.base_url}{path}",
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json=payload,
                )
        except httpx.HTTPError as e:
            raise ModelProviderError(f"OpenAI request failed: {type(e).__name__}: {e}") from e

        logger.debug(f"OpenAI {path} status: {response.status_code}")
        if response.status_code != 200:
            logger.error(f"OpenAI error: {response.text}")
            raise ModelProviderError(f"OpenAI API error: {response.status_code} - {response.text[:200]}")
        try:
            return response.json()
        except ValueError as e:
            raise ModelProviderError("OpenAI returned invalid JSON") from e

    def generate(
        self,
        messages: List[dict],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ) -> LLMResponse:
        model = model or self.default_model
        logger.debug(f"OpenAI request: model={model}, messages_count={len(messages)}")
        data = self._post(
            "/chat/completions",
            {
                "model": model,
                "messages": messages,
                "temperature": temperature,
                "max_tokens": max_tokens,
            },
        )

        content = ""
        if data.get("choices"):
            message = data["choices"][0].get("message") or {}
            content = message.get("content") or ""
        logger.debug(f"OpenAI content: {content[:100] if content else 'EMPTY'}")

        return LLMResponse(content=content, model=data.get("model", model), usage=data.get("usage"))

    def embed(self, text: str) -> List[float]:
        data = self._post("/embeddings", {"model": self.embedding_model, "input": text})
        items = data.get("data") or []
        if not items or not items[0].get("embedding"):
            raise ModelProviderError("OpenAI returned no embedding")
        return [float(x) for x in items[0]["embedding"]]

import time
from dataclasses import dataclass, field
from typing import List, Optional
from uuid import UUID

from tiaen.logging_config import get_logger
from tiaen.services.alert_service import alert_error
from tiaen.services.knowledge_service import (
    DEFAULT_SIMILARITY_THRESHOLD,
    DEFAULT_TOP_K,
    ScoredEntry,
    format_knowledge_context,
    rank_entries,
)
from tiaen.services.llm.base import ModelProvider, ModelProviderError
from tiaen.services.result import ErrorKind, Result
from tiaen.services.store import Store, StoreError

logger = get_logger("rag_service")

GROUNDED_REASONING = "Answer generated from the knowledge base and conversation context."
UNGROUNDED_REASONING = "No knowledge base entry reached the similarity threshold; answer is ungrounded."

# (action, cues); cues are matched case-insensitively as substrings.
SUGGESTED_ACTION_CUES = (
    ("transfer_to_agent", ("entre em contato", "atendente", "contact us", "human agent")),
    ("request_documents", ("documento", "arquivo", "document", "file")),
    ("schedule_meeting", ("agendamento", "agendar", "schedule", "appointment")),
)


def calculate_confidence(answer: str) -> float:
    """Length-based approximation, not a calibrated probability."""
    length = len(answer or "")
    if length >= 100:
        return 0.9
    if length >= 50:
        return 0.7
    if length >= 20:
        return 0.5
    return 0.3


def extract_suggested_actions(answer: str) -> List[str]:
    text = (answer or "").lower()
    return [action for action, cues in SUGGESTED_ACTION_CUES if any(cue in text for cue in cues)]


@dataclass
class RagAnswer:
    answer: str
    confidence: float
    sources: List[dict] = field(default_factory=list)
    suggested_actions: List[str] = field(default_factory=list)
    processing_time_ms: int = 0

    @property
    def grounded(self) -> bool:
        return bool(self.sources)


class RetrievalOrchestrator:
    def __init__(
        self,
        store: Store,
        model: ModelProvider,
        system_prompt: str,
        temperature: float = 0.7,
        max_tokens: int = 500,
        similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
        top_k: int = DEFAULT_TOP_K,
    ):
        self.store = store
        self.model = model
        self.system_prompt = system_prompt
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.similarity_threshold = similarity_threshold
        self.top_k = top_k

    def retrieve(self, message_body: str) -> List[ScoredEntry]:
        """Raises ModelProviderError or StoreError."""
        query_embedding = self.model.embed(message_body)
        entries = self.store.get_active_knowledge_entries()
        return rank_entries(query_embedding, entries, self.similarity_threshold, self.top_k)

    def respond(
        self,
        conversation_summary: Optional[str],
        message_body: str,
        conversation_id: Optional[UUID] = None,
    ) -> Result[RagAnswer]:
        started = time.monotonic()
        try:
            results = self.retrieve(message_body)
            context_block = format_knowledge_context(results, conversation_summary)
            system_prompts = [self.system_prompt]
            if context_block:
                system_prompts.append(context_block)
            answer = self.model.complete(
                system_prompts,
                message_body,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except (ModelProviderError, StoreError) as e:
            logger.error(
                "Retrieval failed",
                extra={"context": {"conversation_id": str(conversation_id), "error": str(e)}},
            )
            alert_error("AI generation failed", {"conversation_id": str(conversation_id), "error": str(e)[:200]})
            return Result.failure(f"Retrieval failed: {e}", ErrorKind.RETRIEVAL_FAILED)

        answer = (answer or "").strip()
        if not answer:
            logger.warning("Empty completion", extra={"context": {"conversation_id": str(conversation_id)}})
            return Result.failure("Model returned an empty answer", ErrorKind.RETRIEVAL_FAILED)

        rag = RagAnswer(
            answer=answer,
            confidence=calculate_confidence(answer),
            sources=[r.as_source() for r in results],
            suggested_actions=extract_suggested_actions(answer),
            processing_time_ms=int((time.monotonic() - started) * 1000),
        )
        logger.info(
            "RAG answer generated",
            extra={
                "context": {
                    "conversation_id": str(conversation_id),
                    "sources": len(rag.sources),
                    "confidence": rag.confidence,
                    "processing_time_ms": rag.processing_time_ms,
                }
            },
        )
        self._record(conversation_id, message_body, rag, results)
        return Result.success(rag)

    def _record(
        self,
        conversation_id: Optional[UUID],
        query: str,
        rag: RagAnswer,
        results: List[ScoredEntry],
    ) -> None:
        try:
            self.store.create_rag_query_log(
                conversation_id=conversation_id,
                query=query,
                response=rag.answer,
                confidence=rag.confidence,
                sources=rag.sources,
                suggested_actions=rag.suggested_actions,
                processing_time_ms=rag.processing_time_ms,
                reasoning=GROUNDED_REASONING if rag.grounded else UNGROUNDED_REASONING,
            )
        except StoreError as e:
            logger.warning("RAG query log write failed", extra={"context": {"error": str(e)}})

        try:
            self.store.increment_knowledge_usage(r.entry.id for r in results)
        except StoreError as e:
            logger.warning("Knowledge usage update failed", extra={"context": {"error": str(e)}})

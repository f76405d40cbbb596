import math
from dataclasses import dataclass
from typing import List, Optional, Sequence

from tiaen.models import KnowledgeEntry

DEFAULT_SIMILARITY_THRESHOLD = 0.7
DEFAULT_TOP_K = 5


@dataclass
class ScoredEntry:
    entry: KnowledgeEntry
    similarity: float

    def as_source(self) -> dict:
        return {
            "id": str(self.entry.id),
            "title": self.entry.title,
            "similarity": round(self.similarity, 4),
        }


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between two vectors; 0.0 for mismatched or zero vectors."""
    if not a or not b or len(a) != len(b):
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


def rank_entries(
    query_embedding: Sequence[float],
    entries: Sequence[KnowledgeEntry],
    threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    top_k: int = DEFAULT_TOP_K,
) -> List[ScoredEntry]:
    """Active, embedded entries at or above threshold, most similar first, at most top_k."""
    scored = []
    for entry in entries:
        if not entry.is_active or not entry.embedding:
            continue
        similarity = cosine_similarity(query_embedding, entry.embedding)
        if similarity >= threshold:
            scored.append(ScoredEntry(entry=entry, similarity=similarity))
    scored.sort(key=lambda s: s.similarity, reverse=True)
    return scored[: max(top_k, 0)]


def format_knowledge_context(results: Sequence[ScoredEntry], summary: Optional[str] = None) -> str:
    """Context block for the completion; empty when nothing was retrieved."""
    if not results:
        return ""

    parts = ["Available knowledge base:"]
    for i, r in enumerate(results, 1):
        parts.append(f"{i}. {r.entry.title}\n{r.entry.content}\n")

    if summary:
        parts.append(f"Conversation context:\n{summary}\n")

    parts.append(
        "Use this information to answer accurately and helpfully. "
        "If you do not know the answer, be honest about it."
    )
    return "\n".join(parts)

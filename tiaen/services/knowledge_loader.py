"""Knowledge base seeding from YAML and embedding backfill.

Seed file layout::

    knowledge:
      - title: Opening hours
        content: We are open Monday to Friday, 9:00 to 18:00.
        category: general
        tags: [hours]
        is_active: true
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator
from sqlalchemy.orm import Session

from tiaen.logging_config import get_logger
from tiaen.models import KnowledgeEntry
from tiaen.services.llm.base import ModelProvider, ModelProviderError

logger = get_logger("knowledge_loader")


class KnowledgeSeed(BaseModel):
    title: str = Field(min_length=1)
    content: str = Field(min_length=1)
    category: str = "general"
    tags: List[str] = Field(default_factory=list)
    is_active: bool = True

    @field_validator("tags", mode="before")
    @classmethod
    def _coerce_tags(cls, value: object) -> List[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [tag.strip() for tag in value.split(",") if tag.strip()]
        return [str(tag).strip() for tag in value if str(tag).strip()]


class KnowledgeSeedError(Exception):
    pass


def embedding_text(title: str, content: str) -> str:
    return f"{title}\n\n{content}"


def load_seed_file(path: Union[str, Path]) -> List[KnowledgeSeed]:
    """Parse a YAML seed file. Raises KnowledgeSeedError on unreadable or invalid files."""
    seed_path = Path(path)
    if not seed_path.exists():
        raise KnowledgeSeedError(f"Knowledge seed file not found: {seed_path}")
    try:
        with seed_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or []
    except yaml.YAMLError as e:
        raise KnowledgeSeedError(f"Invalid YAML in {seed_path}: {e}") from e

    if isinstance(data, dict):
        data = data.get("knowledge") or data.get("entries") or []
    if not isinstance(data, list):
        raise KnowledgeSeedError(f"{seed_path}: expected a list of entries")

    seeds = []
    for index, item in enumerate(data):
        try:
            seeds.append(KnowledgeSeed.model_validate(item))
        except ValidationError as e:
            raise KnowledgeSeedError(f"{seed_path}: entry {index} is invalid: {e}") from e
    return seeds


def _embed(model: ModelProvider, entry: KnowledgeEntry) -> Optional[List[float]]:
    try:
        return model.embed(embedding_text(entry.title, entry.content))
    except ModelProviderError as e:
        logger.warning(
            "Embedding failed, entry excluded from retrieval until backfilled",
            extra={"context": {"title": entry.title, "error": str(e)}},
        )
        return None


def sync_knowledge(db: Session, model: ModelProvider, seeds: List[KnowledgeSeed]) -> dict:
    """Upsert seeds by title. Changed content is re-embedded."""
    stats = {"created": 0, "updated": 0, "unchanged": 0, "embedding_failed": 0}
    now = datetime.now(timezone.utc)

    for seed in seeds:
        entry = db.query(KnowledgeEntry).filter(KnowledgeEntry.title == seed.title).first()
        if entry is None:
            entry = KnowledgeEntry(
                title=seed.title,
                content=seed.content,
                category=seed.category,
                tags=list(seed.tags),
                is_active=seed.is_active,
                usage_count=0,
                created_at=now,
                updated_at=now,
            )
            db.add(entry)
            stats["created"] += 1
            needs_embedding = True
        else:
            content_changed = entry.content != seed.content
            metadata_changed = (
                entry.category != seed.category
                or list(entry.tags or []) != list(seed.tags)
                or entry.is_active != seed.is_active
            )
            if not content_changed and not metadata_changed and entry.embedding:
                stats["unchanged"] += 1
                continue
            entry.content = seed.content
            entry.category = seed.category
            entry.tags = list(seed.tags)
            entry.is_active = seed.is_active
            entry.updated_at = now
            stats["updated"] += 1
            needs_embedding = content_changed or not entry.embedding

        if needs_embedding:
            embedding = _embed(model, entry)
            entry.embedding = embedding
            if embedding is None:
                stats["embedding_failed"] += 1

    db.commit()
    logger.info("Knowledge sync complete", extra={"context": stats})
    return stats


def embed_missing(db: Session, model: ModelProvider, limit: int = 100) -> dict:
    """Compute embeddings for active entries that have none."""
    entries = (
        db.query(KnowledgeEntry)
        .filter(KnowledgeEntry.embedding.is_(None), KnowledgeEntry.is_active == True)  # noqa: E712
        .limit(limit)
        .all()
    )
    stats = {"embedded": 0, "failed": 0}
    for entry in entries:
        embedding = _embed(model, entry)
        if embedding is None:
            stats["failed"] += 1
            continue
        entry.embedding = embedding
        entry.updated_at = datetime.now(timezone.utc)
        stats["embedded"] += 1
    db.commit()
    logger.info("Embedding backfill complete", extra={"context": stats})
    return stats

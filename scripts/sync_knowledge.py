#!/usr/bin/env python3
"""
Sync a YAML knowledge file into the knowledge base and backfill embeddings.
Usage: python scripts/sync_knowledge.py [path/to/knowledge.yaml] [--embed-missing]
"""

import argparse
import sys

from tiaen.config import settings
from tiaen.database import session_scope
from tiaen.logging_config import setup_logging
from tiaen.services.knowledge_loader import KnowledgeSeedError, embed_missing, load_seed_file, sync_knowledge
from tiaen.services.llm.openai_provider import OpenAIProvider


def main() -> int:
    parser = argparse.ArgumentParser(description="Sync the knowledge base from a YAML seed file.")
    parser.add_argument("path", nargs="?", default=settings.knowledge_seed_path, help="YAML seed file")
    parser.add_argument("--embed-missing", action="store_true", help="Backfill embeddings for entries without one")
    parser.add_argument("--limit", type=int, default=100, help="Backfill batch size")
    args = parser.parse_args()

    setup_logging(settings.log_level)

    if not settings.openai_api_key:
        print("Missing OPENAI_API_KEY env var", file=sys.stderr)
        return 1
    if not args.path and not args.embed_missing:
        parser.print_usage()
        return 1

    model = OpenAIProvider(
        api_key=settings.openai_api_key,
        default_model=settings.completion_model,
        embedding_model=settings.embedding_model,
        base_url=settings.openai_base_url,
        timeout_seconds=settings.model_timeout_seconds,
    )

    with session_scope() as db:
        if args.path:
            try:
                seeds = load_seed_file(args.path)
            except KnowledgeSeedError as e:
                print(str(e), file=sys.stderr)
                return 1
            stats = sync_knowledge(db, model, seeds)
            print(f"Synced {len(seeds)} entries: {stats}")
        if args.embed_missing:
            stats = embed_missing(db, model, limit=args.limit)
            print(f"Embedding backfill: {stats}")
    return 0


if __name__ == "__main__":
    sys.exit(main())

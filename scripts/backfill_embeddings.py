"""
Backfill embeddings for every document in `requests` and `found_items`.

Usage:
    python scripts/backfill_embeddings.py
    python scripts/backfill_embeddings.py --dry-run
    python scripts/backfill_embeddings.py --collection found_items --limit 50 --concurrency 3
"""
import argparse
import asyncio
import os
import sys
import time
from collections import Counter

# Ensure src is in pythonpath
sys.path.append(os.path.join(os.path.dirname(__file__), "..", "src"))

from dotenv import load_dotenv
load_dotenv()

from campus_matcher.config import settings
from campus_matcher.db import repository_scope
from campus_matcher.embeddings.cache import EmbeddingCache
from campus_matcher.embeddings.embedder import Embedder
from campus_matcher.matching.models import ItemKind, SearchableItem


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Backfill item embeddings.")
    parser.add_argument("--dry-run", action="store_true", help="Only report what would be done.")
    parser.add_argument(
        "--collection",
        choices=[k.value for k in ItemKind],
        help="Only process one collection (default: both).",
    )
    parser.add_argument("--limit", type=int, default=None, help="Max documents per collection.")
    parser.add_argument("--concurrency", type=int, default=5, help="Max concurrent embedding calls.")
    args = parser.parse_args(argv)

    if args.limit is not None and args.limit < 1:
        parser.error("--limit must be a positive integer")
    if args.concurrency < 1:
        parser.error("--concurrency must be a positive integer")
    return args


async def process_item(item, embedder, semaphore, dry_run):
    """Return one of: exists, no_description, would_generate, generated, failed."""
    path = f"{item.kind.value}/{item.id}"

    if item.has_valid_embedding(settings.embedding_dim):
        print(f"  = {path} - already has embedding")
        return "exists"

    if not item.attributes.canonical_text():
        print(f"  ! {path} - no description, skipping")
        return "no_description"

    if dry_run:
        print(f"  [DRY RUN] Would generate embedding for {path}")
        return "would_generate"

    async with semaphore:
        try:
            async with repository_scope() as repository:
                await EmbeddingCache(repository, embedder).ensure_embedding(item)
        except Exception as e:
            print(f"  x {path} - error: {e}")
            return "failed"

    print(f"  + {path} - embedding generated")
    return "generated"


async def backfill_collection(kind, args, embedder):
    print(f"\nProcessing collection: {kind.value}")

    async with repository_scope() as repository:
        items: list[SearchableItem] = await repository.list_items(kind, limit=args.limit)
    print(f"Found {len(items)} documents")

    if not items:
        print("No documents to process")
        return Counter()

    semaphore = asyncio.Semaphore(args.concurrency)
    outcomes = await asyncio.gather(
        *(process_item(item, embedder, semaphore, args.dry_run) for item in items)
    )
    counts = Counter(outcomes)

    print(f"\n{kind.value} completed:")
    print(f"   Total: {len(items)}")
    print(f"   Generated: {counts['generated'] + counts['would_generate']}")
    print(f"   Skipped: {counts['exists'] + counts['no_description']}")
    print(f"   Failed: {counts['failed']}")
    return counts


async def main(argv=None):
    args = parse_args(argv)
    kinds = [ItemKind(args.collection)] if args.collection else list(ItemKind)

    print("Backfill Embeddings")
    print(f"Options: {vars(args)}")
    if args.dry_run:
        print("DRY RUN MODE - No changes will be made")

    embedder = Embedder()
    started = time.time()

    failed = 0
    for kind in kinds:
        counts = await backfill_collection(kind, args, embedder)
        failed += counts["failed"]

    print(f"\nAll done in {round(time.time() - started)}s")
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))

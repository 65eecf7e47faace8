"""
Embedding Cache

Guarantees that a request or found item carries a valid embedding before it
is used for similarity search.

Key Properties
--------------
- Cache hit (vector present, recorded dimension == configured dimension):
  returns the stored vector with zero writes.
- Cache miss: embeds `attributes.genericDescription`, checks the dimension,
  then performs exactly one write (vector, dimension, timestamp) and commits.
- A stored vector with a stale dimension is treated as absent.
- Concurrent misses for the same item both write the same value;
  last write wins.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from .embedder import Embedder
from ..config import settings
from ..core.errors import EmbeddingDimensionMismatch, MissingDescription
from ..db.repository import ItemRepository
from ..matching.models import SearchableItem

logger = logging.getLogger("matcher.embeddings")


class EmbeddingCache:
    """
    Lazily generates and persists item embeddings.
    """

    def __init__(
        self,
        repository: ItemRepository,
        embedder: Embedder,
        dim: Optional[int] = None,
    ) -> None:
        self._repository = repository
        self._embedder = embedder
        self.dim = dim or settings.embedding_dim

    async def ensure_embedding(self, item: SearchableItem) -> List[float]:
        """
        Return the item's embedding, generating and storing it if needed.

        Parameters
        ----------
        item : SearchableItem
            Current persisted state of the request or found item.

        Returns
        -------
        List[float]
            A vector of exactly `dim` components.

        Raises
        ------
        MissingDescription
            If the item has no non-empty genericDescription.
        EmbeddingDimensionMismatch
            If the generator returns a vector of the wrong length.
        EmbeddingError
            If the generator call itself fails.
        """
        path = f"{item.kind.value}/{item.id}"

        if item.has_valid_embedding(self.dim):
            logger.debug("Embedding already exists for %s, reusing", path)
            return list(item.embedding)

        if item.embedding is not None:
            logger.warning(
                "Stale embedding for %s: expected dim %d, recorded %s. Regenerating.",
                path,
                self.dim,
                item.embedding_dim,
            )

        description = item.attributes.canonical_text()
        if not description:
            raise MissingDescription(item.kind.value, item.id)

        logger.info("Generating embedding for %s (text length: %d)", path, len(description))

        vector = await self._embedder.embed_one(description)

        if len(vector) != self.dim:
            raise EmbeddingDimensionMismatch(self.dim, len(vector), item.id)

        await self._repository.save_embedding(item.kind, item.id, vector, self.dim)
        await self._repository.commit()

        logger.info("Stored embedding for %s", path)
        return vector

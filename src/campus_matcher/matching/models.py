"""
Matching Data Models

This module defines the explicit, validated records that flow through the
matching engine. ORM rows are converted into these records at the repository
boundary; nothing past the repository sees a loosely-typed document.

Records
-------
- SearchableItem : a lost request or a found item, tagged by `kind`
- Prefilters     : equality prefilters applied before similarity search
- MatchOptions   : knobs for one matching run
- Candidate      : one retrieval result with its raw distance
- MatchResult    : one scored, ranked match produced by a run
- MatchRecord    : a persisted match as read back from the store
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------

class ItemKind(str, Enum):
    """Which collection a SearchableItem belongs to."""

    REQUEST = "requests"
    FOUND_ITEM = "found_items"


class MatchStatus(str, Enum):
    """Review state of a match; the engine only ever writes PENDING."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


# ---------------------------------------------------------------------
# Searchable Items
# ---------------------------------------------------------------------

class ItemAttributes(BaseModel):
    """
    Free-text attribute bag extracted from a submission.

    Only `genericDescription` is used for embedding. Other extracted
    attributes (brand, model, color, ...) are carried through untouched.
    """

    generic_description: Optional[str] = Field(default=None, alias="genericDescription")
    brand: Optional[str] = None
    model: Optional[str] = None
    color: Optional[str] = None

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    def canonical_text(self) -> str:
        """Return the trimmed description used for embedding ("" if absent)."""
        return (self.generic_description or "").strip()


class SearchableItem(BaseModel):
    """
    A request (something lost) or a found item.

    An item either has no embedding, or an embedding whose recorded
    `embedding_dim` says how many components it was generated with.
    Whether that dimension is still current is decided by the caller.
    """

    kind: ItemKind
    id: str = Field(..., min_length=1)
    attributes: ItemAttributes = Field(default_factory=ItemAttributes)
    category: Optional[str] = None
    campus: Optional[str] = None

    embedding: Optional[List[float]] = None
    embedding_dim: Optional[int] = Field(default=None, ge=0)
    embedding_generated_at: Optional[datetime] = None

    user_id: Optional[str] = None
    user_email: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(extra="forbid")

    def has_valid_embedding(self, dim: int) -> bool:
        return (
            self.embedding is not None
            and self.embedding_dim == dim
            and len(self.embedding) == dim
        )


# ---------------------------------------------------------------------
# Matching Inputs
# ---------------------------------------------------------------------

class Prefilters(BaseModel):
    """Equality conditions narrowing the found-item pool before search."""

    category: Optional[str] = None
    campus: Optional[str] = None

    model_config = ConfigDict(extra="ignore")

    def as_conditions(self) -> Dict[str, str]:
        """Return only the filters that are set, as field -> value."""
        return {k: v for k, v in self.model_dump().items() if v is not None}


class MatchOptions(BaseModel):
    """Options for a single matching run."""

    limit: int = Field(default=10, ge=1, le=100)
    distance_threshold: float = Field(default=0.6, ge=0.0, le=2.0)
    prefilters: Optional[Prefilters] = None

    model_config = ConfigDict(extra="forbid")


# ---------------------------------------------------------------------
# Matching Outputs
# ---------------------------------------------------------------------

class Candidate(BaseModel):
    """
    A single nearest-neighbor result.

    `synthetic_distance` is True only in the retriever's degraded mode,
    where the backend reported no distance and one was estimated from rank.
    """

    found_item_id: str
    distance: float
    synthetic_distance: bool = False

    model_config = ConfigDict(frozen=True)


class MatchResult(BaseModel):
    """A scored and ranked match for one request."""

    found_item_id: str
    distance: float
    confidence: float
    rank: int = Field(..., ge=0)

    model_config = ConfigDict(frozen=True)


class MatchRunResult(BaseModel):
    """Outcome of one orchestrator run."""

    request_id: str
    matches: List[MatchResult] = Field(default_factory=list)


class MatchRecord(BaseModel):
    """A persisted match as stored under its request."""

    request_id: str
    found_item_id: str
    distance: float
    confidence: float
    rank: int
    status: MatchStatus = MatchStatus.PENDING
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

"""
API Models for the Matching Service

This module defines all Pydantic models used for request/response validation
across the matching and item endpoints. Wire names are camelCase; Python
attribute names are snake_case.
"""

from __future__ import annotations

from typing import List, Optional, Literal
from pydantic import BaseModel, Field, ConfigDict

from ..matching.models import ItemAttributes, MatchOptions, MatchStatus, Prefilters
from ..config import settings


# ---------------------------------------------------------------------
# Matching Models
# ---------------------------------------------------------------------

class MatchRequestBody(BaseModel):
    """
    On-demand matching request payload.
    """
    request_id: str = Field(..., alias="requestId", min_length=1)
    limit: Optional[int] = Field(default=None, ge=1, le=100)
    distance_threshold: Optional[float] = Field(
        default=None,
        alias="distanceThreshold",
        ge=0.0,
        le=2.0,
    )
    prefilters: Optional[Prefilters] = None

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    def to_options(self) -> MatchOptions:
        return MatchOptions(
            limit=self.limit if self.limit is not None else settings.default_match_limit,
            distance_threshold=(
                self.distance_threshold
                if self.distance_threshold is not None
                else settings.default_distance_threshold
            ),
            prefilters=self.prefilters,
        )


class MatchItem(BaseModel):
    """
    Single match as returned to callers.
    """
    lost_id: str = Field(..., alias="lostId")
    distance: float
    confidence: float
    rank: int = Field(..., ge=0)

    model_config = ConfigDict(populate_by_name=True)


class StoredMatchItem(MatchItem):
    """
    Persisted match including its review status.
    """
    status: MatchStatus


class MatchResponse(BaseModel):
    """
    Successful on-demand matching response.
    """
    ok: Literal[True] = True
    request_id: str = Field(..., alias="requestId")
    matches: List[MatchItem] = Field(default_factory=list)
    duration: int = Field(..., ge=0, description="Elapsed milliseconds.")

    model_config = ConfigDict(populate_by_name=True)


class StoredMatchesResponse(BaseModel):
    """
    Current match set of a request.
    """
    ok: Literal[True] = True
    request_id: str = Field(..., alias="requestId")
    matches: List[StoredMatchItem] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------------
# Item Models
# ---------------------------------------------------------------------

class CreateFoundItemBody(BaseModel):
    """
    Payload for logging a found item.
    """
    attributes: ItemAttributes
    category: Optional[str] = None
    campus: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class CreateRequestBody(CreateFoundItemBody):
    """
    Payload for submitting a lost-item request.
    """
    user_id: Optional[str] = Field(default=None, alias="userId")
    user_email: Optional[str] = Field(default=None, alias="userEmail")

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class CreatedResponse(BaseModel):
    """
    Result of creating a document.
    """
    ok: Literal[True] = True
    id: str
    collection: str


class DeletedResponse(BaseModel):
    """
    Result of deleting a document.
    """
    ok: Literal[True] = True
    id: str

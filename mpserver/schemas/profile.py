"""Pydantic schemas for matrix profile requests and responses."""
from pydantic import BaseModel, Field
from typing import List


class CalculateRequest(BaseModel):
    """Body of a matrix profile computation request."""

    m: int = Field(..., description="Subsequence window length")


class AnnotationVectorRequest(BaseModel):
    """Body of an annotation vector change."""

    name: str = Field(default="", description="default, complexity, meanstd or clipping")


class SegmentResponse(BaseModel):
    """Corrected arc curve of a fresh matrix profile."""

    cac: List[float]


class MotifGroup(BaseModel):
    """Indices of one group of similar subsequences."""

    idx: List[int]
    min_dist: float


class MotifResponse(BaseModel):
    """Top-k motif groups with their z-normalized member subsequences."""

    groups: List[MotifGroup]
    series: List[List[List[float]]]  # [group][member][point]


class DiscordResponse(BaseModel):
    """Top-k discord indices with their z-normalized subsequences."""

    groups: List[int]
    series: List[List[float]]  # [discord][point]


class AdjustedProfileResponse(BaseModel):
    """Active annotation vector and the matrix profile it produces."""

    annotation_vector: List[float]
    adjusted_mp: List[float]


class ErrorResponse(BaseModel):
    """Envelope returned by every failed request."""

    error: str
    cache_expired: bool = False

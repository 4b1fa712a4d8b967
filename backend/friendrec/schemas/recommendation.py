"""Recommendation-related Pydantic schemas."""

from pydantic import BaseModel, computed_field

DEPTH_FALLBACK = 0
DEPTH_SECOND = 2
DEPTH_THIRD = 3


class ScoreEntry(BaseModel):
    """One (target, score) pair from a member's interaction collection."""
    target_id: int
    score: float


class Candidate(BaseModel):
    """Per-request working record; never persisted."""
    member_id: int
    depth: int  # 2 or 3 from the graph, 0 for fallback fill
    acquaintance_id: int | None = None  # degree-1 friend that led here (degree 2 only)
    interaction_score: float = 0.0
    mutual_count: int = 0  # links from the previous level that reached this member


class RecommendedFriend(BaseModel):
    member_id: int
    depth: int
    acquaintance_id: int | None
    interaction_score: float
    mutual_count: int

    @computed_field
    @property
    def many_acquaintance(self) -> bool:
        """True when more than one friend connects to this member ("X and N others")."""
        return self.mutual_count > 1


class RecommendationPage(BaseModel):
    items: list[RecommendedFriend]
    page: int
    size: int
    total: int

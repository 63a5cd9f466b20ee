from typing import Any, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field

Status = Literal["active", "winner"]


class MovieIn(BaseModel):
    """
    Body of POST /api/movies. Fields are optional here so that a missing
    one is reported by the engine with the same message as an empty one.
    """
    id: Optional[str] = Field(None, examples=["tt0111161"])
    title: Optional[str] = Field(None, examples=["The Shawshank Redemption"])
    year: Optional[str] = Field(None, examples=["1994"])
    poster: Optional[str] = Field(None, examples=["https://example.com/poster.jpg"])


class Candidate(BaseModel):
    """
    One row of the ballot. Instances are snapshots: a vote produces a new
    Candidate rather than mutating the one a caller already holds.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    year: str
    poster: Optional[str] = None
    votes: int = Field(0, ge=0)
    added_at: int  # ms since epoch
    status: Status = "active"


class WinnerRecord(BaseModel):
    """
    Ledger entry written at promotion time; never updated afterwards.
    `id` is the ledger sequence number.
    """
    model_config = ConfigDict(frozen=True)

    id: int
    movie_id: str
    title: str
    year: str
    poster: Optional[str] = None
    final_votes: int
    won_at: int  # ms since epoch


class AddOutcome(BaseModel):
    candidate: Candidate
    created: bool
    # True when re-submitting an active movie counted as a vote
    implied_vote: bool = False
    is_winner: bool = False


class SearchResult(BaseModel):
    id: str
    title: str
    year: str
    poster: Optional[str] = None
    type: str


class SearchPage(BaseModel):
    results: List[SearchResult]
    total_results: int


class Event(BaseModel):
    """
    Wire envelope pushed to websocket subscribers.
    """
    type: str
    data: Any

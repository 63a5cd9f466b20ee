from fastapi import APIRouter, Depends

from .deps import get_engine, ok
from .engine import VotingEngine

router = APIRouter(prefix="/api/winners", tags=["winners"])


@router.get("")
def list_winners(engine: VotingEngine = Depends(get_engine)):
    winners = engine.list_winners()
    return ok([w.model_dump() for w in winners], count=len(winners))


@router.delete("")
def clear_winners(engine: VotingEngine = Depends(get_engine)):
    engine.clear_winner_ledger()
    return ok(message="All winners cleared")

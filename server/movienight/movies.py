from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from .deps import get_engine, ok
from .engine import VotingEngine
from .errors import NotFoundError
from .models import MovieIn

router = APIRouter(prefix="/api/movies", tags=["movies"])


@router.get("")
def list_movies(engine: VotingEngine = Depends(get_engine)):
    movies = engine.list_active_candidates()
    # keeps every open client in sync with whoever just refreshed
    engine.broadcast_snapshot(movies)
    return ok([m.model_dump() for m in movies], count=len(movies))


@router.post("")
def add_movie(body: MovieIn, engine: VotingEngine = Depends(get_engine)):
    outcome = engine.add_candidate(body.id, body.title, body.year, body.poster)
    if outcome.created:
        return JSONResponse(status_code=201, content=ok(outcome.candidate.model_dump()))
    return ok(
        outcome.candidate.model_dump(),
        is_winner=outcome.is_winner,
        implied_vote=outcome.implied_vote,
        message="Movie already existed, vote incremented",
    )


@router.delete("")
def clear_movies(engine: VotingEngine = Depends(get_engine)):
    engine.clear_active_candidates()
    return ok(message="All active movies cleared")


@router.get("/{movie_id}")
def get_movie(movie_id: str, engine: VotingEngine = Depends(get_engine)):
    return ok(engine.get_candidate(movie_id).model_dump())


@router.post("/{movie_id}/vote")
def vote(movie_id: str, engine: VotingEngine = Depends(get_engine)):
    movie = engine.cast_vote(movie_id)
    return ok(movie.model_dump(), is_winner=movie.status == "winner")


@router.delete("/{movie_id}")
def delete_movie(movie_id: str, engine: VotingEngine = Depends(get_engine)):
    if not engine.delete_candidate(movie_id):
        raise NotFoundError("Movie not found or already completed")
    return ok(message="Movie deleted successfully")

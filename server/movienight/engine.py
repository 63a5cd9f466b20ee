# add / vote / promote rules over the ballot store
import logging
import threading
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Optional

from .broadcast import Broadcaster
from .config import WIN_THRESHOLD
from .errors import AlreadyWonError, NotFoundError, ValidationError
from .models import AddOutcome, Candidate, WinnerRecord
from .store import BallotStore

logger = logging.getLogger(__name__)

REQUIRED_FIELDS_MESSAGE = "Missing required fields: id, title, year, poster"
VOTE_NOT_FOUND_MESSAGE = "Movie not found or already won"
ALREADY_WON_MESSAGE = "This movie has already won and cannot be added again"


class _KeyedLocks:
    """
    One lock per movie id, created on demand and dropped once nobody
    holds or waits on it.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, list] = {}  # id -> [lock, users]

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        entry[0].acquire()
        try:
            yield
        finally:
            entry[0].release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]


def _blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()


class VotingEngine:
    """
    Owns the ballot rules:

    - a new id is added with 0 votes and status 'active'
    - re-adding an active id counts as one vote
    - a vote that brings a movie to `threshold` promotes it to the winners
      ledger in the same transaction
    - winners are frozen: they cannot be voted on, deleted or re-added

    Every call touching one id runs under that id's lock; notifications are
    published once the lock is released and never fail the call.
    """

    def __init__(self, store: BallotStore, broadcaster: Broadcaster, threshold: int = WIN_THRESHOLD):
        self.store = store
        self.broadcaster = broadcaster
        self.threshold = threshold
        self._locks = _KeyedLocks()

    # ----------- mutations -----------

    def add_candidate(
        self,
        movie_id: Optional[str],
        title: Optional[str],
        year: Optional[str],
        poster: Optional[str],
    ) -> AddOutcome:
        if any(_blank(v) for v in (movie_id, title, year, poster)):
            raise ValidationError(REQUIRED_FIELDS_MESSAGE)

        with self._locks.hold(movie_id):
            existing = self.store.get_candidate(movie_id)
            if existing is None and self.store.has_won(movie_id):
                logger.info("movie is on the winners ledger, cannot be re-added: %s", movie_id)
                raise AlreadyWonError(ALREADY_WON_MESSAGE)
            if existing is None:
                candidate = self.store.add_candidate(movie_id, title, year, poster)
                winner = None
            elif existing.status == "winner":
                logger.info("movie is a past winner, cannot be re-added: %s", existing.title)
                raise AlreadyWonError(ALREADY_WON_MESSAGE)
            else:
                logger.info("movie already on the ballot, counting as a vote: %s", existing.title)
                candidate, winner = self._vote_locked(existing)

        if existing is None:
            logger.info("movie added: %s (%s)", candidate.title, candidate.id)
            self._notify(lambda: self.broadcaster.movie_added(candidate))
            return AddOutcome(candidate=candidate, created=True)

        self._announce_vote(candidate, winner)
        return AddOutcome(
            candidate=candidate,
            created=False,
            implied_vote=True,
            is_winner=winner is not None,
        )

    def cast_vote(self, movie_id: str) -> Candidate:
        with self._locks.hold(movie_id):
            existing = self.store.get_candidate(movie_id)
            if existing is None or existing.status != "active":
                raise NotFoundError(VOTE_NOT_FOUND_MESSAGE)
            candidate, winner = self._vote_locked(existing)

        self._announce_vote(candidate, winner)
        return candidate

    def delete_candidate(self, movie_id: str) -> bool:
        with self._locks.hold(movie_id):
            deleted = self.store.delete_active(movie_id)
        if deleted:
            logger.info("movie deleted: %s", movie_id)
            self.broadcast_snapshot()
        else:
            logger.info("delete skipped, movie not found or already won: %s", movie_id)
        return deleted

    def clear_active_candidates(self) -> None:
        self.store.clear_candidates()
        logger.info("all active movies cleared")
        self._notify(lambda: self.broadcaster.active_snapshot([]))

    def clear_winner_ledger(self) -> None:
        self.store.clear_winners()
        logger.info("winners ledger cleared")
        self._notify(lambda: self.broadcaster.winners_updated([]))

    def broadcast_snapshot(self, candidates: Optional[List[Candidate]] = None) -> None:
        """
        Push the full active list to every subscriber, reading it from the
        store unless the caller already has it.
        """
        self._notify(
            lambda: self.broadcaster.active_snapshot(
                candidates if candidates is not None else self.store.list_active()
            )
        )

    # ----------- queries -----------

    def get_candidate(self, movie_id: str) -> Candidate:
        candidate = self.store.get_candidate(movie_id)
        if candidate is None:
            raise NotFoundError("Movie not found")
        return candidate

    def list_active_candidates(self) -> List[Candidate]:
        return self.store.list_active()

    def list_winners(self) -> List[WinnerRecord]:
        return self.store.list_winners()

    # ----------- internals -----------

    def _vote_locked(self, existing: Candidate):
        # caller holds the id lock; increment and promotion land in one transaction
        votes = existing.votes + 1
        promote = votes >= self.threshold
        return self.store.apply_vote(existing, votes, promote)

    def _announce_vote(self, candidate: Candidate, winner: Optional[WinnerRecord]) -> None:
        if winner is None:
            logger.info("vote recorded: %s (%d votes)", candidate.title, candidate.votes)
            self._notify(lambda: self.broadcaster.movie_voted(candidate))
            return

        logger.info("movie promoted to winners: %s (%d votes)", winner.title, winner.final_votes)
        self._notify(lambda: self.broadcaster.movie_promoted(winner))
        self._notify(lambda: self.broadcaster.winners_updated(self.store.list_winners()))

    def _notify(self, send: Callable[[], object]) -> None:
        try:
            send()
        except Exception:
            logger.exception("broadcast failed, result already committed")

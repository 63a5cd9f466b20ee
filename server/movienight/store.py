# sqlite-backed ballot + winners ledger
import logging
import os
import sqlite3
import threading
import time
from collections import OrderedDict
from contextlib import contextmanager
from typing import Iterator, List, Optional, Tuple

from .config import DATABASE_PATH, MOVIE_CACHE_SIZE
from .errors import NotFoundError, StorageError
from .models import Candidate, WinnerRecord

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS movies (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    year TEXT NOT NULL,
    poster TEXT,
    votes INTEGER NOT NULL DEFAULT 0 CHECK(votes >= 0),
    added_at INTEGER NOT NULL,
    status TEXT NOT NULL DEFAULT 'active' CHECK(status IN ('active', 'winner'))
);

CREATE TABLE IF NOT EXISTS winners (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    movie_id TEXT NOT NULL,
    title TEXT NOT NULL,
    year TEXT NOT NULL,
    poster TEXT,
    final_votes INTEGER NOT NULL,
    won_at INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_movies_status ON movies(status);
CREATE INDEX IF NOT EXISTS idx_movies_votes ON movies(votes DESC);
CREATE INDEX IF NOT EXISTS idx_winners_won_at ON winners(won_at DESC);
CREATE INDEX IF NOT EXISTS idx_winners_movie_id ON winners(movie_id);
"""


def now_ms() -> int:
    return int(time.time() * 1000)


class _LRU:
    def __init__(self, max_size: int):
        self.max_size = max_size
        self._items: "OrderedDict[str, Candidate]" = OrderedDict()

    def get(self, key: str) -> Optional[Candidate]:
        if key not in self._items:
            return None
        self._items.move_to_end(key)
        return self._items[key]

    def put(self, key: str, value: Candidate) -> None:
        self._items[key] = value
        self._items.move_to_end(key)
        while len(self._items) > self.max_size:
            self._items.popitem(last=False)

    def pop(self, key: str) -> None:
        self._items.pop(key, None)

    def clear(self) -> None:
        self._items.clear()


class BallotStore:
    """
    Durable storage for the active ballot (`movies`) and the winners
    ledger (`winners`).

    One connection is shared by every request thread; all access goes
    through `self._lock`, and each mutation is a single transaction whose
    cache invalidation runs in the same critical section, so readers never
    see a vote without its promotion or a stale cached row.
    """

    def __init__(self, db_path: str = DATABASE_PATH, cache_size: int = MOVIE_CACHE_SIZE):
        self.db_path = db_path
        if db_path != ":memory:":
            directory = os.path.dirname(os.path.abspath(db_path))
            os.makedirs(directory, exist_ok=True)

        self._lock = threading.RLock()
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        if db_path != ":memory:":
            self._conn.execute("PRAGMA journal_mode = WAL")
            self._conn.execute("PRAGMA synchronous = NORMAL")
        self._conn.executescript(SCHEMA)

        self._by_id = _LRU(cache_size)
        self._active_cache: Optional[List[Candidate]] = None
        self._winners_cache: Optional[List[WinnerRecord]] = None

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    @contextmanager
    def _guard(self, action: str) -> Iterator[None]:
        try:
            yield
        except sqlite3.Error as exc:
            logger.exception("storage failure during %s", action)
            raise StorageError(f"Database error during {action}: {exc}") from exc

    # ----------- ballot -----------

    def add_candidate(self, movie_id: str, title: str, year: str, poster: Optional[str]) -> Candidate:
        candidate = Candidate(
            id=movie_id,
            title=title,
            year=year,
            poster=poster,
            votes=0,
            added_at=now_ms(),
            status="active",
        )
        with self._lock, self._guard("add_candidate"):
            try:
                with self._conn:
                    self._conn.execute(
                        "INSERT INTO movies (id, title, year, poster, votes, added_at, status) "
                        "VALUES (?, ?, ?, ?, 0, ?, 'active')",
                        (candidate.id, candidate.title, candidate.year, candidate.poster, candidate.added_at),
                    )
            finally:
                self._by_id.pop(movie_id)
                self._active_cache = None
        return candidate

    def get_candidate(self, movie_id: str) -> Optional[Candidate]:
        with self._lock, self._guard("get_candidate"):
            cached = self._by_id.get(movie_id)
            if cached is not None:
                return cached
            row = self._conn.execute("SELECT * FROM movies WHERE id = ?", (movie_id,)).fetchone()
            if row is None:
                return None
            candidate = Candidate(**dict(row))
            self._by_id.put(movie_id, candidate)
            return candidate

    def list_active(self) -> List[Candidate]:
        with self._lock, self._guard("list_active"):
            if self._active_cache is None:
                rows = self._conn.execute(
                    "SELECT * FROM movies WHERE status = 'active' "
                    "ORDER BY votes DESC, added_at ASC, rowid ASC"
                ).fetchall()
                self._active_cache = [Candidate(**dict(r)) for r in rows]
            return list(self._active_cache)

    def apply_vote(
        self, candidate: Candidate, votes: int, promote: bool
    ) -> Tuple[Candidate, Optional[WinnerRecord]]:
        """
        Write the new vote count and, when `promote` is set, flip the row to
        'winner' and append its ledger entry in the same transaction.
        Returns the updated candidate and the new ledger entry (if any).
        """
        status = "winner" if promote else "active"
        winner: Optional[WinnerRecord] = None
        with self._lock, self._guard("apply_vote"):
            try:
                with self._conn:
                    cur = self._conn.execute(
                        "UPDATE movies SET votes = ?, status = ? WHERE id = ? AND status = 'active'",
                        (votes, status, candidate.id),
                    )
                    if cur.rowcount != 1:
                        # deleted or cleared since the caller read it
                        raise NotFoundError("Movie not found or already won")
                    if promote:
                        won_at = now_ms()
                        cur = self._conn.execute(
                            "INSERT INTO winners (movie_id, title, year, poster, final_votes, won_at) "
                            "VALUES (?, ?, ?, ?, ?, ?)",
                            (candidate.id, candidate.title, candidate.year, candidate.poster, votes, won_at),
                        )
                        winner = WinnerRecord(
                            id=cur.lastrowid,
                            movie_id=candidate.id,
                            title=candidate.title,
                            year=candidate.year,
                            poster=candidate.poster,
                            final_votes=votes,
                            won_at=won_at,
                        )
            finally:
                self._by_id.pop(candidate.id)
                self._active_cache = None
                if promote:
                    self._winners_cache = None
        return candidate.model_copy(update={"votes": votes, "status": status}), winner

    def delete_active(self, movie_id: str) -> bool:
        with self._lock, self._guard("delete_active"):
            try:
                with self._conn:
                    cur = self._conn.execute(
                        "DELETE FROM movies WHERE id = ? AND status = 'active'", (movie_id,)
                    )
            finally:
                self._by_id.pop(movie_id)
                self._active_cache = None
        logger.debug("delete movie %s: %d rows affected", movie_id, cur.rowcount)
        return cur.rowcount > 0

    def clear_candidates(self) -> None:
        with self._lock, self._guard("clear_candidates"):
            try:
                with self._conn:
                    self._conn.execute("DELETE FROM movies")
            finally:
                self._by_id.clear()
                self._active_cache = None

    # ----------- winners ledger -----------

    def has_won(self, movie_id: str) -> bool:
        """
        True while the ledger holds an entry for `movie_id`, even after its
        ballot row was cleared.
        """
        with self._lock, self._guard("has_won"):
            row = self._conn.execute(
                "SELECT 1 FROM winners WHERE movie_id = ? LIMIT 1", (movie_id,)
            ).fetchone()
            return row is not None

    def list_winners(self) -> List[WinnerRecord]:
        with self._lock, self._guard("list_winners"):
            if self._winners_cache is None:
                rows = self._conn.execute(
                    "SELECT * FROM winners ORDER BY won_at DESC, id DESC"
                ).fetchall()
                self._winners_cache = [WinnerRecord(**dict(r)) for r in rows]
            return list(self._winners_cache)

    def clear_winners(self) -> None:
        with self._lock, self._guard("clear_winners"):
            try:
                with self._conn:
                    self._conn.execute("DELETE FROM winners")
            finally:
                self._winners_cache = None

import pytest

from movienight.errors import NotFoundError, StorageError
from movienight.store import BallotStore


def tables(store):
    rows = store._conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
    return {r["name"] for r in rows}


def test_schema_created(store):
    assert {"movies", "winners"} <= tables(store)


def test_creates_missing_data_directory(tmp_path):
    path = tmp_path / "nested" / "dir" / "movies.db"
    s = BallotStore(str(path))
    try:
        assert path.exists()
    finally:
        s.close()


def test_add_and_get(store):
    added = store.add_candidate("tt1", "Movie 1", "2020", "url1")
    assert added.votes == 0
    assert added.status == "active"
    assert isinstance(added.added_at, int)

    fetched = store.get_candidate("tt1")
    assert fetched == added
    assert store.get_candidate("missing") is None


def test_duplicate_insert_is_storage_error(store):
    store.add_candidate("tt1", "Movie 1", "2020", "url1")
    with pytest.raises(StorageError):
        store.add_candidate("tt1", "Movie 1", "2020", "url1")


def test_active_sorted_by_votes_then_insertion(store):
    a = store.add_candidate("tt1", "Movie 1", "2020", "url1")
    b = store.add_candidate("tt2", "Movie 2", "2021", "url2")
    store.add_candidate("tt3", "Movie 3", "2022", "url3")

    store.apply_vote(b, 1, promote=False)
    store.apply_vote(a, 1, promote=False)

    assert [m.id for m in store.list_active()] == ["tt1", "tt2", "tt3"]


def test_apply_vote_refreshes_cached_reads(store):
    c = store.add_candidate("tt1", "Movie 1", "2020", "url1")
    store.get_candidate("tt1")
    store.list_active()

    updated, winner = store.apply_vote(c, 1, promote=False)

    assert winner is None
    assert updated.votes == 1
    assert store.get_candidate("tt1").votes == 1
    assert store.list_active()[0].votes == 1


def test_promotion_writes_ledger_in_same_step(store):
    c = store.add_candidate("tt1", "Movie 1", "2020", "url1")
    store.list_winners()

    updated, winner = store.apply_vote(c.model_copy(update={"votes": 9}), 10, promote=True)

    assert updated.status == "winner"
    assert winner.movie_id == "tt1"
    assert winner.final_votes == 10
    assert store.list_active() == []
    assert store.list_winners() == [winner]
    assert store.get_candidate("tt1").status == "winner"


def test_apply_vote_on_deleted_row_is_not_found(store):
    c = store.add_candidate("tt1", "Movie 1", "2020", "url1")
    store.delete_active("tt1")
    with pytest.raises(NotFoundError):
        store.apply_vote(c, 1, promote=False)
    assert store.list_winners() == []


def test_winners_most_recent_first(store):
    first = store.add_candidate("tt1", "Movie 1", "2020", "url1")
    second = store.add_candidate("tt2", "Movie 2", "2021", "url2")
    store.apply_vote(first, 10, promote=True)
    store.apply_vote(second, 10, promote=True)

    winners = store.list_winners()
    assert [w.movie_id for w in winners] == ["tt2", "tt1"]
    assert winners[0].won_at >= winners[1].won_at


def test_delete_only_touches_active_rows(store):
    store.add_candidate("tt1", "Movie 1", "2020", "url1")
    won = store.add_candidate("tt2", "Movie 2", "2021", "url2")
    store.apply_vote(won, 10, promote=True)

    assert store.delete_active("tt1") is True
    assert store.delete_active("tt1") is False
    assert store.delete_active("tt2") is False
    assert store.get_candidate("tt1") is None
    assert store.get_candidate("tt2").status == "winner"


def test_clears_are_independent(store):
    store.add_candidate("tt1", "Movie 1", "2020", "url1")
    won = store.add_candidate("tt2", "Movie 2", "2021", "url2")
    store.apply_vote(won, 10, promote=True)
    store.list_active()
    store.list_winners()

    store.clear_candidates()
    assert store.list_active() == []
    assert store.get_candidate("tt1") is None
    assert len(store.list_winners()) == 1

    store.clear_winners()
    assert store.list_winners() == []


def test_state_survives_reopen(tmp_path):
    path = str(tmp_path / "movies.db")
    s = BallotStore(path)
    s.add_candidate("tt1", "Movie 1", "2020", "url1")
    s.close()

    reopened = BallotStore(path)
    try:
        assert reopened.get_candidate("tt1").title == "Movie 1"
    finally:
        reopened.close()


def test_sqlite_failure_surfaces_as_storage_error(store):
    store._conn.close()
    with pytest.raises(StorageError):
        store.list_active()


def test_has_won_outlives_ballot_clear(store):
    won = store.add_candidate("tt1", "Movie 1", "2020", "url1")
    store.add_candidate("tt2", "Movie 2", "2021", "url2")
    store.apply_vote(won, 10, promote=True)

    store.clear_candidates()

    assert store.has_won("tt1") is True
    assert store.has_won("tt2") is False
    store.clear_winners()
    assert store.has_won("tt1") is False

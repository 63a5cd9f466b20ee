import asyncio

import httpx
import pytest
from fastapi.testclient import TestClient

from movienight.broadcast import Broadcaster
from movienight.catalog import CatalogClient
from movienight.engine import VotingEngine
from movienight.main import create_app
from movienight.store import BallotStore


@pytest.fixture
def store(tmp_path):
    s = BallotStore(str(tmp_path / "movies.db"))
    yield s
    s.close()


@pytest.fixture
def broadcaster():
    return Broadcaster()


@pytest.fixture
def engine(store, broadcaster):
    return VotingEngine(store, broadcaster)


class Inbox:
    """
    A subscription on a private event loop; `drain()` runs the loop once so
    deliveries scheduled from publish() land, then empties the queue.
    """

    def __init__(self, broadcaster: Broadcaster):
        self.loop = asyncio.new_event_loop()
        self.sub = broadcaster.subscribe(loop=self.loop)

    def drain(self):
        self.loop.run_until_complete(asyncio.sleep(0))
        events = []
        while not self.sub.queue.empty():
            events.append(self.sub.queue.get_nowait())
        return events

    def types(self):
        return [e.type for e in self.drain()]

    def close(self):
        self.loop.close()


@pytest.fixture
def inbox(broadcaster):
    box = Inbox(broadcaster)
    yield box
    broadcaster.unsubscribe(box.sub)
    box.close()


def movie(movie_id="tt0111161", title="The Shawshank Redemption", year="1994", poster="https://example.com/p.jpg"):
    return {"id": movie_id, "title": title, "year": year, "poster": poster}


def omdb_transport(handler):
    return httpx.MockTransport(handler)


@pytest.fixture
def omdb_search_payload():
    return {
        "Search": [
            {"Title": "Alien", "Year": "1979", "imdbID": "tt0078748", "Type": "movie", "Poster": "https://img/alien.jpg"},
            {"Title": "Aliens", "Year": "1986", "imdbID": "tt0090605", "Type": "movie", "Poster": "N/A"},
        ],
        "totalResults": "2",
        "Response": "True",
    }


@pytest.fixture
def client(tmp_path, omdb_search_payload):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.params.get("s") == "zzzz":
            return httpx.Response(200, json={"Response": "False", "Error": "Movie not found!"})
        return httpx.Response(200, json=omdb_search_payload)

    catalog = CatalogClient(api_url="http://omdb.test/", api_key="k", transport=omdb_transport(handler))
    app = create_app(db_path=str(tmp_path / "api.db"), catalog=catalog)
    with TestClient(app) as c:
        yield c

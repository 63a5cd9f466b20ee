# subscriber registry + best-effort fan-out
import asyncio
import itertools
import logging
import threading
from typing import Dict, List, Optional

from .config import SUBSCRIBER_QUEUE_SIZE
from .models import Candidate, Event, WinnerRecord

logger = logging.getLogger(__name__)

MOVIES_INITIAL = "movies:initial"
MOVIE_ADDED = "movie:added"
MOVIE_VOTED = "movie:voted"
MOVIE_WINNER = "movie:winner"
WINNERS_UPDATED = "winners:updated"

_ids = itertools.count(1)


class Subscription:
    """
    Delivery handle for one connected client: a queue living on the event
    loop of the connection that created it.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop, maxsize: int = SUBSCRIBER_QUEUE_SIZE):
        self.id = next(_ids)
        self.loop = loop
        self.queue: "asyncio.Queue[Event]" = asyncio.Queue(maxsize=maxsize)

    def deliver(self, event: Event) -> None:
        """
        Schedule `event` onto this subscriber's queue. Safe to call from
        any thread; raises RuntimeError if the owning loop is closed.
        """
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is self.loop:
            self._put(event)
        else:
            self.loop.call_soon_threadsafe(self._put, event)

    def _put(self, event: Event) -> None:
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning("subscriber %d queue full, dropping %s", self.id, event.type)

    async def get(self) -> Event:
        return await self.queue.get()


class Broadcaster:
    """
    Fans state-change events out to every subscription registered at
    publish time. Nothing is buffered for clients that connect later.
    """

    def __init__(self, queue_size: int = SUBSCRIBER_QUEUE_SIZE):
        self.queue_size = queue_size
        self._lock = threading.Lock()
        self._subscribers: Dict[int, Subscription] = {}

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> Subscription:
        if loop is None:
            loop = asyncio.get_running_loop()
        sub = Subscription(loop, maxsize=self.queue_size)
        with self._lock:
            self._subscribers[sub.id] = sub
        logger.info("subscriber %d connected (%d total)", sub.id, self.subscriber_count)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            removed = self._subscribers.pop(sub.id, None)
        if removed is not None:
            logger.info("subscriber %d disconnected (%d total)", sub.id, self.subscriber_count)

    def publish(self, event: Event) -> int:
        """
        Best effort: a failing subscriber is logged and skipped, never
        raised to the caller. Returns how many deliveries were scheduled.
        """
        with self._lock:
            targets: List[Subscription] = list(self._subscribers.values())

        delivered = 0
        for sub in targets:
            try:
                sub.deliver(event)
                delivered += 1
            except Exception:
                logger.exception("delivery of %s to subscriber %d failed", event.type, sub.id)
        return delivered

    # ----------- notification kinds -----------

    def active_snapshot(self, candidates: List[Candidate]) -> int:
        return self.publish(Event(type=MOVIES_INITIAL, data=[c.model_dump() for c in candidates]))

    def movie_added(self, candidate: Candidate) -> int:
        logger.info("broadcast %s - %s", MOVIE_ADDED, candidate.title)
        return self.publish(Event(type=MOVIE_ADDED, data=candidate.model_dump()))

    def movie_voted(self, candidate: Candidate) -> int:
        logger.info("broadcast %s - %s (%d votes)", MOVIE_VOTED, candidate.title, candidate.votes)
        return self.publish(Event(type=MOVIE_VOTED, data=candidate.model_dump()))

    def movie_promoted(self, winner: WinnerRecord) -> int:
        logger.info("broadcast %s - %s", MOVIE_WINNER, winner.title)
        return self.publish(Event(type=MOVIE_WINNER, data=winner.model_dump()))

    def winners_updated(self, winners: List[WinnerRecord]) -> int:
        logger.info("broadcast %s - %d winners", WINNERS_UPDATED, len(winners))
        return self.publish(Event(type=WINNERS_UPDATED, data=[w.model_dump() for w in winners]))

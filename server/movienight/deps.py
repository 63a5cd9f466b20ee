# request-scoped access to the objects the lifespan hangs on app.state
from typing import Any, Dict

from fastapi import Request

from .broadcast import Broadcaster
from .catalog import CatalogClient
from .engine import VotingEngine


def get_engine(request: Request) -> VotingEngine:
    return request.app.state.engine


def get_broadcaster(request: Request) -> Broadcaster:
    return request.app.state.broadcaster


def get_catalog(request: Request) -> CatalogClient:
    return request.app.state.catalog


def ok(data: Any = None, **extra: Any) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": True}
    if data is not None:
        body["data"] = data
    body.update(extra)
    return body

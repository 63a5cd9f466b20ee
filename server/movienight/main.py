import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .broadcast import Broadcaster
from .catalog import CatalogClient
from .config import CORS_ORIGINS, DATABASE_PATH, LOG_LEVEL, PORT, WIN_THRESHOLD
from .deps import get_broadcaster
from .engine import VotingEngine
from .errors import MovieNightError
from .movies import router as movies_router
from .realtime import router as realtime_router
from .search import router as search_router
from .store import BallotStore
from .winners import router as winners_router

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s | %(name)-22s | %(levelname)-7s | %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("movienight")


def create_app(db_path: Optional[str] = None, catalog: Optional[CatalogClient] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup: open the store, wire the engine to a fresh broadcaster
        store = BallotStore(db_path or DATABASE_PATH)
        broadcaster = Broadcaster()
        app.state.store = store
        app.state.broadcaster = broadcaster
        app.state.engine = VotingEngine(store, broadcaster, WIN_THRESHOLD)
        app.state.catalog = catalog or CatalogClient()
        logger.info("database  : %s", store.db_path)
        logger.info("threshold : %d votes", WIN_THRESHOLD)
        yield
        # Shutdown
        store.close()
        logger.info("store closed")

    app = FastAPI(title="Movie Night Ballot", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(MovieNightError)
    async def movienight_error(request: Request, exc: MovieNightError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"success": False, "error": exc.message})

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        error = "Route not found" if exc.status_code == 404 else str(exc.detail)
        return JSONResponse(status_code=exc.status_code, content={"success": False, "error": error})

    @app.exception_handler(RequestValidationError)
    async def bad_request(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"success": False, "error": "Invalid request body"})

    @app.get("/health")
    def health(broadcaster: Broadcaster = Depends(get_broadcaster)):
        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "subscribers": broadcaster.subscriber_count,
        }

    app.include_router(movies_router)
    app.include_router(winners_router)
    app.include_router(search_router)
    app.include_router(realtime_router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("movienight.main:app", host="0.0.0.0", port=PORT, log_level="info")

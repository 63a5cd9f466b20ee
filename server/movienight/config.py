# env vars + constants
import os

PORT = int(os.getenv("PORT", "8000"))
DATABASE_PATH = os.getenv("DATABASE_PATH", "./data/movies.db")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

OMDB_API_URL = os.getenv("OMDB_API_URL", "http://www.omdbapi.com/")
OMDB_TIMEOUT = float(os.getenv("OMDB_TIMEOUT", "5.0"))

MOVIE_CACHE_SIZE = int(os.getenv("MOVIE_CACHE_SIZE", "50"))
SUBSCRIBER_QUEUE_SIZE = int(os.getenv("SUBSCRIBER_QUEUE_SIZE", "100"))

# votes needed to move a movie onto the winners ledger
WIN_THRESHOLD = 10


def omdb_api_key() -> str:
    # read per call so a key exported after start-up is picked up
    return os.getenv("OMDB_API_KEY", "").strip()

from typing import Optional

from fastapi import APIRouter, Depends

from .catalog import CatalogClient
from .deps import get_catalog, ok
from .errors import ValidationError

router = APIRouter(prefix="/api/search", tags=["search"])


def _page_number(page: Optional[str]) -> int:
    if not page:
        return 1
    try:
        number = int(page)
    except ValueError:
        raise ValidationError("Invalid page number")
    if number < 1:
        raise ValidationError("Invalid page number")
    return number


@router.get("")
async def search_movies(
    q: Optional[str] = None,
    page: Optional[str] = None,
    catalog: CatalogClient = Depends(get_catalog),
):
    number = _page_number(page)
    result = await catalog.search(q, number)
    return ok(
        query=q,
        page=number,
        total_results=result.total_results,
        results=[r.model_dump() for r in result.results],
    )


@router.get("/{imdb_id}")
async def movie_details(imdb_id: str, catalog: CatalogClient = Depends(get_catalog)):
    return ok(await catalog.details(imdb_id))

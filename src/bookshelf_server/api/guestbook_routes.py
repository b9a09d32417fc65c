from typing import Annotated, Any, Dict

from fastapi import APIRouter, Depends, Query, Response

from .dependencies import get_discussions_client
from ..content.discussions import DiscussionsClient

router = APIRouter(prefix="/api", tags=["guestbook"])

GUESTBOOK_CACHE_CONTROL = "s-maxage=60, stale-while-revalidate=30"


@router.get("/guestbook", summary="Guestbook comments, newest first")
async def guestbook(
    response: Response,
    discussions: Annotated[DiscussionsClient, Depends(get_discussions_client)],
    page: int = Query(1),
) -> Dict[str, Any]:
    """
    Ten comments per page. Out-of-range pages are clamped; a missing
    discussion or token yields an empty first page.
    """
    response.headers["Cache-Control"] = GUESTBOOK_CACHE_CONTROL
    return await discussions.guestbook(page)

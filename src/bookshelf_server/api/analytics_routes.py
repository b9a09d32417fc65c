"""
Analytics Routes

Public dashboard and page-view counters backed by GoatCounter.
"""

from typing import Annotated, Any, Dict

from fastapi import APIRouter, Depends, Query, Response

from .dependencies import get_dashboard_cache, get_goatcounter_client
from .models import ViewCount, ViewsBatchRequest
from ..analytics.dashboard import build_public_dashboard
from ..analytics.goatcounter import GoatCounterClient
from ..store import KeyValueStore

router = APIRouter(prefix="/api", tags=["analytics"])

DASHBOARD_CACHE_KEY = "dashboard"
DASHBOARD_TTL_SECONDS = 300
DASHBOARD_CACHE_CONTROL = "public, max-age=300"

GoatCounter = Annotated[GoatCounterClient, Depends(get_goatcounter_client)]


@router.get("/dashboard", summary="Public visitor dashboard")
async def dashboard(
    response: Response,
    goatcounter: GoatCounter,
    cache: Annotated[KeyValueStore, Depends(get_dashboard_cache)],
) -> Dict[str, Any]:
    """
    Visitor totals plus the most read posts and books of the last week.
    The assembled payload is reused for five minutes.
    """
    response.headers["Cache-Control"] = DASHBOARD_CACHE_CONTROL

    cached = cache.get_fresh(DASHBOARD_CACHE_KEY, DASHBOARD_TTL_SECONDS)
    if cached is not None:
        return cached["stats"]

    stats = await build_public_dashboard(goatcounter)
    cache.set(DASHBOARD_CACHE_KEY, {"stats": stats, "timestamp": cache.timestamp()})
    return stats


@router.get("/views", response_model=ViewCount, summary="View count of one path")
async def views(goatcounter: GoatCounter, path: str = Query("")) -> ViewCount:
    return ViewCount(count=await goatcounter.page_count(path))


@router.post("/views-batch", response_model=Dict[str, str], summary="View counts of many paths")
async def views_batch(body: ViewsBatchRequest, goatcounter: GoatCounter) -> Dict[str, str]:
    if not body.paths:
        return {}
    return await goatcounter.page_counts(body.paths)

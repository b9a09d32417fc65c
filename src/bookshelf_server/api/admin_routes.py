"""
Admin Routes

Password login and the private analytics view.

Security
--------
``POST /login`` exchanges the configured admin password for a short-lived
JWT. Every other route requires that token as ``Authorization: Bearer``.
"""

import logging
from typing import Annotated, Any, Dict

from fastapi import APIRouter, Depends, HTTPException, status

from .dependencies import get_content_client, get_goatcounter_client
from .models import LoginRequest, LoginResponse
from ..analytics.dashboard import build_admin_stats
from ..analytics.goatcounter import GoatCounterClient
from ..auth.security import (
    AdminNotConfiguredError,
    check_admin_password,
    create_admin_token,
    verify_admin_token,
)
from ..content.github_client import GitHubContentClient

logger = logging.getLogger("bookshelf.admin")

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.post("/login", response_model=LoginResponse, summary="Admin login")
async def login(body: LoginRequest) -> LoginResponse:
    try:
        ok = check_admin_password(body.password)
        token = create_admin_token() if ok else None
    except AdminNotConfiguredError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="ADMIN_PASSWORD not configured",
        )

    if not ok:
        logger.info("Rejected admin login")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid password",
        )

    return LoginResponse(token=token)


@router.api_route(
    "/stats",
    methods=["GET", "POST"],
    summary="Private site statistics",
)
async def admin_stats(
    _: Annotated[str, Depends(verify_admin_token)],
    goatcounter: Annotated[GoatCounterClient, Depends(get_goatcounter_client)],
    github: Annotated[GitHubContentClient, Depends(get_content_client)],
) -> Dict[str, Any]:
    """
    Visitor totals, 90 days of hits, audience breakdowns and the GitHub API
    rate limit.
    """
    if not goatcounter.enabled:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="GOATCOUNTER_API_TOKEN not configured",
        )
    return await build_admin_stats(goatcounter, github)

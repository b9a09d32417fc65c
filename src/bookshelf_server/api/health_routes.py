from fastapi import APIRouter
from ..config import settings

router = APIRouter(tags=["health"])

@router.get("/health")
def health():
    return {
        "status": "ok",
        "content_repo": f"{settings.github_owner}/{settings.github_repo}",
    }

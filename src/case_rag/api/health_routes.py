from fastapi import APIRouter

from ..config import settings, EMBEDDING_DIMENSION

router = APIRouter(tags=["health"])

@router.get("/health")
def health():
    return {
        "status": "ok",
        "embedding_service_configured": settings.embedding_service_url is not None,
        "embedding_dimension": EMBEDDING_DIMENSION,
    }

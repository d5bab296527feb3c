from fastapi import APIRouter

from policylens.api.v1.endpoints import conversations, documents, search

# Create API router
api_router = APIRouter()

api_router.include_router(documents.router, prefix="/documents", tags=["Documents"])
api_router.include_router(search.router, prefix="/search", tags=["Search"])
api_router.include_router(conversations.router, prefix="/conversations", tags=["Conversations"])

__all__ = ["api_router"]

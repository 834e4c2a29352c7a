from fastapi import APIRouter

from quest_core.api.v1.endpoints import batches, commits, graph, realtime, temporal, usage

# Create API router
api_router = APIRouter()

# Include routers
api_router.include_router(batches.router, prefix="/batches", tags=["Batches"])
api_router.include_router(commits.router, prefix="/commits", tags=["Commits"])
api_router.include_router(graph.router, prefix="/graph", tags=["Graph"])
api_router.include_router(temporal.router, prefix="/temporal", tags=["Temporal"])
api_router.include_router(usage.router, prefix="/usage", tags=["Usage"])
api_router.include_router(realtime.router, tags=["Realtime"])

__all__ = ["api_router"]

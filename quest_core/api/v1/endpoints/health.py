"""Health check API endpoints."""

from fastapi import APIRouter
from pydantic import BaseModel, Field

from quest_core.core.config import settings
from quest_core.core.database import db_client
from quest_core.core.neo4j_client import Neo4jClientManager
from quest_core.utils.logging import get_logger

LOGGER = get_logger(__name__)

router = APIRouter()


class HealthCheckResponse(BaseModel):
    status: str = Field(..., description="Health check status")
    version: str = Field(..., description="Running application version")
    service: str = Field(..., description="Service name")
    database: str = Field(..., description="Relational store status")
    graph: str = Field(..., description="Graph store status")


@router.get(
    "/",
    response_model=HealthCheckResponse,
    tags=["Health"],
    summary="Health check endpoint",
    description="Check the service and the health of its relational and graph stores",
    operation_id="get_service_health_status",
)
async def health_check() -> HealthCheckResponse:
    """Health check endpoint.

    The relational store decides overall health; the graph store is a
    derived projection and only degrades the status.
    """
    db_health = await db_client.health_check()
    graph_health = await Neo4jClientManager.health_check()

    if db_health["status"] != "healthy":
        overall = "unhealthy"
    elif graph_health["status"] == "unhealthy":
        overall = "degraded"
    else:
        overall = "healthy"

    return HealthCheckResponse(
        status=overall,
        version=settings.app_version,
        service=settings.app_name,
        database=db_health["status"],
        graph=graph_health["status"],
    )

"""Graph intelligence endpoints over the user's projection."""

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, Request

from quest_core.api.v1.deps import UserContext, get_graph_sync, get_user_context
from quest_core.core.exceptions import ValidationError
from quest_core.schemas.common import ApiResponse
from quest_core.schemas.graph import CustomQueryRequest, IntelligenceType
from quest_core.services.graph_sync import DEFAULT_PATH_HOPS, GraphSyncManager
from quest_core.utils.logging import get_logger
from quest_core.utils.responses import create_api_response, raise_http_error

LOGGER = get_logger(__name__)

router = APIRouter()


@router.get(
    "/intelligence",
    response_model=ApiResponse,
    summary="Query a graph intelligence view",
    operation_id="get_graph_intelligence",
)
async def get_intelligence(
    request: Request,
    view: Annotated[IntelligenceType, Query(alias="type")] = IntelligenceType.NETWORK,
    from_role: Annotated[Optional[str], Query(alias="from")] = None,
    to_role: Annotated[Optional[str], Query(alias="to")] = None,
    skill: Optional[str] = None,
    max_hops: Annotated[int, Query(alias="maxHops")] = DEFAULT_PATH_HOPS,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
    user: Annotated[UserContext, Depends(get_user_context)] = None,
    graph: Annotated[GraphSyncManager, Depends(get_graph_sync)] = None,
) -> ApiResponse:
    """Dispatch on ``type``: network, colleagues, career-paths, skill-migration, stats or insights."""
    user_id = str(user.user_id)
    try:
        if view == IntelligenceType.NETWORK:
            data = await graph.get_user_professional_network(user_id)
        elif view == IntelligenceType.COLLEAGUES:
            data = {"colleagues": await graph.get_professional_colleagues(user_id, limit=limit)}
        elif view == IntelligenceType.CAREER_PATHS:
            if not from_role or not to_role:
                raise ValidationError("Both 'from' and 'to' parameters are required for career paths")
            data = {"paths": await graph.find_career_paths(from_role, to_role, max_hops=max_hops, limit=limit)}
        elif view == IntelligenceType.SKILL_MIGRATION:
            if not skill:
                raise ValidationError("A 'skill' parameter is required for skill migration")
            data = {"patterns": await graph.find_skill_migration_patterns(skill, limit=limit)}
        elif view == IntelligenceType.STATS:
            data = {"stats": await graph.get_database_stats()}
        else:
            data = {"insights": await graph.get_career_insights(user_id)}

        return create_api_response(data=data, message=f"Graph {view.value} retrieved", request=request)
    except Exception as e:
        raise_http_error(e, request)


@router.get(
    "/snapshot",
    response_model=ApiResponse,
    summary="Full graph projection for resynchronizing clients",
    operation_id="get_graph_snapshot",
)
async def get_snapshot(
    request: Request,
    user: Annotated[UserContext, Depends(get_user_context)] = None,
    graph: Annotated[GraphSyncManager, Depends(get_graph_sync)] = None,
) -> ApiResponse:
    try:
        data = await graph.get_graph_snapshot(str(user.user_id))
        return create_api_response(data=data, message="Graph snapshot retrieved", request=request)
    except Exception as e:
        raise_http_error(e, request)


@router.post(
    "/custom",
    response_model=ApiResponse,
    summary="Run a read-only custom graph query (non-production)",
    operation_id="run_custom_graph_query",
)
async def run_custom_query(
    request: Request,
    payload: CustomQueryRequest,
    user: Annotated[UserContext, Depends(get_user_context)] = None,
    graph: Annotated[GraphSyncManager, Depends(get_graph_sync)] = None,
) -> ApiResponse:
    try:
        records = await graph.run_custom_query(payload.query, payload.parameters)
        LOGGER.info("Custom graph query executed", extra={"user_id": str(user.user_id), "rows": len(records)})
        return create_api_response(data={"records": records}, message="Query executed", request=request)
    except Exception as e:
        raise_http_error(e, request)


@router.delete(
    "/cleanup",
    response_model=ApiResponse,
    summary="Remove the caller's graph projection (non-production)",
    operation_id="cleanup_user_graph",
)
async def cleanup_user_graph(
    request: Request,
    user: Annotated[UserContext, Depends(get_user_context)] = None,
    graph: Annotated[GraphSyncManager, Depends(get_graph_sync)] = None,
) -> ApiResponse:
    try:
        counters = await graph.cleanup_user_data(str(user.user_id))
        return create_api_response(data={"counters": counters}, message="Graph projection removed", request=request)
    except Exception as e:
        raise_http_error(e, request)

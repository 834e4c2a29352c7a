from datetime import date
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, Request, status

from quest_core.api.v1.deps import UserContext, get_temporal_manager, get_user_context
from quest_core.schemas.common import ApiResponse
from quest_core.schemas.temporal import TemporalEventCreate, TemporalEventResponse
from quest_core.services.temporal_graph import TemporalGraphManager
from quest_core.utils.logging import get_logger
from quest_core.utils.responses import create_api_response, raise_http_error

LOGGER = get_logger(__name__)

router = APIRouter()


@router.get(
    "/",
    response_model=ApiResponse,
    summary="Temporal graph of the caller's relationships",
    operation_id="get_temporal_graph",
)
async def get_timeline(
    request: Request,
    start_date: Annotated[Optional[date], Query(alias="startDate")] = None,
    end_date: Annotated[Optional[date], Query(alias="endDate")] = None,
    user: Annotated[UserContext, Depends(get_user_context)] = None,
    manager: Annotated[TemporalGraphManager, Depends(get_temporal_manager)] = None,
) -> ApiResponse:
    """Nodes per entity, overlap links and the covered time range, optionally windowed."""
    try:
        timeline = await manager.get_timeline(user.user_id, start=start_date, end=end_date)
        return create_api_response(
            data=timeline,
            message=f"Found {len(timeline['nodes'])} temporal nodes",
            request=request,
        )
    except Exception as e:
        raise_http_error(e, request)


@router.post(
    "/",
    response_model=ApiResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Append a temporal event",
    operation_id="append_temporal_event",
)
async def append_event(
    request: Request,
    payload: TemporalEventCreate,
    user: Annotated[UserContext, Depends(get_user_context)] = None,
    manager: Annotated[TemporalGraphManager, Depends(get_temporal_manager)] = None,
) -> ApiResponse:
    """Record a new interval; the previous open interval for the same entity and type is closed."""
    try:
        event = await manager.append_event(
            user.user_id,
            entity_id=payload.entity_id,
            relation_type=payload.type,
            t_valid=payload.t_valid,
            t_invalid=payload.t_invalid,
            entity_name=payload.entity_name,
            metadata=payload.metadata,
        )
        return create_api_response(
            data={"event": TemporalEventResponse.model_validate(event).to_wire()},
            message="Temporal event recorded",
            request=request,
        )
    except Exception as e:
        raise_http_error(e, request)


@router.get(
    "/progression",
    response_model=ApiResponse,
    summary="Career progression derived from temporal events",
    operation_id="get_career_progression",
)
async def get_career_progression(
    request: Request,
    user: Annotated[UserContext, Depends(get_user_context)] = None,
    manager: Annotated[TemporalGraphManager, Depends(get_temporal_manager)] = None,
) -> ApiResponse:
    try:
        progression = await manager.get_career_progression(user.user_id)
        return create_api_response(data=progression, message="Career progression retrieved", request=request)
    except Exception as e:
        raise_http_error(e, request)

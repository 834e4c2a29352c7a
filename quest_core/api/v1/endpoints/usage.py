from typing import Annotated

from fastapi import APIRouter, Depends, Request

from quest_core.api.v1.deps import UserContext, get_extraction_service, get_user_context
from quest_core.schemas.common import ApiResponse
from quest_core.services.extraction_service import ExtractionService
from quest_core.utils.responses import create_api_response, raise_http_error

router = APIRouter()


@router.get(
    "/",
    response_model=ApiResponse,
    summary="Persisted extraction usage counters",
    operation_id="get_usage_counters",
)
async def get_usage(
    request: Request,
    user: Annotated[UserContext, Depends(get_user_context)] = None,
    service: Annotated[ExtractionService, Depends(get_extraction_service)] = None,
) -> ApiResponse:
    try:
        totals = await service.usage_totals(user.user_id)
        return create_api_response(data={"usage": totals}, message="Usage retrieved", request=request)
    except Exception as e:
        raise_http_error(e, request)

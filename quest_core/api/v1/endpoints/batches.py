from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status

from quest_core.api.v1.deps import UserContext, get_ledger, get_user_context
from quest_core.schemas.commits import BatchCreate, BatchResponse, BatchStatus, BatchType, BatchUpdate
from quest_core.schemas.common import ApiResponse
from quest_core.services.commit_ledger import CommitLedger
from quest_core.utils.logging import get_logger
from quest_core.utils.responses import create_api_response, raise_http_error

LOGGER = get_logger(__name__)

router = APIRouter()


@router.get(
    "/",
    response_model=ApiResponse,
    summary="List commit batches",
    operation_id="list_commit_batches",
)
async def list_batches(
    request: Request,
    batch_status: Annotated[Optional[BatchStatus], Query(alias="status")] = None,
    batch_type: Annotated[Optional[BatchType], Query(alias="type")] = None,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
    user: Annotated[UserContext, Depends(get_user_context)] = None,
    ledger: Annotated[CommitLedger, Depends(get_ledger)] = None,
) -> ApiResponse:
    """The caller's batches, newest first, with their status counters."""
    try:
        batches = await ledger.list_batches(user.user_id, status=batch_status, batch_type=batch_type, limit=limit)
        return create_api_response(
            data={"batches": [BatchResponse.model_validate(b).to_wire() for b in batches]},
            message=f"Found {len(batches)} batches",
            request=request,
        )
    except Exception as e:
        raise_http_error(e, request)


@router.post(
    "/",
    response_model=ApiResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a commit batch",
    operation_id="create_commit_batch",
)
async def create_batch(
    request: Request,
    payload: BatchCreate,
    user: Annotated[UserContext, Depends(get_user_context)] = None,
    ledger: Annotated[CommitLedger, Depends(get_ledger)] = None,
) -> ApiResponse:
    try:
        batch = await ledger.create_batch(user.user_id, **payload.model_dump())
        LOGGER.info("Created commit batch", extra={"user_id": str(user.user_id), "batch_id": str(batch.id)})
        return create_api_response(
            data={"batch": BatchResponse.model_validate(batch).to_wire()},
            message="Batch created",
            request=request,
        )
    except Exception as e:
        raise_http_error(e, request)


@router.get(
    "/{batch_id}",
    response_model=ApiResponse,
    summary="Get a commit batch",
    operation_id="get_commit_batch",
)
async def get_batch(
    request: Request,
    batch_id: UUID,
    user: Annotated[UserContext, Depends(get_user_context)] = None,
    ledger: Annotated[CommitLedger, Depends(get_ledger)] = None,
) -> ApiResponse:
    try:
        batch = await ledger.get_batch(user.user_id, batch_id)
        return create_api_response(
            data={"batch": BatchResponse.model_validate(batch).to_wire()},
            message="Batch retrieved",
            request=request,
        )
    except Exception as e:
        raise_http_error(e, request)


@router.put(
    "/{batch_id}",
    response_model=ApiResponse,
    summary="Update a commit batch",
    operation_id="update_commit_batch",
)
async def update_batch(
    request: Request,
    batch_id: UUID,
    payload: BatchUpdate,
    user: Annotated[UserContext, Depends(get_user_context)] = None,
    ledger: Annotated[CommitLedger, Depends(get_ledger)] = None,
) -> ApiResponse:
    try:
        batch = await ledger.update_batch(user.user_id, batch_id, **payload.model_dump(exclude_unset=True))
        return create_api_response(
            data={"batch": BatchResponse.model_validate(batch).to_wire()},
            message="Batch updated",
            request=request,
        )
    except Exception as e:
        raise_http_error(e, request)


@router.delete(
    "/{batch_id}",
    response_model=ApiResponse,
    summary="Delete a commit batch and its commits",
    operation_id="delete_commit_batch",
)
async def delete_batch(
    request: Request,
    batch_id: UUID,
    user: Annotated[UserContext, Depends(get_user_context)] = None,
    ledger: Annotated[CommitLedger, Depends(get_ledger)] = None,
) -> ApiResponse:
    try:
        await ledger.delete_batch(user.user_id, batch_id)
        return create_api_response(
            data={"batchId": str(batch_id)},
            message="Batch deleted",
            request=request,
        )
    except Exception as e:
        raise_http_error(e, request)

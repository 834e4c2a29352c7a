from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request, status

from quest_core.api.v1.deps import (
    UserContext,
    get_extraction_service,
    get_ledger,
    get_projection,
    get_user_context,
)
from quest_core.schemas.commits import (
    CommitCreate,
    CommitResponse,
    CommitStatus,
    CommitType,
    CommitUpdate,
    ExtractionRequest,
    ProcessCommitsRequest,
)
from quest_core.schemas.common import ApiResponse
from quest_core.services.commit_ledger import CommitLedger
from quest_core.services.extraction_service import ExtractionService
from quest_core.services.projection_service import ProjectionService
from quest_core.utils.logging import get_logger
from quest_core.utils.responses import create_api_response, raise_http_error

LOGGER = get_logger(__name__)

router = APIRouter()


@router.get(
    "/",
    response_model=ApiResponse,
    summary="List conversation commits",
    operation_id="list_conversation_commits",
)
async def list_commits(
    request: Request,
    commit_status: Annotated[Optional[CommitStatus], Query(alias="status")] = None,
    batch_id: Annotated[Optional[UUID], Query(alias="batchId")] = None,
    commit_type: Annotated[Optional[CommitType], Query(alias="type")] = None,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
    user: Annotated[UserContext, Depends(get_user_context)] = None,
    ledger: Annotated[CommitLedger, Depends(get_ledger)] = None,
) -> ApiResponse:
    try:
        commits = await ledger.list_commits(
            user.user_id, status=commit_status, batch_id=batch_id, extraction_type=commit_type, limit=limit
        )
        return create_api_response(
            data={"commits": [CommitResponse.model_validate(c).to_wire() for c in commits]},
            message=f"Found {len(commits)} commits",
            request=request,
        )
    except Exception as e:
        raise_http_error(e, request)


@router.post(
    "/",
    response_model=ApiResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a conversation commit",
    operation_id="create_conversation_commit",
)
async def create_commit(
    request: Request,
    payload: CommitCreate,
    user: Annotated[UserContext, Depends(get_user_context)] = None,
    ledger: Annotated[CommitLedger, Depends(get_ledger)] = None,
) -> ApiResponse:
    try:
        commit, _ = await ledger.create_commit(user.user_id, **payload.model_dump())
        return create_api_response(
            data={"commit": CommitResponse.model_validate(commit).to_wire()},
            message="Commit created",
            request=request,
        )
    except Exception as e:
        raise_http_error(e, request)


@router.post(
    "/extract",
    response_model=ApiResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Extract pending commits from conversation text",
    operation_id="extract_conversation_commits",
)
async def extract_commits(
    request: Request,
    payload: ExtractionRequest,
    user: Annotated[UserContext, Depends(get_user_context)] = None,
    service: Annotated[ExtractionService, Depends(get_extraction_service)] = None,
) -> ApiResponse:
    """Parse conversation text and record every detected action as a pending commit."""
    try:
        result = await service.execute(
            user.user_id,
            user.external_user_id,
            conversation_text=payload.conversation_text,
            batch_id=payload.batch_id,
            conversation_id=payload.conversation_id,
            extraction_mode=payload.extraction_mode,
            target_types=payload.target_types,
        )
        return create_api_response(
            data=result,
            message=f"Created {result.summary.total} commits",
            request=request,
        )
    except Exception as e:
        raise_http_error(e, request)


@router.post(
    "/process",
    response_model=ApiResponse,
    summary="Commit every approved commit in scope",
    operation_id="process_approved_commits",
)
async def process_commits(
    request: Request,
    payload: ProcessCommitsRequest,
    background_tasks: BackgroundTasks,
    user: Annotated[UserContext, Depends(get_user_context)] = None,
    ledger: Annotated[CommitLedger, Depends(get_ledger)] = None,
    projection: Annotated[ProjectionService, Depends(get_projection)] = None,
) -> ApiResponse:
    try:
        result = await ledger.process_approved(user.user_id, commit_ids=payload.commit_ids, batch_id=payload.batch_id)
    except Exception as e:
        raise_http_error(e, request)

    if result.materialized:
        background_tasks.add_task(
            projection.project_commits, user.user_id, user.external_user_id, result.materialized
        )
    return create_api_response(
        data={
            "successful": result.successful,
            "failed": result.failed,
            "totalProcessed": len(result.successful) + len(result.failed),
        },
        message=f"Committed {len(result.successful)} commits, {len(result.failed)} failed",
        request=request,
    )


@router.get(
    "/{commit_id}",
    response_model=ApiResponse,
    summary="Get a conversation commit",
    operation_id="get_conversation_commit",
)
async def get_commit(
    request: Request,
    commit_id: UUID,
    user: Annotated[UserContext, Depends(get_user_context)] = None,
    ledger: Annotated[CommitLedger, Depends(get_ledger)] = None,
) -> ApiResponse:
    try:
        commit = await ledger.get_commit(user.user_id, commit_id)
        return create_api_response(
            data={"commit": CommitResponse.model_validate(commit).to_wire()},
            message="Commit retrieved",
            request=request,
        )
    except Exception as e:
        raise_http_error(e, request)


@router.put(
    "/{commit_id}",
    response_model=ApiResponse,
    summary="Review a conversation commit",
    operation_id="update_conversation_commit",
)
async def update_commit(
    request: Request,
    commit_id: UUID,
    payload: CommitUpdate,
    background_tasks: BackgroundTasks,
    user: Annotated[UserContext, Depends(get_user_context)] = None,
    ledger: Annotated[CommitLedger, Depends(get_ledger)] = None,
    projection: Annotated[ProjectionService, Depends(get_projection)] = None,
) -> ApiResponse:
    """Apply a status transition and/or edits and review notes.

    Moving a commit to ``committed`` writes its profile record; the graph
    projection and realtime deltas follow in the background.
    """
    try:
        commit, materialized = await ledger.update_commit(user.user_id, commit_id, **payload.model_dump())
        data = {"commit": CommitResponse.model_validate(commit).to_wire()}
    except Exception as e:
        raise_http_error(e, request)

    if materialized is not None:
        data["recordId"] = str(materialized.record_id)
        background_tasks.add_task(projection.project_commits, user.user_id, user.external_user_id, [materialized])
    return create_api_response(data=data, message="Commit updated", request=request)


@router.delete(
    "/{commit_id}",
    response_model=ApiResponse,
    summary="Delete a conversation commit",
    operation_id="delete_conversation_commit",
)
async def delete_commit(
    request: Request,
    commit_id: UUID,
    user: Annotated[UserContext, Depends(get_user_context)] = None,
    ledger: Annotated[CommitLedger, Depends(get_ledger)] = None,
) -> ApiResponse:
    try:
        await ledger.delete_commit(user.user_id, commit_id)
        return create_api_response(data={"commitId": str(commit_id)}, message="Commit deleted", request=request)
    except Exception as e:
        raise_http_error(e, request)

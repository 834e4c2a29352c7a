from datetime import datetime, timezone
from typing import Any, Dict, NoReturn, Optional
from uuid import uuid4

from fastapi import HTTPException, Request

from quest_core.core.exceptions import AppError
from quest_core.schemas.common import ApiResponse, ErrorDetail, ResponseMeta
from quest_core.utils.logging import get_logger

LOGGER = get_logger(__name__)

GENERIC_ERROR_DETAIL = "An unexpected error occurred while processing the request"


def _request_id(request: Optional[Request]) -> str:
    if request is not None and hasattr(request.state, "request_id"):
        return request.state.request_id
    return str(uuid4())


def _to_data(data: Any) -> Dict[str, Any]:
    if isinstance(data, dict):
        return data
    if hasattr(data, "to_wire"):
        return data.to_wire()
    if hasattr(data, "model_dump"):
        return data.model_dump(mode="json")
    if isinstance(data, list):
        return {"items": [item.to_wire() if hasattr(item, "to_wire") else item for item in data]}
    if data is None:
        return {}
    return {"value": data}


def create_api_response(
    data: Any,
    message: str = "Operation successful",
    status: bool = True,
    request: Optional[Request] = None,
    api_version: str = "v1",
) -> Dict[str, Any]:
    """Create a standardized API response as a dictionary."""
    meta = ResponseMeta(
        timestamp=datetime.now(timezone.utc),
        request_id=_request_id(request),
        api_version=api_version,
    )
    response = ApiResponse(status=status, message=message, data=_to_data(data), meta=meta)
    return response.model_dump(mode="json")


def create_error_detail(
    title: str,
    status: int,
    detail: str,
    request: Optional[Request] = None,
    instance: Optional[str] = None,
) -> ErrorDetail:
    """Create a standardized error detail (RFC 7807)."""
    return ErrorDetail(
        title=title,
        status=status,
        detail=detail,
        instance=instance or (request.url.path if request else None),
        request_id=_request_id(request),
        timestamp=datetime.now(timezone.utc),
    )


def raise_http_error(error: Exception, request: Optional[Request] = None) -> NoReturn:
    """Translate a service exception into an ``HTTPException`` with a problem detail.

    Application errors keep their status and message, except server-side
    failures, whose message is replaced with a generic one after logging.
    """
    if isinstance(error, AppError):
        status_code = error.status_code
        title = error.title
        detail = error.message if status_code < 500 else GENERIC_ERROR_DETAIL
        if status_code >= 500:
            LOGGER.error(
                f"{title}: {error.message}",
                exc_info=error.original_error or error,
                extra={"path": request.url.path if request else None},
            )
    else:
        status_code = 500
        title = "Internal Server Error"
        detail = GENERIC_ERROR_DETAIL
        LOGGER.error(
            f"Unhandled error: {error}",
            exc_info=error,
            extra={"path": request.url.path if request else None},
        )

    error_detail = create_error_detail(title=title, status=status_code, detail=detail, request=request)
    raise HTTPException(status_code=status_code, detail=error_detail.model_dump(mode="json")) from error

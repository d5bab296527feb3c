from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import uuid4

from fastapi import Request, status as http_status
from pydantic import BaseModel, Field

from policylens.core.exceptions import (
    AppError,
    APIClientError,
    ConversationNotFoundError,
    DocumentAlreadyProcessingError,
    DocumentNotFoundError,
    EmbeddingError,
    ValidationError,
)


class ResponseMeta(BaseModel):
    timestamp: datetime
    request_id: str
    api_version: str = "v1"


class ApiResponse(BaseModel):
    """Envelope returned by every JSON endpoint."""

    status: bool = True
    message: str = "Operation successful"
    data: Dict[str, Any] = Field(default_factory=dict)
    meta: ResponseMeta


class ErrorDetail(BaseModel):
    """RFC 7807 style problem details."""

    title: str
    status: int
    detail: str
    instance: Optional[str] = None
    request_id: str
    timestamp: datetime


# Most specific first
ERROR_STATUS_MAP = [
    (DocumentNotFoundError, http_status.HTTP_404_NOT_FOUND, "Document Not Found"),
    (ConversationNotFoundError, http_status.HTTP_404_NOT_FOUND, "Conversation Not Found"),
    (DocumentAlreadyProcessingError, http_status.HTTP_409_CONFLICT, "Document Already Processing"),
    (ValidationError, http_status.HTTP_422_UNPROCESSABLE_ENTITY, "Validation Error"),
    (APIClientError, http_status.HTTP_502_BAD_GATEWAY, "Upstream Service Error"),
    (EmbeddingError, http_status.HTTP_502_BAD_GATEWAY, "Embedding Service Error"),
]


def _request_id(request: Optional[Request]) -> str:
    if request is not None and hasattr(request.state, "request_id"):
        return request.state.request_id
    return str(uuid4())


def create_api_response(
    data: Any,
    message: str = "Operation successful",
    status: bool = True,
    request: Optional[Request] = None,
    api_version: str = "v1"
) -> Dict[str, Any]:
    """Create a standardized API response as a dictionary."""
    meta = ResponseMeta(
        timestamp=datetime.now(timezone.utc),
        request_id=_request_id(request),
        api_version=api_version
    )

    data_dict: Dict[str, Any] = {}
    if isinstance(data, dict):
        data_dict = data
    elif hasattr(data, "model_dump"):
        data_dict = data.model_dump(mode="json")
    elif isinstance(data, list):
        data_dict = {"items": [item.model_dump(mode="json") if hasattr(item, "model_dump") else item for item in data]}
    elif data is not None:
        data_dict = {"value": data}

    response = ApiResponse(status=status, message=message, data=data_dict, meta=meta)
    return response.model_dump(mode="json")


def create_error_detail(
    title: str,
    status: int,
    detail: str,
    request: Optional[Request] = None,
    instance: Optional[str] = None
) -> ErrorDetail:
    """Create a standardized error detail (RFC 7807)."""
    return ErrorDetail(
        title=title,
        status=status,
        detail=detail,
        instance=instance or (request.url.path if request else None),
        request_id=_request_id(request),
        timestamp=datetime.now(timezone.utc)
    )


def error_detail_for(error: AppError, request: Optional[Request] = None) -> ErrorDetail:
    """Map an application error onto its HTTP problem details."""
    for error_type, status_code, title in ERROR_STATUS_MAP:
        if isinstance(error, error_type):
            return create_error_detail(title, status_code, error.message, request)
    return create_error_detail(
        "Internal Server Error",
        http_status.HTTP_500_INTERNAL_SERVER_ERROR,
        error.message,
        request,
    )

from typing import Annotated

from fastapi import APIRouter, Depends, Request

from policylens.api.dependencies import get_search_service, get_tenant_context
from policylens.models.documents import TenantContext
from policylens.models.retrieval import SearchRequest
from policylens.services.retrieval.semantic_search_service import SemanticSearchService
from policylens.utils.responses import ApiResponse, create_api_response

router = APIRouter()


@router.post(
    "",
    response_model=ApiResponse,
    summary="Semantic search over embedded chunks",
    operation_id="search_chunks",
)
async def search_chunks(
    request: Request,
    search_request: SearchRequest,
    tenant: Annotated[TenantContext, Depends(get_tenant_context)],
    search_service: Annotated[SemanticSearchService, Depends(get_search_service)],
) -> ApiResponse:
    results = await search_service.search(
        tenant,
        search_request.query,
        document_ids=search_request.document_ids,
        policy_ids=search_request.policy_ids,
        top_k=search_request.top_k,
        min_similarity=search_request.min_similarity,
    )
    return create_api_response(
        data=results,
        message=f"Found {len(results)} results",
        request=request
    )

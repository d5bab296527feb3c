from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, File, Request, UploadFile, status

from policylens.api.dependencies import get_processing_service, get_tenant_context
from policylens.core.exceptions import ValidationError
from policylens.models.documents import TenantContext
from policylens.services.pipeline.document_processing_service import DocumentProcessingService
from policylens.utils.logging import get_logger
from policylens.utils.responses import ApiResponse, create_api_response

LOGGER = get_logger(__name__)

router = APIRouter()

PDF_CONTENT_TYPES = {"application/pdf", "application/x-pdf", "application/octet-stream"}


@router.post(
    "/{document_id}/process",
    response_model=ApiResponse,
    status_code=status.HTTP_200_OK,
    summary="Process a PDF document",
    operation_id="process_document",
)
async def process_document(
    request: Request,
    document_id: UUID,
    tenant: Annotated[TenantContext, Depends(get_tenant_context)],
    processing_service: Annotated[DocumentProcessingService, Depends(get_processing_service)],
    file: UploadFile = File(..., description="PDF document to process"),
) -> ApiResponse:
    """Register the document if needed and run the full extraction pipeline."""
    if file.content_type and file.content_type not in PDF_CONTENT_TYPES:
        raise ValidationError(f"Unsupported content type: {file.content_type}")

    pdf_bytes = await file.read()
    if not pdf_bytes:
        raise ValidationError("Uploaded file is empty")

    await processing_service.register_document(
        tenant, file.filename or f"{document_id}.pdf", document_id=document_id
    )
    outcome = await processing_service.process_document(tenant, document_id, pdf_bytes)

    return create_api_response(
        data=outcome,
        message=f"Document processing {outcome.status}",
        status=outcome.status == "completed",
        request=request
    )

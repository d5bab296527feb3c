from typing import Optional
from uuid import UUID
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from policylens.database.models import Document
from policylens.models.enums import ProcessingStatus
from policylens.repositories.base_repository import BaseRepository
from policylens.utils.logging import get_logger

LOGGER = get_logger(__name__)


class DocumentRepository(BaseRepository[Document]):
    """Repository for Document records and their processing state."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Document)

    async def create_document(
        self,
        tenant_id: UUID,
        file_name: str,
        document_id: Optional[UUID] = None,
    ) -> Document:
        values = {"tenant_id": tenant_id, "file_name": file_name, "status": ProcessingStatus.PENDING.value}
        if document_id is not None:
            values["id"] = document_id
        return await self.create(**values)

    async def get_for_tenant(self, document_id: UUID, tenant_id: UUID) -> Optional[Document]:
        """Get a document only if it belongs to the tenant."""
        try:
            query = select(Document).where(
                Document.id == document_id,
                Document.tenant_id == tenant_id,
            )
            result = await self.session.execute(query)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            LOGGER.error(f"Error retrieving document {document_id}: {str(e)}", exc_info=True)
            raise

    async def try_start_processing(self, document_id: UUID, tenant_id: UUID) -> bool:
        """Atomically move a document into `processing`.

        The conditional UPDATE is the lock: it succeeds for exactly one caller
        while the document is not already processing.

        Returns:
            True if this caller now owns the run, False otherwise
        """
        try:
            stmt = (
                update(Document)
                .where(
                    Document.id == document_id,
                    Document.tenant_id == tenant_id,
                    Document.status != ProcessingStatus.PROCESSING.value,
                )
                .values(
                    status=ProcessingStatus.PROCESSING.value,
                    processing_error=None,
                    updated_at=datetime.now(timezone.utc),
                )
                .returning(Document.id)
            )
            result = await self.session.execute(stmt)
            acquired = result.scalar_one_or_none() is not None
            await self.session.flush()
            return acquired
        except SQLAlchemyError as e:
            LOGGER.error(f"Error starting processing for document {document_id}: {str(e)}", exc_info=True)
            raise

    async def set_fields(self, document_id: UUID, **values) -> None:
        """Write document columns with a single UPDATE statement."""
        try:
            values.setdefault("updated_at", datetime.now(timezone.utc))
            await self.session.execute(
                update(Document).where(Document.id == document_id).values(**values)
            )
            await self.session.flush()
        except SQLAlchemyError as e:
            LOGGER.error(f"Error updating document {document_id}: {str(e)}", exc_info=True)
            raise

    async def mark_stage(self, document_id: UUID, stage: str, **values) -> None:
        await self.set_fields(document_id, processing_stage=stage, **values)

    async def mark_completed(self, document_id: UUID, **values) -> None:
        await self.set_fields(document_id, status=ProcessingStatus.COMPLETED.value, **values)

    async def mark_failed(self, document_id: UUID, error: str) -> None:
        await self.set_fields(
            document_id,
            status=ProcessingStatus.FAILED.value,
            processing_error=error[:2000],
        )

    async def reset_to_pending(self, document_id: UUID) -> None:
        """Release the run lock, keeping the last committed stage."""
        await self.set_fields(document_id, status=ProcessingStatus.PENDING.value)

from decimal import Decimal
from typing import List, Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError

from policylens.database.models import Coverage, Policy
from policylens.models.extraction import CoverageExtraction, PolicyExtraction
from policylens.repositories.base_repository import BaseRepository
from policylens.utils.logging import get_logger

LOGGER = get_logger(__name__)


def _json_safe(value):
    """Convert Decimals and dates inside extracted details into JSON-friendly values."""
    if isinstance(value, dict):
        return {key: _json_safe(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_json_safe(item) for item in value]
    if hasattr(value, "isoformat"):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return value


class PolicyRepository(BaseRepository[Policy]):
    """Repository for extracted Policy records."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Policy)

    async def delete_by_document(self, document_id: UUID) -> None:
        """Drop policies previously extracted from a document before reprocessing it."""
        try:
            await self.session.execute(delete(Policy).where(Policy.source_document_id == document_id))
            await self.session.flush()
        except SQLAlchemyError as e:
            LOGGER.error(f"Error deleting policies for document {document_id}: {str(e)}", exc_info=True)
            raise

    async def create_from_extraction(
        self,
        tenant_id: UUID,
        document_id: UUID,
        policy: PolicyExtraction,
        confidence: float,
    ) -> Policy:
        return await self.create(
            tenant_id=tenant_id,
            source_document_id=document_id,
            policy_number=policy.policy_number,
            quote_number=policy.quote_number,
            policy_status=policy.policy_status.value,
            effective_date=policy.effective_date,
            expiration_date=policy.expiration_date,
            quote_expiration_date=policy.quote_expiration_date,
            carrier_name=policy.carrier_name,
            carrier_naic=policy.carrier_naic,
            insured_name=policy.insured_name,
            insured_address_line1=policy.insured_address_line1,
            insured_address_line2=policy.insured_address_line2,
            insured_city=policy.insured_city,
            insured_state=policy.insured_state,
            insured_zip=policy.insured_zip,
            total_premium=policy.total_premium,
            extraction_confidence=confidence,
            raw_extraction=_json_safe(policy.raw_extraction) if policy.raw_extraction else None,
        )


class CoverageRepository(BaseRepository[Coverage]):
    """Repository for Coverage records of a policy."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Coverage)

    async def create_many(
        self,
        tenant_id: UUID,
        policy_id: UUID,
        coverages: Sequence[CoverageExtraction],
        confidences: Sequence[float],
    ) -> List[Coverage]:
        """Insert coverages with their validator-adjusted confidences."""
        try:
            rows = []
            for coverage, confidence in zip(coverages, confidences):
                row = Coverage(
                    tenant_id=tenant_id,
                    policy_id=policy_id,
                    coverage_type=coverage.coverage_type,
                    coverage_subtype=coverage.coverage_subtype,
                    each_occurrence_limit=coverage.each_occurrence_limit,
                    aggregate_limit=coverage.aggregate_limit,
                    deductible=coverage.deductible,
                    premium=coverage.premium,
                    is_occurrence_form=bool(coverage.is_occurrence_form),
                    is_claims_made=bool(coverage.is_claims_made),
                    retroactive_date=coverage.retroactive_date,
                    details=_json_safe(coverage.details),
                    extraction_confidence=confidence,
                )
                self.session.add(row)
                rows.append(row)
            await self.session.flush()
            return rows
        except SQLAlchemyError as e:
            LOGGER.error(f"Error creating coverages for policy {policy_id}: {str(e)}", exc_info=True)
            raise

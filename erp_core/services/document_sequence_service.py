"""
Document Sequence Service for Atomic Number Generation

- One counter row per (document type, year)
- Counter row is locked with SELECT FOR UPDATE for the rest of the caller's
  transaction, so concurrent creations serialize on it
- Format: {PREFIX}{YEAR}{SEQUENCE}, e.g. SO2025000123

USAGE:
    from erp_core.services.document_sequence_service import DocumentSequenceService

    async def create_order(db: AsyncSession):
        service = DocumentSequenceService(db)
        order_number = await service.get_next_number(DocumentType.SALES_ORDER)
        # Returns: SO2025000001
"""

from datetime import date
from typing import Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from erp_core.config import settings
from erp_core.core.exceptions import ValidationError
from erp_core.models.document_sequence import DocumentSequence, DocumentType


class DocumentSequenceService:
    """
    Service for generating atomic document numbers.

    Never commits; the increment becomes durable with the document that
    consumed it, and disappears with it on rollback.
    """

    def __init__(self, db: AsyncSession, padding: Optional[int] = None):
        self.db = db
        self.padding = padding or settings.DOCUMENT_NUMBER_PADDING

    @staticmethod
    def _document_type(document_type: Union[DocumentType, str]) -> str:
        try:
            return DocumentType(str(getattr(document_type, "value", document_type)).upper()).value
        except ValueError:
            valid_types = ", ".join(t.value for t in DocumentType)
            raise ValidationError(f"Invalid document type '{document_type}'. Valid types: {valid_types}")

    async def get_next_number(
        self,
        document_type: Union[DocumentType, str],
        year: Optional[int] = None,
    ) -> str:
        """
        Get next document number with atomic increment.

        Uses SELECT FOR UPDATE to prevent race conditions.
        Creates sequence record if it doesn't exist.
        """
        doc_type = self._document_type(document_type)
        year = year or date.today().year

        sequence = await self._get_or_create_sequence(doc_type, year)
        doc_number = sequence.get_next_number()

        await self.db.flush()
        return doc_number

    async def preview_next_number(
        self,
        document_type: Union[DocumentType, str],
        year: Optional[int] = None,
    ) -> str:
        """Preview what the next number would be without incrementing."""
        doc_type = self._document_type(document_type)
        year = year or date.today().year

        result = await self.db.execute(
            select(DocumentSequence).where(
                DocumentSequence.document_type == doc_type,
                DocumentSequence.year == year,
            )
        )
        sequence = result.scalar_one_or_none()
        if sequence:
            return sequence.format_number(sequence.current_number + 1)

        # No sequence exists yet - would be first number
        return f"{doc_type}{year}{'1'.zfill(self.padding)}"

    async def _get_or_create_sequence(self, document_type: str, year: int) -> DocumentSequence:
        """Get existing sequence with row lock, or create new one."""
        query = (
            select(DocumentSequence)
            .where(
                DocumentSequence.document_type == document_type,
                DocumentSequence.year == year,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        sequence = (await self.db.execute(query)).scalar_one_or_none()
        if sequence:
            return sequence

        sequence = DocumentSequence(
            document_type=document_type,
            year=year,
            current_number=0,
            padding_length=self.padding,
        )
        self.db.add(sequence)
        await self.db.flush()

        # Re-fetch with lock to ensure atomicity
        return (await self.db.execute(query)).scalar_one()

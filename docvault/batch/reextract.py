"""
Re-extraction batch job.

Fills in extracted content for every catalogued document that lacks it.
Documents are processed one at a time in id order; a failure on one document
is counted and the run moves on. Only records still missing content are
selected, so re-running the job after a crash picks up where it stopped.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional, Union

from docvault.config import get_settings
from docvault.document_processor.extractor import ContentExtractor, create_content_extractor
from docvault.models import BatchSummary, DocumentRecord, ItemStatus, ReextractionOutcome
from docvault.utils.errors import DocVaultException, ExtractionError
from docvault.utils.logging import LogContext, get_logger, log_performance

logger = get_logger(__name__)

OutcomeCallback = Callable[[ReextractionOutcome], None]


class ReextractionRunner:
    """Sequential re-extraction over the document catalog."""

    def __init__(
        self,
        document_repository,
        extractor: Optional[ContentExtractor] = None,
        storage_root: Optional[Union[str, Path]] = None,
        on_outcome: Optional[OutcomeCallback] = None,
    ) -> None:
        """
        Initialize the runner.

        Args:
            document_repository: DocumentRepository (or compatible) used to
                list documents and store their text
            extractor: Content extractor (defaults to settings-configured one)
            storage_root: Directory stored file paths are relative to
            on_outcome: Called once per document after it is processed
        """
        self.document_repository = document_repository
        self.extractor = extractor or create_content_extractor()
        self.storage_root = Path(storage_root) if storage_root else get_settings().storage_root
        self.on_outcome = on_outcome

    def resolve_path(self, record: DocumentRecord) -> Path:
        """Absolute location of a record's file.

        Raises:
            ExtractionError: If the record has no stored path
        """
        if not record.file_path:
            raise ExtractionError(
                f"No stored file path for document {record.id}",
                {"document_id": record.id},
            )
        stored = Path(record.file_path)
        if stored.is_absolute():
            return stored
        return self.storage_root / stored

    @log_performance
    async def run(self) -> BatchSummary:
        """
        Re-extract every document whose content is missing.

        Returns:
            Success and error counts with one outcome per document

        Raises:
            CatalogUnavailableError: If the documents cannot be listed
        """
        documents = await self.document_repository.list_missing_content()
        logger.info(f"Found {len(documents)} documents to re-extract")

        summary = BatchSummary()
        for record in documents:
            with LogContext(document_id=record.id):
                outcome = await self._process(record)
            summary.record(outcome)
            if self.on_outcome:
                self.on_outcome(outcome)

        summary.finished_at = datetime.now(timezone.utc)
        logger.info(
            f"Re-extraction finished: {summary.success_count} succeeded, {summary.error_count} failed"
        )
        return summary

    async def _process(self, record: DocumentRecord) -> ReextractionOutcome:
        """Extract and store one document; never raises."""
        logger.debug(f"Processing: {record.display_name} (ID: {record.id})")

        try:
            path = self.resolve_path(record)
            text = await self.extractor.extract(path, record.file_type)

            if not text or not text.strip():
                logger.warning(f"No content extracted: {record.display_name} (ID: {record.id})")
                return ReextractionOutcome(
                    document_id=record.id,
                    title=record.display_name,
                    status=ItemStatus.EMPTY,
                    error="No content extracted",
                )

            await self.document_repository.update_extracted_content(record.id, text)

        except DocVaultException as e:
            logger.error(f"Failed to re-extract {record.display_name} (ID: {record.id}): {e.message}")
            return ReextractionOutcome(
                document_id=record.id,
                title=record.display_name,
                status=ItemStatus.FAILED,
                error=e.message,
            )
        except Exception as e:
            logger.exception(f"Unexpected error re-extracting {record.display_name} (ID: {record.id})")
            return ReextractionOutcome(
                document_id=record.id,
                title=record.display_name,
                status=ItemStatus.FAILED,
                error=f"{type(e).__name__}: {e}",
            )

        logger.info(f"Re-extracted {len(text)} characters: {record.display_name} (ID: {record.id})")
        return ReextractionOutcome(
            document_id=record.id,
            title=record.display_name,
            status=ItemStatus.SUCCESS,
            characters=len(text),
        )

"""
Plain-text extraction for stored documents.

PDFs are read with PyMuPDF, Word documents with python-docx and Excel
workbooks with openpyxl. Parsing is blocking, so each call runs in its own
daemon thread and is bounded by the configured extraction timeout.
"""

import asyncio
import os
import threading
import zipfile
from pathlib import Path
from typing import Callable, Dict, Optional, Union

import docx
import fitz  # PyMuPDF
import openpyxl
from docx.opc.exceptions import PackageNotFoundError
from openpyxl.utils.exceptions import InvalidFileException

from docvault.config import get_settings
from docvault.document_processor.preprocessor import TextPreprocessor
from docvault.models import FileType
from docvault.utils.errors import (
    CorruptedDocumentError,
    ExtractionError,
    ExtractionTimeoutError,
    FileTooLargeError,
)
from docvault.utils.logging import get_logger, log_performance

logger = get_logger(__name__)


def _extract_pdf(path: Path) -> str:
    """Page text in page order."""
    try:
        doc = fitz.open(path)
    except fitz.FileDataError as e:
        raise CorruptedDocumentError(f"PDF file is corrupted: {e}", {"filename": path.name})

    with doc:
        if doc.needs_pass:
            raise CorruptedDocumentError("PDF is password protected", {"filename": path.name})
        return "\n".join(page.get_text() for page in doc)


def _extract_docx(path: Path) -> str:
    """Paragraph text in document order."""
    try:
        document = docx.Document(str(path))
    except (PackageNotFoundError, zipfile.BadZipFile, KeyError) as e:
        raise CorruptedDocumentError(
            f"Not a readable Word document (legacy .doc files are not supported): {e}",
            {"filename": path.name},
        )

    return "\n".join(paragraph.text for paragraph in document.paragraphs)


def _extract_xlsx(path: Path) -> str:
    """Cell text in sheet, row, column order; one header line per non-empty sheet."""
    try:
        workbook = openpyxl.load_workbook(path, read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError) as e:
        raise CorruptedDocumentError(
            f"Not a readable Excel workbook (legacy .xls files are not supported): {e}",
            {"filename": path.name},
        )

    sections = []
    try:
        for sheet in workbook.worksheets:
            rows = []
            for row in sheet.iter_rows(values_only=True):
                cells = ["" if value is None else str(value) for value in row]
                while cells and not cells[-1].strip():
                    cells.pop()
                if cells:
                    rows.append("\t".join(cells))
            if rows:
                sections.append("\n".join([f"=== Sheet: {sheet.title} ===", *rows]))
    finally:
        workbook.close()

    return "\n\n".join(sections)


_HANDLERS: Dict[FileType, Callable[[Path], str]] = {
    FileType.PDF: _extract_pdf,
    FileType.DOCX: _extract_docx,
    FileType.XLSX: _extract_xlsx,
}

_unhandled = [t.value for t in FileType if t.is_extractable and t not in _HANDLERS]
if _unhandled:
    raise RuntimeError(f"No extraction handler registered for: {', '.join(_unhandled)}")


def _run_detached(handler: Callable[[Path], str], path: Path) -> "asyncio.Future[str]":
    """
    Run a parser in its own daemon thread and return a future for its result.

    A parser that overruns the timeout is abandoned: its thread is never
    joined by ``asyncio.run`` or at interpreter exit, so one stuck document
    cannot keep the batch job from finishing.
    """
    loop = asyncio.get_running_loop()
    future: "asyncio.Future[str]" = loop.create_future()

    def _resolve(setter, value) -> None:
        if not future.done():
            setter(value)

    def _target() -> None:
        try:
            outcome = (future.set_result, handler(path))
        except Exception as e:
            outcome = (future.set_exception, e)
        try:
            loop.call_soon_threadsafe(_resolve, *outcome)
        except RuntimeError:
            # Event loop already closed; the caller gave up on this file
            logger.debug(f"Discarded late extraction result for {path.name}")

    threading.Thread(target=_target, name=f"extract-{path.name}", daemon=True).start()
    return future


def coerce_file_type(file_type: Union[FileType, str, None]) -> FileType:
    """Accept a tag or its string value; anything unrecognised is UNKNOWN."""
    if isinstance(file_type, FileType):
        return file_type
    try:
        return FileType(str(file_type).lower())
    except ValueError:
        return FileType.UNKNOWN


class ContentExtractor:
    """Recover plain text from PDF, Word and Excel documents."""

    def __init__(
        self,
        timeout_seconds: Optional[float] = None,
        max_file_size_bytes: Optional[int] = None,
        preprocessor: Optional[TextPreprocessor] = None,
    ) -> None:
        """
        Initialize the content extractor.

        Args:
            timeout_seconds: Per-file extraction budget; 0 disables the limit
            max_file_size_bytes: Files larger than this are rejected
            preprocessor: Cleanup applied to the recovered text
        """
        settings = get_settings()
        self.timeout_seconds = (
            settings.extraction_timeout_seconds if timeout_seconds is None else timeout_seconds
        )
        self.max_file_size_bytes = max_file_size_bytes or settings.max_file_size_bytes
        self.preprocessor = preprocessor or TextPreprocessor()

    @log_performance
    async def extract(
        self,
        file_path: Union[str, Path],
        file_type: Union[FileType, str],
    ) -> str:
        """
        Extract the plain-text body of a document.

        Args:
            file_path: Absolute path to the stored file
            file_type: Extraction tag; UNKNOWN means there is nothing to extract

        Returns:
            Cleaned text, or an empty string for unsupported types

        Raises:
            FileTooLargeError: If the file exceeds the size limit
            CorruptedDocumentError: If the parser cannot read the format
            ExtractionTimeoutError: If parsing exceeds the time budget
            ExtractionError: For missing or unreadable files and other failures
        """
        file_type = coerce_file_type(file_type)
        if not file_type.is_extractable:
            logger.debug(f"Skipping extraction for unsupported file: {file_path}")
            return ""

        path = Path(file_path)
        self._check_readable(path)

        handler = _HANDLERS[file_type]
        timeout = self.timeout_seconds if self.timeout_seconds and self.timeout_seconds > 0 else None

        try:
            raw_text = await asyncio.wait_for(_run_detached(handler, path), timeout=timeout)
        except asyncio.TimeoutError:
            logger.error(f"Extraction timed out: {path.name}")
            raise ExtractionTimeoutError(path.name, timeout)
        except ExtractionError:
            raise
        except Exception as e:
            logger.error(f"Failed to extract {file_type.value} file {path.name}: {e}")
            raise ExtractionError(
                f"Failed to extract {file_type.value} file: {e}",
                {"filename": path.name, "file_type": file_type.value},
            ) from e

        text = self.preprocessor.preprocess(raw_text)
        logger.debug(f"Extracted {len(text)} characters from {path.name}")
        return text

    def _check_readable(self, path: Path) -> None:
        """Fail early with a clear reason before handing the file to a parser."""
        if not path.exists():
            raise ExtractionError(f"File not found: {path}", {"path": str(path)})
        if not path.is_file():
            raise ExtractionError(f"Not a regular file: {path}", {"path": str(path)})
        if not os.access(path, os.R_OK):
            raise ExtractionError(f"Permission denied: {path}", {"path": str(path)})

        try:
            file_size = path.stat().st_size
        except OSError as e:
            raise ExtractionError(f"Cannot stat file {path}: {e}", {"path": str(path)})

        if file_size > self.max_file_size_bytes:
            raise FileTooLargeError(
                file_size=file_size,
                max_size=self.max_file_size_bytes,
                filename=path.name,
            )


def create_content_extractor() -> ContentExtractor:
    """Create a content extractor instance with settings."""
    settings = get_settings()
    return ContentExtractor(
        timeout_seconds=settings.extraction_timeout_seconds,
        max_file_size_bytes=settings.max_file_size_bytes,
    )


async def extract(file_path: Union[str, Path], file_type: Union[FileType, str]) -> str:
    """Extract text with a default-configured extractor."""
    return await create_content_extractor().extract(file_path, file_type)

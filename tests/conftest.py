"""
Shared fixtures: isolated settings, generated sample documents and an
in-memory document catalog.
"""

from pathlib import Path
from typing import Dict, Iterable, List, Optional

import docx
import fitz  # PyMuPDF
import openpyxl
import pytest

from docvault.config import reset_settings
from docvault.models import DocumentRecord
from docvault.utils.errors import PersistenceError


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    """Each test reads settings from a clean environment."""
    for name in (
        "DATABASE_URL",
        "STORAGE_ROOT",
        "LOG_FILE",
        "DEV_MODE",
        "LOG_LEVEL",
        "EXTRACTION_TIMEOUT_SECONDS",
        "MAX_FILE_SIZE_MB",
        "AI_PROVIDER",
        "GEMINI_API_KEY",
        "GEMINI_MODEL",
        "LLM_SERVICE_URL",
        "OLLAMA_MODEL",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("STORAGE_ROOT", str(tmp_path))
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def temp_dir(tmp_path) -> Path:
    return tmp_path


def write_pdf(path: Path, pages: Iterable[str]) -> Path:
    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        page.insert_text((72, 72), text)
    doc.save(str(path))
    doc.close()
    return path


def write_docx(path: Path, paragraphs: Iterable[str]) -> Path:
    document = docx.Document()
    for text in paragraphs:
        document.add_paragraph(text)
    document.save(str(path))
    return path


def write_xlsx(path: Path, sheets: Dict[str, List[list]]) -> Path:
    workbook = openpyxl.Workbook()
    workbook.remove(workbook.active)
    for title, rows in sheets.items():
        sheet = workbook.create_sheet(title)
        for row in rows:
            sheet.append(row)
    workbook.save(str(path))
    return path


@pytest.fixture
def make_pdf():
    return write_pdf


@pytest.fixture
def make_docx():
    return write_docx


@pytest.fixture
def make_xlsx():
    return write_xlsx


@pytest.fixture
def sample_pdf(temp_dir) -> Path:
    return write_pdf(temp_dir / "report.pdf", ["Q1 Results"])


@pytest.fixture
def sample_docx(temp_dir) -> Path:
    return write_docx(temp_dir / "letter.docx", ["Dear client,", "Please find the contract attached."])


@pytest.fixture
def sample_xlsx(temp_dir) -> Path:
    return write_xlsx(
        temp_dir / "budget.xlsx",
        {
            "Revenue": [["Quarter", "Amount"], ["Q1", 1200], ["Q2", 1350]],
            "Costs": [["Rent", 400]],
        },
    )


@pytest.fixture
def corrupt_pdf(temp_dir) -> Path:
    path = temp_dir / "broken.pdf"
    path.write_bytes(b"this is definitely not a pdf document")
    return path


class InMemoryDocumentRepository:
    """Document catalog double with the DocumentRepository interface."""

    def __init__(
        self,
        records: Iterable[DocumentRecord],
        fail_updates_for: Iterable[int] = (),
        fail_listing: Optional[Exception] = None,
    ) -> None:
        self.records = {record.id: record for record in records}
        self.fail_updates_for = set(fail_updates_for)
        self.fail_listing = fail_listing
        self.updates: List[tuple] = []

    async def list_missing_content(self) -> List[DocumentRecord]:
        if self.fail_listing is not None:
            raise self.fail_listing
        return [
            record.model_copy()
            for _, record in sorted(self.records.items())
            if record.needs_extraction
        ]

    async def update_extracted_content(self, document_id: int, content: str) -> None:
        if document_id in self.fail_updates_for:
            raise PersistenceError(f"Failed to update document {document_id}: connection reset")
        self.records[document_id] = self.records[document_id].model_copy(
            update={"extracted_content": content}
        )
        self.updates.append((document_id, content))


@pytest.fixture
def make_catalog():
    def _make(*records: DocumentRecord, **kwargs) -> InMemoryDocumentRepository:
        return InMemoryDocumentRepository(records, **kwargs)

    return _make

"""
Core data models for the docvault ingestion pipeline.

This module defines the Pydantic models shared by the extractor, the
classification matcher and the re-extraction batch runner.
"""

from datetime import datetime, timezone
from enum import Enum
from pathlib import PurePath
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# Enums
# =============================================================================


class FileType(str, Enum):
    """Extraction tag derived from a stored file name."""

    PDF = "pdf"
    DOCX = "docx"
    XLSX = "xlsx"
    UNKNOWN = "unknown"

    @classmethod
    def from_filename(cls, file_name: Optional[str]) -> "FileType":
        """Map a file name to its tag using the lower-cased extension."""
        if not file_name:
            return cls.UNKNOWN
        return _EXTENSION_TAGS.get(PurePath(file_name).suffix.lower(), cls.UNKNOWN)

    @property
    def is_extractable(self) -> bool:
        return self is not FileType.UNKNOWN


_EXTENSION_TAGS = {
    ".pdf": FileType.PDF,
    ".doc": FileType.DOCX,
    ".docx": FileType.DOCX,
    ".xls": FileType.XLSX,
    ".xlsx": FileType.XLSX,
}


class ItemStatus(str, Enum):
    """Result of re-extracting a single document."""

    SUCCESS = "success"
    EMPTY = "empty"
    FAILED = "failed"


# =============================================================================
# Catalog Models
# =============================================================================


class DocumentRecord(BaseModel):
    """The slice of a stored document the pipeline reads and updates.

    Only ``id`` is guaranteed; the other columns may be NULL in a damaged
    catalog and are checked per document by the batch runner.
    """

    id: int = Field(..., description="Document ID")
    title: Optional[str] = Field(None, description="Display name")
    file_name: Optional[str] = Field(None, description="Stored file name, used for its extension")
    file_path: Optional[str] = Field(None, description="Path relative to the storage root")
    extracted_content: Optional[str] = Field(None, description="Plain-text body")

    @property
    def display_name(self) -> str:
        return self.title or self.file_name or f"Document {self.id}"

    @property
    def needs_extraction(self) -> bool:
        return not self.extracted_content

    @property
    def file_type(self) -> FileType:
        return FileType.from_filename(self.file_name)


class ClassificationRule(BaseModel):
    """Keyword rule routing matching documents into a folder."""

    id: int = Field(..., description="Rule ID")
    keyword: str = Field(..., description="Case-insensitive substring to look for")
    target_folder_id: int = Field(..., description="Destination folder")
    is_active: bool = Field(True, description="Inactive rules never match")
    priority: int = Field(0, description="Higher priority rules are tried first")
    folder_name: Optional[str] = Field(None, description="Destination folder name")
    created_at: Optional[datetime] = Field(None, description="Rule creation time")


class ClassificationMatch(BaseModel):
    """The first rule that matched a document."""

    model_config = ConfigDict(frozen=True)

    rule_id: int
    target_folder_id: int
    matched_keyword: str
    folder_name: Optional[str] = None


class ClassificationResult(BaseModel):
    """Upload-time routing decision for a document."""

    target_folder_id: Optional[int] = None
    auto_classified: bool = False
    matched_keyword: Optional[str] = None
    folder_name: Optional[str] = None
    rule_id: Optional[int] = None
    error: Optional[str] = None

    @classmethod
    def from_match(cls, match: ClassificationMatch) -> "ClassificationResult":
        return cls(
            target_folder_id=match.target_folder_id,
            auto_classified=True,
            matched_keyword=match.matched_keyword,
            folder_name=match.folder_name,
            rule_id=match.rule_id,
        )


# =============================================================================
# Batch Models
# =============================================================================


class ReextractionOutcome(BaseModel):
    """What happened to one document during a re-extraction run."""

    document_id: int
    title: str
    status: ItemStatus
    characters: int = Field(0, ge=0)
    error: Optional[str] = None


class BatchSummary(BaseModel):
    """Totals reported at the end of a re-extraction run."""

    success_count: int = Field(0, ge=0)
    error_count: int = Field(0, ge=0)
    outcomes: List[ReextractionOutcome] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None

    @property
    def processed(self) -> int:
        return self.success_count + self.error_count

    def record(self, outcome: ReextractionOutcome) -> None:
        """Add an outcome and bump the matching counter."""
        self.outcomes.append(outcome)
        if outcome.status is ItemStatus.SUCCESS:
            self.success_count += 1
        else:
            self.error_count += 1


# =============================================================================
# Insight Models
# =============================================================================


class DocumentInsight(BaseModel):
    """Structured metadata an LLM inferred from document content."""

    document_type: str = Field("unknown", description="CV, Invoice, Contract, Report, ...")
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    summary: str = ""
    extracted_fields: Dict[str, Any] = Field(default_factory=dict)
    key_entities: List[str] = Field(default_factory=list)
    suggested_tags: List[str] = Field(default_factory=list)
    error: Optional[str] = None

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v: Any) -> float:
        """Models occasionally answer with percentages or out-of-range scores."""
        try:
            value = float(v)
        except (TypeError, ValueError):
            return 0.0
        if value > 1.0:
            value = value / 100.0 if value <= 100.0 else 1.0
        return max(0.0, min(1.0, value))

    @field_validator("document_type", mode="before")
    @classmethod
    def default_document_type(cls, v: Any) -> str:
        return str(v) if v else "unknown"

    @field_validator("summary", mode="before")
    @classmethod
    def coerce_summary(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @classmethod
    def failed(cls, error: str) -> "DocumentInsight":
        return cls(document_type="unknown", confidence=0.0, error=error)


# =============================================================================
# Settings Models
# =============================================================================


class SettingValue(BaseModel):
    """A system setting as exchanged with clients."""

    key: str
    value: Optional[str] = None
    is_masked: bool = Field(False, description="Value is a redacted rendering of a stored secret")

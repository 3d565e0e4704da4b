"""
PostgreSQL repositories for the document catalog, the classification rule
store and system settings.

Each repository only issues the queries the pipeline needs; the schema itself
is owned by the web application's migrations.
"""

from typing import Dict, List, Optional

import asyncpg

from docvault.models import ClassificationRule, DocumentRecord, SettingValue
from docvault.utils.errors import CatalogUnavailableError, PersistenceError
from docvault.utils.logging import get_logger

logger = get_logger(__name__)

# Errors raised by asyncpg or the socket layer for a failed query
QUERY_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)

SECRET_SETTING_KEYS = frozenset({"gemini_api_key"})


class DocumentRepository:
    """Read documents lacking content and write extracted text back."""

    SELECT_MISSING_CONTENT = """
        SELECT id, title, file_name, file_path, extracted_content
        FROM documents
        WHERE extracted_content IS NULL OR extracted_content = ''
        ORDER BY id
    """

    def __init__(self, db):
        """
        Args:
            db: DatabaseConnectionManager (or anything exposing the same
                fetch_all/fetch_one/execute coroutines)
        """
        self.db = db

    async def list_missing_content(self) -> List[DocumentRecord]:
        """All documents whose extracted content is NULL or empty, by ascending id."""
        try:
            rows = await self.db.fetch_all(self.SELECT_MISSING_CONTENT)
        except PersistenceError as e:
            raise CatalogUnavailableError(f"Document catalog unavailable: {e.message}", e.details) from e
        except QUERY_ERRORS as e:
            raise CatalogUnavailableError(
                f"Failed to list documents: {e}", {"error_type": type(e).__name__}
            ) from e

        return [DocumentRecord(**dict(row)) for row in rows]

    async def get(self, document_id: int) -> Optional[DocumentRecord]:
        try:
            row = await self.db.fetch_one(
                "SELECT id, title, file_name, file_path, extracted_content FROM documents WHERE id = $1",
                document_id,
            )
        except QUERY_ERRORS as e:
            raise PersistenceError(f"Failed to load document {document_id}: {e}") from e

        return DocumentRecord(**dict(row)) if row else None

    async def update_extracted_content(self, document_id: int, content: str) -> None:
        """Store extracted text for one document.

        Raises:
            PersistenceError: If the write fails or no row has this id
        """
        try:
            status = await self.db.execute(
                "UPDATE documents SET extracted_content = $1 WHERE id = $2",
                content,
                document_id,
            )
        except PersistenceError:
            raise
        except QUERY_ERRORS as e:
            raise PersistenceError(
                f"Failed to update document {document_id}: {e}",
                {"document_id": document_id, "error_type": type(e).__name__},
            ) from e

        if status == "UPDATE 0":
            raise PersistenceError(
                f"Document {document_id} no longer exists",
                {"document_id": document_id},
            )


class ClassificationRuleRepository:
    """Read-only access to active keyword classification rules."""

    # First-match-wins needs a total order: priority, then age, then id.
    SELECT_ACTIVE_RULES = """
        SELECT r.id, r.keyword, r.target_folder_id, r.is_active, r.priority,
               r.created_at, f.name AS folder_name
        FROM user_classification_rules r
        JOIN folders f ON r.target_folder_id = f.id
        WHERE r.is_active = true {owner_filter}
        ORDER BY r.priority DESC, r.created_at ASC, r.id ASC
    """

    def __init__(self, db):
        self.db = db

    async def list_active_rules(self, owner_id: Optional[int] = None) -> List[ClassificationRule]:
        """Active rules in matching order, optionally limited to one owner."""
        if owner_id is None:
            query = self.SELECT_ACTIVE_RULES.format(owner_filter="")
            args = ()
        else:
            query = self.SELECT_ACTIVE_RULES.format(owner_filter="AND r.user_id = $1")
            args = (owner_id,)

        try:
            rows = await self.db.fetch_all(query, *args)
        except PersistenceError:
            raise
        except QUERY_ERRORS as e:
            raise PersistenceError(f"Failed to load classification rules: {e}") from e

        return [ClassificationRule(**dict(row)) for row in rows]


def mask_secret(value: str) -> str:
    """Keep the first 5 and last 4 characters of a secret."""
    if len(value) <= 9:
        return "*" * len(value)
    return f"{value[:5]}...{value[-4:]}"


class SettingsRepository:
    """Key/value system settings (LLM provider URLs and keys).

    Secrets leave this repository redacted and flagged with ``is_masked``; a
    flagged value is never written back, so a client echoing what it was
    shown cannot overwrite the stored secret.
    """

    def __init__(self, db):
        self.db = db

    async def get_all(self) -> Dict[str, Optional[str]]:
        try:
            rows = await self.db.fetch_all("SELECT key, value FROM system_settings")
        except QUERY_ERRORS as e:
            raise PersistenceError(f"Failed to load settings: {e}") from e
        return {row["key"]: row["value"] for row in rows}

    async def get(self, key: str) -> Optional[str]:
        try:
            row = await self.db.fetch_one("SELECT value FROM system_settings WHERE key = $1", key)
        except QUERY_ERRORS as e:
            raise PersistenceError(f"Failed to load setting '{key}': {e}") from e
        return row["value"] if row else None

    async def get_public(self, key: str) -> SettingValue:
        """A setting as it may be shown to clients."""
        value = await self.get(key)
        if value and key in SECRET_SETTING_KEYS:
            return SettingValue(key=key, value=mask_secret(value), is_masked=True)
        return SettingValue(key=key, value=value)

    async def upsert(self, key: str, value: Optional[str], updated_by: Optional[int] = None) -> None:
        try:
            await self.db.execute(
                """
                INSERT INTO system_settings (key, value, updated_by, updated_at)
                VALUES ($1, $2, $3, NOW())
                ON CONFLICT (key) DO UPDATE
                SET value = EXCLUDED.value, updated_by = EXCLUDED.updated_by, updated_at = NOW()
                """,
                key,
                value,
                updated_by,
            )
        except QUERY_ERRORS as e:
            raise PersistenceError(f"Failed to update setting '{key}': {e}") from e

    async def apply_update(self, setting: SettingValue, updated_by: Optional[int] = None) -> bool:
        """Persist a client-submitted setting unless it is a masked echo.

        Returns:
            True if the value was written
        """
        if setting.is_masked:
            logger.debug(f"Ignoring masked value submitted for setting '{setting.key}'")
            return False

        await self.upsert(setting.key, setting.value, updated_by)
        return True

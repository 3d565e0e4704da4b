"""
Keyword-based document classification.

A rule routes a document into its target folder when the rule's keyword
occurs anywhere in the document title or text, ignoring case. Rules are
tried in the order given and the first match wins.
"""

from typing import Iterable, Optional

from docvault.models import ClassificationMatch, ClassificationResult, ClassificationRule
from docvault.utils.errors import PersistenceError
from docvault.utils.logging import get_logger

logger = get_logger(__name__)


def classify(
    text: Optional[str],
    title: Optional[str],
    rules: Iterable[ClassificationRule],
) -> Optional[ClassificationMatch]:
    """
    Find the first active rule whose keyword occurs in the title or text.

    Args:
        text: Extracted document text (may be empty)
        title: Document title or file name
        rules: Rules in matching order

    Returns:
        The match, or None when no rule applies
    """
    haystack = f"{title or ''}\n{text or ''}".casefold()

    for rule in rules:
        if not rule.is_active:
            continue
        keyword = rule.keyword.strip().casefold() if rule.keyword else ""
        if not keyword:
            # An empty keyword would match every document
            continue
        if keyword in haystack:
            return ClassificationMatch(
                rule_id=rule.id,
                target_folder_id=rule.target_folder_id,
                matched_keyword=rule.keyword,
                folder_name=rule.folder_name,
            )

    return None


class KeywordClassifier:
    """Upload-time routing backed by the classification rule store."""

    def __init__(self, rule_repository):
        """
        Args:
            rule_repository: ClassificationRuleRepository (or compatible)
        """
        self.rule_repository = rule_repository

    async def classify_document(
        self,
        text: Optional[str],
        title: Optional[str] = None,
        owner_id: Optional[int] = None,
        manual_folder_id: Optional[int] = None,
    ) -> ClassificationResult:
        """
        Decide where a freshly uploaded document belongs.

        A folder chosen by the user always wins. Otherwise the owner's active
        rules are loaded fresh and matched against the title and text. Rule
        store failures are logged and reported in the result rather than
        raised, so an upload never fails because classification did.
        """
        if manual_folder_id is not None:
            return ClassificationResult(target_folder_id=manual_folder_id, auto_classified=False)

        try:
            rules = await self.rule_repository.list_active_rules(owner_id)
        except PersistenceError as e:
            logger.warning(f"Classification skipped, rules unavailable: {e}")
            return ClassificationResult(error=str(e))

        match = classify(text, title, rules)
        if match is None:
            return ClassificationResult()

        logger.info(
            f"Matched keyword '{match.matched_keyword}' -> folder {match.target_folder_id}",
            extra={"rule_id": match.rule_id},
        )
        return ClassificationResult.from_match(match)

"""
Document classification: keyword rules and optional LLM insights.
"""

from .matcher import KeywordClassifier, classify

__all__ = ["KeywordClassifier", "classify"]

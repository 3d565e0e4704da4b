"""
Document processing: text extraction and cleanup.
"""

from .extractor import ContentExtractor, create_content_extractor, extract
from .preprocessor import TextPreprocessor

__all__ = [
    "ContentExtractor",
    "TextPreprocessor",
    "create_content_extractor",
    "extract",
]

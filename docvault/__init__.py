"""
docvault: document text extraction, keyword classification and the
re-extraction batch job for a document-management store.
"""

__version__ = "0.1.0"

"""
Caching of Parse Results
========================

Keeps one ParseResult per document, keyed by document path and validated
by a SHA-256 fingerprint of the text, so unchanged files are not parsed
twice.

Usage:
    from cache import DocumentCache

    cache = DocumentCache(max_entries=256)

    # Parse, or reuse the previous result for identical text
    result = cache.get_or_parse("UsersController.cs", text)

    # Forget a document
    cache.invalidate("UsersController.cs")
"""

__version__ = "1.0.0"

from .document_cache import DocumentCache, CacheEntry

__all__ = ["DocumentCache", "CacheEntry"]

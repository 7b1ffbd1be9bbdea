#!/usr/bin/env python3
"""
Document Cache
==============
In-memory cache of parse results, one entry per document.

An entry is reused only while the document text (and the binding rule
table) is unchanged; otherwise the document is parsed again and the entry
replaced wholesale with a bumped generation number.
"""

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from parsing.base import ParseResult
from parsing.classifier import RULE_TABLE_VERSION
from parsing.dotnet import document_fingerprint, parse_document

logger = logging.getLogger("endpoint_lens.cache")


@dataclass(frozen=True)
class CacheEntry:
    fingerprint: str
    generation: int
    result: ParseResult
    rule_version: int = RULE_TABLE_VERSION


class DocumentCache:
    """
    Fingerprint-keyed cache of ParseResults.

    Cache Strategy:
    - Key: caller-chosen document key (usually the file path)
    - Fingerprint: SHA256 of the document text
    - Generation: incremented every time a key is re-parsed
    - Eviction: least recently used beyond `max_entries`

    Usage:
        cache = DocumentCache(max_entries=256)

        # Parse or reuse
        result = cache.get_or_parse("Controllers/UsersController.cs", text)

        # Drop a document after it was deleted
        cache.invalidate("Controllers/UsersController.cs")
    """

    def __init__(self, max_entries: int = 256,
                 parser: Callable[[str], ParseResult] = parse_document):
        """
        Initialize document cache.

        Args:
            max_entries: Maximum number of documents kept (least recently used evicted)
            parser: Function turning document text into a ParseResult
        """
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self._parser = parser
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._generations: Dict[str, int] = {}
        self._lock = threading.Lock()

        # Statistics
        self.stats = {"hits": 0, "misses": 0, "invalidations": 0, "evictions": 0}

    def get(self, key: str, text: str) -> Optional[ParseResult]:
        """
        Cached result for `key`, only if it was parsed from exactly `text`.

        Args:
            key: Document key
            text: Current document text

        Returns:
            ParseResult, or None when absent or stale
        """
        fingerprint = self.generate_fingerprint(text)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or not self._is_current(entry, fingerprint):
                self.stats["misses"] += 1
                return None
            self._entries.move_to_end(key)
            self.stats["hits"] += 1
            return entry.result

    def get_or_parse(self, key: str, text: str) -> ParseResult:
        """
        Return the cached result for `key`, parsing again if the text changed.

        Parsing runs outside the lock so that documents with different keys
        never wait on each other.
        """
        fingerprint = self.generate_fingerprint(text)
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and self._is_current(entry, fingerprint):
                self._entries.move_to_end(key)
                self.stats["hits"] += 1
                logger.debug(f"Cache hit: {key} (generation {entry.generation})")
                return entry.result
            self.stats["misses"] += 1

        result = self._parser(text)

        with self._lock:
            current = self._entries.get(key)
            if current is not None and self._is_current(current, fingerprint):
                # another caller stored the same version meanwhile
                return current.result
            generation = self._generations.get(key, 0) + 1
            self._generations[key] = generation
            self._entries[key] = CacheEntry(fingerprint, generation, result)
            self._entries.move_to_end(key)
            self._evict()
        logger.debug(f"Cache store: {key} (generation {generation})")
        return result

    def entry(self, key: str) -> Optional[CacheEntry]:
        with self._lock:
            return self._entries.get(key)

    def invalidate(self, key: str) -> bool:
        """Drop one document; returns True if it was cached."""
        with self._lock:
            removed = self._entries.pop(key, None) is not None
            if removed:
                self.stats["invalidations"] += 1
        if removed:
            logger.debug(f"Cache invalidated: {key}")
        return removed

    def clear(self):
        """Clear all entries (generation counters are kept)."""
        with self._lock:
            self._entries.clear()
        logger.info("Cleared all cached documents")

    def get_stats(self) -> Dict[str, Any]:
        """
        Get cache statistics.

        Returns:
            Dictionary with cache statistics including hit rate
        """
        with self._lock:
            lookups = self.stats["hits"] + self.stats["misses"]
            return {
                **self.stats,
                "entries": len(self._entries),
                "max_entries": self.max_entries,
                "hit_rate": self.stats["hits"] / lookups if lookups > 0 else 0.0,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    @staticmethod
    def generate_fingerprint(text: str) -> str:
        """SHA256 hash of the document text as hex string."""
        return document_fingerprint(text)

    @staticmethod
    def _is_current(entry: CacheEntry, fingerprint: str) -> bool:
        return entry.fingerprint == fingerprint and entry.rule_version == RULE_TABLE_VERSION

    def _evict(self):
        while len(self._entries) > self.max_entries:
            key, _ = self._entries.popitem(last=False)
            self.stats["evictions"] += 1
            logger.debug(f"Cache evicted: {key}")

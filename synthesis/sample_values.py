#!/usr/bin/env python3
"""
Sample Value Templates
======================
Static sample data for request synthesis.

Two tables decide every scalar value:
- NAME_RULES: realistic values keyed on the parameter/property name,
  matched case-insensitively as substrings (`contactemail` -> test@example.com,
  `userid` -> 1). Short tokens such as `at`, `is` or `tel` only match whole words
- TYPE_FALLBACKS: one pool per scalar category, used when no name rule
  applies or the rule's value does not fit the declared type

Without an rng the first pool entry is always chosen, so output is stable.
"""

import logging
import random
import re
from datetime import datetime, timezone
from typing import Any, Callable, Dict, FrozenSet, List, NamedTuple, Optional, Tuple

logger = logging.getLogger("endpoint_lens.synthesis.sample_values")


GUID_PLACEHOLDER = "550e8400-e29b-41d4-a716-446655440000"
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


class NameRule(NamedTuple):
    """A name heuristic: which tokens trigger it, where, and what it yields."""
    tokens: FrozenSet[str]
    position: str        # "any"/"suffix" of the folded name, or "word"/"first"/"last" word
    kind: str            # value category, see COMPATIBLE_SCALARS
    value: Any


# rule kind -> scalar categories it may fill
COMPATIBLE_SCALARS: Dict[str, FrozenSet[str]] = {
    "string": frozenset({"string", "url"}),
    "integer": frozenset({"integer", "number"}),
    "number": frozenset({"number"}),
    "boolean": frozenset({"boolean"}),
    "timestamp": frozenset({"string", "datetime", "date", "time"}),
    "identifier": frozenset({"integer", "number", "string", "guid"}),
}


def name_words(name: str) -> List[str]:
    """`userEmailAddress` / `user_email` -> ['user', 'email', 'address']"""
    return [w.lower() for w in re.findall(r'[A-Z]+(?![a-z])|[A-Z]?[a-z]+|\d+', name or "")]


class SampleValueTemplates:
    """
    Name-pattern and type-fallback tables.

    Order of NAME_RULES matters: the first matching rule wins, so the more
    specific names (email, password) come before the broad ones (name, id).
    """

    NAME_RULES: Tuple[NameRule, ...] = (
        NameRule(frozenset({"email", "mail"}), "any", "string", "test@example.com"),
        NameRule(frozenset({"password", "passwd", "pwd"}), "any", "string", "Sample@Password123"),
        NameRule(frozenset({"phone", "mobile"}), "any", "string", "+1-555-0123"),
        NameRule(frozenset({"tel"}), "word", "string", "+1-555-0123"),
        NameRule(frozenset({"url", "website", "link", "homepage"}), "any", "string", "https://example.com"),
        NameRule(frozenset({"uri"}), "word", "string", "https://example.com"),
        NameRule(frozenset({"zip", "postal", "postcode"}), "any", "string", "10001"),
        NameRule(frozenset({"address", "street"}), "any", "string", "123 Main Street"),
        NameRule(frozenset({"city"}), "any", "string", "New York"),
        NameRule(frozenset({"country"}), "any", "string", "USA"),
        NameRule(frozenset({"price", "amount", "cost", "total"}), "any", "number", 99.99),
        NameRule(frozenset({"quantity", "count"}), "any", "integer", 1),
        NameRule(frozenset({"qty"}), "word", "integer", 1),
        NameRule(frozenset({"date", "time", "timestamp"}), "any", "timestamp", None),
        NameRule(frozenset({"at"}), "last", "timestamp", None),
        NameRule(frozenset({"name", "title"}), "any", "string", "Sample Name"),
        NameRule(frozenset({"description", "summary"}), "any", "string", "This is a sample description"),
        NameRule(frozenset({"desc"}), "word", "string", "This is a sample description"),
        NameRule(frozenset({"status", "state"}), "any", "string", "active"),
        NameRule(frozenset({"category"}), "any", "string", "General"),
        NameRule(frozenset({"id", "uuid", "guid"}), "suffix", "identifier", None),
        NameRule(frozenset({"is", "has", "can"}), "first", "boolean", True),
    )

    TYPE_FALLBACKS: Dict[str, Tuple[Any, ...]] = {
        "string": ("sample_string", "test_value", "example", "data"),
        "char": ("a", "x"),
        "integer": (1, 42, 123),
        "number": (1.5, 42.5, 3.14),
        "boolean": (True, False),
        "guid": (GUID_PLACEHOLDER, "12345678-1234-1234-1234-123456789012"),
        "url": ("https://example.com", "https://api.example.com"),
        "binary": ("c2FtcGxl",),
        "duration": ("00:30:00",),
    }

    def __init__(self, rng: Optional[random.Random] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        self.rng = rng
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    # -- public API -----------------------------------------------------------

    def value_for(self, name: str, scalar: Optional[str]) -> Tuple[Any, bool]:
        """
        Sample value for a scalar parameter or property.

        Returns (value, matched); `matched` is False when neither a name rule
        nor a type fallback covered the scalar and a placeholder string was used.
        """
        rule = self.match_name_rule(name, scalar)
        if rule is not None:
            return self._rule_value(rule, scalar), True
        if scalar in ("datetime", "date", "time"):
            return self.timestamp(scalar), True
        pool = self.TYPE_FALLBACKS.get(scalar or "")
        if pool:
            return self._pick(pool), True
        logger.debug(f"No sample rule for '{name}' ({scalar}); using placeholder")
        return self.TYPE_FALLBACKS["string"][0], False

    def match_name_rule(self, name: str, scalar: Optional[str]) -> Optional[NameRule]:
        """First name rule that matches `name` and fits `scalar`, if any."""
        words = name_words(name)
        if not words or scalar is None:
            return None
        folded = "".join(words)
        for rule in self.NAME_RULES:
            if not self._matches(rule, folded, words):
                continue
            if scalar in COMPATIBLE_SCALARS[rule.kind]:
                return rule
        return None

    def timestamp(self, scalar: str = "datetime") -> str:
        now = self.clock().astimezone(timezone.utc)
        if scalar == "date":
            return now.strftime("%Y-%m-%d")
        if scalar == "time":
            return now.strftime("%H:%M:%S")
        return now.strftime(TIMESTAMP_FORMAT)

    def enum_value(self, members: Tuple[str, ...]) -> Optional[str]:
        return members[0] if members else None

    # -- helpers --------------------------------------------------------------

    @staticmethod
    def _matches(rule: NameRule, folded: str, words: List[str]) -> bool:
        if rule.position == "any":
            return any(token in folded for token in rule.tokens)
        if rule.position == "suffix":
            return any(folded.endswith(token) for token in rule.tokens)
        if rule.position == "first":
            return len(words) > 1 and words[0] in rule.tokens
        if rule.position == "last":
            return words[-1] in rule.tokens
        return any(w in rule.tokens for w in words)

    def _rule_value(self, rule: NameRule, scalar: str) -> Any:
        if rule.kind == "timestamp":
            return self.timestamp(scalar if scalar != "string" else "datetime")
        if rule.kind == "identifier":
            if scalar == "guid":
                return GUID_PLACEHOLDER
            if scalar == "string":
                return "1"
            return 1
        return rule.value

    def _pick(self, pool: Tuple[Any, ...]) -> Any:
        if self.rng is None:
            return pool[0]
        return self.rng.choice(pool)

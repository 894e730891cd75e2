"""
Shared text utilities for the Trade Diligence Risk Engine

Name normalization used for entity identity and fuzzy matching, plus the
log sanitizer used everywhere user-provided text reaches a log line.
"""

import re
import unicodedata
from typing import Iterable, Optional


def sanitize_for_logging(text: str) -> str:
    """Sanitize user input for safe logging, preventing log injection

    Removes newlines, carriage returns, and other control characters
    that could be used to inject fake log entries.

    Args:
        text: User input text

    Returns:
        Sanitized text safe for logging
    """
    if not text:
        return ''
    sanitized = re.sub(r'[\r\n\x00-\x1f\x7f-\x9f]', ' ', str(text))
    sanitized = re.sub(r'\s+', ' ', sanitized).strip()
    return sanitized[:500] if len(sanitized) > 500 else sanitized


def normalize_name(name: Optional[str]) -> str:
    """Normalize a party name for identity comparison

    Strips diacritics, case-folds, turns punctuation into spaces and
    collapses whitespace. "Société Générale, S.A." -> "societe generale s a"
    """
    if not name:
        return ""
    name = ''.join(c for c in unicodedata.normalize('NFKD', str(name))
                   if unicodedata.category(c) != 'Mn')
    name = re.sub(r'[^\w\s]', ' ', name.casefold())
    name = re.sub(r'\s+', ' ', name)
    return name.strip()


def contains_term(text: str, terms: Iterable[str]) -> Optional[str]:
    """Return the first term found in text as a whole word, or None

    Both sides are compared lowercase; multi-word terms match across
    single spaces ("north korea" in "Pyongyang, North Korea").
    """
    if not text:
        return None
    haystack = re.sub(r'\s+', ' ', text.lower())
    for term in terms:
        if re.search(r'(?<!\w)' + re.escape(term.lower()) + r'(?!\w)', haystack):
            return term
    return None

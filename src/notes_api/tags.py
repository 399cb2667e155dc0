"""
Tag derivation from the raw tag field of the note form.

Contract:
- the raw string is split on commas and whitespace
- each token is stripped, a single leading '#' is dropped, and it is lower-cased
- empty tokens are dropped and duplicates collapse
- the result is sorted, and stored comma-joined
"""
from __future__ import annotations

import re
from typing import Iterable, List, Optional

_SPLIT_RE = re.compile(r"[,\s]+")


# PUBLIC_INTERFACE
def parse_tags(raw: Optional[str]) -> List[str]:
    """Return the normalized, sorted, de-duplicated tags for a raw tag string."""
    if not raw:
        return []
    tags = set()
    for token in _SPLIT_RE.split(raw):
        token = token.strip()
        if token.startswith("#"):
            token = token[1:]
        token = token.strip().lower()
        if token:
            tags.add(token)
    return sorted(tags)


def join_tags(tags: Iterable[str]) -> str:
    return ",".join(tags)


def split_tags(stored: Optional[str]) -> List[str]:
    if not stored:
        return []
    return [t for t in stored.split(",") if t]


def matches(body: str, tags: Iterable[str], needle: str) -> bool:
    """
    Case-insensitive containment of an already casefolded needle in the body or
    in any single tag.
    """
    if needle in body.casefold():
        return True
    return any(needle in t.casefold() for t in tags)

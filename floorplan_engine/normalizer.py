"""Room heading normalization.

`normalize_room_name` produces the grouping key: two headings group together
iff their keys are equal. The other helpers only shape display text.
"""

from __future__ import annotations

import re

_NON_ALNUM = re.compile(r"[^a-z0-9]+")
_NON_ALPHA = re.compile(r"[^A-Za-z\s]+")
_SEPARATOR = re.compile(r"\s+[-–—]\s+|\s*[|–—]\s*")


def normalize_room_name(text: str | None) -> str | None:
    if not text or not text.strip():
        return None
    key = _NON_ALNUM.sub(" ", text.lower()).strip()
    return key or None


def clean_heading(text: str | None) -> str | None:
    """Tidy an OCR heading for display: letters only, title case."""
    if not text:
        return text

    cleaned = re.sub(r"\s+", " ", text).strip()
    parts = _SEPARATOR.split(cleaned)
    if len(parts) > 1 and parts[0]:
        cleaned = parts[0]
    cleaned = _NON_ALPHA.sub(" ", cleaned)
    cleaned = re.sub(r"\s+", " ", cleaned).strip()

    return " ".join(word[:1].upper() + word[1:] for word in cleaned.lower().split(" ") if word)


def looks_like_all_caps(text: str | None) -> bool:
    letters = re.sub(r"[^A-Za-z]", "", text or "")
    if not letters:
        return False
    return letters == letters.upper()


def display_name(normalized: str | None) -> str | None:
    if not normalized:
        return None
    return " ".join(part[:1].upper() + part[1:] for part in normalized.split(" ") if part)

"""
Text normalization and deterministic storage keys for free-text reference data.

Everything here is pure: same input, same output, no DB access.
"""

import hashlib
import re
import unicodedata

# Common unicode replacements
NBSP = "\u00A0"
ZWSP = "\u200B"
ZWNBSP = "\uFEFF"

FALLBACK_PREFIX = "proc"


def normalize_text(text: str | None) -> str:
    """
    Normalize user input: strip, collapse spaces, fix common unicode.

    Args:
        text: Raw input (or None)

    Returns:
        Normalized string (empty string if input is None/empty)
    """
    if text is None:
        return ""
    if not isinstance(text, str):
        return ""
    s = text.strip()
    # Replace non-breaking space and other common space-like chars with normal space
    s = s.replace(NBSP, " ")
    s = s.replace(ZWSP, "")
    s = s.replace(ZWNBSP, "")
    # Normalize unicode (NFC) so composed chars are consistent
    s = unicodedata.normalize("NFC", s)
    # Collapse multiple spaces
    s = re.sub(r"\s+", " ", s)
    return s.strip()


def normalize_username(username: str | None) -> str:
    """"@Ivan " -> "ivan"."""
    return normalize_text(username).lstrip("@").lower()


def slugify_name(name: str | None) -> str:
    """
    Lowercase slug keeping letters of any script, digits, "_" and "-".

    "Botulinum therapy" -> "botulinum_therapy"; "!!!" -> ""
    """
    s = normalize_text(name).lower()
    if not s:
        return ""
    s = s.replace(" ", "_")
    s = re.sub(r"[^\w-]+", "", s)
    return s.strip("_-")


def _digest(name: str) -> str:
    return hashlib.sha1(normalize_text(name).encode("utf-8")).hexdigest()


def make_storage_key(name: str, existing_keys: set[str] | frozenset[str] = frozenset()) -> str:
    """
    Derive a storage key from a display name.

    Uses the slug when it is non-empty and unused. Otherwise falls back to a
    hash-derived key: "proc_<sha1[:8]>" for an empty slug, "<slug>_<sha1[:6]>" on a
    collision, then a numeric suffix if even that is taken.
    """
    slug = slugify_name(name)
    digest = _digest(name)
    if not slug:
        candidate = f"{FALLBACK_PREFIX}_{digest[:8]}"
    elif slug not in existing_keys:
        return slug
    else:
        candidate = f"{slug}_{digest[:6]}"

    key = candidate
    n = 2
    while key in existing_keys:
        key = f"{candidate}_{n}"
        n += 1
    return key

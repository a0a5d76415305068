"""
Name and Phone Normalization

Pure functions producing comparable forms. None or empty input yields "".
"""

import re
from typing import Optional

_ACCENT_FOLD = str.maketrans({
    "á": "a", "é": "e", "í": "i", "ó": "o", "ú": "u", "ü": "u", "ñ": "n",
})

_WHITESPACE = re.compile(r"\s+")
_PHONE_NOISE = re.compile(r"[\s\-()]")

# Particles ignored when comparing names
STOP_WORDS = frozenset({"de", "la", "del", "los", "las", "y", "e"})


def normalize_name(name: Optional[str]) -> str:
    """Lowercase, fold accents and ñ, collapse whitespace, trim."""
    if not name:
        return ""
    folded = name.lower().translate(_ACCENT_FOLD)
    return _WHITESPACE.sub(" ", folded).strip()


def normalize_name_for_comparison(name: Optional[str]) -> str:
    """
    Order-insensitive comparison form of a name.

    Drops stop-word particles and single letters, then sorts the remaining
    words so "Juan Pérez López" and "López Juan Pérez" compare equal.
    """
    normalized = normalize_name(name)
    if not normalized:
        return ""
    words = [w for w in normalized.split(" ") if w not in STOP_WORDS and len(w) > 1]
    return " ".join(sorted(words))


def normalize_phone(phone: Optional[str]) -> str:
    """Strip whitespace, hyphens and parentheses. Country codes are kept."""
    if not phone:
        return ""
    return _PHONE_NOISE.sub("", phone)


def build_full_name(first_name: Optional[str], last_name: Optional[str]) -> Optional[str]:
    """Join split name fields, skipping blanks. None when both are blank."""
    parts = [p.strip() for p in (first_name, last_name) if p and p.strip()]
    return " ".join(parts) if parts else None

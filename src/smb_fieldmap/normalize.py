# SMB FieldMap - Field mapping & validation for SMB financial uploads
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Header normalization and string similarity.

These two helpers are the leaves of the mapping pipeline:

- ``normalize_header`` turns any raw column label into a comparison key
  (``"  Año Fundación "`` → ``"ano_fundacion"``),
- ``similarity`` scores two keys in [0, 1] from their Levenshtein edit
  distance.

Both are pure functions with no dependency on the synonym dictionary.
"""

import re
import unicodedata

from rapidfuzz.distance import Levenshtein

_WHITESPACE_RE = re.compile(r"\s+")
_INVALID_CHARS_RE = re.compile(r"[^a-z0-9_]")


def _strip_accents(text: str) -> str:
    """Decompose ``text`` (NFKD) and drop the combining marks."""
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_header(raw: str) -> str:
    """Return the normalized comparison key for a raw header.

    Steps:
        1. trim surrounding whitespace,
        2. lowercase,
        3. strip diacritics,
        4. collapse whitespace runs into a single underscore,
        5. drop any character outside ``[a-z0-9_]``.

    The function never fails: ``None`` and other non-string values are
    converted with ``str()`` first (``None`` becomes the empty key).
    Applying it twice gives the same result as applying it once.

    Examples:
        "Nombre Empresa"   → "nombre_empresa"
        "% Participación"  → "_participacion"
        "  "               → ""
    """
    if raw is None:
        return ""
    text = str(raw).strip().lower()
    text = _strip_accents(text)
    text = _WHITESPACE_RE.sub("_", text)
    return _INVALID_CHARS_RE.sub("", text)


def similarity(a: str, b: str) -> float:
    """Return ``1 - distance / max(len(a), len(b))`` for two strings.

    The distance is the classic Levenshtein edit distance (insertions,
    deletions and substitutions all cost 1). Two empty strings are
    identical (1.0). No case folding is applied: callers pass keys that
    went through ``normalize_header``.
    """
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return 1.0 - Levenshtein.distance(a, b) / longest

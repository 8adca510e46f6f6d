# SMB FieldMap - Field mapping & validation for SMB financial uploads
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Field mapper for SMB FieldMap.

The field mapper resolves every raw column header of an uploaded table
onto a canonical field of the synonym dictionary. Matching is always
scoped to one record category and follows a strict priority order:

1. exact:   the normalized header equals a normalized canonical id
            (confidence 1.0),
2. synonym: the normalized header equals a normalized synonym, Spanish
            and English pooled (confidence 0.95 by default),
3. fuzzy:   the best Levenshtein similarity against every canonical id
            and every synonym of the category; synonym-based scores are
            discounted (x0.9 by default) so that canonical ids win ties.
            The candidate is accepted only if its score reaches the
            minimum confidence (0.6 by default).

An exact hit anywhere in the category beats any synonym hit, which beats
any fuzzy candidate, regardless of dictionary order.

Headers covered by an organization mapping profile bypass the three
tiers entirely: they are resolved as exact matches with confidence 1.0
and flagged with ``from_profile=True``.

This module exposes:
- MappingSource:  Provenance tag of a mapping (exact/synonym/fuzzy).
- FieldMapping:   Resolution of a single header.
- MapperSettings: Confidence constants and acceptance threshold.
- MappingTable:   Resolution of all headers of a table.
- FieldMapper:    The matcher itself.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from .dictionary import Category, SynonymDictionary, SynonymEntry
from .normalize import normalize_header, similarity

logger = logging.getLogger(__name__)


class MappingSource(str, Enum):
    """Provenance of a mapping, in decreasing order of trust."""

    EXACT = "exact"
    SYNONYM = "synonym"
    FUZZY = "fuzzy"


@dataclass(frozen=True)
class FieldMapping:
    """Resolution of a single raw header onto a canonical field.

    Attributes:
        canonical: Canonical field id from the dictionary.
        detected: Raw header text as found in the file.
        confidence_score: Trust in the mapping, in [0, 1].
        source: How the mapping was found.
        required: Copied from the dictionary entry.
        from_profile: True when supplied by an organization profile.
    """

    canonical: str
    detected: str
    confidence_score: float
    source: MappingSource
    required: bool = False
    from_profile: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "canonical": self.canonical,
            "detected": self.detected,
            "confidence_score": self.confidence_score,
            "source": self.source.value,
            "required": self.required,
            "from_profile": self.from_profile,
        }


@dataclass(frozen=True)
class MapperSettings:
    """Confidence constants used by the field mapper."""

    synonym_confidence: float = 0.95
    fuzzy_synonym_discount: float = 0.9
    min_confidence: float = 0.6


@dataclass
class MappingTable:
    """Resolution of every header of a table for one category.

    ``mapped`` preserves header order. Every header appears either in
    ``mapped`` or in ``unmapped``, never in both.
    """

    category: Category
    mapped: dict[str, FieldMapping] = field(default_factory=dict)
    unmapped: list[str] = field(default_factory=list)

    def headers_for(self, canonical: str) -> list[str]:
        """Return the headers resolved to ``canonical``, in header order."""
        return [h for h, m in self.mapped.items() if m.canonical == canonical]

    def mapped_canonicals(self) -> set[str]:
        return {m.canonical for m in self.mapped.values()}

    def missing_required(self, dictionary: SynonymDictionary) -> list[str]:
        """Return required canonical ids of the category no header maps to."""
        mapped = self.mapped_canonicals()
        return [
            c for c in dictionary.required_fields(self.category) if c not in mapped
        ]

    def required_mapped_count(self) -> int:
        """Number of distinct required canonical fields that were mapped."""
        return len({m.canonical for m in self.mapped.values() if m.required})

    def average_confidence(self) -> float:
        """Mean confidence of the resolved headers (0.0 when none)."""
        if not self.mapped:
            return 0.0
        scores = [m.confidence_score for m in self.mapped.values()]
        return sum(scores) / len(scores)


@dataclass(frozen=True)
class _IndexedEntry:
    entry: SynonymEntry
    canonical_key: str
    synonym_keys: tuple[str, ...]


class FieldMapper:
    """Resolve raw headers onto the canonical fields of a dictionary.

    The mapper is a pure function of its dictionary and settings: it
    holds no per-request state and can be shared between requests.
    """

    def __init__(
        self,
        dictionary: SynonymDictionary,
        settings: Optional[MapperSettings] = None,
    ):
        self.dictionary = dictionary
        self.settings = settings or MapperSettings()
        # Normalized keys are computed once per dictionary.
        self._index: dict[Category, tuple[_IndexedEntry, ...]] = {
            category: tuple(
                _IndexedEntry(
                    entry=e,
                    canonical_key=normalize_header(e.canonical),
                    synonym_keys=tuple(normalize_header(s) for s in e.all_synonyms()),
                )
                for e in dictionary.entries_for(category)
            )
            for category in Category
        }

    def _mapping(
        self,
        entry: SynonymEntry,
        header: str,
        score: float,
        source: MappingSource,
        *,
        from_profile: bool = False,
    ) -> FieldMapping:
        return FieldMapping(
            canonical=entry.canonical,
            detected=header,
            confidence_score=score,
            source=source,
            required=entry.required,
            from_profile=from_profile,
        )

    def map_header(self, header: str, category: Category) -> Optional[FieldMapping]:
        """Return the best mapping for ``header`` in ``category``, or None.

        None means no candidate reached the minimum confidence; the caller
        is expected to report the header as unmapped.
        """
        key = normalize_header(header)
        indexed = self._index[Category.parse(category)]

        # 1) Exact canonical match.
        for item in indexed:
            if key == item.canonical_key:
                return self._mapping(item.entry, header, 1.0, MappingSource.EXACT)

        # 2) Exact synonym match (both languages pooled).
        for item in indexed:
            if key in item.synonym_keys:
                return self._mapping(
                    item.entry,
                    header,
                    self.settings.synonym_confidence,
                    MappingSource.SYNONYM,
                )

        # 3) Best fuzzy candidate across canonical ids and synonyms.
        best: Optional[SynonymEntry] = None
        best_score = 0.0
        for item in indexed:
            score = similarity(key, item.canonical_key)
            if score > best_score:
                best, best_score = item.entry, score
            for syn_key in item.synonym_keys:
                score = similarity(key, syn_key) * self.settings.fuzzy_synonym_discount
                if score > best_score:
                    best, best_score = item.entry, score

        if best is None or best_score < self.settings.min_confidence:
            logger.debug(
                "No mapping for header %r (best score %.3f)", header, best_score
            )
            return None

        logger.debug(
            "Fuzzy mapping %r -> %s (score %.3f)", header, best.canonical, best_score
        )
        return self._mapping(best, header, best_score, MappingSource.FUZZY)

    def map_headers(
        self,
        headers: list[str],
        category: Category,
        profile: Optional[Mapping[str, str]] = None,
        labels: Optional[list[str]] = None,
    ) -> MappingTable:
        """Resolve all ``headers`` of a table for one category.

        Args:
            headers: Unique column keys, in file order. They identify the
                columns in the returned table.
            category: Category whose dictionary entries are candidates.
            profile: Optional organization mapping (header -> canonical id).
                Keys are compared after normalization. Targets that are not
                canonical ids of ``category`` are ignored.
            labels: Column labels as written in the file, aligned with
                ``headers``. Matching and ``FieldMapping.detected`` use them;
                defaults to ``headers``.

        Returns:
            A MappingTable where each header is either mapped or unmapped.
        """
        category = Category.parse(category)
        overrides: dict[str, SynonymEntry] = {}
        for raw_header, canonical in (profile or {}).items():
            entry = self.dictionary.get(category, str(canonical))
            if entry is None:
                logger.debug(
                    "Ignoring profile target %r: not a %s field",
                    canonical,
                    category.value,
                )
                continue
            overrides[normalize_header(raw_header)] = entry

        if labels is None or len(labels) != len(headers):
            labels = list(headers)

        table = MappingTable(category=category)
        for header, label in zip(headers, labels):
            entry = overrides.get(normalize_header(label))
            if entry is not None:
                mapping = self._mapping(
                    entry, label, 1.0, MappingSource.EXACT, from_profile=True
                )
            else:
                mapping = self.map_header(label, category)

            if mapping is None:
                table.unmapped.append(header)
            else:
                table.mapped[header] = mapping
        return table

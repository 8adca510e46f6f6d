# SMB FieldMap - Field mapping & validation for SMB financial uploads
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Record extraction and validation.

Once every header of a table has been resolved by the field mapper, this
module reads the cell values into typed records:

- Entity info (``Category.ENTITY``):
    only the first data row is read and a single ``EntityRecord`` is
    produced. The record exists only if every required field of the
    category has a non-empty value; otherwise ``extract_entity`` returns
    None and the caller reports an invalid record.

- Related-party info (``Category.RELATED_PARTY``):
    every data row is read and produces one ``RelatedPartyRecord``.
    Rows whose shareholder name is empty are skipped silently.

Value conversion follows the ``value_type`` of each dictionary entry:
'int' and 'float' cells that cannot be parsed are left unset rather than
reported as errors. When several headers resolve to the same canonical
field, the left-most header with a non-empty cell wins.
"""

import math
from dataclasses import asdict, dataclass, field
from typing import Any, Optional

from .dictionary import Category, SynonymDictionary
from .io import ParsedTable
from .mapper import MappingTable
from .normalize import normalize_header

NAME_FIELD = "shareholder_name"

_PARTY_TYPES = {
    "persona": "person",
    "persona_fisica": "person",
    "fisica": "person",
    "person": "person",
    "individual": "person",
    "natural_person": "person",
    "empresa": "company",
    "persona_juridica": "company",
    "juridica": "company",
    "sociedad": "company",
    "company": "company",
    "corporate": "company",
    "legal_entity": "company",
}


@dataclass(frozen=True)
class EntityRecord:
    """Company information extracted from the first data row."""

    company_name: Optional[str] = None
    sector: Optional[str] = None
    industry: Optional[str] = None
    founded_year: Optional[int] = None
    employees: Optional[str] = None
    revenue: Optional[str] = None
    hq_city: Optional[str] = None
    hq_country: Optional[str] = None
    website: Optional[str] = None
    description: Optional[str] = None
    currency_code: Optional[str] = None
    accounting_standard: Optional[str] = None
    consolidation: Optional[str] = None
    tax_id: Optional[str] = None
    # Values of canonical fields defined by a custom dictionary.
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def headquarters(self) -> Optional[str]:
        """'City, Country', or whichever of the two is known."""
        if self.hq_city and self.hq_country:
            return f"{self.hq_city}, {self.hq_country}"
        return self.hq_city or self.hq_country

    def to_dict(self) -> dict[str, Any]:
        """Return the record without unset fields."""
        data = {k: v for k, v in asdict(self).items() if k != "extra" and v is not None}
        if self.headquarters:
            data["headquarters"] = self.headquarters
        data.update(self.extra)
        return data


@dataclass(frozen=True)
class RelatedPartyRecord:
    """One shareholder (person or company) of the entity."""

    shareholder_name: str
    shareholder_type: Optional[str] = None
    country: Optional[str] = None
    ownership_pct: Optional[float] = None
    notes: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data = {k: v for k, v in asdict(self).items() if k != "extra" and v is not None}
        data.update(self.extra)
        return data


def parse_int(raw: str) -> Optional[int]:
    """Parse an integer cell; None if the text is not an integer."""
    try:
        return int(raw.strip())
    except ValueError:
        return None


def parse_float(raw: str) -> Optional[float]:
    """Parse a number or percentage cell; None if it cannot be parsed.

    Accepted forms: '25', '25.5', '25,5', '25%', '1,234.5', '1.234,5'.
    When both separators appear, the last one is the decimal separator.
    """
    s = raw.strip().rstrip("%").strip()
    if "," in s and "." in s:
        if s.rfind(",") > s.rfind("."):
            s = s.replace(".", "").replace(",", ".")
        else:
            s = s.replace(",", "")
    else:
        s = s.replace(",", ".")
    try:
        value = float(s)
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return value


def normalize_party_type(raw: str) -> str:
    """Map Spanish/English shareholder types onto 'person' / 'company'.

    Unknown spellings are returned unchanged.
    """
    return _PARTY_TYPES.get(normalize_header(raw), raw)


def _convert(raw: str, value_type: str) -> Any:
    if value_type == "int":
        return parse_int(raw)
    if value_type == "float":
        return parse_float(raw)
    return raw


def _row_values(
    table: ParsedTable,
    row: list[str],
    mapping: MappingTable,
    dictionary: SynonymDictionary,
) -> dict[str, Any]:
    """Return {canonical id: converted value} for one data row.

    Empty cells and unparsable numbers are left out.
    """
    values: dict[str, Any] = {}
    for i, header in enumerate(table.headers):
        m = mapping.mapped.get(header)
        if m is None or m.canonical in values:
            continue
        raw = table.cell(row, i)
        if not raw:
            continue
        entry = dictionary.get(mapping.category, m.canonical)
        value = _convert(raw, entry.value_type if entry else "str")
        if value is not None:
            values[m.canonical] = value
    return values


def _split_known(values: dict[str, Any], known: set[str]) -> tuple[dict, dict]:
    return (
        {k: v for k, v in values.items() if k in known},
        {k: v for k, v in values.items() if k not in known},
    )


_ENTITY_FIELDS = set(EntityRecord.__dataclass_fields__) - {"extra"}
_PARTY_FIELDS = set(RelatedPartyRecord.__dataclass_fields__) - {"extra"}


def extract_entity(
    table: ParsedTable,
    mapping: MappingTable,
    dictionary: SynonymDictionary,
) -> Optional[EntityRecord]:
    """Build the entity record from the first data row.

    Returns None when the table has no data row or when any required
    field of the entity category has no non-empty value.
    """
    if not table.rows:
        return None

    values = _row_values(table, table.rows[0], mapping, dictionary)
    for required in dictionary.required_fields(Category.ENTITY):
        if values.get(required) in (None, ""):
            return None

    known, extra = _split_known(values, _ENTITY_FIELDS)
    return EntityRecord(**known, extra=extra)


def extract_related_parties(
    table: ParsedTable,
    mapping: MappingTable,
    dictionary: SynonymDictionary,
) -> list[RelatedPartyRecord]:
    """Build one related-party record per data row with a name."""
    records: list[RelatedPartyRecord] = []
    for row in table.rows:
        values = _row_values(table, row, mapping, dictionary)
        if not values.get(NAME_FIELD):
            continue
        if "shareholder_type" in values:
            values["shareholder_type"] = normalize_party_type(values["shareholder_type"])
        known, extra = _split_known(values, _PARTY_FIELDS)
        records.append(RelatedPartyRecord(**known, extra=extra))
    return records


def ownership_warnings(records: list[RelatedPartyRecord]) -> list[str]:
    """Return coherence warnings about ownership percentages.

    Warnings never invalidate the records; they are meant to be shown to
    the user together with the mapping result.
    """
    warnings: list[str] = []
    total = 0.0
    for r in records:
        if r.ownership_pct is None:
            continue
        if r.ownership_pct < 0 or r.ownership_pct > 100:
            warnings.append(
                f"Ownership of {r.shareholder_name!r} is outside 0-100% "
                f"({r.ownership_pct:g}%)."
            )
        total += r.ownership_pct
    # 0.01 tolerance for rounded percentages.
    if total > 100.01:
        warnings.append(f"Total ownership exceeds 100% ({total:g}%).")
    return warnings

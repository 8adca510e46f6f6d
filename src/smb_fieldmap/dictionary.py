# SMB FieldMap - Field mapping & validation for SMB financial uploads
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Synonym dictionary for SMB FieldMap.

The synonym dictionary describes the canonical financial schema that
uploaded spreadsheets are mapped onto. For every canonical field it
records:

- the record category it belongs to (entity info or related-party info),
- alternate spellings in Spanish and in English,
- whether the field is required for a record of its category,
- the value type used when extracting cells (str, int or float).

The dictionary is an immutable value. It is built once (either the
built-in ``default_dictionary()`` or a CSV file loaded with
``load_dictionary()``) and then passed explicitly to the field mapper and
the record extractor, so tests can substitute alternate dictionaries
without touching global state.

This module exposes:
- Category:          Closed set of record categories.
- SynonymEntry:      Definition of a single canonical field.
- SynonymDictionary: Container for all entries, with category-scoped
                     lookups.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable, Optional, Union

import pandas as pd

VALUE_TYPES = ("str", "int", "float")


class Category(str, Enum):
    """Record categories recognized by the mapping pipeline.

    The enum values are the identifiers used in dictionary files and in
    the CLI (``company_info`` / ``shareholder_info``).
    """

    ENTITY = "company_info"
    RELATED_PARTY = "shareholder_info"

    @classmethod
    def parse(cls, value: Union[str, "Category"]) -> "Category":
        """Return the Category matching ``value`` (enum value or name).

        Raises:
            ValueError: if ``value`` does not name a known category.
        """
        if isinstance(value, Category):
            return value
        raw = str(value).strip()
        for member in cls:
            if raw == member.value or raw.upper() == member.name:
                return member
        known = ", ".join(m.value for m in cls)
        raise ValueError(f"Unknown category {value!r}. Expected one of: {known}.")


@dataclass(frozen=True)
class SynonymEntry:
    """Definition of a single canonical field.

    Attributes:
        canonical: Canonical field identifier (e.g. 'company_name').
        category: Record category the field belongs to.
        synonyms_es: Spanish alternate spellings.
        synonyms_en: English alternate spellings.
        required: Whether a record of this category needs the field.
        value_type: How cells are converted: 'str', 'int' or 'float'.
    """

    canonical: str
    category: Category
    synonyms_es: tuple[str, ...] = ()
    synonyms_en: tuple[str, ...] = ()
    required: bool = False
    value_type: str = "str"

    def all_synonyms(self) -> tuple[str, ...]:
        """Return Spanish and English synonyms pooled together."""
        return self.synonyms_es + self.synonyms_en


class SynonymDictionary:
    """Immutable collection of SynonymEntry objects.

    Entries keep their definition order, which is also the order the
    field mapper scans them in. Canonical identifiers must be unique
    within a category; the same synonym may appear in several categories.
    """

    def __init__(self, entries: Iterable[SynonymEntry]):
        by_category: dict[Category, list[SynonymEntry]] = {c: [] for c in Category}
        index: dict[tuple[Category, str], SynonymEntry] = {}

        for entry in entries:
            if entry.value_type not in VALUE_TYPES:
                raise ValueError(
                    f"Invalid value_type {entry.value_type!r} for field "
                    f"{entry.canonical!r}. Expected one of: {', '.join(VALUE_TYPES)}."
                )
            key = (entry.category, entry.canonical)
            if key in index:
                raise ValueError(
                    f"Duplicate canonical field {entry.canonical!r} in category "
                    f"{entry.category.value!r}."
                )
            index[key] = entry
            by_category[entry.category].append(entry)

        self._by_category = {c: tuple(e) for c, e in by_category.items()}
        self._index = index

    def __len__(self) -> int:
        return len(self._index)

    def __iter__(self):
        for category in Category:
            yield from self._by_category[category]

    def categories(self) -> list[Category]:
        """Return the categories that have at least one entry."""
        return [c for c in Category if self._by_category[c]]

    def entries_for(self, category: Category) -> tuple[SynonymEntry, ...]:
        """Return the entries of one category, in definition order."""
        return self._by_category[Category.parse(category)]

    def get(self, category: Category, canonical: str) -> Optional[SynonymEntry]:
        """Return the entry for ``canonical`` in ``category``, or None."""
        return self._index.get((Category.parse(category), canonical))

    def required_fields(self, category: Category) -> list[str]:
        """Return the canonical ids flagged as required in ``category``."""
        return [e.canonical for e in self.entries_for(category) if e.required]

    def to_frame(self) -> pd.DataFrame:
        """Return the dictionary as a DataFrame (one row per entry)."""
        return pd.DataFrame(
            [
                {
                    "category": e.category.value,
                    "canonical": e.canonical,
                    "required": e.required,
                    "value_type": e.value_type,
                    "synonyms_es": ";".join(e.synonyms_es),
                    "synonyms_en": ";".join(e.synonyms_en),
                }
                for e in self
            ],
            columns=[
                "category",
                "canonical",
                "required",
                "value_type",
                "synonyms_es",
                "synonyms_en",
            ],
        )


def _entry(
    category: Category,
    canonical: str,
    es: Iterable[str],
    en: Iterable[str],
    *,
    required: bool = False,
    value_type: str = "str",
) -> SynonymEntry:
    return SynonymEntry(
        canonical=canonical,
        category=category,
        synonyms_es=tuple(es),
        synonyms_en=tuple(en),
        required=required,
        value_type=value_type,
    )


def default_dictionary() -> SynonymDictionary:
    """Return the built-in Spanish/English synonym dictionary.

    Entity info (one record per upload):
        company_name and sector are required; founded_year is an integer.

    Related-party info (one record per shareholder row):
        shareholder_name is required; ownership_pct is a float.
    """
    ent = Category.ENTITY
    rel = Category.RELATED_PARTY
    return SynonymDictionary(
        [
            # --- Entity info -------------------------------------------------
            _entry(
                ent,
                "company_name",
                [
                    "Nombre Empresa",
                    "Empresa",
                    "Razón Social",
                    "Nombre de la empresa",
                    "Denominación social",
                    "Sociedad",
                ],
                ["Company", "Company name", "Business name", "Legal name"],
                required=True,
            ),
            _entry(
                ent,
                "sector",
                ["Sector de actividad", "Actividad", "Rama"],
                ["Business sector", "Industry sector"],
                required=True,
            ),
            _entry(ent, "industry", ["Industria", "Subsector"], ["Industry", "Sub-sector"]),
            _entry(
                ent,
                "founded_year",
                ["Año fundación", "Año de fundación", "Fundación", "Año constitución"],
                ["Founded", "Year founded", "Founding year", "Established"],
                value_type="int",
            ),
            _entry(
                ent,
                "employees",
                ["Empleados", "Número de empleados", "Plantilla", "Rango empleados"],
                ["Employees", "Headcount", "Employee count", "Employees range"],
            ),
            _entry(
                ent,
                "revenue",
                ["Facturación", "Facturación anual", "Ingresos", "Rango facturación"],
                ["Revenue", "Annual revenue", "Turnover", "Annual revenue range"],
            ),
            _entry(
                ent,
                "hq_city",
                ["Ciudad", "Ciudad sede", "Sede", "Localidad"],
                ["City", "HQ city", "Headquarters", "Headquarters city"],
            ),
            _entry(
                ent,
                "hq_country",
                ["País", "País sede"],
                ["Country", "HQ country", "Headquarters country"],
            ),
            _entry(
                ent,
                "website",
                ["Web", "Página web", "Sitio web"],
                ["Website", "URL", "Homepage"],
            ),
            _entry(
                ent,
                "description",
                ["Descripción", "Descripción del negocio"],
                ["Description", "Business description", "About"],
            ),
            _entry(
                ent,
                "currency_code",
                ["Moneda", "Divisa", "Código moneda"],
                ["Currency", "Currency code"],
            ),
            _entry(
                ent,
                "accounting_standard",
                ["Norma contable", "Marco contable", "PGC"],
                ["Accounting standard", "GAAP", "Reporting framework"],
            ),
            _entry(
                ent,
                "consolidation",
                ["Consolidación", "Consolidado"],
                ["Consolidation", "Consolidated"],
            ),
            _entry(
                ent,
                "tax_id",
                ["CIF", "NIF", "Identificación fiscal"],
                ["Tax ID", "VAT number"],
            ),
            # --- Related-party info ------------------------------------------
            _entry(
                rel,
                "shareholder_name",
                ["Accionista", "Nombre accionista", "Socio", "Nombre socio", "Titular"],
                ["Shareholder", "Shareholder name", "Owner", "Partner", "Name"],
                required=True,
            ),
            _entry(
                rel,
                "shareholder_type",
                ["Tipo", "Tipo accionista", "Tipo socio"],
                ["Type", "Shareholder type", "Owner type"],
            ),
            _entry(
                rel,
                "country",
                ["País", "Nacionalidad", "País de residencia"],
                ["Country", "Nationality"],
            ),
            _entry(
                rel,
                "ownership_pct",
                ["Porcentaje", "% Participación", "Participación", "% Capital"],
                ["Ownership", "Ownership %", "Percentage", "Stake"],
                value_type="float",
            ),
            _entry(
                rel,
                "notes",
                ["Notas", "Observaciones", "Comentarios"],
                ["Notes", "Comments", "Remarks"],
            ),
        ]
    )


def _split_synonyms(s: Optional[str]) -> tuple[str, ...]:
    """Convert a semicolon-separated synonym cell into a tuple.

    Examples:
        "Empresa;Razón Social" → ("Empresa", "Razón Social")
        None or ""             → ()
    """
    if s is None or str(s).strip() == "":
        return ()
    return tuple(p.strip() for p in str(s).split(";") if p.strip())


def _to_bool(value) -> bool:
    return str(value).strip().lower() in {"1", "true", "yes", "y", "x"}


def load_dictionary(path: Union[str, Path]) -> SynonymDictionary:
    """Load a synonym dictionary from a CSV file.

    Expected columns (names are trimmed and lowercased):
        - category:     'company_info' or 'shareholder_info'
        - canonical:    canonical field identifier
        - required:     true/false (optional, default false)
        - value_type:   str/int/float (optional, default str)
        - synonyms_es:  semicolon-separated Spanish synonyms (optional)
        - synonyms_en:  semicolon-separated English synonyms (optional)

    Raises:
        ValueError: if a mandatory column is missing, a category is
            unknown, or a canonical field is defined twice in a category.
    """
    df = pd.read_csv(path, dtype=str)
    df.columns = [str(c).strip().lower() for c in df.columns]
    # Replace NaNs with empty strings to simplify downstream handling.
    df = df.fillna("")

    missing = {"category", "canonical"}.difference(df.columns)
    if missing:
        cols = ", ".join(sorted(missing))
        raise ValueError(f"Dictionary file {path} is missing column(s): {cols}")

    entries: list[SynonymEntry] = []
    for _, r in df.iterrows():
        canonical = str(r["canonical"]).strip()
        if not canonical:
            continue
        entries.append(
            SynonymEntry(
                canonical=canonical,
                category=Category.parse(r["category"]),
                synonyms_es=_split_synonyms(r.get("synonyms_es", "")),
                synonyms_en=_split_synonyms(r.get("synonyms_en", "")),
                required=_to_bool(r.get("required", "")),
                value_type=str(r.get("value_type", "") or "str").strip().lower(),
            )
        )
    return SynonymDictionary(entries)

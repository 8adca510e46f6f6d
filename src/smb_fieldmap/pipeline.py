# SMB FieldMap - Field mapping & validation for SMB financial uploads
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Upload processing pipeline for SMB FieldMap.

This module wires the building blocks together for one uploaded file:

    raw payload
      → size / presence checks
      → tabular parser           (io.py)
      → mapping profile lookup   (profiles.py, best-effort)
      → field mapper             (mapper.py)
      → required-field gate      (entity category only)
      → record extraction        (extract.py)
      → ProcessingResult

Two entry points are exposed:

- ``process_upload`` returns a ``ProcessingResult`` and raises the
  ``FieldMapError`` subclasses defined in errors.py for invalid input.
- ``handle_upload`` never raises: it returns an ``(status, body)`` pair
  suitable for an HTTP-style response. Unexpected exceptions become
  ``INTERNAL_ERROR`` responses carrying a request id, which is also
  logged together with the traceback.

The pipeline is stateless: the dictionary is read-only, the profile store
is only read, and a successful result contains no timestamp or random id,
so identical inputs yield identical results.

A low aggregate confidence is not an error. The result is returned with
``needs_review = True`` and the caller is expected to ask the user to
confirm the mapping before persisting anything.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from .config import AppConfig
from .dictionary import Category, SynonymDictionary
from .errors import (
    FieldMapError,
    FileTooLargeError,
    InternalError,
    InvalidCategoryError,
    InvalidRecordError,
    MissingInputError,
    MissingRequiredFieldsError,
)
from .extract import (
    NAME_FIELD,
    EntityRecord,
    RelatedPartyRecord,
    extract_entity,
    extract_related_parties,
    ownership_warnings,
)
from .io import parse_payload
from .mapper import FieldMapper, FieldMapping, MappingSource, MappingTable
from .profiles import MappingProfile, load_latest_profile

logger = logging.getLogger(__name__)

Payload = Union[bytes, str]


@dataclass(frozen=True)
class UploadStats:
    """Column counters reported with every successful result."""

    total_columns: int
    mapped_columns: int
    required_fields_mapped: int
    average_confidence: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_columns": self.total_columns,
            "mapped_columns": self.mapped_columns,
            "required_fields_mapped": self.required_fields_mapped,
            "average_confidence": self.average_confidence,
        }


@dataclass(frozen=True)
class ProcessingResult:
    """
    Output contract of the pipeline.

    Attributes:
        category: Record category the table was mapped for.
        mapped_fields: Raw header -> FieldMapping, in header order.
        unmapped_columns: Raw headers without an acceptable match.
        confidence_score: Mean confidence of the mapped headers.
        needs_review: True when confidence_score is below the threshold.
        mapping_profile_used: Name of the organization profile applied.
        entity: Extracted entity record (entity category only).
        related_parties: Extracted related-party records.
        stats: Column counters.
        suggestions: Human-readable notes about fuzzy/unmapped columns.
        warnings: Coherence warnings about the extracted values.
    """

    category: Category
    mapped_fields: dict[str, FieldMapping]
    unmapped_columns: list[str]
    confidence_score: float
    needs_review: bool
    mapping_profile_used: Optional[str]
    stats: UploadStats
    entity: Optional[EntityRecord] = None
    related_parties: list[RelatedPartyRecord] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Return the success payload."""
        return {
            "success": True,
            "category": self.category.value,
            "confidence_score": self.confidence_score,
            "needs_review": self.needs_review,
            "mapped_fields": {h: m.to_dict() for h, m in self.mapped_fields.items()},
            "unmapped_columns": list(self.unmapped_columns),
            "mapping_profile_used": self.mapping_profile_used,
            "entity": None if self.entity is None else self.entity.to_dict(),
            "related_parties": [r.to_dict() for r in self.related_parties],
            "stats": self.stats.to_dict(),
            "suggestions": list(self.suggestions),
            "warnings": list(self.warnings),
        }


def _payload_size(payload: Payload) -> int:
    if isinstance(payload, str):
        return len(payload.encode("utf-8"))
    return len(payload)


def _check_input(payload: Optional[Payload], org_id: Optional[str]) -> None:
    if payload is None:
        raise MissingInputError("No file was provided.")
    if org_id is None or not str(org_id).strip():
        raise MissingInputError("No organization id was provided.")


def _suggestions(mapping: MappingTable) -> list[str]:
    notes: list[str] = []
    for header, m in mapping.mapped.items():
        if m.source == MappingSource.FUZZY:
            notes.append(
                f'Column "{header}" mapped to "{m.canonical}" with '
                f"{round(m.confidence_score * 100)}% confidence."
            )
    for header in mapping.unmapped:
        notes.append(f'Column "{header}" could not be mapped automatically.')
    return notes


def process_upload(
    payload: Optional[Payload],
    org_id: Optional[str],
    *,
    category: Union[Category, str] = Category.ENTITY,
    config: Optional[AppConfig] = None,
    dictionary: Optional[SynonymDictionary] = None,
    profile: Optional[MappingProfile] = None,
) -> ProcessingResult:
    """
    Map and validate one uploaded file.

    Parameters
    ----------
    payload:
        Raw file content (bytes or already-decoded text). CSV/TSV text and
        .xlsx workbooks are accepted.
    org_id:
        Organization the upload belongs to; used to look up its mapping
        profile.
    category:
        Record category to map the table onto.
    config:
        Application configuration; defaults are used when omitted.
    dictionary:
        Synonym dictionary; the configured one is loaded when omitted.
    profile:
        Mapping profile to apply. When omitted, the latest profile of
        ``org_id`` is read from the profile store (best-effort).

    Raises
    ------
    MissingInputError, InvalidCategoryError, FileTooLargeError,
    EmptyInputError, UnreadableFileError, MissingRequiredFieldsError,
    InvalidRecordError
    """
    _check_input(payload, org_id)
    try:
        category = Category.parse(category)
    except ValueError as exc:
        raise InvalidCategoryError(str(exc)) from exc
    config = config or AppConfig()

    size = _payload_size(payload)
    if size > config.max_file_size_bytes:
        raise FileTooLargeError(size, config.max_file_size_bytes)

    table = parse_payload(payload)

    if dictionary is None:
        dictionary = config.load_dictionary()
    if profile is None:
        profile = load_latest_profile(config.database, str(org_id))

    mapper = FieldMapper(dictionary, config.mapping.mapper_settings())
    mapping = mapper.map_headers(
        table.headers,
        category,
        profile.field_mappings if profile is not None else None,
        labels=table.labels(),
    )

    entity: Optional[EntityRecord] = None
    parties: list[RelatedPartyRecord] = []
    warnings: list[str] = []
    missing = mapping.missing_required(dictionary)

    if category == Category.ENTITY:
        if missing:
            raise MissingRequiredFieldsError(missing)
        entity = extract_entity(table, mapping, dictionary)
        if entity is None:
            required = ", ".join(dictionary.required_fields(Category.ENTITY))
            raise InvalidRecordError(
                "The first data row does not contain a value for every "
                f"required field ({required})."
            )
    else:
        parties = extract_related_parties(table, mapping, dictionary)
        if NAME_FIELD in missing:
            warnings.append(
                f"No column could be mapped to '{NAME_FIELD}'; "
                "no related-party record was extracted."
            )
        warnings.extend(ownership_warnings(parties))

    confidence = mapping.average_confidence()
    threshold = config.mapping.review_threshold
    if profile is not None and profile.confidence_threshold is not None:
        threshold = profile.confidence_threshold

    profile_used = None
    if profile is not None and any(m.from_profile for m in mapping.mapped.values()):
        profile_used = profile.profile_name

    logger.debug(
        "Processed upload for %s: %d/%d columns mapped, confidence %.3f",
        org_id,
        len(mapping.mapped),
        len(table.headers),
        confidence,
    )

    return ProcessingResult(
        category=category,
        mapped_fields=dict(mapping.mapped),
        unmapped_columns=list(mapping.unmapped),
        confidence_score=confidence,
        needs_review=confidence < threshold,
        mapping_profile_used=profile_used,
        stats=UploadStats(
            total_columns=len(table.headers),
            mapped_columns=len(mapping.mapped),
            required_fields_mapped=mapping.required_mapped_count(),
            average_confidence=confidence,
        ),
        entity=entity,
        related_parties=parties,
        suggestions=_suggestions(mapping),
        warnings=warnings,
    )


def handle_upload(
    payload: Optional[Payload],
    org_id: Optional[str],
    **kwargs: Any,
) -> tuple[int, dict[str, Any]]:
    """
    Run ``process_upload`` and convert the outcome into a response.

    Returns
    -------
    tuple[int, dict]
        (200, success payload) on success,
        (400, {success: false, code, message, ...}) for invalid input,
        (500, {success: false, code: INTERNAL_ERROR, message, request_id})
        for unexpected failures.
    """
    try:
        result = process_upload(payload, org_id, **kwargs)
    except FieldMapError as exc:
        logger.info("Upload rejected for %s: %s (%s)", org_id, exc.code.value, exc)
        return exc.status, exc.to_dict()
    except Exception:  # noqa: BLE001
        request_id = uuid.uuid4().hex
        logger.exception(
            "Unexpected error while processing upload for %s [request_id=%s]",
            org_id,
            request_id,
        )
        error = InternalError(request_id)
        return error.status, error.to_dict()
    return 200, result.to_dict()

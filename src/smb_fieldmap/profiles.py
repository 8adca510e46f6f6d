# SMB FieldMap - Field mapping & validation for SMB financial uploads
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.


"""
Organization mapping profile store.

A mapping profile is a previously approved ``header -> canonical field``
mapping saved for an organization. When a profile exists, the upload
pipeline applies it before running the synonym/fuzzy field mapper, so
that headers a user already confirmed are always resolved the same way.

Profiles are stored in a SQLite database, in a single table:

organization_field_mappings
   - id                    INTEGER PRIMARY KEY AUTOINCREMENT
   - org_id                TEXT    NOT NULL
   - profile_name          TEXT    NOT NULL
   - field_mappings        TEXT    NOT NULL  -- JSON object {header: canonical}
   - confidence_threshold  REAL              -- optional review threshold
   - created_by            TEXT
   - created_at            TEXT    NOT NULL  -- ISO datetime, UTC
   - updated_at            TEXT    NOT NULL  -- ISO datetime, UTC
   - UNIQUE (org_id, profile_name)

Reads performed on behalf of an upload (``load_latest_profile``) are
best-effort: any failure (missing database file, locked database,
corrupted JSON, ...) is logged and reported as "no profile". Profile
availability never blocks an upload.

Write helpers (``save_profile``, ``delete_profile``) propagate errors
like any other database call.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

import pandas as pd

logger = logging.getLogger(__name__)

_PROFILE_COLUMNS = (
    "id",
    "org_id",
    "profile_name",
    "field_mappings",
    "confidence_threshold",
    "created_by",
    "created_at",
    "updated_at",
)

# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseConfig:
    """
    Database configuration for the profile store.

    Attributes
    ----------
    engine:
        Database engine identifier. Only "sqlite" is supported.
    path:
        Path to the SQLite database file.
    """

    engine: str
    path: Path


@dataclass(frozen=True)
class MappingProfile:
    """
    A saved header -> canonical mapping for an organization.

    Attributes
    ----------
    id:
        Row id in `organization_field_mappings`.
    org_id, profile_name:
        Owner organization and profile label (unique together).
    field_mappings:
        Mapping {raw header: canonical field id}.
    confidence_threshold:
        Optional review threshold overriding the configured one.
    created_by:
        Optional user id of the author.
    created_at, updated_at:
        Timezone-aware UTC timestamps.
    """

    id: int
    org_id: str
    profile_name: str
    field_mappings: dict[str, str]
    confidence_threshold: float | None
    created_by: str | None
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _ensure_sqlite(cfg: DatabaseConfig) -> None:
    """Raise if the configuration does not refer to a supported engine."""
    if cfg.engine.lower() != "sqlite":
        msg = (
            f"Unsupported database engine: {cfg.engine!r}. "
            "Only 'sqlite' is supported for now."
        )
        raise ValueError(msg)


def _connect(cfg: DatabaseConfig) -> sqlite3.Connection:
    """
    Open a SQLite connection.

    The caller is responsible for closing the connection.
    """
    _ensure_sqlite(cfg)
    return sqlite3.connect(cfg.path)


def _create_schema_if_needed(conn: sqlite3.Connection) -> None:
    """Create the profile table and its index if they do not exist yet."""
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS organization_field_mappings (
            id                   INTEGER PRIMARY KEY AUTOINCREMENT,
            org_id               TEXT    NOT NULL,
            profile_name         TEXT    NOT NULL,
            field_mappings       TEXT    NOT NULL,
            confidence_threshold REAL,
            created_by           TEXT,
            created_at           TEXT    NOT NULL,
            updated_at           TEXT    NOT NULL,

            UNIQUE (org_id, profile_name)
        );
        """
    )
    conn.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_field_mappings_org_updated
            ON organization_field_mappings(org_id, updated_at);
        """
    )
    conn.commit()


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _to_iso(value: datetime) -> str:
    """Convert a datetime to an ISO string in UTC (naive values are UTC)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _from_iso(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _validate_field_mappings(field_mappings: Mapping[str, str]) -> dict[str, str]:
    """Return a plain {str: str} copy of ``field_mappings``."""
    if not isinstance(field_mappings, Mapping):
        raise ValueError("field_mappings must be a mapping of header -> canonical.")
    out: dict[str, str] = {}
    for header, canonical in field_mappings.items():
        header_s = str(header).strip()
        canonical_s = str(canonical).strip()
        if not header_s or not canonical_s:
            raise ValueError(
                f"Invalid profile entry {header!r} -> {canonical!r}: "
                "header and canonical field must be non-empty."
            )
        out[header_s] = canonical_s
    return out


def _row_to_profile(row: tuple) -> MappingProfile:
    """Convert a raw SELECT row (see _PROFILE_COLUMNS) into a MappingProfile."""
    (
        profile_id,
        org_id,
        profile_name,
        raw_mappings,
        threshold,
        created_by,
        created_at,
        updated_at,
    ) = row

    field_mappings = json.loads(raw_mappings)
    if not isinstance(field_mappings, dict):
        raise ValueError(
            f"Profile #{profile_id} field_mappings is not a JSON object."
        )

    return MappingProfile(
        id=int(profile_id),
        org_id=str(org_id),
        profile_name=str(profile_name),
        field_mappings={str(k): str(v) for k, v in field_mappings.items()},
        confidence_threshold=None if threshold is None else float(threshold),
        created_by=created_by,
        created_at=_from_iso(created_at),
        updated_at=_from_iso(updated_at),
    )


def _select_profiles_sql(where: str = "") -> str:
    return (
        f"SELECT {', '.join(_PROFILE_COLUMNS)} "
        f"FROM organization_field_mappings {where}"
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def init_database(cfg: DatabaseConfig) -> None:
    """
    Initialize the profile store schema if needed.

    - Creates the SQLite file (and its parent directory) if missing.
    - Creates the `organization_field_mappings` table and index.
    - Idempotent: calling it multiple times is safe.

    Raises
    ------
    ValueError
        If cfg.engine is not supported.
    sqlite3.Error
        If schema creation fails.
    """
    cfg.path.parent.mkdir(parents=True, exist_ok=True)

    conn = _connect(cfg)
    try:
        _create_schema_if_needed(conn)
    finally:
        conn.close()


def save_profile(
    cfg: DatabaseConfig,
    org_id: str,
    profile_name: str,
    field_mappings: Mapping[str, str],
    *,
    confidence_threshold: float | None = None,
    created_by: str | None = None,
    saved_at: datetime | None = None,
) -> MappingProfile:
    """
    Create or replace a mapping profile.

    If a profile with the same (org_id, profile_name) already exists, its
    mappings and threshold are replaced and `updated_at` is refreshed;
    `created_at` and `created_by` are kept.

    Parameters
    ----------
    saved_at:
        Timestamp to record. If None, uses the current UTC time.

    Raises
    ------
    ValueError
        If identifiers are empty, a mapping entry is empty, or the
        threshold is outside [0, 1].
    sqlite3.Error
        If the database write fails.
    """
    org_id = str(org_id or "").strip()
    profile_name = str(profile_name or "").strip()
    if not org_id or not profile_name:
        raise ValueError("org_id and profile_name are required to save a profile.")
    mappings = _validate_field_mappings(field_mappings)
    if confidence_threshold is not None and not 0.0 <= confidence_threshold <= 1.0:
        raise ValueError("confidence_threshold must be between 0 and 1.")

    init_database(cfg)
    now_iso = _to_iso(saved_at or _now_utc())

    conn = _connect(cfg)
    try:
        conn.execute(
            """
            INSERT INTO organization_field_mappings (
                org_id,
                profile_name,
                field_mappings,
                confidence_threshold,
                created_by,
                created_at,
                updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT (org_id, profile_name) DO UPDATE SET
                field_mappings       = excluded.field_mappings,
                confidence_threshold = excluded.confidence_threshold,
                updated_at           = excluded.updated_at;
            """,
            (
                org_id,
                profile_name,
                json.dumps(mappings, ensure_ascii=False, sort_keys=True),
                confidence_threshold,
                created_by,
                now_iso,
                now_iso,
            ),
        )
        conn.commit()

        cur = conn.execute(
            _select_profiles_sql("WHERE org_id = ? AND profile_name = ?;"),
            (org_id, profile_name),
        )
        row = cur.fetchone()
    finally:
        conn.close()

    return _row_to_profile(row)


def get_profile(
    cfg: DatabaseConfig, org_id: str, profile_name: str
) -> MappingProfile | None:
    """Return one profile by organization and name, or None."""
    init_database(cfg)

    conn = _connect(cfg)
    try:
        cur = conn.execute(
            _select_profiles_sql("WHERE org_id = ? AND profile_name = ?;"),
            (org_id, profile_name),
        )
        row = cur.fetchone()
    finally:
        conn.close()

    return None if row is None else _row_to_profile(row)


def load_latest_profile(cfg: DatabaseConfig, org_id: str) -> MappingProfile | None:
    """
    Return the most recently updated profile of an organization.

    This lookup is best-effort: it returns None when the organization has
    no profile, when the database file does not exist, and on any storage
    or decoding failure (which is logged as a warning).
    """
    if not cfg.path.is_file():
        return None

    try:
        conn = _connect(cfg)
        try:
            cur = conn.execute(
                _select_profiles_sql(
                    "WHERE org_id = ? ORDER BY updated_at DESC, id DESC LIMIT 1;"
                ),
                (org_id,),
            )
            row = cur.fetchone()
        finally:
            conn.close()
        if row is None:
            return None
        return _row_to_profile(row)
    except Exception as exc:  # noqa: BLE001
        logger.warning(
            "Mapping profile lookup failed for organization %r: %s", org_id, exc
        )
        return None


def list_profiles(cfg: DatabaseConfig, org_id: str | None = None) -> pd.DataFrame:
    """
    Return saved profiles, most recently updated first.

    Columns:
    - id
    - org_id
    - profile_name
    - fields               (number of mapped headers)
    - confidence_threshold
    - created_by
    - created_at
    - updated_at
    """
    init_database(cfg)

    if org_id is None:
        sql = _select_profiles_sql("ORDER BY updated_at DESC, id DESC;")
        params: tuple = ()
    else:
        sql = _select_profiles_sql(
            "WHERE org_id = ? ORDER BY updated_at DESC, id DESC;"
        )
        params = (org_id,)

    conn = _connect(cfg)
    try:
        rows = conn.execute(sql, params).fetchall()
    finally:
        conn.close()

    columns = [
        "id",
        "org_id",
        "profile_name",
        "fields",
        "confidence_threshold",
        "created_by",
        "created_at",
        "updated_at",
    ]
    if not rows:
        return pd.DataFrame(columns=columns)

    profiles = [_row_to_profile(r) for r in rows]
    df = pd.DataFrame(
        [
            {
                "id": p.id,
                "org_id": p.org_id,
                "profile_name": p.profile_name,
                "fields": len(p.field_mappings),
                "confidence_threshold": p.confidence_threshold,
                "created_by": p.created_by,
                "created_at": p.created_at,
                "updated_at": p.updated_at,
            }
            for p in profiles
        ],
        columns=columns,
    )
    return df


def delete_profile(cfg: DatabaseConfig, org_id: str, profile_name: str) -> bool:
    """Delete a profile. Return True if a row was removed."""
    init_database(cfg)

    conn = _connect(cfg)
    try:
        cur = conn.execute(
            """
            DELETE FROM organization_field_mappings
             WHERE org_id = ? AND profile_name = ?;
            """,
            (org_id, profile_name),
        )
        conn.commit()
        return cur.rowcount > 0
    finally:
        conn.close()

# SMB FieldMap - Field mapping & validation for SMB financial uploads
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Configuration helpers for SMB FieldMap.

This module is responsible for:
- loading the application configuration from a TOML file,
- validating mapping thresholds and upload limits,
- exposing typed dataclasses used by the rest of the application.

Expected sections in the TOML file (all optional)
-------------------------------------------------
[mapping]
    synonym_confidence, fuzzy_synonym_discount, min_confidence,
    review_threshold, dictionary_file.

[upload]
    max_file_size_mb (default 10).

[database]
    engine ("sqlite") and path of the mapping profile store.

[logging]
    level (DEBUG, INFO, WARNING, ...).

All file paths are resolved relative to the directory of the TOML file.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:  # pragma: no cover - fallback for older Python
    import tomli as tomllib  # type: ignore[import]

from .dictionary import SynonymDictionary, default_dictionary, load_dictionary
from .mapper import MapperSettings
from .profiles import DatabaseConfig

DEFAULT_CONFIG_FILE = "smb_fieldmap_config.toml"
DEFAULT_DB_PATH = "data/db/smb_fieldmap.sqlite"
DEFAULT_MAX_FILE_SIZE_MB = 10.0


@dataclass(frozen=True)
class MappingConfig:
    """
    Mapping thresholds and dictionary location.

    Attributes:
        synonym_confidence: Confidence given to exact synonym hits.
        fuzzy_synonym_discount: Factor applied to synonym-based fuzzy scores.
        min_confidence: Minimum score for a fuzzy mapping to be accepted.
        review_threshold: Aggregate confidence below which a result needs
            human review.
        dictionary_file: Optional CSV dictionary replacing the built-in one.
    """

    synonym_confidence: float = 0.95
    fuzzy_synonym_discount: float = 0.9
    min_confidence: float = 0.6
    review_threshold: float = 0.8
    dictionary_file: Optional[Path] = None

    def mapper_settings(self) -> MapperSettings:
        return MapperSettings(
            synonym_confidence=self.synonym_confidence,
            fuzzy_synonym_discount=self.fuzzy_synonym_discount,
            min_confidence=self.min_confidence,
        )


@dataclass(frozen=True)
class AppConfig:
    """
    Application-wide configuration for SMB FieldMap.

    This aggregates:
    - the mapping thresholds and dictionary location,
    - the upload size ceiling,
    - the profile store database configuration,
    - the logging level.
    """

    mapping: MappingConfig = field(default_factory=MappingConfig)
    max_file_size_bytes: int = int(DEFAULT_MAX_FILE_SIZE_MB * 1024 * 1024)
    database: DatabaseConfig = field(
        default_factory=lambda: DatabaseConfig(
            engine="sqlite", path=Path(DEFAULT_DB_PATH).resolve()
        )
    )
    log_level: str = "WARNING"

    def load_dictionary(self) -> SynonymDictionary:
        """Return the configured dictionary (built-in one if none is set)."""
        if self.mapping.dictionary_file is None:
            return default_dictionary()
        return load_dictionary(self.mapping.dictionary_file)


def _load_toml(path: Path) -> dict[str, Any]:
    """
    Load a TOML file and return its content as a dictionary.

    Raises:
        FileNotFoundError: if the file does not exist.
        ValueError: if the TOML content cannot be parsed or is not a table.
    """
    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except Exception as exc:  # noqa: BLE001
        raise ValueError(f"Failed to parse TOML config file: {path}") from exc

    if not isinstance(data, dict):
        raise ValueError(f"Invalid TOML root type in {path}, expected a table.")

    return data


def _section(raw: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    section = raw.get(name) or {}
    if not isinstance(section, Mapping):
        section = {}
    return section


def _unit_float(section: Mapping[str, Any], key: str, default: float) -> float:
    """Read a float in [0, 1] from a config section."""
    raw = section.get(key, default)
    try:
        value = float(raw)
    except (TypeError, ValueError) as exc:
        raise ValueError(
            f"Invalid value for 'mapping.{key}' in the configuration. "
            "Expected a number."
        ) from exc
    if not 0.0 <= value <= 1.0:
        raise ValueError(f"'mapping.{key}' must be between 0 and 1, got {value}.")
    return value


def _parse_mapping_section(
    section: Mapping[str, Any], base_dir: Path
) -> MappingConfig:
    dictionary_raw = section.get("dictionary_file") or None
    dictionary_file = (
        (base_dir / str(dictionary_raw)).resolve() if dictionary_raw else None
    )
    defaults = MappingConfig()
    return MappingConfig(
        synonym_confidence=_unit_float(
            section, "synonym_confidence", defaults.synonym_confidence
        ),
        fuzzy_synonym_discount=_unit_float(
            section, "fuzzy_synonym_discount", defaults.fuzzy_synonym_discount
        ),
        min_confidence=_unit_float(section, "min_confidence", defaults.min_confidence),
        review_threshold=_unit_float(
            section, "review_threshold", defaults.review_threshold
        ),
        dictionary_file=dictionary_file,
    )


def load_app_config(config_path: Optional[str] = None) -> AppConfig:
    """
    Load the SMB FieldMap configuration from a TOML file.

    If ``config_path`` is None, ``smb_fieldmap_config.toml`` in the current
    directory is used when present; otherwise the built-in defaults apply.
    An explicitly requested file must exist.

    Raises
    ------
    FileNotFoundError
        If an explicit config_path does not exist.
    ValueError
        If the file cannot be parsed or contains invalid values.
    """
    if config_path is None:
        config_file = Path(DEFAULT_CONFIG_FILE).resolve()
        if not config_file.is_file():
            return AppConfig()
    else:
        config_file = Path(config_path).resolve()

    raw = _load_toml(config_file)
    base_dir = config_file.parent

    # 1) Mapping thresholds
    mapping = _parse_mapping_section(_section(raw, "mapping"), base_dir)

    # 2) Upload limits
    upload_section = _section(raw, "upload")
    raw_size = upload_section.get("max_file_size_mb", DEFAULT_MAX_FILE_SIZE_MB)
    try:
        max_size_mb = float(raw_size)
    except (TypeError, ValueError) as exc:
        raise ValueError(
            "Invalid value for 'upload.max_file_size_mb' in the configuration. "
            "Expected a number."
        ) from exc
    if max_size_mb <= 0:
        raise ValueError("'upload.max_file_size_mb' must be positive.")

    # 3) Database section
    database_section = _section(raw, "database")
    db_engine = str(database_section.get("engine") or "sqlite")
    db_path_raw = database_section.get("path") or DEFAULT_DB_PATH
    db_path = (base_dir / str(db_path_raw)).resolve()

    # 4) Logging
    logging_section = _section(raw, "logging")
    log_level = str(logging_section.get("level", "WARNING")).upper()

    return AppConfig(
        mapping=mapping,
        max_file_size_bytes=int(max_size_mb * 1024 * 1024),
        database=DatabaseConfig(engine=db_engine, path=db_path),
        log_level=log_level,
    )

# SMB FieldMap - Field mapping & validation for SMB financial uploads
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
SMB FieldMap
------------

Field mapping and validation pipeline for the accounting and company
information files uploaded by Small and Medium-sized Businesses (SMBs).

Uploaded spreadsheets rarely use the column names the application
expects: headers come in Spanish or English, with accents, typos and
synonyms. SMB FieldMap reconciles them with a canonical schema and tells
the caller how much the result can be trusted.

Main capabilities:
- CSV/TSV and Excel parsing with delimiter detection,
- header normalization (case, accents, whitespace),
- three-tier field mapping: exact, synonym and fuzzy (Levenshtein),
- organization mapping profiles stored in SQLite,
- typed extraction of entity and related-party (shareholder) records,
- required-field validation, confidence scoring and review flags,
- structured error responses for every invalid input.

Usage:
    python -m smb_fieldmap.cli --help
"""

__all__ = [
    "dictionary",
    "normalize",
    "io",
    "mapper",
    "extract",
    "profiles",
    "pipeline",
]

__version__ = "0.1.0"

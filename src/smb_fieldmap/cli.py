# SMB FieldMap - Field mapping & validation for SMB financial uploads
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Command-Line Interface (CLI) for SMB FieldMap.

The CLI is intentionally thin: it does not implement any mapping logic
itself. It loads the configuration, then dispatches to one of the
subcommands below.

Subcommands
-----------

``process FILE --org ORG``
    Run the upload pipeline on a local CSV/TSV/Excel file, exactly as the
    upload endpoint would, and print either a mapping table (default) or
    the JSON response (``--format json``). The exit status is 0 when the
    file was accepted and 1 otherwise.

``profiles list|show|save|delete``
    Inspect and manage the organization mapping profiles stored in the
    SQLite database configured in ``[database]``.

``dictionary show``
    Print the active synonym dictionary (built-in or the CSV configured
    in ``[mapping].dictionary_file``).

Configuration
-------------
By default the CLI reads ``smb_fieldmap_config.toml`` from the current
directory (built-in defaults apply when the file does not exist). Use
``--config PATH`` to point to another file.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

import pandas as pd

from . import __version__
from .config import AppConfig, load_app_config
from .dictionary import Category
from .pipeline import handle_upload
from .profiles import (
    delete_profile,
    get_profile,
    list_profiles,
    save_profile,
)

_CATEGORY_CHOICES = [c.value for c in Category]


def _build_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser for the CLI."""
    ap = argparse.ArgumentParser(
        prog="python -m smb_fieldmap.cli",
        description=(
            "SMB FieldMap - maps the columns of uploaded financial spreadsheets "
            "onto a canonical schema, validates the extracted records and "
            "reports confidence scores."
        ),
    )

    ap.add_argument(
        "--version",
        action="store_true",
        help="Show the installed version of smb_fieldmap and exit.",
    )
    ap.add_argument(
        "--config",
        dest="config_path",
        help=(
            "Path to the TOML configuration file. "
            "If omitted, 'smb_fieldmap_config.toml' in the current directory "
            "is used when present."
        ),
    )

    subparsers = ap.add_subparsers(dest="command", metavar="command")

    # ------------------------------------------------------------------
    # process
    # ------------------------------------------------------------------
    process = subparsers.add_parser(
        "process",
        help="Map and validate an uploaded file.",
    )
    process.add_argument("file", help="CSV, TSV or .xlsx file to process.")
    process.add_argument(
        "--org",
        dest="org_id",
        required=True,
        help="Organization id (used to look up its mapping profile).",
    )
    process.add_argument(
        "--category",
        choices=_CATEGORY_CHOICES,
        default=Category.ENTITY.value,
        help="Record category to map the file onto (default: company_info).",
    )
    process.add_argument(
        "--format",
        dest="output_format",
        choices=["table", "json"],
        default="table",
        help="'table' prints a mapping summary, 'json' the full response.",
    )

    # ------------------------------------------------------------------
    # profiles
    # ------------------------------------------------------------------
    profiles = subparsers.add_parser(
        "profiles",
        help="Manage organization mapping profiles.",
    )
    profiles_sub = profiles.add_subparsers(
        dest="profiles_command",
        metavar="profiles-command",
    )

    p_list = profiles_sub.add_parser("list", help="List saved profiles.")
    p_list.add_argument("--org", dest="org_id", help="Only this organization.")

    p_show = profiles_sub.add_parser("show", help="Show the mappings of a profile.")
    p_show.add_argument("--org", dest="org_id", required=True)
    p_show.add_argument("--name", dest="profile_name", required=True)

    p_save = profiles_sub.add_parser("save", help="Create or replace a profile.")
    p_save.add_argument("--org", dest="org_id", required=True)
    p_save.add_argument("--name", dest="profile_name", required=True)
    p_save.add_argument(
        "--map",
        dest="mappings",
        action="append",
        required=True,
        metavar="HEADER=CANONICAL",
        help="Header to canonical field mapping. Repeat for several headers.",
    )
    p_save.add_argument(
        "--threshold",
        type=float,
        help="Review threshold for this organization (0-1).",
    )
    p_save.add_argument("--created-by", dest="created_by")

    p_delete = profiles_sub.add_parser("delete", help="Delete a profile.")
    p_delete.add_argument("--org", dest="org_id", required=True)
    p_delete.add_argument("--name", dest="profile_name", required=True)

    # ------------------------------------------------------------------
    # dictionary
    # ------------------------------------------------------------------
    dictionary = subparsers.add_parser(
        "dictionary",
        help="Inspect the synonym dictionary.",
    )
    dictionary_sub = dictionary.add_subparsers(
        dest="dictionary_command",
        metavar="dictionary-command",
    )
    d_show = dictionary_sub.add_parser("show", help="Print dictionary entries.")
    d_show.add_argument("--category", choices=_CATEGORY_CHOICES)

    return ap


def _parse_mapping_args(values: list[str]) -> dict[str, str]:
    """Turn ['Header=canonical', ...] into a dict."""
    out: dict[str, str] = {}
    for value in values:
        header, sep, canonical = value.partition("=")
        if not sep or not header.strip() or not canonical.strip():
            raise SystemExit(
                f"Invalid --map value {value!r}. Expected HEADER=CANONICAL."
            )
        out[header.strip()] = canonical.strip()
    return out


def _print_mapping_table(body: dict) -> None:
    """Render a success payload as console tables."""
    rows = [
        {
            "column": header,
            "canonical": m["canonical"],
            "source": m["source"] + (" (profile)" if m["from_profile"] else ""),
            "confidence": round(m["confidence_score"], 3),
            "required": m["required"],
        }
        for header, m in body["mapped_fields"].items()
    ]
    rows.extend(
        {
            "column": header,
            "canonical": "",
            "source": "unmapped",
            "confidence": None,
            "required": False,
        }
        for header in body["unmapped_columns"]
    )

    print()
    print("=== Column mapping ===")
    print(pd.DataFrame(rows).to_string(index=False))

    stats = body["stats"]
    print()
    print(
        f"Mapped {stats['mapped_columns']}/{stats['total_columns']} columns | "
        f"confidence {body['confidence_score']:.2f} | "
        f"needs review: {'yes' if body['needs_review'] else 'no'}"
    )
    if body["mapping_profile_used"]:
        print(f"Mapping profile applied: {body['mapping_profile_used']}")

    if body["entity"] is not None:
        print()
        print("=== Company info ===")
        for key, value in body["entity"].items():
            print(f"  {key}: {value}")

    if body["related_parties"]:
        print()
        print("=== Shareholders ===")
        print(pd.DataFrame(body["related_parties"]).to_string(index=False))

    for line in body["suggestions"]:
        print(f"- {line}")
    for line in body["warnings"]:
        print(f"Warning: {line}")


def _handle_process(args: argparse.Namespace, config: AppConfig) -> int:
    path = Path(args.file)
    if not path.is_file():
        raise SystemExit(f"File not found: {path}")

    status, body = handle_upload(
        path.read_bytes(),
        args.org_id,
        category=args.category,
        config=config,
    )

    if args.output_format == "json":
        print(json.dumps(body, ensure_ascii=False, indent=2))
    elif body["success"]:
        _print_mapping_table(body)
    else:
        print(f"Error [{body['code']}]: {body['message']}")
        if body.get("missing_fields"):
            print(f"Missing fields: {', '.join(body['missing_fields'])}")

    return 0 if status == 200 else 1


def _handle_profiles(args: argparse.Namespace, config: AppConfig) -> int:
    cmd = getattr(args, "profiles_command", None)
    db = config.database

    if cmd == "list":
        df = list_profiles(db, args.org_id)
        if df.empty:
            print("No mapping profiles found.")
        else:
            print(df.to_string(index=False))
        return 0

    if cmd == "show":
        profile = get_profile(db, args.org_id, args.profile_name)
        if profile is None:
            print(f"No profile {args.profile_name!r} for organization {args.org_id!r}.")
            return 1
        print(f"Profile {profile.profile_name!r} (organization {profile.org_id!r})")
        if profile.confidence_threshold is not None:
            print(f"Review threshold: {profile.confidence_threshold}")
        for header, canonical in profile.field_mappings.items():
            print(f"  {header} -> {canonical}")
        return 0

    if cmd == "save":
        profile = save_profile(
            db,
            args.org_id,
            args.profile_name,
            _parse_mapping_args(args.mappings),
            confidence_threshold=args.threshold,
            created_by=args.created_by,
        )
        print(
            f"Saved profile #{profile.id} {profile.profile_name!r} "
            f"({len(profile.field_mappings)} mappings)."
        )
        return 0

    if cmd == "delete":
        if delete_profile(db, args.org_id, args.profile_name):
            print(f"Deleted profile {args.profile_name!r}.")
            return 0
        print(f"No profile {args.profile_name!r} for organization {args.org_id!r}.")
        return 1

    raise SystemExit(
        "No profiles subcommand specified. "
        "Available subcommands are: 'list', 'show', 'save', 'delete'."
    )


def _handle_dictionary(args: argparse.Namespace, config: AppConfig) -> int:
    if getattr(args, "dictionary_command", None) != "show":
        raise SystemExit(
            "No dictionary subcommand specified. Available subcommands are: 'show'."
        )
    df = config.load_dictionary().to_frame()
    if args.category:
        df = df[df["category"] == args.category]
    print(df.to_string(index=False))
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point for the SMB FieldMap CLI.

    Parses command-line arguments, loads the configuration, sets up
    logging and dispatches to the requested subcommand. Returns the
    process exit status.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    # --version: short-circuit and exit early.
    if args.version:
        print(f"smb_fieldmap version {__version__}")
        return 0

    if args.config_path:
        config = load_app_config(args.config_path)
    else:
        config = load_app_config()

    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "process":
        return _handle_process(args, config)
    if args.command == "profiles":
        return _handle_profiles(args, config)
    if args.command == "dictionary":
        return _handle_dictionary(args, config)

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())

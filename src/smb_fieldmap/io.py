# SMB FieldMap - Field mapping & validation for SMB financial uploads
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Tabular parser for SMB FieldMap.

This module turns an uploaded file into a header row and a list of data
rows, without interpreting any of the values. Two input families are
supported:

1) Delimited text (CSV export from an accounting tool)
   ---------------------------------------------------
   - a leading byte-order mark is removed,
   - the delimiter is detected among ``,``, ``;`` and ``\\t`` by counting
     occurrences in the first non-empty line (the highest count wins,
     ties and zero counts fall back to ``,``),
   - blank lines are discarded,
   - the first surviving line is the header row,
   - each cell is trimmed and one layer of surrounding single or double
     quotes is removed.

   The split is intentionally naive: a quoted cell that contains the
   delimiter is split like any other text.

2) Excel workbooks (.xlsx / .xlsm)
   -------------------------------
   The first worksheet is read with pandas (openpyxl engine) and
   converted into the same structure, so the mapping pipeline never
   needs to know where a table came from.

Output schema
-------------
``ParsedTable(headers, rows, raw_headers)`` where ``headers`` is a list of
strings and ``rows`` a list of lists of strings. Duplicate header labels
are made unique with ``.1``, ``.2`` suffixes (pandas convention), so each
column is reported exactly once downstream. ``raw_headers`` keeps the
labels as written in the file; the mapper matches on those.

If no non-blank line remains, ``EmptyInputError`` is raised.
"""

import os
from dataclasses import dataclass, field
from io import BytesIO
from pathlib import Path
from typing import Union

import pandas as pd

from .errors import EmptyInputError, UnreadableFileError

DELIMITERS = (",", ";", "\t")
BOM = "\ufeff"
EXCEL_SUFFIXES = {".xlsx", ".xlsm"}
# Zip local file header: every .xlsx payload starts with it.
_ZIP_MAGIC = b"PK\x03\x04"


@dataclass(frozen=True)
class ParsedTable:
    """Header row and data rows of an uploaded table.

    Attributes:
        headers: Column labels, in file order.
        rows: Data rows; each row is a list of cell strings. Rows may be
            shorter or longer than the header row.
        delimiter: Delimiter used to split text input (None for Excel).
        raw_headers: Column labels before de-duplication. Empty means
            identical to ``headers``.
    """

    headers: list[str]
    rows: list[list[str]] = field(default_factory=list)
    delimiter: Union[str, None] = ","
    raw_headers: list[str] = field(default_factory=list)

    def labels(self) -> list[str]:
        """Return the column labels as written in the file."""
        return list(self.raw_headers or self.headers)

    def cell(self, row: list[str], column: int) -> str:
        """Return the trimmed cell at ``column`` or '' if the row is short."""
        if column < len(row):
            return row[column].strip()
        return ""

    def to_frame(self) -> pd.DataFrame:
        """Return the table as a DataFrame of strings.

        Short rows are padded with empty strings and extra cells beyond the
        header width are dropped.
        """
        width = len(self.headers)
        data = [
            [self.cell(row, i) for i in range(width)] for row in self.rows
        ]
        return pd.DataFrame(data, columns=list(self.headers), dtype=str)


def decode_payload(payload: Union[bytes, str]) -> str:
    """Decode a raw payload into text.

    UTF-8 is tried first (a UTF-8 byte-order mark is consumed); payloads
    that are not valid UTF-8 are decoded as Latin-1, which never fails.
    Text input is returned unchanged.
    """
    if isinstance(payload, str):
        return payload
    try:
        return payload.decode("utf-8-sig")
    except UnicodeDecodeError:
        return payload.decode("latin-1")


def detect_delimiter(line: str) -> str:
    """Return the most frequent delimiter in ``line``.

    Candidates are ',', ';' and tab. On ties (including a line with none
    of them) the comma wins.
    """
    best = ","
    best_count = line.count(",")
    for delimiter in DELIMITERS[1:]:
        count = line.count(delimiter)
        if count > best_count:
            best, best_count = delimiter, count
    return best


def _strip_quotes(cell: str) -> str:
    """Trim ``cell`` and remove one layer of matching surrounding quotes."""
    s = cell.strip()
    if len(s) >= 2 and s[0] == s[-1] and s[0] in {'"', "'"}:
        s = s[1:-1]
    return s


def _dedupe_headers(headers: list[str]) -> list[str]:
    """Make repeated header labels unique by suffixing '.1', '.2', ..."""
    seen: dict[str, int] = {}
    out: list[str] = []
    for h in headers:
        if h not in seen:
            seen[h] = 0
            out.append(h)
            continue
        n = seen[h]
        candidate = h
        while candidate in seen:
            n += 1
            candidate = f"{h}.{n}"
        seen[h] = n
        seen[candidate] = 0
        out.append(candidate)
    return out


def parse_tabular_text(content: str) -> ParsedTable:
    """Parse delimited text into a ParsedTable.

    Args:
        content: Full text of the uploaded file.

    Returns:
        ParsedTable with the first non-blank line as headers.

    Raises:
        EmptyInputError: if the content has no non-blank line.
    """
    if content.startswith(BOM):
        content = content[len(BOM):]

    lines = [
        line
        for line in content.replace("\r\n", "\n").replace("\r", "\n").split("\n")
        if line.strip()
    ]
    if not lines:
        raise EmptyInputError()

    delimiter = detect_delimiter(lines[0])
    raw_headers = [_strip_quotes(c) for c in lines[0].split(delimiter)]
    rows = [[_strip_quotes(c) for c in line.split(delimiter)] for line in lines[1:]]
    return ParsedTable(
        headers=_dedupe_headers(raw_headers),
        rows=rows,
        delimiter=delimiter,
        raw_headers=raw_headers,
    )


def _frame_to_table(df: pd.DataFrame) -> ParsedTable:
    """Convert a header-less DataFrame of cells into a ParsedTable."""
    df = df.fillna("")
    lines: list[list[str]] = []
    for _, r in df.iterrows():
        cells = [str(v).strip() for v in r.tolist()]
        if any(cells):
            lines.append(cells)
    if not lines:
        raise EmptyInputError()

    # Trailing empty header cells come from formatting, not from data.
    header = lines[0]
    while header and not header[-1]:
        header = header[:-1]
    width = len(header)
    rows = [row[:width] for row in lines[1:]]
    return ParsedTable(
        headers=_dedupe_headers(header),
        rows=rows,
        delimiter=None,
        raw_headers=list(header),
    )


def read_excel_table(source) -> ParsedTable:
    """Read the first worksheet of an Excel workbook into a ParsedTable.

    Args:
        source: Path or binary file-like object accepted by
            ``pandas.read_excel``.
    """
    df = pd.read_excel(source, sheet_name=0, header=None, dtype=str, engine="openpyxl")
    return _frame_to_table(df)


def is_excel_payload(payload: Union[bytes, str]) -> bool:
    """Return True if ``payload`` looks like an .xlsx workbook."""
    return isinstance(payload, bytes) and payload.startswith(_ZIP_MAGIC)


def parse_payload(payload: Union[bytes, str]) -> ParsedTable:
    """Parse an uploaded payload, whatever its format.

    Excel workbooks are detected from their zip signature; everything else
    is decoded as text and parsed as delimited text.

    Raises:
        EmptyInputError: if the payload holds no non-blank line.
        UnreadableFileError: if a workbook payload cannot be opened.
    """
    if is_excel_payload(payload):
        try:
            return read_excel_table(BytesIO(payload))
        except EmptyInputError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise UnreadableFileError(
                "The uploaded file looks like an Excel workbook but could not "
                "be read."
            ) from exc
    return parse_tabular_text(decode_payload(payload))


def read_tabular_file(path: Union[str, "os.PathLike[str]"]) -> ParsedTable:
    """Read a CSV/TXT or Excel file from disk into a ParsedTable."""
    p = Path(path)
    if p.suffix.lower() in EXCEL_SUFFIXES:
        return read_excel_table(p)
    return parse_tabular_text(decode_payload(p.read_bytes()))

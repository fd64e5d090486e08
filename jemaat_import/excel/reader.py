from __future__ import annotations

import csv
import re
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pandas as pd

from ..models.config_models import DEFAULT_HEADER_ANCHORS, DEFAULT_HEADER_SCAN_ROWS
from ..models.import_row import ImportRow

"""Sheet reader and header resolver.

Source sheets come from several generations of the registration template:
some start directly with the header row, others carry one or more title /
legend rows above it. Instead of a fixed header offset the first rows are
scanned for a cell containing a household-number anchor (e.g. "NO_KK",
"Nomor KK"); the first matching row is the header.

Cells are read raw (``dtype=object``) so that numeric serial dates,
datetime cells and 16-digit ids reach the field normalizer untouched.
"""


class ImportFileError(Exception):
    """File-level problem; aborts the whole run before any household is processed."""


class SheetReadError(ImportFileError):
    """Raised when the file cannot be opened or parsed as a sheet."""


class EmptySheetError(ImportFileError):
    """Raised when no data rows follow the detected header row."""


@dataclass
class SheetData:
    sheet_name: str
    header_row: int  # 0 始まり
    columns: list[str]
    rows: list[ImportRow]


SUPPORTED_SUFFIXES = {".xlsx", ".xls", ".csv"}


# 短い数値セルのみ数値化 (16 桁の NIK / No. KK や先頭 0 の電話番号は文字列のまま)
_CSV_NUMBER_RE = re.compile(r"^(?:0|[1-9]\d{0,5})(?:\.\d+)?$")


def _csv_cell(text: str) -> Any:
    stripped = text.strip()
    if _CSV_NUMBER_RE.match(stripped):
        return float(stripped) if "." in stripped else int(stripped)
    return text


def _read_csv(path: Path) -> pd.DataFrame:
    """Read a CSV file into a raw DataFrame padded to its widest row.

    Title / legend lines above the header usually hold fewer fields than the
    header itself, so rows are padded instead of letting the first line fix
    the column count. Short numeric cells become numbers the way a
    spreadsheet application opens a CSV, so serial dates survive.
    """
    with path.open(newline="", encoding="utf-8-sig") as fh:
        records = [[_csv_cell(cell) for cell in record] for record in csv.reader(fh)]
    if not any(any(not _is_blank(cell) for cell in record) for record in records):
        raise EmptySheetError(f"empty or malformed file: {path.name}")
    width = max(len(record) for record in records)
    return pd.DataFrame([record + [""] * (width - len(record)) for record in records], dtype=object)


def read_sheet_file(path: Path, sheet_name: str | None = None) -> tuple[str, pd.DataFrame]:
    """Read the first (or named) sheet of a workbook, or a CSV file, without a header.

    Returns:
        (sheet name, raw DataFrame). CSV files report the file stem as sheet name.

    Raises:
        SheetReadError: missing file, unsupported extension, unknown sheet or parse failure
    """
    if not path.exists():
        raise SheetReadError(f"file not found: {path}")
    suffix = path.suffix.lower()
    if suffix not in SUPPORTED_SUFFIXES:
        raise SheetReadError(f"unsupported file type '{suffix}': {path.name}")

    try:
        if suffix == ".csv":
            return path.stem, _read_csv(path)
        xls = pd.ExcelFile(path)
        names = [str(n) for n in xls.sheet_names]
        if not names:
            raise SheetReadError(f"workbook has no sheets: {path.name}")
        target = names[0] if sheet_name is None else sheet_name
        if target not in names:
            raise SheetReadError(f"sheet '{target}' not found in {path.name} (sheets: {names})")
        # ヘッダなしで生読み (ヘッダ行は resolve_header_row で決定)
        df = xls.parse(target, header=None, dtype=object)
        return target, df
    except ImportFileError:
        raise
    except pd.errors.EmptyDataError as e:
        raise EmptySheetError(f"empty or malformed file: {path.name}") from e
    except Exception as e:
        raise SheetReadError(f"cannot read {path.name}: {e}") from e


def _is_blank(val: Any) -> bool:
    if val is None:
        return True
    if isinstance(val, str):
        return val.strip() == ""
    try:
        return bool(pd.isna(val))
    except (TypeError, ValueError):
        return False


def resolve_header_row(
    df: pd.DataFrame,
    anchors: Iterable[str] = DEFAULT_HEADER_ANCHORS,
    scan_rows: int = DEFAULT_HEADER_SCAN_ROWS,
) -> int:
    """Return the zero-based index of the header row.

    At most ``scan_rows`` leading rows are examined. A row qualifies when any
    of its cells contains one of ``anchors`` (case-insensitive substring).
    The first qualifying row wins; 0 when none qualifies.
    """
    needles = [a.lower() for a in anchors if a]
    limit = min(scan_rows, df.shape[0])
    for idx in range(limit):
        for val in df.iloc[idx].tolist():
            if _is_blank(val):
                continue
            text = str(val).lower()
            if any(n in text for n in needles):
                return idx
    return 0


def normalize_sheet(
    df: pd.DataFrame,
    sheet_name: str,
    header_row: int = 0,
    null_sentinels: Iterable[str] | None = None,
) -> SheetData:
    """Turn a raw DataFrame into ImportRows using ``header_row`` as header.

    Steps:
    1. Header cells are stripped; unnamed columns are dropped from row dicts
    2. Fully empty rows are skipped
    3. Blank strings and null sentinels (compared upper-cased) become None

    Raises:
        EmptySheetError: no header row or zero data rows after it
    """
    if df.shape[0] <= header_row:
        raise EmptySheetError(f"empty or malformed file: sheet '{sheet_name}' has no header row")
    sentinels = {s.strip().upper() for s in (null_sentinels or ())}
    columns = ["" if _is_blank(c) else str(c).strip() for c in df.iloc[header_row].tolist()]

    rows: list[ImportRow] = []
    for offset, (_, raw) in enumerate(df.iloc[header_row + 1:].iterrows(), start=header_row + 2):
        values: dict[str, Any] = {}
        for col, val in zip(columns, raw.tolist(), strict=False):
            if not col:
                continue
            if _is_blank(val):
                values[col] = None
                continue
            if isinstance(val, str):
                stripped = val.strip()
                # NULL サニタイズ
                if stripped.upper() in sentinels:
                    values[col] = None
                    continue
                val = stripped
            # 同名ヘッダは先勝ち
            if col in values and values[col] is not None:
                continue
            values[col] = val
        if all(v is None for v in values.values()):
            continue
        rows.append(ImportRow(row_number=offset, values=values))

    if not rows:
        raise EmptySheetError(
            f"empty or malformed file: sheet '{sheet_name}' has no data rows after header row {header_row + 1}"
        )
    return SheetData(sheet_name=sheet_name, header_row=header_row, columns=columns, rows=rows)

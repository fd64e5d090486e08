from __future__ import annotations

from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

import pandas as pd
from openpyxl.utils import get_column_letter

"""Sheet writer for exports and the import template.

Household numbers and NIKs are written as text cells so spreadsheet
applications do not turn them into floating point numbers (16 digits sit
at the edge of what a double can hold and display).
"""

__all__ = [
    "ExportError",
    "write_sheet",
    "TEMPLATE_SHEET_NAME",
    "TEMPLATE_COLUMNS",
    "TEMPLATE_ROWS",
]

DEFAULT_COLUMN_WIDTH = 20
TEMPLATE_SHEET_NAME = "Template_Import"

TEMPLATE_COLUMNS = (
    "NO_KK",
    "ALAMAT",
    "WILAYAH",
    "NAMA_LENGKAP",
    "NIK",
    "JENIS_KELAMIN",
    "TEMPAT_LAHIR",
    "TGL_LAHIR",
    "HUBUNGAN",
    "STATUS_GEREJAWI",
)

TEMPLATE_ROWS: tuple[dict[str, str], ...] = (
    {
        "NO_KK": "3275000000000001",
        "ALAMAT": "Jl. Contoh Alamat No. 1, Cibitung",
        "WILAYAH": "Sektor A",
        "NAMA_LENGKAP": "Budi Santoso",
        "NIK": "3275123456780001",
        "JENIS_KELAMIN": "Laki-laki",
        "TEMPAT_LAHIR": "Jakarta",
        "TGL_LAHIR": "1980-01-31",
        "HUBUNGAN": "Kepala Keluarga",
        "STATUS_GEREJAWI": "Sidi",
    },
    {
        "NO_KK": "3275000000000001",
        "ALAMAT": "Jl. Contoh Alamat No. 1, Cibitung",
        "WILAYAH": "Sektor A",
        "NAMA_LENGKAP": "Siti Aminah",
        "NIK": "3275123456780002",
        "JENIS_KELAMIN": "Perempuan",
        "TEMPAT_LAHIR": "Bekasi",
        "TGL_LAHIR": "1985-05-20",
        "HUBUNGAN": "Istri",
        "STATUS_GEREJAWI": "Sidi",
    },
)


class ExportError(Exception):
    """Export could not be produced (no rows, unwritable target, ...)."""


def write_sheet(
    path: Path,
    rows: Sequence[Mapping[str, Any]],
    columns: Sequence[str],
    sheet_name: str,
    *,
    column_width: int = DEFAULT_COLUMN_WIDTH,
) -> int:
    """Write ``rows`` to ``path`` (.xlsx, or .csv by suffix); return rows written.

    Column order follows ``columns``; keys missing from a row are left blank.
    """
    df = pd.DataFrame(list(rows), columns=list(columns))
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        if path.suffix.lower() == ".csv":
            df.to_csv(path, index=False, encoding="utf-8")
            return len(df)
        with pd.ExcelWriter(path, engine="openpyxl") as writer:
            df.to_excel(writer, sheet_name=sheet_name, index=False)
            ws = writer.sheets[sheet_name]
            for idx in range(1, len(columns) + 1):
                ws.column_dimensions[get_column_letter(idx)].width = column_width
    except (OSError, ValueError) as e:
        raise ExportError(f"cannot write {path}: {e}") from e
    return len(df)

from __future__ import annotations

from pathlib import Path

import pandas as pd
import pytest

from conftest import TEMPLATE_HEADER, make_excel
from jemaat_import.excel.reader import (
    EmptySheetError,
    ImportFileError,
    SheetReadError,
    normalize_sheet,
    read_sheet_file,
    resolve_header_row,
)
from jemaat_import.services.normalizer import FieldNormalizer
from jemaat_import.services.pipeline import load_sheet


def _df(rows: list[list[object]]) -> pd.DataFrame:
    return pd.DataFrame(rows, dtype=object)


# --- header resolver ------------------------------------------------------

def test_header_on_first_row():
    df = _df([["NO_KK", "NAMA_LENGKAP"], ["1", "Budi"]])
    assert resolve_header_row(df) == 0


def test_header_below_title_rows():
    df = _df([
        ["DATA JEMAAT GKO CIBITUNG", None],
        ["Per 1 Januari 2024", None],
        ["Nomor KK", "Nama Lengkap"],
        ["3275000000000001", "Budi"],
    ])
    assert resolve_header_row(df) == 2


def test_header_anchor_is_case_insensitive_substring():
    df = _df([["judul", None], ["No. Kartu Keluarga (16 digit)", "Nama"], ["1", "x"]])
    assert resolve_header_row(df) == 1


def test_header_scan_window_is_limited():
    rows: list[list[object]] = [[f"title {i}"] for i in range(12)]
    rows.append(["NO_KK"])
    rows.append(["1"])
    df = _df(rows)
    assert resolve_header_row(df) == 0
    assert resolve_header_row(df, scan_rows=20) == 12


def test_header_custom_anchors():
    df = _df([["x"], ["KK"], ["1"]])
    assert resolve_header_row(df, anchors=["kk"]) == 1


# --- normalize_sheet ------------------------------------------------------

def test_normalize_sheet_rows_and_numbers():
    df = _df([
        ["Daftar Jemaat", None, None],
        ["NO_KK ", "NAMA_LENGKAP", None],
        ["3275000000000001", "  Budi  ", "ignored"],
        [None, None, None],
        ["3275000000000002", "NULL", None],
    ])
    sheet = normalize_sheet(df, "Sheet1", header_row=1, null_sentinels={"NULL"})
    assert sheet.columns == ["NO_KK", "NAMA_LENGKAP", ""]
    assert [r.row_number for r in sheet.rows] == [3, 5]
    assert sheet.rows[0].values == {"NO_KK": "3275000000000001", "NAMA_LENGKAP": "Budi"}
    assert sheet.rows[1].get("NAMA_LENGKAP") is None


def test_normalize_sheet_duplicate_header_first_filled_wins():
    df = _df([["NO_KK", "NO_KK"], ["1", "2"], [None, "3"]])
    sheet = normalize_sheet(df, "S")
    assert sheet.rows[0].get("NO_KK") == "1"
    assert sheet.rows[1].get("NO_KK") == "3"


def test_normalize_sheet_without_data_rows():
    df = _df([["NO_KK", "NAMA_LENGKAP"], [None, None]])
    with pytest.raises(EmptySheetError, match="empty or malformed file"):
        normalize_sheet(df, "S")


def test_normalize_sheet_without_header_row():
    with pytest.raises(EmptySheetError):
        normalize_sheet(_df([]), "S")


# --- read_sheet_file ------------------------------------------------------

def test_read_xlsx_first_sheet(temp_workdir: Path):
    rows = [TEMPLATE_HEADER, ["3275000000000001", "Jl. A", "Sektor A", "Budi"]]
    p = make_excel(temp_workdir, "a.xlsx", {"Jemaat": rows, "Lain": [["x"]]})
    name, df = read_sheet_file(p)
    assert name == "Jemaat"
    assert df.iloc[0, 0] == "NO_KK"
    assert df.iloc[1, 0] == "3275000000000001"


def test_read_xlsx_named_sheet(temp_workdir: Path):
    p = make_excel(temp_workdir, "a.xlsx", {"Jemaat": [["NO_KK"], ["1"]], "Lain": [["x"]]})
    name, _ = read_sheet_file(p, sheet_name="Lain")
    assert name == "Lain"
    with pytest.raises(SheetReadError, match="not found"):
        read_sheet_file(p, sheet_name="Tidak Ada")


def test_read_csv(temp_workdir: Path):
    p = temp_workdir / "jemaat.csv"
    p.write_text("NO_KK,NAMA_LENGKAP,NIK\n3275000000000001,Budi,\n", encoding="utf-8")
    name, df = read_sheet_file(p)
    assert name == "jemaat"
    sheet = normalize_sheet(df, name)
    # 16 桁の番号は文字列のまま (精度・先頭ゼロを保持)
    assert sheet.rows[0].values == {"NO_KK": "3275000000000001", "NAMA_LENGKAP": "Budi", "NIK": None}


def test_csv_title_row_above_header(temp_workdir: Path):
    p = temp_workdir / "jemaat.csv"
    p.write_text(
        "Data Jemaat GKO Cibitung\nNO_KK,ALAMAT,NAMA_LENGKAP\n3275000000000001,Jl. A,Budi\n",
        encoding="utf-8",
    )
    sheet = load_sheet(p)
    assert sheet.header_row == 1
    assert sheet.columns == ["NO_KK", "ALAMAT", "NAMA_LENGKAP"]
    assert [r.values for r in sheet.rows] == [
        {"NO_KK": "3275000000000001", "ALAMAT": "Jl. A", "NAMA_LENGKAP": "Budi"}
    ]
    assert sheet.rows[0].row_number == 3


def test_csv_serial_birth_date_is_converted(temp_workdir: Path):
    p = temp_workdir / "jemaat.csv"
    p.write_text(
        "NO_KK,NAMA_LENGKAP,TGL_LAHIR,NOMOR_TELEPON\n3275000000000001,Budi,29275,081234567890\n",
        encoding="utf-8",
    )
    sheet = load_sheet(p)
    member = FieldNormalizer().build_member(sheet.rows[0])
    assert member.birth_date == "1980-02-24"
    # 先頭ゼロの電話番号は数値化しない
    assert member.phone == "081234567890"


def test_read_empty_csv(temp_workdir: Path):
    p = temp_workdir / "empty.csv"
    p.write_text("", encoding="utf-8")
    with pytest.raises(EmptySheetError):
        read_sheet_file(p)


def test_read_missing_and_unsupported(temp_workdir: Path):
    with pytest.raises(SheetReadError, match="file not found"):
        read_sheet_file(temp_workdir / "nope.xlsx")
    txt = temp_workdir / "notes.txt"
    txt.write_text("hello", encoding="utf-8")
    with pytest.raises(ImportFileError, match="unsupported file type"):
        read_sheet_file(txt)


def test_read_corrupt_workbook(temp_workdir: Path):
    p = temp_workdir / "broken.xlsx"
    p.write_bytes(b"not a zip file")
    with pytest.raises(SheetReadError, match="cannot read broken.xlsx"):
        read_sheet_file(p)

from __future__ import annotations

from pathlib import Path

import pandas as pd
import pytest
from openpyxl import load_workbook

from jemaat_import.excel.writer import ExportError, write_sheet


def test_write_xlsx_with_column_width(temp_workdir: Path):
    out = temp_workdir / "out" / "data.xlsx"
    rows = [{"No. KK": "3275000000000001", "Nama": "Budi"}, {"Nama": "Siti"}]
    assert write_sheet(out, rows, ["No. KK", "Nama"], "Data Jemaat") == 2

    wb = load_workbook(out)
    ws = wb["Data Jemaat"]
    assert ws["A1"].value == "No. KK"
    # 16 桁は文字列セルのまま
    assert ws["A2"].value == "3275000000000001"
    assert ws["B3"].value == "Siti"
    assert ws.column_dimensions["A"].width == 20
    assert ws.column_dimensions["B"].width == 20


def test_write_csv(temp_workdir: Path):
    out = temp_workdir / "data.csv"
    write_sheet(out, [{"a": 1, "b": "x"}], ["b", "a"], "ignored")
    df = pd.read_csv(out, dtype=str)
    assert list(df.columns) == ["b", "a"]


def test_unwritable_target(temp_workdir: Path):
    blocker = temp_workdir / "file"
    blocker.write_text("x", encoding="utf-8")
    with pytest.raises(ExportError, match="cannot write"):
        write_sheet(blocker / "out.xlsx", [{"a": 1}], ["a"], "S")

from __future__ import annotations

from pathlib import Path

from conftest import make_excel
from jemaat_import.cli.__main__ import main as cli_main


def test_import_dry_run(template_xlsx: Path, capsys):
    code = cli_main(["import", str(template_xlsx), "--dry-run"])
    out = capsys.readouterr().out
    assert code == 0
    assert "INFO importing jemaat.xlsx (dry run)" in out
    assert "3 rows -> 2 households" in out
    assert "SUMMARY households=2 success=2 failed=0 skipped_rows=0 warnings=0" in out


def test_import_sheet_with_title_rows_and_combined_birth(temp_workdir: Path, capsys):
    xlsx = make_excel(temp_workdir, "lama.xlsx", {"Data": [
        ["DAFTAR JEMAAT SEKTOR C", None, None, None, None],
        ["Nomor KK", "Nama Lengkap", "Tempat Tanggal Lahir", "Status Dalam Keluarga", "Wilayah"],
        [3275000000000003, "Markus", "Jakarta, 24 Februari 1980", "Kepala Keluarga", "Sektor C"],
        [3275000000000003, "Maria", "Bogor, 1 Mei 1982", "Istri", "Sektor C"],
        [3275000000000004, "Lukas", "Depok, tanggal hilang", "Kepala Keluarga", "Sektor C"],
    ]})
    code = cli_main(["import", str(xlsx), "--dry-run"])
    out = capsys.readouterr().out
    assert code == 0
    assert "WARN row 5: unparseable birth date 'Depok, tanggal hilang'" in out
    assert "SUMMARY households=2 success=2 failed=0 skipped_rows=0 warnings=1" in out


def test_import_list_failures(temp_workdir: Path, capsys, monkeypatch):
    csv = temp_workdir / "dup.csv"
    csv.write_text(
        "NO_KK,NAMA_LENGKAP,HUBUNGAN\n"
        "3275000000000001,Budi,Kepala Keluarga\n"
        "3275000000000001,Joko,Kepala Keluarga\n"
        "3275000000000002,Ani,Kepala Keluarga\n",
        encoding="utf-8",
    )
    code = cli_main(["import", str(csv), "--dry-run", "--list-failures"])
    out = capsys.readouterr().out
    assert code == 2
    assert "FAILED HOUSEHOLDS:" in out
    assert "  3275000000000001: household 3275000000000001 has 2 members marked 'Kepala Keluarga'" in out
    assert "SUMMARY households=2 success=1 failed=1" in out
    assert list((temp_workdir / "logs").glob("errors-*.log"))


def test_import_with_disabled_db(template_xlsx: Path, capsys, monkeypatch):
    monkeypatch.setenv("DISABLE_DB_CONNECT", "1")
    assert cli_main(["import", str(template_xlsx)]) == 0
    assert "SUMMARY households=2 success=2" in capsys.readouterr().out


def test_inspect(template_xlsx: Path, capsys):
    code = cli_main(["inspect", str(template_xlsx)])
    out = capsys.readouterr().out
    assert code == 0
    assert "FILE: jemaat.xlsx" in out
    assert "header_row=1" in out
    assert "'NO_KK'" in out
    assert "rows=3 households=2" in out


def test_inspect_missing_file(temp_workdir: Path, capsys):
    assert cli_main(["inspect", str(temp_workdir / "none.csv")]) == 1
    assert "inspect: file not found" in capsys.readouterr().out


def test_debug_flag(template_xlsx: Path, capsys):
    cli_main(["--debug", "import", str(template_xlsx), "--dry-run"])
    assert "DEBUG debug mode enabled" in capsys.readouterr().out

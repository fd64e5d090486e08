# Shared pytest fixtures
from __future__ import annotations

import tempfile
from datetime import UTC, datetime
from pathlib import Path

import pandas as pd
import pytest

from jemaat_import.directory.memory import InMemoryDirectory
from jemaat_import.logging.init import reset_logging
from jemaat_import.models.enums import (
    ChurchStatus,
    FamilyRelationship,
    Gender,
    ServiceSector,
    VerificationStatus,
)
from jemaat_import.models.household import HouseholdRecord, MemberRecord

TEMPLATE_HEADER = [
    "NO_KK", "ALAMAT", "WILAYAH", "NAMA_LENGKAP", "NIK", "JENIS_KELAMIN",
    "TEMPAT_LAHIR", "TGL_LAHIR", "HUBUNGAN", "STATUS_GEREJAWI",
]


def make_excel(directory: Path, name: str, sheets: dict[str, list[list[object]]]) -> Path:
    """Write raw rows (no header handling) to an .xlsx workbook."""
    p = directory / name
    with pd.ExcelWriter(p) as writer:
        for sheet, rows in sheets.items():
            df = pd.DataFrame(rows)
            df.to_excel(writer, sheet_name=sheet, header=False, index=False)
    return p


def make_member(name: str, relationship: FamilyRelationship = FamilyRelationship.CHILD, **kw) -> MemberRecord:
    base = dict(
        full_name=name,
        national_id=kw.pop("national_id", ""),
        birth_place=kw.pop("birth_place", "Bekasi"),
        birth_date=kw.pop("birth_date", "1990-01-01"),
        gender=kw.pop("gender", Gender.MALE),
        relationship=relationship,
        church_status=kw.pop("church_status", ChurchStatus.CONFIRMED),
    )
    base.update(kw)
    return MemberRecord(**base)


def make_household(number: str, *members: MemberRecord, **kw) -> HouseholdRecord:
    return HouseholdRecord(
        household_number=number,
        address=kw.pop("address", "Jl. Melati No. 5"),
        service_sector=kw.pop("service_sector", ServiceSector.A),
        verification_status=kw.pop("verification_status", VerificationStatus.VERIFIED),
        registered_at=kw.pop("registered_at", datetime(2024, 2, 24, 9, 0, tzinfo=UTC)),
        members=list(members) or [make_member("Budi Santoso", FamilyRelationship.HEAD)],
        **kw,
    )


@pytest.fixture(autouse=True)
def _fresh_logging():
    # StreamHandler は生成時の sys.stdout を掴むため capsys 用に毎回作り直す
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        monkeypatch.delenv("DATABASE_URL", raising=False)
        monkeypatch.delenv("PGDSN", raising=False)
        yield p


@pytest.fixture()
def template_rows() -> list[list[object]]:
    return [
        TEMPLATE_HEADER,
        ["3275000000000001", "Jl. Contoh Alamat No. 1, Cibitung", "Sektor A", "Budi Santoso",
         "3275123456780001", "Laki-laki", "Jakarta", "1980-01-31", "Kepala Keluarga", "Sidi"],
        ["3275000000000001", "Jl. Contoh Alamat No. 1, Cibitung", "Sektor A", "Siti Aminah",
         "3275123456780002", "Perempuan", "Bekasi", "1985-05-20", "Istri", "Sidi"],
        ["3275000000000002", "Jl. Kenanga 7", "Sektor B", "Yohanes Lim",
         "3275123456780003", "L", "Medan", "1975-11-02", "Kepala Keluarga", "Baptis"],
    ]


@pytest.fixture()
def template_xlsx(temp_workdir: Path, template_rows: list[list[object]]) -> Path:
    return make_excel(temp_workdir / "data", "jemaat.xlsx", {"Sheet1": template_rows})


@pytest.fixture()
def directory() -> InMemoryDirectory:
    return InMemoryDirectory()

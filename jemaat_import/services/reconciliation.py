from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import UTC, date, datetime
from typing import Any

from ..directory.base import (
    DirectoryError,
    DirectoryService,
    DuplicateHouseholdError,
    InvalidHouseholdError,
)
from ..logging.error_log import ErrorLogBuffer
from ..models.enums import ExportMode
from ..models.error_record import ErrorRecord
from ..models.household import HouseholdRecord, MemberRecord
from ..models.processing_result import ReconciliationTally
from .progress import ProgressTracker

"""Reconciliation engine.

Import side: settle grouped households against the directory one at a time,
in input order. Each household succeeds or fails on its own; a failure is
recorded (tally + error log) and the run moves on. Earlier successes are
never rolled back.

Export side: flatten directory records into sheet rows, either the full
roster (one row per member) or the birthday list for one month.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "import_households",
    "export_households",
    "calculate_age",
    "turning_age",
    "format_long_date",
    "MONTH_NAMES",
    "ROSTER_COLUMNS",
    "BIRTHDAY_COLUMNS",
]

MONTH_NAMES = (
    "Januari", "Februari", "Maret", "April", "Mei", "Juni",
    "Juli", "Agustus", "September", "Oktober", "November", "Desember",
)

ROSTER_COLUMNS = (
    "No. Kartu Keluarga",
    "Wilayah Pelayanan",
    "Alamat Lengkap",
    "Nama Lengkap",
    "NIK",
    "Hubungan Keluarga",
    "Jenis Kelamin",
    "Tempat Lahir",
    "Tanggal Lahir",
    "Usia",
    "Status Gerejawi",
    "Status Verifikasi",
    "Tanggal Pendaftaran",
)

BIRTHDAY_COLUMNS = (
    "Tanggal",
    "Nama Lengkap",
    "Ulang Tahun Ke",
    "Jenis Kelamin",
    "Wilayah",
    "No. KK",
    "Hubungan",
    "Tanggal Lahir Full",
)

ERROR_DUPLICATE = "DUPLICATE_HOUSEHOLD"
ERROR_INVALID = "INVALID_HOUSEHOLD"
ERROR_DIRECTORY = "DIRECTORY_ERROR"


# ---------------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------------

def _error_type(exc: DirectoryError) -> str:
    if isinstance(exc, DuplicateHouseholdError):
        return ERROR_DUPLICATE
    if isinstance(exc, InvalidHouseholdError):
        return ERROR_INVALID
    return ERROR_DIRECTORY


def import_households(
    grouped: Mapping[str, HouseholdRecord],
    directory: DirectoryService,
    *,
    tally: ReconciliationTally | None = None,
    error_log: ErrorLogBuffer | None = None,
    source_name: str = "",
    progress: ProgressTracker | None = None,
) -> ReconciliationTally:
    """Create every grouped household that is not yet registered.

    Per household, in iteration order of ``grouped``:
    1. ``exists_by_household_number`` true -> failure "already registered"
    2. otherwise ``create_household``; DuplicateHouseholdError raised there
       (a concurrent writer won the race) is reported the same way
    3. any other DirectoryError -> failure carrying the adapter's message

    Exceptions that are not DirectoryError propagate and abort the run.
    """
    tally = tally if tally is not None else ReconciliationTally()

    for number, household in grouped.items():
        if progress is not None:
            progress.start_household(number)
        try:
            if directory.exists_by_household_number(number):
                raise DuplicateHouseholdError(number)
            household_id = directory.create_household(household)
        except DirectoryError as e:
            message = str(e)
            tally.record_failure(number, message)
            logger.error("household %s: %s", number, message)
            if error_log is not None:
                error_log.append(ErrorRecord.create(source_name, number, _error_type(e), message))
            ok = False
        else:
            tally.record_success()
            logger.debug("household %s created id=%s", number, household_id)
            ok = True
        if progress is not None:
            progress.finish_household(ok)
            progress.set_postfix(ok=tally.succeeded, failed=tally.failed)

    return tally


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------

def _parse_iso(value: str | None) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def calculate_age(birth_date: str | None, today: date | None = None) -> int:
    """Completed years at ``today``; 0 for an empty or invalid date."""
    born = _parse_iso(birth_date)
    if born is None:
        return 0
    today = today or date.today()
    age = today.year - born.year
    if (today.month, today.day) < (born.month, born.day):
        age -= 1
    return age


def turning_age(birth_date: str | None, today: date | None = None) -> int:
    """Age reached on this year's birthday; 0 for an empty or invalid date."""
    born = _parse_iso(birth_date)
    if born is None:
        return 0
    today = today or date.today()
    return today.year - born.year


def format_long_date(value: date | datetime | None) -> str:
    """'05 Februari 2024' style (two-digit day); "-" for None."""
    if value is None:
        return "-"
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(UTC)
        value = value.date()
    return f"{value.day:02d} {MONTH_NAMES[value.month - 1]} {value.year}"


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------

def _enum_text(value: Any) -> str:
    return value.value if value is not None else ""


def _roster_row(household: HouseholdRecord, member: MemberRecord, today: date) -> dict[str, Any]:
    return {
        "No. Kartu Keluarga": household.household_number,
        "Wilayah Pelayanan": household.service_sector.value,
        "Alamat Lengkap": household.address,
        "Nama Lengkap": member.full_name,
        "NIK": member.national_id,
        "Hubungan Keluarga": member.relationship.value,
        "Jenis Kelamin": _enum_text(member.gender),
        "Tempat Lahir": member.birth_place,
        "Tanggal Lahir": member.birth_date,
        "Usia": calculate_age(member.birth_date, today),
        "Status Gerejawi": member.church_status.value,
        "Status Verifikasi": household.verification_status.value,
        "Tanggal Pendaftaran": format_long_date(household.registered_at),
    }


def _birthday_row(household: HouseholdRecord, member: MemberRecord, born: date, today: date) -> dict[str, Any]:
    return {
        "Tanggal": f"{born.day} {MONTH_NAMES[born.month - 1]}",
        "Nama Lengkap": member.full_name,
        "Ulang Tahun Ke": turning_age(member.birth_date, today),
        "Jenis Kelamin": _enum_text(member.gender),
        "Wilayah": household.service_sector.value,
        "No. KK": household.household_number,
        "Hubungan": member.relationship.value,
        "Tanggal Lahir Full": member.birth_date,
    }


def export_households(
    households: Iterable[HouseholdRecord],
    mode: ExportMode = ExportMode.ROSTER,
    *,
    month: int | None = None,
    today: date | None = None,
) -> list[dict[str, Any]]:
    """Flatten households into export rows.

    ROSTER keeps directory order (households) and member order within each.
    BIRTHDAY keeps members whose birth month equals ``month`` (default:
    ``today``'s month), sorted by day of month; the sort is stable so
    same-day members keep directory order. Members without a valid birth
    date never appear in the birthday list.
    """
    today = today or date.today()
    if mode is ExportMode.ROSTER:
        return [_roster_row(h, m, today) for h in households for m in h.members]

    target = month or today.month
    if not 1 <= target <= 12:
        raise ValueError(f"month must be 1..12, got {target}")
    selected: list[tuple[int, dict[str, Any]]] = []
    for h in households:
        for m in h.members:
            born = _parse_iso(m.birth_date)
            if born is None or born.month != target:
                continue
            selected.append((born.day, _birthday_row(h, m, born, today)))
    selected.sort(key=lambda pair: pair[0])
    return [row for _, row in selected]

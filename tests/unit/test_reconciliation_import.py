from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from conftest import make_household, make_member
from jemaat_import.directory.base import DirectoryError
from jemaat_import.directory.memory import InMemoryDirectory
from jemaat_import.logging.error_log import ErrorLogBuffer
from jemaat_import.models.enums import FamilyRelationship
from jemaat_import.models.import_row import ImportRow
from jemaat_import.models.processing_result import ReconciliationTally
from jemaat_import.services.grouper import group_households
from jemaat_import.services.normalizer import FieldNormalizer
from jemaat_import.services.reconciliation import import_households

KK1 = "3275000000000001"
KK2 = "3275000000000002"


class _RacingDirectory(InMemoryDirectory):
    """exists() は常に False を返し、一意制約だけが重複を検出する。"""

    def exists_by_household_number(self, household_number: str) -> bool:
        self.calls.append(("exists", household_number))
        return False


def test_creates_all_new_households(directory: InMemoryDirectory):
    grouped = {KK1: make_household(KK1), KK2: make_household(KK2)}
    tally = import_households(grouped, directory)
    assert (tally.succeeded, tally.failed) == (2, 0)
    assert directory.calls == [("exists", KK1), ("create", KK1), ("exists", KK2), ("create", KK2)]
    assert directory.get_household_by_number(KK2) is not None


def test_duplicate_household_is_a_failure_and_run_continues():
    directory = InMemoryDirectory([make_household(KK1)])
    grouped = {KK1: make_household(KK1), KK2: make_household(KK2)}
    tally = import_households(grouped, directory)

    assert tally.succeeded == 1
    assert tally.failed == 1
    assert tally.errors == [(KK1, f"household number {KK1} already registered")]
    # exists が True の場合 create は呼ばれない
    assert ("create", KK1) not in directory.calls


def test_duplicate_detected_by_create_reports_same_message():
    directory = _RacingDirectory([make_household(KK1)])
    tally = import_households({KK1: make_household(KK1)}, directory)
    assert tally.failed == 1
    assert tally.errors == [(KK1, f"household number {KK1} already registered")]
    assert directory.calls == [("exists", KK1), ("create", KK1)]


def test_adapter_error_message_is_recorded():
    directory = MagicMock()
    directory.exists_by_household_number.return_value = False
    directory.create_household.side_effect = [
        DirectoryError("permission denied for table families"),
        "new-id",
    ]
    tally = import_households({KK1: make_household(KK1), KK2: make_household(KK2)}, directory)
    assert (tally.succeeded, tally.failed) == (1, 1)
    assert tally.errors == [(KK1, "permission denied for table families")]
    assert directory.create_household.call_count == 2


def test_invalid_household_fails_alone(directory: InMemoryDirectory):
    two_heads = make_household(
        KK1,
        make_member("A", FamilyRelationship.HEAD),
        make_member("B", FamilyRelationship.HEAD),
    )
    tally = import_households({KK1: two_heads, KK2: make_household(KK2)}, directory)
    assert (tally.succeeded, tally.failed) == (1, 1)
    assert "Kepala Keluarga" in tally.errors[0][1]


def test_unexpected_exception_propagates():
    directory = MagicMock()
    directory.exists_by_household_number.side_effect = RuntimeError("bug")
    with pytest.raises(RuntimeError):
        import_households({KK1: make_household(KK1)}, directory)


def test_failures_go_to_error_log(temp_workdir, directory: InMemoryDirectory):
    directory.create_household(make_household(KK1))
    buf = ErrorLogBuffer(temp_workdir / "logs")
    tally = ReconciliationTally()
    result = import_households({KK1: make_household(KK1)}, directory, tally=tally, error_log=buf, source_name="a.xlsx")
    assert result is tally
    assert len(buf) == 1
    record = buf.records[0]
    assert record.file == "a.xlsx"
    assert record.household_number == KK1
    assert record.error_type == "DUPLICATE_HOUSEHOLD"


def test_progress_is_advanced_per_household(directory: InMemoryDirectory):
    progress = MagicMock()
    import_households({KK1: make_household(KK1), KK2: make_household(KK2)}, directory, progress=progress)
    assert progress.start_household.call_count == 2
    assert progress.finish_household.call_count == 2


def test_two_rows_one_household_missing_nik(directory: InMemoryDirectory):
    rows = [
        ImportRow(2, {"NO_KK": KK1, "NAMA_LENGKAP": "Budi Santoso", "NIK": "3275123456780001", "HUBUNGAN": "Kepala Keluarga"}),
        ImportRow(3, {"NO_KK": KK1, "NAMA_LENGKAP": "Siti Aminah", "NIK": None, "HUBUNGAN": "Istri"}),
    ]
    grouped = group_households(rows, FieldNormalizer())
    tally = import_households(grouped, directory)

    assert (tally.succeeded, tally.failed) == (1, 0)
    stored = directory.get_household_by_number(KK1)
    assert stored is not None
    assert len(stored.members) == 2
    assert stored.members[1].national_id == ""

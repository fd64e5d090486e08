from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from ..models.enums import ServiceSector, VerificationStatus
from ..models.household import HouseholdRecord, MemberRecord

"""Directory service contract.

The reconciliation engine and export only talk to the household directory
through this protocol. Two implementations ship with the package:

- InMemoryDirectory (directory/memory.py): tests and ``--dry-run`` runs
- PostgresDirectory (directory/postgres.py): psycopg2 against the
  ``families`` / ``members`` tables

Failures are raised as DirectoryError subclasses; the engine catches them
per household and records the message in the run tally.
"""

__all__ = [
    "DirectoryError",
    "DuplicateHouseholdError",
    "HouseholdNotFoundError",
    "MemberNotFoundError",
    "HeadMemberError",
    "InvalidHouseholdError",
    "DirectoryService",
    "HOUSEHOLD_PATCH_FIELDS",
    "check_patch",
]

# update_household で変更可能なフィールド
HOUSEHOLD_PATCH_FIELDS = frozenset({"household_number", "address", "service_sector", "verification_status"})
_PATCH_ENUMS = {
    "service_sector": ServiceSector,
    "verification_status": VerificationStatus,
}


class DirectoryError(Exception):
    """Base class for directory adapter failures."""


class DuplicateHouseholdError(DirectoryError):
    """Household number already registered (uniqueness constraint)."""

    def __init__(self, household_number: str) -> None:
        super().__init__(f"household number {household_number} already registered")
        self.household_number = household_number


class HouseholdNotFoundError(DirectoryError):
    pass


class MemberNotFoundError(DirectoryError):
    pass


class HeadMemberError(DirectoryError):
    """Raised when an operation would leave a household with two heads or
    remove its head while keeping the household."""


class InvalidHouseholdError(DirectoryError):
    """Household fails creation invariants (no members, empty key, ...)."""


@runtime_checkable
class DirectoryService(Protocol):
    """Household directory operations used by the import/export pipeline."""

    def exists_by_household_number(self, household_number: str) -> bool: ...

    def create_household(self, record: HouseholdRecord) -> str:
        """Persist the household and all its members as one unit; return its id.

        Raises DuplicateHouseholdError when the number is already taken, which
        is the authoritative duplicate signal (the engine's pre-check is only an
        optimization).
        """
        ...

    def list_all_households(self) -> list[HouseholdRecord]: ...

    def get_household_by_number(self, household_number: str) -> HouseholdRecord | None: ...

    def update_household(self, household_id: str, patch: dict[str, Any]) -> None: ...

    def update_verification_status(
        self, household_id: str, status: VerificationStatus, actor_id: str | None = None
    ) -> None: ...

    def delete_household(self, household_id: str) -> None: ...

    def add_member(self, household_id: str, member: MemberRecord) -> MemberRecord: ...

    def update_member(self, member: MemberRecord) -> None: ...

    def delete_member(self, member_id: str) -> None: ...


def check_patch(patch: dict[str, Any]) -> dict[str, Any]:
    """Validate a household patch and return it with enum fields coerced.

    Fields outside HOUSEHOLD_PATCH_FIELDS are rejected; ``service_sector`` and
    ``verification_status`` accept enum members or their string values.
    """
    unknown = set(patch) - HOUSEHOLD_PATCH_FIELDS
    if unknown:
        raise DirectoryError(f"cannot update household fields: {sorted(unknown)}")
    coerced = dict(patch)
    for key, enum_cls in _PATCH_ENUMS.items():
        if key not in coerced:
            continue
        try:
            coerced[key] = enum_cls(coerced[key])
        except ValueError as e:
            raise DirectoryError(f"invalid {key}: {coerced[key]!r}") from e
    return coerced

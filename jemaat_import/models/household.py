from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime

from .enums import (
    BloodType,
    ChurchStatus,
    FamilyRelationship,
    Gender,
    MaritalStatus,
    ServiceSector,
    VerificationStatus,
)

"""Household and member domain models.

A HouseholdRecord is one family unit (Kartu Keluarga) keyed by its 16-digit
household number; MemberRecord is one person inside it. Both are built in
memory by the grouper during import and handed to a DirectoryService for
persistence. Identifiers (``id`` / ``household_id``) stay ``None`` until the
directory assigns them.
"""

__all__ = [
    "MemberRecord",
    "HouseholdRecord",
]


@dataclass
class MemberRecord:
    """One person within a household (Jemaat).

    ``gender`` is ``None`` only when a strict gender lexicon is configured and
    the sheet value matched none of its tokens.
    """
    full_name: str
    national_id: str  # 16 桁 NIK。シートに無い場合は空文字
    birth_place: str
    birth_date: str  # ISO YYYY-MM-DD または空文字
    gender: Gender | None
    relationship: FamilyRelationship
    church_status: ChurchStatus
    domicile_address: str | None = None
    marital_status: MaritalStatus | None = None
    phone: str | None = None
    email: str | None = None
    occupation: str | None = None
    blood_type: BloodType | None = None
    ministry_notes: str | None = None
    id: str | None = None
    household_id: str | None = None

    @property
    def is_head(self) -> bool:
        return self.relationship is FamilyRelationship.HEAD


@dataclass
class HouseholdRecord:
    """One family unit with an ordered member list.

    Member order follows sheet row order on import; the first row of a
    household is conventionally (not necessarily) the head.
    """
    household_number: str
    address: str
    service_sector: ServiceSector = ServiceSector.UNASSIGNED
    verification_status: VerificationStatus = VerificationStatus.PENDING
    registered_at: datetime | None = None
    members: list[MemberRecord] = field(default_factory=list)
    verified_at: datetime | None = None
    verified_by: str | None = None
    id: str | None = None

    def head(self) -> MemberRecord | None:
        for m in self.members:
            if m.is_head:
                return m
        return None

    def head_count(self) -> int:
        return sum(1 for m in self.members if m.is_head)

    def validate_for_creation(self) -> None:
        """Check the invariants a household must satisfy before it is created.

        Raises:
            ValueError: empty household number, no members, or more than one head
        """
        if not self.household_number:
            raise ValueError("household number is empty")
        if not self.members:
            raise ValueError(f"household {self.household_number} has no members")
        if self.head_count() > 1:
            raise ValueError(
                f"household {self.household_number} has {self.head_count()} members "
                f"marked {FamilyRelationship.HEAD.value!r}"
            )

    def copy(self) -> HouseholdRecord:
        """Return a copy whose member list (and members) can be mutated independently."""
        return replace(self, members=[replace(m) for m in self.members])

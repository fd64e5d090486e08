from __future__ import annotations

import uuid
from dataclasses import replace
from datetime import UTC, datetime
from typing import Any

from ..models.enums import VerificationStatus
from ..models.household import HouseholdRecord, MemberRecord
from .base import (
    DuplicateHouseholdError,
    HeadMemberError,
    HouseholdNotFoundError,
    InvalidHouseholdError,
    MemberNotFoundError,
    check_patch,
)

"""In-memory DirectoryService.

Used by the test suite and by ``import --dry-run`` (nothing leaves the
process). Enforces the same invariants as the PostgreSQL adapter: unique
household numbers, at most one head per household, head removal only via
household deletion. Records are copied on the way in and out so callers
cannot mutate stored state.
"""

__all__ = [
    "InMemoryDirectory",
]


class InMemoryDirectory:
    def __init__(self, households: list[HouseholdRecord] | None = None) -> None:
        self._households: dict[str, HouseholdRecord] = {}
        self.calls: list[tuple[str, str]] = []  # (操作名, キー) テスト検証用
        for h in households or []:
            self.create_household(h)
        self.calls.clear()

    @staticmethod
    def _new_id() -> str:
        return str(uuid.uuid4())

    def _get(self, household_id: str) -> HouseholdRecord:
        household = self._households.get(household_id)
        if household is None:
            raise HouseholdNotFoundError(f"household {household_id} not found")
        return household

    def _find_member(self, member_id: str) -> tuple[HouseholdRecord, int]:
        for household in self._households.values():
            for idx, m in enumerate(household.members):
                if m.id == member_id:
                    return household, idx
        raise MemberNotFoundError(f"member {member_id} not found")

    # ------------------------------------------------------------------
    # Households
    # ------------------------------------------------------------------

    def exists_by_household_number(self, household_number: str) -> bool:
        self.calls.append(("exists", household_number))
        return any(h.household_number == household_number for h in self._households.values())

    def create_household(self, record: HouseholdRecord) -> str:
        self.calls.append(("create", record.household_number))
        try:
            record.validate_for_creation()
        except ValueError as e:
            raise InvalidHouseholdError(str(e)) from e
        if any(h.household_number == record.household_number for h in self._households.values()):
            raise DuplicateHouseholdError(record.household_number)

        stored = record.copy()
        stored.id = self._new_id()
        now = datetime.now(UTC)
        stored.registered_at = stored.registered_at or now
        if stored.verification_status is VerificationStatus.VERIFIED and stored.verified_at is None:
            stored.verified_at = now
        for m in stored.members:
            m.id = self._new_id()
            m.household_id = stored.id
            # 住所未入力の場合は KK 住所で補完
            m.domicile_address = m.domicile_address or stored.address
        self._households[stored.id] = stored
        return stored.id

    def list_all_households(self) -> list[HouseholdRecord]:
        # 登録日の新しい順
        ordered = sorted(
            self._households.values(),
            key=lambda h: h.registered_at or datetime.min.replace(tzinfo=UTC),
            reverse=True,
        )
        return [h.copy() for h in ordered]

    def get_household_by_number(self, household_number: str) -> HouseholdRecord | None:
        for h in self._households.values():
            if h.household_number == household_number:
                return h.copy()
        return None

    def update_household(self, household_id: str, patch: dict[str, Any]) -> None:
        patch = check_patch(patch)
        household = self._get(household_id)
        new_number = patch.get("household_number")
        if new_number is not None and new_number != household.household_number:
            if any(h.household_number == new_number for h in self._households.values()):
                raise DuplicateHouseholdError(new_number)
        for key, value in patch.items():
            setattr(household, key, value)

    def update_verification_status(
        self, household_id: str, status: VerificationStatus, actor_id: str | None = None
    ) -> None:
        household = self._get(household_id)
        household.verification_status = status
        if status is VerificationStatus.VERIFIED:
            household.verified_at = datetime.now(UTC)
            household.verified_by = actor_id
        else:
            household.verified_at = None
            household.verified_by = None

    def delete_household(self, household_id: str) -> None:
        self._get(household_id)
        del self._households[household_id]

    # ------------------------------------------------------------------
    # Members
    # ------------------------------------------------------------------

    def add_member(self, household_id: str, member: MemberRecord) -> MemberRecord:
        household = self._get(household_id)
        if member.is_head and household.head() is not None:
            raise HeadMemberError(f"household {household.household_number} already has a head")
        stored = replace(member, id=self._new_id(), household_id=household_id)
        household.members.append(stored)
        return replace(stored)

    def update_member(self, member: MemberRecord) -> None:
        if member.id is None:
            raise MemberNotFoundError("member has no id")
        household, idx = self._find_member(member.id)
        current = household.members[idx]
        if member.is_head and not current.is_head and household.head() is not None:
            raise HeadMemberError(f"household {household.household_number} already has a head")
        household.members[idx] = replace(member, household_id=household.id)

    def delete_member(self, member_id: str) -> None:
        household, idx = self._find_member(member_id)
        if household.members[idx].is_head:
            raise HeadMemberError("cannot remove the head of household without deleting the household")
        del household.members[idx]

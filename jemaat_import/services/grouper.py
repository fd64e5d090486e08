from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import UTC, datetime

from ..models.enums import VerificationStatus
from ..models.household import HouseholdRecord
from ..models.import_row import ImportRow
from ..models.processing_result import ReconciliationTally
from .normalizer import FieldNormalizer

"""Household grouper: flat person rows -> household units.

The sheet has one row per person; household-level columns (Nomor KK,
address, sector) are repeated on every row of the family. Grouping is keyed
on the normalized household number and keeps first-seen order for both
households and members.
"""

logger = logging.getLogger(__name__)

HOUSEHOLD_NUMBER_LENGTH = 16


def group_households(
    rows: Iterable[ImportRow],
    normalizer: FieldNormalizer,
    tally: ReconciliationTally | None = None,
    now: datetime | None = None,
) -> dict[str, HouseholdRecord]:
    """Fold rows into ``{household_number: HouseholdRecord}``.

    - Rows without a household number are skipped (no member, no error);
      the skip is counted on ``tally`` when one is given.
    - The first row of a household seeds address and sector. Later rows of
      the same household only contribute a member.
    - Imported households are VERIFIED with a fresh registration timestamp.
    """
    registered_at = now or datetime.now(UTC)
    warn = tally.warn if tally is not None else None
    groups: dict[str, HouseholdRecord] = {}

    for row in rows:
        number = normalizer.household_number(row)
        if not number:
            logger.debug("row %d skipped: empty household number", row.row_number)
            if tally is not None:
                tally.record_skip(f"row {row.row_number}: skipped, household number is empty")
            continue

        household = groups.get(number)
        if household is None:
            if warn is not None and not (number.isdigit() and len(number) == HOUSEHOLD_NUMBER_LENGTH):
                warn(f"row {row.row_number}: household number {number!r} is not {HOUSEHOLD_NUMBER_LENGTH} digits")
            address, sector = normalizer.household_fields(row, warn=warn)
            household = HouseholdRecord(
                household_number=number,
                address=address,
                service_sector=sector,
                verification_status=VerificationStatus.VERIFIED,
                registered_at=registered_at,
            )
            groups[number] = household
        household.members.append(normalizer.build_member(row, warn=warn))

    logger.debug("grouped %d households", len(groups))
    return groups

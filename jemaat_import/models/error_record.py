from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""ErrorRecord model for the JSON Lines error log.

One record is written per household that failed reconciliation, plus one
per file-level failure. File-level records carry household_number "-"
since no household could be attributed.

Keys are fixed: timestamp, file, household_number, error_type, message.
"""

__all__ = [
    "ErrorRecord",
    "FILE_LEVEL",
]

FILE_LEVEL = "-"


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        file: source sheet filename
        household_number: household key, or FILE_LEVEL for file-level errors
        error_type: Error classification in UPPER_SNAKE_CASE format
        message: human-readable reason (adapter message for directory errors)
    """
    timestamp: str  # ISO8601 UTC
    file: str
    household_number: str
    error_type: str  # UPPER_SNAKE
    message: str

    @staticmethod
    def create(file: str, household_number: str, error_type: str, message: str) -> ErrorRecord:
        """Create a new ErrorRecord stamped with the current UTC time."""
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            file=file,
            household_number=household_number,
            error_type=error_type,
            message=message,
        )

    def to_json_line(self) -> str:
        # dataclass -> dict なので追加キーは入らない
        return json.dumps(asdict(self), ensure_ascii=False)

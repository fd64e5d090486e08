from __future__ import annotations

from dataclasses import dataclass
from typing import Any

"""ImportRow model.

An ImportRow is a single sheet row after header detection: raw cell values
keyed by whichever header text (column alias) the source sheet used. It is
consumed by the household grouper and discarded afterwards.
"""

__all__ = [
    "ImportRow",
]


@dataclass(frozen=True)
class ImportRow:
    """Logical representation of one data row below the detected header.

    ``row_number`` is the 1-based row number as shown by spreadsheet
    applications, so warnings can point the operator at the right line.
    """
    row_number: int
    values: dict[str, Any]  # ヘッダ文字列 → 生セル値 (None = 空セル)

    def get(self, column: str, default: Any = None) -> Any:
        return self.values.get(column, default)

    def __contains__(self, column: object) -> bool:
        return column in self.values

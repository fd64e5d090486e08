from __future__ import annotations

import math
import numbers
import re
from collections.abc import Callable
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, TypeVar

import pandas as pd

from ..models.config_models import SPREADSHEET_UNIX_EPOCH_SERIAL, NormalizerConfig
from ..models.enums import (
    BloodType,
    ChurchStatus,
    FamilyRelationship,
    Gender,
    MaritalStatus,
    ServiceSector,
)
from ..models.household import MemberRecord
from ..models.import_row import ImportRow

"""Field normalizer: raw sheet cells -> canonical typed values.

Every function here degrades instead of raising: an unrecognized
enumeration value becomes the field default, an unparseable date becomes an
empty string. Callers that want to report such substitutions pass a
``warn`` callback (the grouper routes it into the run tally).
"""

E = TypeVar("E", bound=Enum)
WarnFn = Callable[[str], None]

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
# "24 Februari 1980", "24-Feb-1980", "24 Agt. 1980"
_LOCALIZED_DATE_RE = re.compile(r"^(\d{1,2})[\s\-/.]+([A-Za-z]+)\.?[\s\-/.]+(\d{4})$")
_UNIX_EPOCH = date(1970, 1, 1)


def _format_iso(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}-{d.day:02d}"


class FieldNormalizer:
    """Normalization functions bound to one NormalizerConfig (schema version)."""

    def __init__(self, config: NormalizerConfig | None = None) -> None:
        self.config = config or NormalizerConfig()

    # ------------------------------------------------------------------
    # Alias resolution
    # ------------------------------------------------------------------

    def resolve(self, row: ImportRow | dict[str, Any], field_name: str) -> Any:
        """Return the raw value of the first configured alias present in ``row``.

        Aliases whose cell is empty are passed over so that a sheet carrying two
        generations of a column still yields the filled one. Falls back to "".
        """
        values = row.values if isinstance(row, ImportRow) else row
        for alias in self.config.aliases(field_name):
            if alias in values and values[alias] is not None and self.normalize_string(values[alias]):
                return values[alias]
        return ""

    def has_column(self, row: ImportRow | dict[str, Any], field_name: str) -> bool:
        values = row.values if isinstance(row, ImportRow) else row
        return any(alias in values for alias in self.config.aliases(field_name))

    def text(self, row: ImportRow | dict[str, Any], field_name: str) -> str:
        return self.normalize_string(self.resolve(row, field_name))

    @staticmethod
    def normalize_string(value: Any) -> str:
        """Trimmed text; None/NaN -> "", integral floats -> integer text.

        Excel stores long ids such as NIK / Nomor KK as numbers; 16 digits are
        still exactly representable as float64 so int() recovers them.
        """
        if value is None:
            return ""
        if isinstance(value, bool):
            return str(value)
        if isinstance(value, float):
            if math.isnan(value):
                return ""
            if value.is_integer():
                return str(int(value))
            return str(value)
        if isinstance(value, (pd.Timestamp, datetime)):
            return _format_iso(value.date())
        if isinstance(value, date):
            return _format_iso(value)
        try:
            if pd.isna(value):
                return ""
        except (TypeError, ValueError):
            pass
        return str(value).strip()

    # ------------------------------------------------------------------
    # Dates
    # ------------------------------------------------------------------

    def normalize_date(self, value: Any) -> str:
        """Return an ISO ``YYYY-MM-DD`` string, or "" when nothing matches.

        Input shapes, tried in order:
        - date / datetime cell (pandas reads formatted date cells as Timestamp)
        - numeric spreadsheet serial: 1970-01-01 + floor(serial - 25569) days
        - ISO ``YYYY-MM-DD`` string: returned unchanged
        - "place, DD MonthName YYYY" (or just "DD MonthName YYYY"): the part
          after the first comma is parsed generically, then via the localized
          month-name table
        """
        if value is None or isinstance(value, bool):
            return ""
        if isinstance(value, (pd.Timestamp, datetime)):
            if pd.isna(value):
                return ""
            return _format_iso(value.date())
        if isinstance(value, date):
            return _format_iso(value)
        if isinstance(value, numbers.Real):
            return self.serial_to_iso(float(value))
        text = self.normalize_string(value)
        if not text:
            return ""
        if _ISO_DATE_RE.match(text):
            return text
        _, parsed = self.split_birth_place_date(text)
        return parsed

    @staticmethod
    def serial_to_iso(serial: float) -> str:
        """Convert a spreadsheet serial day number (1900 epoch) to ISO text."""
        if math.isnan(serial) or math.isinf(serial):
            return ""
        try:
            d = _UNIX_EPOCH + timedelta(days=math.floor(serial - SPREADSHEET_UNIX_EPOCH_SERIAL))
        except OverflowError:
            return ""
        return _format_iso(d)

    def split_birth_place_date(self, value: Any) -> tuple[str, str]:
        """Split a combined "Tempat, Tanggal Lahir" cell into (place, ISO date).

        Without a comma the whole text is treated as the date part. The place
        is returned even when the date part cannot be parsed.
        """
        text = self.normalize_string(value)
        if not text:
            return "", ""
        if "," in text:
            place, remainder = text.split(",", 1)
            place = place.strip()
        else:
            place, remainder = "", text
        remainder = remainder.strip()
        if not remainder:
            return place, ""
        if _ISO_DATE_RE.match(remainder):
            return place, remainder
        return place, self.parse_localized_date(remainder)

    def parse_localized_date(self, text: str) -> str:
        """Parse a free-text date, falling back to the localized month table."""
        # 月名が英語と一致する場合 (April, September 等) は汎用パースで通る
        generic = self._generic_parse(text)
        if generic:
            return generic
        m = _LOCALIZED_DATE_RE.match(text.strip())
        if not m:
            return ""
        day, month_name, year = m.groups()
        month = self.config.month_names.get(month_name.lower())
        if month is None:
            return ""
        try:
            return _format_iso(date(int(year), month, int(day)))
        except ValueError:
            return ""

    @staticmethod
    def _generic_parse(text: str) -> str:
        # 数字のみ ("1980" 等) は日付と見なさない
        if text.isdigit():
            return ""
        try:
            ts = pd.to_datetime(text, dayfirst=True, errors="coerce")
        except (ValueError, TypeError, OverflowError):
            return ""
        if ts is None or pd.isna(ts):
            return ""
        return _format_iso(ts.date())

    # ------------------------------------------------------------------
    # Enumerations
    # ------------------------------------------------------------------

    def normalize_gender(self, value: Any) -> Gender | None:
        """Classify free-text gender.

        Default rule: upper-case, leading letter equal to ``female_prefix``
        ("P" for Perempuan) -> FEMALE, anything else -> MALE. With a
        ``gender_lexicon`` configured, only listed tokens are accepted and
        anything else is left unspecified (None).
        """
        text = self.normalize_string(value).upper()
        lexicon = self.config.gender_lexicon
        if lexicon is not None:
            for gender_value, tokens in lexicon.items():
                if text in {t.upper() for t in tokens}:
                    return Gender(gender_value)
            return None
        if text.startswith(self.config.female_prefix.upper()):
            return Gender.FEMALE
        return Gender.MALE

    def coerce_enum(self, value: Any, enum_cls: type[E], default: E | None) -> E | None:
        """Match trimmed text case-sensitively against ``enum_cls`` values."""
        text = self.normalize_string(value)
        for member in enum_cls:
            if member.value == text:
                return member
        return default

    # ------------------------------------------------------------------
    # Row -> record helpers
    # ------------------------------------------------------------------

    def household_number(self, row: ImportRow | dict[str, Any]) -> str:
        return self.text(row, "household_number")

    def household_fields(
        self, row: ImportRow | dict[str, Any], warn: WarnFn | None = None
    ) -> tuple[str, ServiceSector]:
        """(address, sector) for the household seeded from ``row``."""
        address = self.text(row, "address")
        raw_sector = self.text(row, "sector")
        sector = self.coerce_enum(raw_sector, ServiceSector, self.config.default_sector)
        if raw_sector and sector is self.config.default_sector and raw_sector != sector.value:
            self._warn(warn, row, f"unrecognized sector {raw_sector!r} -> {sector.value!r}")
        return address, sector

    def build_member(self, row: ImportRow | dict[str, Any], warn: WarnFn | None = None) -> MemberRecord:
        """Build a MemberRecord from the member-level cells of ``row``."""
        birth_place = self.text(row, "birth_place")
        raw_birth = self.resolve(row, "birth_date")
        birth_date = self.normalize_date(raw_birth)
        combined = self.resolve(row, "birth_place_date")
        if combined != "":
            place, combined_date = self.split_birth_place_date(combined)
            birth_place = birth_place or place
            birth_date = birth_date or combined_date
            if not birth_date:
                self._warn(warn, row, f"unparseable birth date {self.normalize_string(combined)!r}")
        elif raw_birth != "" and not birth_date:
            self._warn(warn, row, f"unparseable birth date {self.normalize_string(raw_birth)!r}")

        cfg = self.config
        relationship = self._enum_field(row, "relationship", FamilyRelationship, cfg.default_relationship, warn)
        church_status = self._enum_field(row, "church_status", ChurchStatus, cfg.default_church_status, warn)
        marital_status = self._enum_field(row, "marital_status", MaritalStatus, None, warn)
        blood_type = None
        if self.has_column(row, "blood_type"):
            blood_type = self._enum_field(row, "blood_type", BloodType, cfg.default_blood_type, warn)

        return MemberRecord(
            full_name=self.text(row, "full_name"),
            national_id=self.text(row, "national_id"),
            birth_place=birth_place,
            birth_date=birth_date,
            gender=self.normalize_gender(self.resolve(row, "gender")),
            relationship=relationship,
            church_status=church_status,
            domicile_address=self.text(row, "domicile_address") or None,
            marital_status=marital_status,
            phone=self.text(row, "phone") or None,
            email=self.text(row, "email") or None,
            occupation=self.text(row, "occupation") or None,
            blood_type=blood_type,
            ministry_notes=self.text(row, "ministry_notes") or None,
        )

    def _enum_field(
        self,
        row: ImportRow | dict[str, Any],
        field_name: str,
        enum_cls: type[E],
        default: E | None,
        warn: WarnFn | None,
    ) -> E | None:
        raw = self.text(row, field_name)
        value = self.coerce_enum(raw, enum_cls, default)
        if raw and (value is None or value.value != raw):
            fallback = value.value if value is not None else "-"
            self._warn(warn, row, f"unrecognized {field_name} {raw!r} -> {fallback!r}")
        return value

    @staticmethod
    def _warn(warn: WarnFn | None, row: ImportRow | dict[str, Any], message: str) -> None:
        if warn is None:
            return
        if isinstance(row, ImportRow):
            message = f"row {row.row_number}: {message}"
        warn(message)

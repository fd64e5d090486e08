from __future__ import annotations

from enum import Enum

"""Enumerated domains for household (Kartu Keluarga) records.

Values are the canonical Indonesian strings stored in the directory and
written to export sheets. Member names are English so that code reads the
same regardless of the registry's display language.

Import coercion compares trimmed cell text case-sensitively against these
values; see FieldNormalizer.coerce_enum.
"""

__all__ = [
    "Gender",
    "FamilyRelationship",
    "ChurchStatus",
    "MaritalStatus",
    "BloodType",
    "ServiceSector",
    "VerificationStatus",
    "ExportMode",
]


class Gender(Enum):
    MALE = "Laki-laki"
    FEMALE = "Perempuan"


class FamilyRelationship(Enum):
    """Relationship to the head of household (Status Dalam Keluarga).

    Exactly one member of a household may be HEAD.
    """
    HEAD = "Kepala Keluarga"
    SPOUSE = "Istri"
    CHILD = "Anak"
    PARENT = "Orang Tua"
    OTHER = "Lainnya"


class ChurchStatus(Enum):
    BAPTIZED = "Baptis"
    CONFIRMED = "Sidi"
    BOTH = "Baptis & Sidi"
    NONE = "Belum"


class MaritalStatus(Enum):
    SINGLE = "Belum Menikah"
    MARRIED = "Menikah"
    WIDOWED = "Janda"
    WIDOWER = "Duda"


class BloodType(Enum):
    A = "A"
    B = "B"
    AB = "AB"
    O = "O"
    UNKNOWN = "-"


class ServiceSector(Enum):
    """Pastoral service sector (Wilayah Pelayanan).

    UNASSIGNED is the fallback for empty or unrecognized sheet values.
    """
    A = "Sektor A"
    B = "Sektor B"
    C = "Sektor C"
    D = "Sektor D"
    E = "Sektor E"
    UNASSIGNED = "Belum ada Sektor Wilayah"


class VerificationStatus(Enum):
    """Household verification lifecycle.

    pending → (verified | rejected). Imported households are created as
    VERIFIED since a bulk import is treated as administratively vetted.
    """
    PENDING = "Pending"
    VERIFIED = "Verified"
    REJECTED = "Rejected"


class ExportMode(Enum):
    """Column set selector for export flattening."""
    ROSTER = "roster"
    BIRTHDAY = "birthday"

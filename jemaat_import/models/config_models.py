from __future__ import annotations

from dataclasses import dataclass, field

from .enums import BloodType, ChurchStatus, FamilyRelationship, ServiceSector

"""Config dataclasses for the household import pipeline.

The alias tables, header anchors, month-name table and enumeration defaults
live on a NormalizerConfig instance that is passed explicitly to the header
resolver and field normalizer. The DEFAULT_* constants below only seed
``NormalizerConfig()``; nothing reads them at normalization time, so a
YAML config (see config/loader.py) can replace any of them per schema
version of the source sheets.
"""

# Canonical field -> accepted column headers, in lookup order. Covers the
# import template, the older "Nomor KK" registration sheets and our own
# roster export headers (so exported sheets can be re-imported).
DEFAULT_FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "household_number": ("NO_KK", "Nomor KK", "No. KK", "No. Kartu Keluarga"),
    "address": ("ALAMAT", "Alamat", "Alamat KK", "Alamat Lengkap"),
    "sector": ("WILAYAH", "Wilayah", "Wilayah Pelayanan"),
    "full_name": ("NAMA_LENGKAP", "Nama Lengkap"),
    "national_id": ("NIK", "Nomor Induk"),
    "gender": ("JENIS_KELAMIN", "Jenis Kelamin"),
    "birth_place": ("TEMPAT_LAHIR", "Tempat Lahir"),
    "birth_date": ("TGL_LAHIR", "Tanggal Lahir"),
    "birth_place_date": ("Tempat Tanggal Lahir", "TTL"),
    "relationship": ("HUBUNGAN", "Status Dalam Keluarga", "Hubungan Keluarga"),
    "church_status": ("STATUS_GEREJAWI", "Status Gerejawi"),
    "marital_status": ("STATUS_PERNIKAHAN", "Status Pernikahan", "Status"),
    "phone": ("NOMOR_TELEPON", "Nomor Telepon", "No. HP"),
    "email": ("EMAIL", "E-mail", "Email"),
    "occupation": ("PEKERJAAN", "Pekerjaan/Usaha", "Pekerjaan"),
    "blood_type": ("GOL_DARAH", "Gol. Darah", "Golongan Darah"),
    "ministry_notes": ("CATATAN_PELAYANAN", "Catatan Pelayanan"),
    "domicile_address": ("ALAMAT_DOMISILI", "Alamat Domisili"),
}

FIELD_NAMES: tuple[str, ...] = tuple(DEFAULT_FIELD_ALIASES)

# 部分一致 (大文字小文字無視) でヘッダ行を判定する
DEFAULT_HEADER_ANCHORS: tuple[str, ...] = (
    "no_kk", "nomor kk", "no. kk", "no. kartu keluarga", "nomor kartu keluarga",
)

DEFAULT_HEADER_SCAN_ROWS = 10

# Full Indonesian month names and common abbreviations, lower-cased.
DEFAULT_MONTH_NAMES: dict[str, int] = {
    "januari": 1, "jan": 1,
    "februari": 2, "pebruari": 2, "feb": 2, "peb": 2,
    "maret": 3, "mar": 3,
    "april": 4, "apr": 4,
    "mei": 5,
    "juni": 6, "jun": 6,
    "juli": 7, "jul": 7,
    "agustus": 8, "agu": 8, "agt": 8, "ags": 8, "agst": 8,
    "september": 9, "sep": 9, "sept": 9,
    "oktober": 10, "okt": 10,
    "november": 11, "nov": 11, "nop": 11,
    "desember": 12, "des": 12,
}

DEFAULT_NULL_SENTINELS: frozenset[str] = frozenset({"NULL", "N/A", "#N/A"})

# Serial value of 1970-01-01 under the 1900 spreadsheet epoch.
SPREADSHEET_UNIX_EPOCH_SERIAL = 25569


@dataclass(frozen=True)
class DatabaseConfig:
    """Database connection fallback configuration.

    Environment variables (DATABASE_URL / PG*) take precedence over these.
    """
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class NormalizerConfig:
    """Everything the header resolver and field normalizer need to know about
    the source sheet's schema version.
    """
    field_aliases: dict[str, tuple[str, ...]] = field(
        default_factory=lambda: dict(DEFAULT_FIELD_ALIASES)
    )
    header_anchors: tuple[str, ...] = DEFAULT_HEADER_ANCHORS
    header_scan_rows: int = DEFAULT_HEADER_SCAN_ROWS
    month_names: dict[str, int] = field(default_factory=lambda: dict(DEFAULT_MONTH_NAMES))
    female_prefix: str = "P"  # "Perempuan"
    # None = leading-letter heuristic. Otherwise gender value -> accepted tokens
    # (upper-cased); unmatched values stay unspecified.
    gender_lexicon: dict[str, tuple[str, ...]] | None = None
    default_relationship: FamilyRelationship = FamilyRelationship.OTHER
    default_church_status: ChurchStatus = ChurchStatus.NONE
    default_sector: ServiceSector = ServiceSector.UNASSIGNED
    default_blood_type: BloodType = BloodType.UNKNOWN

    def aliases(self, field_name: str) -> tuple[str, ...]:
        return self.field_aliases.get(field_name, ())


@dataclass(frozen=True)
class SourceConfig:
    """How the source sheet is read."""
    sheet_name: str | None = None  # None = 先頭シート
    null_sentinels: frozenset[str] = DEFAULT_NULL_SENTINELS


@dataclass(frozen=True)
class ImportConfig:
    """Root configuration object for import / export runs."""
    source: SourceConfig = field(default_factory=SourceConfig)
    normalizer: NormalizerConfig = field(default_factory=NormalizerConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    logs_dir: str = "./logs"

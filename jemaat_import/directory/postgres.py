from __future__ import annotations

import logging
import os
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import UTC, date, datetime
from enum import Enum
from typing import Any, TypeVar

import psycopg2
import psycopg2.extras
from psycopg2 import errorcodes
from psycopg2.extras import execute_values

from ..models.config_models import DatabaseConfig
from ..models.enums import (
    BloodType,
    ChurchStatus,
    FamilyRelationship,
    Gender,
    MaritalStatus,
    ServiceSector,
    VerificationStatus,
)
from ..models.household import HouseholdRecord, MemberRecord
from .base import (
    DirectoryError,
    DuplicateHouseholdError,
    HeadMemberError,
    HouseholdNotFoundError,
    InvalidHouseholdError,
    MemberNotFoundError,
    check_patch,
)

"""PostgreSQL DirectoryService (psycopg2).

Tables: ``families`` (one row per household, ``nomor_kk`` UNIQUE) and
``members`` (FK ``family_id`` ON DELETE CASCADE). A partial unique index
allows at most one 'Kepala Keluarga' per family, so the head invariant holds
even for writers that bypass this adapter.

Each create runs in its own transaction: household insert, then all
members via ``execute_values`` (one round trip per page). A unique
violation on ``nomor_kk`` is mapped to DuplicateHouseholdError; that
constraint, not the engine's pre-check, is what guarantees uniqueness when
two imports race.

The connection must be in autocommit mode; transaction boundaries are
issued explicitly (BEGIN / COMMIT / ROLLBACK).
"""

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Enum)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS families (
    id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
    nomor_kk text NOT NULL,
    alamat_kk text NOT NULL DEFAULT '',
    wilayah_pelayanan text NOT NULL DEFAULT 'Belum ada Sektor Wilayah',
    status text NOT NULL DEFAULT 'Pending',
    registration_date timestamptz NOT NULL DEFAULT now(),
    verified_at timestamptz,
    verified_by text,
    CONSTRAINT families_nomor_kk_key UNIQUE (nomor_kk)
);
CREATE TABLE IF NOT EXISTS members (
    id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
    family_id uuid NOT NULL REFERENCES families(id) ON DELETE CASCADE,
    nama_lengkap text NOT NULL DEFAULT '',
    nik text NOT NULL DEFAULT '',
    tempat_lahir text NOT NULL DEFAULT '',
    tanggal_lahir date,
    jenis_kelamin text,
    hubungan_keluarga text NOT NULL,
    status_gerejawi text NOT NULL,
    alamat_domisili text,
    status_pernikahan text,
    nomor_telepon text,
    email text,
    pekerjaan text,
    golongan_darah text,
    catatan_pelayanan text,
    position integer NOT NULL DEFAULT 0
);
CREATE UNIQUE INDEX IF NOT EXISTS members_one_head_per_family
    ON members (family_id) WHERE hubungan_keluarga = 'Kepala Keluarga';
"""

FAMILY_COLUMNS = (
    "id", "nomor_kk", "alamat_kk", "wilayah_pelayanan", "status",
    "registration_date", "verified_at", "verified_by",
)

# members テーブル列 (id / family_id を除く) と MemberRecord 属性の対応
MEMBER_COLUMN_MAP: tuple[tuple[str, str], ...] = (
    ("nama_lengkap", "full_name"),
    ("nik", "national_id"),
    ("tempat_lahir", "birth_place"),
    ("tanggal_lahir", "birth_date"),
    ("jenis_kelamin", "gender"),
    ("hubungan_keluarga", "relationship"),
    ("status_gerejawi", "church_status"),
    ("alamat_domisili", "domicile_address"),
    ("status_pernikahan", "marital_status"),
    ("nomor_telepon", "phone"),
    ("email", "email"),
    ("pekerjaan", "occupation"),
    ("golongan_darah", "blood_type"),
    ("catatan_pelayanan", "ministry_notes"),
)
MEMBER_COLUMNS = tuple(col for col, _ in MEMBER_COLUMN_MAP)

HOUSEHOLD_PATCH_COLUMNS = {
    "household_number": "nomor_kk",
    "address": "alamat_kk",
    "service_sector": "wilayah_pelayanan",
    "verification_status": "status",
}

HEAD_INDEX = "members_one_head_per_family"
HOUSEHOLD_NUMBER_CONSTRAINT = "families_nomor_kk_key"


# ---------------------------------------------------------------------------
# Connection helpers
# ---------------------------------------------------------------------------

def resolve_dsn(db_cfg: DatabaseConfig) -> str:
    """Resolve connection parameters.

    Priority:
        1. DATABASE_URL / PGDSN environment variables (full DSN)
        2. individual PGHOST / PGPORT / PGUSER / PGPASSWORD / PGDATABASE
        3. the ``database`` section of the YAML config
    """
    dsn_env = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or db_cfg.dsn
    if dsn_env:
        return dsn_env
    host = os.getenv("PGHOST", db_cfg.host or "localhost")
    port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
    user = os.getenv("PGUSER", db_cfg.user or "postgres")
    password = os.getenv("PGPASSWORD", db_cfg.password or "")
    database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
    dsn = f"host={host} port={port} user={user} dbname={database}"
    if password:
        dsn += f" password={password}"
    return dsn


@contextmanager
def db_connection(db_cfg: DatabaseConfig) -> Iterator[Any]:
    """Yield an autocommit psycopg2 connection, closed on exit."""
    try:
        conn = psycopg2.connect(resolve_dsn(db_cfg))
    except psycopg2.Error as e:
        raise DirectoryError(f"cannot connect to database: {e}") from e
    try:
        conn.autocommit = True  # トランザクション境界は PostgresDirectory が明示発行
        yield conn
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# Value conversion
# ---------------------------------------------------------------------------

def _enum_value(value: Enum | None) -> str | None:
    return value.value if value is not None else None


def _to_enum(enum_cls: type[E], raw: Any, default: E | None) -> E | None:
    if raw is None:
        return default
    try:
        return enum_cls(raw)
    except ValueError:
        logger.warning("unexpected %s value in directory: %r", enum_cls.__name__, raw)
        return default


def _iso(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (date, datetime)):
        return value.isoformat()[:10]
    return str(value)


def _member_params(member: MemberRecord, family_id: str, position: int) -> tuple[Any, ...]:
    return (
        family_id,
        member.full_name,
        member.national_id,
        member.birth_place,
        member.birth_date or None,
        _enum_value(member.gender),
        member.relationship.value,
        member.church_status.value,
        member.domicile_address,
        _enum_value(member.marital_status),
        member.phone,
        member.email,
        member.occupation,
        _enum_value(member.blood_type),
        member.ministry_notes,
        position,
    )


def _member_from_row(row: dict[str, Any]) -> MemberRecord:
    return MemberRecord(
        id=str(row["id"]),
        household_id=str(row["family_id"]),
        full_name=row["nama_lengkap"] or "",
        national_id=row["nik"] or "",
        birth_place=row["tempat_lahir"] or "",
        birth_date=_iso(row["tanggal_lahir"]),
        gender=_to_enum(Gender, row["jenis_kelamin"], None),
        relationship=_to_enum(FamilyRelationship, row["hubungan_keluarga"], FamilyRelationship.OTHER),
        church_status=_to_enum(ChurchStatus, row["status_gerejawi"], ChurchStatus.NONE),
        domicile_address=row["alamat_domisili"],
        marital_status=_to_enum(MaritalStatus, row["status_pernikahan"], None),
        phone=row["nomor_telepon"],
        email=row["email"],
        occupation=row["pekerjaan"],
        blood_type=_to_enum(BloodType, row["golongan_darah"], None),
        ministry_notes=row["catatan_pelayanan"],
    )


def _household_from_row(row: dict[str, Any], members: list[MemberRecord]) -> HouseholdRecord:
    return HouseholdRecord(
        id=str(row["id"]),
        household_number=row["nomor_kk"],
        address=row["alamat_kk"] or "",
        service_sector=_to_enum(ServiceSector, row["wilayah_pelayanan"], ServiceSector.UNASSIGNED),
        verification_status=_to_enum(VerificationStatus, row["status"], VerificationStatus.PENDING),
        registered_at=row["registration_date"],
        verified_at=row["verified_at"],
        verified_by=row["verified_by"],
        members=members,
    )


def _translate_integrity_error(e: psycopg2.Error, household_number: str | None = None) -> DirectoryError:
    constraint = getattr(getattr(e, "diag", None), "constraint_name", None)
    if e.pgcode == errorcodes.UNIQUE_VIOLATION:
        if constraint == HEAD_INDEX:
            return HeadMemberError("household already has a head (Kepala Keluarga)")
        if constraint == HOUSEHOLD_NUMBER_CONSTRAINT or household_number:
            return DuplicateHouseholdError(household_number or "?")
    if e.pgcode == errorcodes.INSUFFICIENT_PRIVILEGE:
        return DirectoryError(f"permission denied: {e.pgerror or e}")
    message = (e.pgerror or str(e)).strip()
    return DirectoryError(message)


class PostgresDirectory:
    """DirectoryService backed by PostgreSQL via a psycopg2 connection."""

    def __init__(self, conn: Any, page_size: int = 1000) -> None:
        self.conn = conn
        self.page_size = page_size

    def ensure_schema(self) -> None:
        with self._transaction() as cur:
            cur.execute(SCHEMA_SQL)

    @contextmanager
    def _transaction(self, household_number: str | None = None) -> Iterator[Any]:
        try:
            cur = self.conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
        except psycopg2.Error as e:
            # 切断済み接続 (InterfaceError) も DirectoryError として扱う
            raise _translate_integrity_error(e, household_number) from e
        try:
            cur.execute("BEGIN")
            yield cur
            cur.execute("COMMIT")
        except psycopg2.Error as e:
            self._rollback(cur)
            raise _translate_integrity_error(e, household_number) from e
        except BaseException:
            self._rollback(cur)
            raise
        finally:
            cur.close()

    @staticmethod
    def _rollback(cur: Any) -> None:
        try:
            cur.execute("ROLLBACK")
        except psycopg2.Error:  # pragma: no cover
            logger.warning("rollback failed", exc_info=True)

    def _insert_members(self, cur: Any, family_id: str, members: Sequence[MemberRecord], start: int = 0) -> list[str]:
        cols_sql = ",".join(("family_id",) + MEMBER_COLUMNS + ("position",))
        rows = [_member_params(m, family_id, start + i) for i, m in enumerate(members)]
        if not rows:
            return []
        returned = execute_values(
            cur,
            f"INSERT INTO members ({cols_sql}) VALUES %s RETURNING id",
            rows,
            page_size=self.page_size,
            fetch=True,
        )
        return [str(r["id"]) for r in returned]

    def _fetch_members(self, cur: Any, family_ids: list[str]) -> dict[str, list[MemberRecord]]:
        by_family: dict[str, list[MemberRecord]] = {fid: [] for fid in family_ids}
        if not family_ids:
            return by_family
        cur.execute(
            "SELECT * FROM members WHERE family_id = ANY(%s::uuid[]) ORDER BY position, id",
            (family_ids,),
        )
        for row in cur.fetchall():
            by_family.setdefault(str(row["family_id"]), []).append(_member_from_row(row))
        return by_family

    # ------------------------------------------------------------------
    # Households
    # ------------------------------------------------------------------

    def exists_by_household_number(self, household_number: str) -> bool:
        with self._transaction() as cur:
            cur.execute("SELECT 1 FROM families WHERE nomor_kk = %s LIMIT 1", (household_number,))
            return cur.fetchone() is not None

    def create_household(self, record: HouseholdRecord) -> str:
        try:
            record.validate_for_creation()
        except ValueError as e:
            raise InvalidHouseholdError(str(e)) from e
        now = datetime.now(UTC)
        verified_at = now if record.verification_status is VerificationStatus.VERIFIED else None
        with self._transaction(record.household_number) as cur:
            cur.execute(
                """
                INSERT INTO families
                  (nomor_kk, alamat_kk, wilayah_pelayanan, status,
                   registration_date, verified_at, verified_by)
                VALUES (%s, %s, %s, %s, %s, %s, %s)
                RETURNING id
                """,
                (
                    record.household_number,
                    record.address,
                    record.service_sector.value,
                    record.verification_status.value,
                    record.registered_at or now,
                    record.verified_at or verified_at,
                    record.verified_by,
                ),
            )
            family_id = str(cur.fetchone()["id"])
            # 住所未入力の場合は KK 住所で補完
            members = [
                m if m.domicile_address else _with_address(m, record.address)
                for m in record.members
            ]
            self._insert_members(cur, family_id, members)
        logger.debug("created household %s id=%s members=%d", record.household_number, family_id, len(members))
        return family_id

    def list_all_households(self) -> list[HouseholdRecord]:
        with self._transaction() as cur:
            cur.execute(f"SELECT {','.join(FAMILY_COLUMNS)} FROM families ORDER BY registration_date DESC")
            families = cur.fetchall()
            members = self._fetch_members(cur, [str(f["id"]) for f in families])
        return [_household_from_row(f, members.get(str(f["id"]), [])) for f in families]

    def get_household_by_number(self, household_number: str) -> HouseholdRecord | None:
        with self._transaction() as cur:
            cur.execute(
                f"SELECT {','.join(FAMILY_COLUMNS)} FROM families WHERE nomor_kk = %s",
                (household_number,),
            )
            row = cur.fetchone()
            if row is None:
                return None
            members = self._fetch_members(cur, [str(row["id"])])
        return _household_from_row(row, members.get(str(row["id"]), []))

    def update_household(self, household_id: str, patch: dict[str, Any]) -> None:
        patch = check_patch(patch)
        if not patch:
            return
        assignments = []
        params: list[Any] = []
        for key, value in patch.items():
            assignments.append(f"{HOUSEHOLD_PATCH_COLUMNS[key]} = %s")
            params.append(value.value if isinstance(value, Enum) else value)
        params.append(household_id)
        with self._transaction(patch.get("household_number")) as cur:
            cur.execute(f"UPDATE families SET {', '.join(assignments)} WHERE id = %s", params)
            if cur.rowcount == 0:
                raise HouseholdNotFoundError(f"household {household_id} not found")

    def update_verification_status(
        self, household_id: str, status: VerificationStatus, actor_id: str | None = None
    ) -> None:
        if status is VerificationStatus.VERIFIED:
            verified_at, verified_by = datetime.now(UTC), actor_id
        else:
            verified_at, verified_by = None, None
        with self._transaction() as cur:
            cur.execute(
                "UPDATE families SET status = %s, verified_at = %s, verified_by = %s WHERE id = %s RETURNING id",
                (status.value, verified_at, verified_by, household_id),
            )
            # RLS で弾かれた場合も 0 行になる
            if cur.fetchone() is None:
                raise HouseholdNotFoundError(
                    f"status update affected no household {household_id} (missing or not permitted)"
                )

    def delete_household(self, household_id: str) -> None:
        with self._transaction() as cur:
            cur.execute("DELETE FROM members WHERE family_id = %s", (household_id,))
            cur.execute("DELETE FROM families WHERE id = %s", (household_id,))
            if cur.rowcount == 0:
                raise HouseholdNotFoundError(f"household {household_id} not found")

    # ------------------------------------------------------------------
    # Members
    # ------------------------------------------------------------------

    def add_member(self, household_id: str, member: MemberRecord) -> MemberRecord:
        with self._transaction() as cur:
            cur.execute("SELECT COALESCE(MAX(position) + 1, 0) AS next FROM members WHERE family_id = %s", (household_id,))
            position = cur.fetchone()["next"]
            cur.execute("SELECT 1 FROM families WHERE id = %s", (household_id,))
            if cur.fetchone() is None:
                raise HouseholdNotFoundError(f"household {household_id} not found")
            ids = self._insert_members(cur, household_id, [member], start=position)
        return MemberRecord(**{**member.__dict__, "id": ids[0], "household_id": household_id})

    def update_member(self, member: MemberRecord) -> None:
        if member.id is None:
            raise MemberNotFoundError("member has no id")
        params = _member_params(member, member.household_id or "", 0)[1:-1]
        assignments = ", ".join(f"{col} = %s" for col in MEMBER_COLUMNS)
        with self._transaction() as cur:
            cur.execute(f"UPDATE members SET {assignments} WHERE id = %s", (*params, member.id))
            if cur.rowcount == 0:
                raise MemberNotFoundError(f"member {member.id} not found")

    def delete_member(self, member_id: str) -> None:
        with self._transaction() as cur:
            cur.execute("SELECT hubungan_keluarga FROM members WHERE id = %s", (member_id,))
            row = cur.fetchone()
            if row is None:
                raise MemberNotFoundError(f"member {member_id} not found")
            if row["hubungan_keluarga"] == FamilyRelationship.HEAD.value:
                raise HeadMemberError("cannot remove the head of household without deleting the household")
            cur.execute("DELETE FROM members WHERE id = %s", (member_id,))


def _with_address(member: MemberRecord, address: str) -> MemberRecord:
    return MemberRecord(**{**member.__dict__, "domicile_address": address or None})

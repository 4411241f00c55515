"""Patient identity resolution across the lab's patient tables.

Patient demographics live in several tables with different column names
(appointments carry ``patient_name``, the user master carries ``name``,
``age``, ``gender`` and ``date_of_birth``, walk-ins carry their own copy).
The resolver asks each source in priority order and fills only the fields
that are still empty, so a higher-priority source always wins.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Callable, Iterable, Sequence

from ..errors import DataAccessError, SourcesUnavailableError
from .data_access import OrderBy, Row, TabularDataAccess

logger = logging.getLogger(__name__)

IDENTITY_FIELDS = ("name", "age", "gender")

# Historic column names for the same logical field, most specific first
NAME_COLUMNS = ("patient_name", "name", "full_name")
AGE_COLUMNS = ("age", "patient_age")
GENDER_COLUMNS = ("gender", "patient_gender", "sex")
DOB_COLUMNS = ("date_of_birth", "dob")


@dataclass
class PatientIdentity:
    name: str | None = None
    age: int | None = None
    gender: str | None = None
    # Source of the first non-empty name
    source: str | None = None
    sources: list[str] = field(default_factory=list)

    def missing(self) -> list[str]:
        return [f for f in IDENTITY_FIELDS if _is_empty(getattr(self, f))]

    def is_complete(self) -> bool:
        return not self.missing()

    def is_empty(self) -> bool:
        return len(self.missing()) == len(IDENTITY_FIELDS)


def _is_empty(value: object) -> bool:
    if value is None:
        return True
    return isinstance(value, str) and not value.strip()


def _first(row: Row, columns: Iterable[str]) -> object:
    for col in columns:
        v = row.get(col)
        if not _is_empty(v):
            return v
    return None


def _as_text(value: object) -> str | None:
    if _is_empty(value):
        return None
    return str(value).strip()


def _as_age(value: object) -> int | None:
    if _is_empty(value) or isinstance(value, bool):
        return None
    try:
        age = int(float(str(value).strip()))
    except (ValueError, OverflowError):
        return None
    return age if age >= 0 else None


def _parse_date(value: object) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError:
        return None


def calculate_age(dob: date | datetime | str | None, today: date | None = None) -> int | None:
    """Age in whole years on ``today``; one less if the birthday is still ahead."""
    birth = _parse_date(dob)
    if birth is None:
        return None
    today = today or date.today()
    age = today.year - birth.year
    if (today.month, today.day) < (birth.month, birth.day):
        age -= 1
    return age if age >= 0 else None


class IdentitySource:
    """One table that may know a patient's name, age or gender."""

    name: str = "source"
    fields: tuple[str, ...] = IDENTITY_FIELDS

    def __init__(self, table: str) -> None:
        self.table = table

    def can_lookup(self, patient_id: str | None, appointment_id: str | None) -> bool:
        return bool(patient_id)

    async def lookup(
        self,
        data: TabularDataAccess,
        patient_id: str | None,
        appointment_id: str | None,
    ) -> Row | None:
        return await data.query_one(self.table, {"mrno": patient_id})

    def extract(self, row: Row, today: date) -> dict[str, object]:
        """Map a raw row onto identity fields this source is trusted for."""
        out: dict[str, object] = {}
        if "name" in self.fields:
            out["name"] = _as_text(_first(row, NAME_COLUMNS))
        if "age" in self.fields:
            age = _as_age(_first(row, AGE_COLUMNS))
            if age is None:
                age = calculate_age(_first(row, DOB_COLUMNS), today)
            out["age"] = age
        if "gender" in self.fields:
            out["gender"] = _as_text(_first(row, GENDER_COLUMNS))
        return {k: v for k, v in out.items() if not _is_empty(v)}

    def __repr__(self) -> str:
        return f"{type(self).__name__}(table={self.table!r})"


class AppointmentSource(IdentitySource):
    """Most recent appointment, by appointment id when known. Trusted for the name only."""

    name = "appointments"
    fields = ("name",)

    def can_lookup(self, patient_id: str | None, appointment_id: str | None) -> bool:
        return bool(patient_id or appointment_id)

    async def lookup(self, data, patient_id, appointment_id):
        filters = {"appointment_id": appointment_id} if appointment_id else {"mrno": patient_id}
        return await data.query_one(self.table, filters, order_by=OrderBy("created_at"))


class PatientMasterSource(IdentitySource):
    name = "users"


class WalkInSource(IdentitySource):
    name = "walk_in_patients"


def default_sources(
    appointments_table: str = "appointments",
    patients_table: str = "users",
    walk_in_table: str = "walk_in_patients",
) -> list[IdentitySource]:
    return [
        AppointmentSource(appointments_table),
        PatientMasterSource(patients_table),
        WalkInSource(walk_in_table),
    ]


class PatientResolver:
    """Resolve a PatientIdentity from an ordered chain of identity sources."""

    def __init__(
        self,
        data: TabularDataAccess,
        sources: Sequence[IdentitySource] | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.data = data
        self.sources = list(sources) if sources is not None else default_sources()
        self.today = today

    async def resolve(
        self,
        patient_id: str | None,
        appointment_id: str | None = None,
    ) -> PatientIdentity | None:
        """
        Look the patient up in each source until name, age and gender are known.

        Returns None when no source knows anything about the patient. Raises
        SourcesUnavailableError only when every queried source failed.
        """
        patient_id = (patient_id or "").strip() or None
        appointment_id = (appointment_id or "").strip() or None
        if not patient_id and not appointment_id:
            return None

        identity = PatientIdentity()
        today = self.today()
        queried = 0
        errors: list[DataAccessError] = []

        for source in self.sources:
            if identity.is_complete():
                break
            if not source.can_lookup(patient_id, appointment_id):
                continue
            queried += 1
            try:
                row = await source.lookup(self.data, patient_id, appointment_id)
            except DataAccessError as e:
                errors.append(e)
                # Error text can echo filter values, so only table and status are logged
                logger.warning(
                    f"Patient lookup in {source.name} failed (table={e.table}, status={e.status})"
                )
                continue
            if not row:
                continue

            contributed = self._merge(identity, source, source.extract(row, today))
            if contributed:
                identity.sources.append(source.name)
                logger.info(f"Patient fields {contributed} filled from {source.name}")

        if queried and len(errors) == queried:
            raise SourcesUnavailableError(errors)

        if identity.is_empty():
            logger.info(f"No patient data found in {queried} queried sources")
            return None
        return identity

    @staticmethod
    def _merge(identity: PatientIdentity, source: IdentitySource, found: dict[str, object]) -> list[str]:
        filled: list[str] = []
        for key, value in found.items():
            if _is_empty(getattr(identity, key)):
                setattr(identity, key, value)
                filled.append(key)
        if "name" in filled and identity.source is None:
            identity.source = source.name
        return filled

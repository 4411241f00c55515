import asyncio
from datetime import date, datetime

import pytest

from labdesk.errors import DataAccessError, SourcesUnavailableError
from labdesk.services.data_access import InMemoryDataAccess
from labdesk.services.patient_resolver import (
    AppointmentSource,
    PatientResolver,
    calculate_age,
)

TODAY = date(2026, 1, 15)


def make_resolver(tables):
    data = InMemoryDataAccess(tables)
    return PatientResolver(data, today=lambda: TODAY), data


def resolve(resolver, mrno, appointment_id=None):
    return asyncio.run(resolver.resolve(mrno, appointment_id))


def all_tables(appointments=(), users=(), walk_ins=()):
    return {
        "appointments": list(appointments),
        "users": list(users),
        "walk_in_patients": list(walk_ins),
    }


def test_calculate_age_birthday_not_yet_reached():
    assert calculate_age(date(2000, 1, 20), TODAY) == 25
    assert calculate_age(date(2000, 1, 10), TODAY) == 26
    assert calculate_age(date(2000, 1, 15), TODAY) == 26


def test_calculate_age_accepts_strings_and_datetimes():
    assert calculate_age("2000-01-20", TODAY) == 25
    assert calculate_age("2000-01-10T08:30:00+00:00", TODAY) == 26
    assert calculate_age(datetime(1990, 12, 31, 23, 0), TODAY) == 35
    assert calculate_age("not a date", TODAY) is None
    assert calculate_age(None, TODAY) is None
    assert calculate_age("2030-01-01", TODAY) is None


def test_higher_priority_name_is_never_overwritten():
    resolver, _ = make_resolver(
        all_tables(
            appointments=[{"mrno": "MR1", "patient_name": "Alice", "created_at": "2025-01-01"}],
            users=[{"mrno": "MR1", "name": "Bob", "age": 40, "gender": "F"}],
        )
    )
    identity = resolve(resolver, "MR1")
    assert identity.name == "Alice"
    assert identity.source == "appointments"
    assert identity.age == 40
    assert identity.gender == "F"
    assert identity.sources == ["appointments", "users"]


def test_appointment_source_contributes_name_only():
    resolver, _ = make_resolver(
        all_tables(
            appointments=[
                {"mrno": "MR1", "patient_name": "Alice", "age": 99, "gender": "X", "created_at": "2025-01-01"}
            ],
            users=[{"mrno": "MR1", "name": "Alice A.", "age": 31, "gender": "Female"}],
        )
    )
    identity = resolve(resolver, "MR1")
    assert (identity.name, identity.age, identity.gender) == ("Alice", 31, "Female")


def test_early_exit_once_complete():
    resolver, data = make_resolver(
        all_tables(
            appointments=[{"mrno": "MR1", "patient_name": "Alice", "created_at": "2025-01-01"}],
            users=[{"mrno": "MR1", "name": "Alice", "age": 30, "gender": "F"}],
            walk_ins=[{"mrno": "MR1", "name": "Someone", "age": 1, "gender": "M"}],
        )
    )
    identity = resolve(resolver, "MR1")
    assert identity.is_complete()
    assert [table for table, _ in data.calls] == ["appointments", "users"]


def test_no_further_queries_when_first_source_completes():
    class FullAppointmentSource(AppointmentSource):
        fields = ("name", "age", "gender")

    data = InMemoryDataAccess(
        all_tables(
            appointments=[
                {"mrno": "MR1", "patient_name": "Alice", "age": 30, "gender": "F", "created_at": "2025-01-01"}
            ],
            users=[{"mrno": "MR1", "name": "Bob", "age": 40, "gender": "M"}],
        )
    )
    resolver = PatientResolver(data, today=lambda: TODAY)
    resolver.sources[0] = FullAppointmentSource("appointments")
    identity = resolve(resolver, "MR1")
    assert (identity.name, identity.age, identity.gender) == ("Alice", 30, "F")
    assert len(data.calls) == 1


def test_not_found_returns_none():
    resolver, data = make_resolver(all_tables())
    assert resolve(resolver, "MR404") is None
    assert len(data.calls) == 3


def test_blank_identifiers_skip_lookup():
    resolver, data = make_resolver(all_tables())
    assert resolve(resolver, "  ", None) is None
    assert data.calls == []


def test_appointment_id_preferred_over_mrno():
    resolver, data = make_resolver(
        all_tables(
            appointments=[
                {"appointment_id": "AP1", "mrno": "MR1", "patient_name": "By Appointment", "created_at": "2025-01-01"},
                {"appointment_id": "AP2", "mrno": "MR1", "patient_name": "Newer", "created_at": "2025-06-01"},
            ],
        )
    )
    identity = resolve(resolver, "MR1", "AP1")
    assert identity.name == "By Appointment"
    assert data.calls[0] == ("appointments", {"appointment_id": "AP1"})


def test_most_recent_appointment_wins_by_mrno():
    resolver, _ = make_resolver(
        all_tables(
            appointments=[
                {"mrno": "MR1", "patient_name": "Old Name", "created_at": "2024-01-01T10:00:00"},
                {"mrno": "MR1", "patient_name": "New Name", "created_at": "2025-03-01T10:00:00"},
            ],
        )
    )
    assert resolve(resolver, "MR1").name == "New Name"


def test_appointment_only_lookup_without_mrno():
    resolver, data = make_resolver(
        all_tables(appointments=[{"appointment_id": "AP9", "patient_name": "Walk Up", "created_at": "2025-01-01"}])
    )
    identity = resolve(resolver, None, "AP9")
    assert identity.name == "Walk Up"
    assert identity.age is None
    # users and walk-ins are keyed by mrno only
    assert [table for table, _ in data.calls] == ["appointments"]


def test_age_derived_from_date_of_birth():
    resolver, _ = make_resolver(
        all_tables(users=[{"mrno": "MR2", "name": "Dana", "age": None, "date_of_birth": "2000-01-20", "gender": "F"}])
    )
    identity = resolve(resolver, "MR2")
    assert identity.age == 25
    assert identity.source == "users"


def test_walk_in_fills_remaining_fields():
    resolver, _ = make_resolver(
        all_tables(
            users=[{"mrno": "MR3", "name": "Eve", "age": "", "gender": ""}],
            walk_ins=[{"mrno": "MR3", "name": "Eve W.", "age": "52", "gender": "Female"}],
        )
    )
    identity = resolve(resolver, "MR3")
    assert (identity.name, identity.age, identity.gender) == ("Eve", 52, "Female")
    assert identity.sources == ["users", "walk_in_patients"]


def test_historic_column_names_are_read():
    resolver, _ = make_resolver(
        all_tables(walk_ins=[{"mrno": "MR4", "full_name": "Frank", "patient_age": 61, "sex": "M"}])
    )
    identity = resolve(resolver, "MR4")
    assert (identity.name, identity.age, identity.gender) == ("Frank", 61, "M")
    assert identity.source == "walk_in_patients"


def test_partial_data_without_name_is_returned():
    resolver, _ = make_resolver(all_tables(users=[{"mrno": "MR5", "age": 7, "gender": "M"}]))
    identity = resolve(resolver, "MR5")
    assert identity.name is None
    assert identity.source is None
    assert identity.age == 7


def test_failing_source_does_not_abort_resolution():
    # No appointments table at all: that source fails, the others still answer
    resolver, _ = make_resolver(
        {
            "users": [{"mrno": "MR6", "name": "Gina", "age": 44, "gender": "F"}],
            "walk_in_patients": [],
        }
    )
    identity = resolve(resolver, "MR6")
    assert identity.name == "Gina"
    assert identity.source == "users"


def test_failures_and_not_found_return_none():
    resolver, _ = make_resolver({"walk_in_patients": []})
    assert resolve(resolver, "MR7") is None


def test_all_sources_failing_raises():
    resolver, _ = make_resolver({})
    with pytest.raises(SourcesUnavailableError) as exc:
        resolve(resolver, "MR8")
    assert len(exc.value.errors) == 3
    assert all(isinstance(e, DataAccessError) for e in exc.value.errors)

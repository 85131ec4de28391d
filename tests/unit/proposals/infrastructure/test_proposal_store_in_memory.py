from datetime import timedelta

import pytest

from src.core.proposals import ProposalFilters
from src.infrastructure.proposals import InMemoryClinicDirectory, InMemoryProposalStore
from tests.factories import BASE_TIME, clinic, proposal_record


def _all(_proposal):
    return True


def test_in_memory_store_round_trip_returns_copies():
    store = InMemoryProposalStore()
    inserted = store.insert(proposal_record("pp_1", notes="original"))

    inserted.notes = "mutated outside"
    fetched = store.get(proposal_id="pp_1")
    fetched.notes = "mutated again"

    assert store.get(proposal_id="pp_1").notes == "original"
    assert store.get(proposal_id="pp_missing") is None


def test_in_memory_store_rejects_duplicate_ids():
    store = InMemoryProposalStore()
    store.insert(proposal_record("pp_1"))

    with pytest.raises(ValueError):
        store.insert(proposal_record("pp_1"))


def test_in_memory_conditional_update_checks_version():
    store = InMemoryProposalStore()
    store.insert(proposal_record("pp_1"))
    updated = proposal_record("pp_1", status="approved", version=2)

    stale = store.conditional_update(proposal_id="pp_1", expected_version=5, proposal=updated)
    assert stale is None
    assert store.get(proposal_id="pp_1").status == "pending"
    assert store.conditional_update(proposal_id="pp_1", expected_version=1, proposal=updated)
    assert store.get(proposal_id="pp_1").version == 2
    assert (
        store.conditional_update(proposal_id="pp_missing", expected_version=1, proposal=updated)
        is None
    )


def test_in_memory_find_applies_filters_then_predicate_newest_first():
    store = InMemoryProposalStore()
    for index, (status, clinic_id, creator_id) in enumerate(
        [
            ("pending", "clinic_1", "usr_a"),
            ("approved", "clinic_1", "usr_b"),
            ("pending", "clinic_2", "usr_a"),
            ("pending", "clinic_1", "usr_a"),
        ]
    ):
        store.insert(
            proposal_record(
                f"pp_{index}",
                status=status,
                clinic_id=clinic_id,
                creator_id=creator_id,
                created_at=BASE_TIME + timedelta(days=index),
                notes="Whitening kit" if index == 2 else None,
            )
        )

    rows = store.find(
        predicate=lambda row: row.clinic_id == "clinic_1",
        filters=ProposalFilters(status="pending", created_by="usr_a"),
    )
    assert [row.proposal_id for row in rows] == ["pp_3", "pp_0"]

    windowed = store.find(
        predicate=_all,
        filters=ProposalFilters(
            created_from=BASE_TIME + timedelta(days=1), created_to=BASE_TIME + timedelta(days=2)
        ),
    )
    assert [row.proposal_id for row in windowed] == ["pp_2", "pp_1"]
    assert [
        row.proposal_id
        for row in store.find(predicate=_all, filters=ProposalFilters(search="whiten"))
    ] == ["pp_2"]
    assert [
        row.proposal_id
        for row in store.find(predicate=_all, filters=ProposalFilters(clinic_id="clinic_2"))
    ] == ["pp_2"]


def test_in_memory_clinic_directory_lookups():
    directory = InMemoryClinicDirectory([clinic("clinic_1", "region_1")])
    directory.upsert_clinic(clinic("clinic_2", None, status="inactive"))

    assert directory.region_of(clinic_id="clinic_1") == "region_1"
    assert directory.region_of(clinic_id="clinic_2") is None
    assert directory.region_of(clinic_id="clinic_missing") is None
    assert directory.get_clinic(clinic_id="clinic_2").status == "inactive"
    assert [item.clinic_id for item in directory.list_clinics()] == ["clinic_1", "clinic_2"]


def test_in_memory_find_search_includes_named_clinic_ids():
    store = InMemoryProposalStore()
    store.insert(proposal_record("pp_1", clinic_id="clinic_1"))
    store.insert(
        proposal_record("pp_2", clinic_id="clinic_2", created_at=BASE_TIME + timedelta(hours=1))
    )

    named = store.find(
        predicate=_all, filters=ProposalFilters(search="smile", search_clinic_ids=["clinic_2"])
    )

    assert [row.proposal_id for row in named] == ["pp_2"]
    assert store.find(predicate=_all, filters=ProposalFilters(search="smile")) == []


def test_in_memory_clinic_directory_searches_names():
    directory = InMemoryClinicDirectory(
        [
            clinic("clinic_1", "region_1", name="Ankara Dental Clinic"),
            clinic("clinic_2", "region_2", name="Izmir Smile Clinic"),
            clinic("clinic_3", "region_2"),
        ]
    )

    assert directory.search_clinic_ids(search="SMILE") == ["clinic_2"]
    assert directory.search_clinic_ids(search=" clinic ") == ["clinic_1", "clinic_2"]
    assert directory.search_clinic_ids(search="") == []


def test_proposal_filters_read_naive_bounds_as_utc():
    filters = ProposalFilters(created_from=BASE_TIME.replace(tzinfo=None), created_to=None)

    assert filters.created_from == BASE_TIME
    assert filters.created_from.tzinfo is not None
    assert filters.created_to is None

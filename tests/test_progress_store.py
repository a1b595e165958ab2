from datetime import date

from gbp_harvest.models import ConfigurationRow, Location
from gbp_harvest.progress_store import (
    ProgressStore,
    is_terminal,
    marker_date,
    plain_marker,
    terminal_marker,
)

BOUNDARY = date(2024, 3, 8)
PASS_START = date(2024, 2, 23)


def _location(marker: str, loc_id: int = 1) -> Location:
    return Location(id=loc_id, account="accounts/1", name=f"locations/{loc_id}", last_insights_update=marker)


#============================================
def test_marker_formats() -> None:
    assert plain_marker(BOUNDARY) == "2024-03-08"
    assert terminal_marker(BOUNDARY) == "d-2024-03-08"


#============================================
def test_is_terminal_matches_only_the_tagged_form() -> None:
    assert is_terminal("d-2024-03-08")
    assert not is_terminal("2024-03-08")
    assert not is_terminal("")
    assert not is_terminal(None)
    assert not is_terminal("d-2024-3-8")
    assert not is_terminal("xd-2024-03-08")


#============================================
def test_marker_date_reads_both_forms() -> None:
    assert marker_date("2024-03-01") == date(2024, 3, 1)
    assert marker_date("d-2024-03-08") == BOUNDARY
    assert marker_date("") is None
    assert marker_date("garbage") is None


#============================================
def test_all_terminal_is_false_for_empty_list() -> None:
    """
    An empty location table must never count as a completed harvest.
    """
    assert not ProgressStore.all_terminal([])
    assert ProgressStore.all_terminal([_location("d-2024-03-08")])
    assert not ProgressStore.all_terminal([_location("d-2024-03-08"), _location("2024-03-01", 2)])


#============================================
def test_get_reads_missing_marker_as_never_processed() -> None:
    assert ProgressStore.get(_location(None)) == ""
    assert ProgressStore.get(_location("2024-03-01")) == "2024-03-01"


#============================================
def test_commit_covered_stores_rows_with_markers(db) -> None:
    db.add_location("accounts/1", "locations/1")
    location = db.fetch_locations()[0]

    ProgressStore(db).commit_covered([location], "d-2024-03-08", ["row"])

    assert db.insights == ["row"]
    assert db.markers() == ["d-2024-03-08"]
    assert ProgressStore.get(location) == "d-2024-03-08"


#============================================
def test_set_persists_and_updates_snapshots(db) -> None:
    loc_id = db.add_location("accounts/1", "locations/1")
    location = db.fetch_locations()[0]

    ProgressStore(db).set([location], "2024-03-01")

    assert location.last_insights_update == "2024-03-01"
    assert db.markers() == ["2024-03-01"]
    assert db.marker_history == [(loc_id, "2024-03-01")]


#============================================
def test_coverage_start_from_markers() -> None:
    assert ProgressStore.coverage_start(_location(""), PASS_START, BOUNDARY) == PASS_START
    assert ProgressStore.coverage_start(_location("2024-03-01"), PASS_START, BOUNDARY) == date(2024, 3, 1)
    assert ProgressStore.coverage_start(_location("d-2024-03-08"), PASS_START, BOUNDARY) is None
    assert ProgressStore.coverage_start(_location("2024-03-08"), PASS_START, BOUNDARY) is None


#============================================
def test_coverage_start_ignores_markers_older_than_the_pass() -> None:
    assert ProgressStore.coverage_start(_location("2023-01-06"), PASS_START, BOUNDARY) == PASS_START
    assert ProgressStore.coverage_start(_location("not-a-date"), PASS_START, BOUNDARY) == PASS_START


#============================================
def test_harvest_boundary_comes_from_first_configuration_row() -> None:
    rows = [
        ConfigurationRow(id=1, account_name="A", account_number="accounts/1", last_location_update="d-2024-03-08"),
        ConfigurationRow(id=2, account_name="B", account_number="accounts/2", last_location_update="d-2024-03-09"),
    ]
    assert ProgressStore.harvest_boundary(rows) == BOUNDARY
    assert ProgressStore.harvest_boundary([]) is None


#============================================
def test_listing_markers(db) -> None:
    db.add_configuration("accounts/1")
    db.add_configuration("accounts/2", marker="d-2024-03-08")
    store = ProgressStore(db)

    rows = db.fetch_configuration_rows()
    pending = store.listing_pending(rows)
    assert [row.account_number for row in pending] == ["accounts/1"]
    assert not store.all_listed(rows)

    store.mark_listed(pending[0], BOUNDARY)
    assert store.all_listed(db.fetch_configuration_rows())

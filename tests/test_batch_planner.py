from datetime import date

from gbp_harvest.batch_planner import BatchPlanner
from gbp_harvest.models import Location
from gbp_harvest.utils.windows import Window

BOUNDARY = date(2024, 3, 8)
WINDOW = Window(date(2024, 3, 1), date(2024, 3, 8))


def _locations(accounts):
    return [
        Location(id=index + 1, account=account, name=f"locations/{index + 1}")
        for index, account in enumerate(accounts)
    ]


def _pending(locations, first_day=WINDOW.first_day):
    return {loc.id: first_day for loc in locations}


#============================================
def test_batches_partition_one_account_completely() -> None:
    """
    Starting at 0, 5, 10 ... batches cover every location exactly once.
    """
    locations = _locations(["accounts/1"] * 12)
    planner = BatchPlanner()
    coverage = _pending(locations)

    seen = []
    index = 0
    starts = []
    while True:
        batch = planner.next_batch(locations, index, WINDOW, coverage)
        if not batch:
            break
        starts.append(index)
        seen.extend(loc.id for loc in batch.locations.values())
        index = batch.next_index

    assert starts == [0, 5, 10]
    assert seen == [loc.id for loc in locations]


#============================================
def test_batch_never_spans_accounts() -> None:
    locations = _locations(["accounts/1"] * 3 + ["accounts/2"] * 4)
    planner = BatchPlanner()
    coverage = _pending(locations)

    first = planner.next_batch(locations, 0, WINDOW, coverage)
    second = planner.next_batch(locations, first.next_index, WINDOW, coverage)

    assert first.account == "accounts/1"
    assert list(first.locations) == ["locations/1", "locations/2", "locations/3"]
    assert first.next_index == 3
    assert second.account == "accounts/2"
    assert len(second) == 4


#============================================
def test_batch_skips_caught_up_locations() -> None:
    locations = _locations(["accounts/1"] * 4)
    coverage = _pending(locations)
    coverage[1] = None
    coverage[3] = date(2024, 3, 8)

    batch = BatchPlanner().next_batch(locations, 0, WINDOW, coverage)
    assert list(batch.locations) == ["locations/2", "locations/4"]
    assert batch.next_index == 4


#============================================
def test_empty_batch_when_nothing_is_left() -> None:
    locations = _locations(["accounts/1"] * 2)
    coverage = {loc.id: None for loc in locations}

    batch = BatchPlanner().next_batch(locations, 0, WINDOW, coverage)
    assert not batch
    assert batch.account is None
    assert batch.next_index == len(locations)


#============================================
def test_batch_size_is_configurable() -> None:
    locations = _locations(["accounts/1"] * 4)
    batch = BatchPlanner(max_batch_size=2).next_batch(locations, 0, WINDOW, _pending(locations))
    assert len(batch) == 2
    assert batch.next_index == 2


#============================================
def test_resync_and_resume_window_pick_least_progressed() -> None:
    """
    The covering loop restarts at the window of the least-progressed location.
    """
    locations = _locations(["accounts/1"] * 3)
    locations[0].last_insights_update = "2024-03-01"
    locations[1].last_insights_update = ""
    locations[2].last_insights_update = "d-2024-03-08"

    coverage = BatchPlanner.resync(locations, date(2024, 2, 23), BOUNDARY)
    assert coverage == {1: date(2024, 3, 1), 2: date(2024, 2, 23), 3: None}
    assert BatchPlanner.resume_window(coverage) == Window(date(2024, 2, 23), date(2024, 3, 1))
    assert BatchPlanner.resume_window({1: None}) is None

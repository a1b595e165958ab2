from datetime import date

import pytest

from gbp_harvest.locations_ingestor import (
    LocationsIngestor,
    add_configuration,
    collect_accounts,
    listing_date,
    location_row,
    set_retention_weeks,
)
from gbp_harvest.utils.windows import ConfigurationError

TODAY = date(2024, 3, 15)


def _api_location(number: int, **overrides):
    loc = {
        'name': f"locations/{number}",
        'title': f"Store {number}",
        'storeCode': f"S{number}",
        'openInfo': {'status': 'OPEN'},
        'storefrontAddress': {'regionCode': 'IT'},
        'categories': {'primaryCategory': {'displayName': 'Cafe'}},
    }
    loc.update(overrides)
    return loc


#============================================
def test_listing_date_lags_one_week() -> None:
    assert listing_date(TODAY) == date(2024, 3, 8)


#============================================
def test_location_row_defaults_missing_fields() -> None:
    row = location_row("accounts/1", {'name': "locations/9"})
    assert row == {
        'account': "accounts/1",
        'name': "locations/9",
        'location_name': None,
        'store_code': None,
        'status': 'N/A',
        'region': 'N/A',
        'category_name': 'N/A',
    }


#============================================
def test_refresh_lists_every_pending_row(db, client) -> None:
    """
    Each pending configuration row gets its locations replaced and a terminal
    listing marker one week before today.
    """
    db.add_configuration("accounts/1")
    db.add_configuration("accounts/2")
    client.location_pages = {
        "accounts/1": [
            {'locations': [_api_location(1), _api_location(2)], 'nextPageToken': 'p2'},
            {'locations': [_api_location(3)]},
        ],
        "accounts/2": [{'locations': [_api_location(4)]}],
    }

    done = LocationsIngestor(db, client).refresh_locations(TODAY)

    assert done
    assert [loc.name for loc in db.fetch_locations()] == [
        "locations/1", "locations/2", "locations/3", "locations/4"
    ]
    assert [row.last_location_update for row in db.fetch_configuration_rows()] == ["d-2024-03-08"] * 2
    assert db.fetch_locations()[3].account == "accounts/2"


#============================================
def test_refresh_is_idempotent_per_row(db, client) -> None:
    config_id = db.add_configuration("accounts/1")
    client.location_pages = {"accounts/1": [{'locations': [_api_location(1)]}]}
    ingestor = LocationsIngestor(db, client)

    ingestor.refresh_locations(TODAY)
    db.update_listing_marker(config_id, "")
    ingestor.refresh_locations(TODAY)

    assert len(db.fetch_locations()) == 1


#============================================
def test_refresh_skips_already_listed_rows(db, client) -> None:
    db.add_configuration("accounts/1", marker="d-2024-03-08")
    assert LocationsIngestor(db, client).refresh_locations(TODAY)
    assert client.location_calls == []


#============================================
def test_error_page_leaves_row_pending(db, client) -> None:
    db.add_configuration("accounts/1")
    client.location_pages = {"accounts/1": [
        {'locations': [_api_location(1)], 'nextPageToken': 'p2'},
        {'error': {'code': 429, 'message': 'Quota exceeded'}},
    ]}

    done = LocationsIngestor(db, client).refresh_locations(TODAY)

    assert not done
    assert db.fetch_locations() == []
    assert db.fetch_configuration_rows()[0].last_location_update == ""
    assert any("Quota exceeded" in message for message in db.log_messages())


#============================================
def test_filters_are_passed_to_the_listing(db, client) -> None:
    db.insert_configuration("Brand", "accounts/1", "OPEN", "IT")
    LocationsIngestor(db, client).refresh_locations(TODAY)
    assert client.location_calls == [("accounts/1", "OPEN", "IT")]


#============================================
def test_row_without_account_is_marked_listed(db, client) -> None:
    db.insert_configuration("Unknown", "", None, None)
    assert LocationsIngestor(db, client).refresh_locations(TODAY)
    assert client.location_calls == []


#============================================
def test_collect_accounts_clears_configuration(db, client) -> None:
    db.add_configuration("accounts/1")
    client.accounts = [
        {'name': "accounts/1", 'accountName': "Brand"},
        {'name': "accounts/2", 'accountName': "Other"},
    ]

    assert collect_accounts(db, client) == 2
    assert db.fetch_configuration_rows() == []
    assert [acc['name'] for acc in db.fetch_accounts()] == ["accounts/1", "accounts/2"]


#============================================
def test_add_configuration_resolves_account_number(db) -> None:
    db.replace_accounts([{'name': "accounts/7", 'accountName': "Brand"}])

    row = add_configuration(db, "Brand", "OPEN", " it ")

    assert row.account_number == "accounts/7"
    assert row.filter_region == "IT"
    assert db.fetch_configuration_rows()[0].filter_status == "OPEN"


#============================================
def test_add_configuration_rejects_unknown_input(db) -> None:
    db.replace_accounts([{'name': "accounts/7", 'accountName': "Brand"}])
    with pytest.raises(ConfigurationError):
        add_configuration(db, "Missing")
    with pytest.raises(ConfigurationError):
        add_configuration(db, "Brand", filter_status="MAYBE")
    assert db.fetch_configuration_rows() == []


#============================================
def test_set_retention_weeks_validates(db) -> None:
    assert set_retention_weeks(db, "26") == 26
    assert db.fetch_setting("retention_weeks") == "26"
    with pytest.raises(ConfigurationError):
        set_retention_weeks(db, -1)
    assert db.fetch_setting("retention_weeks") == "26"

"""
Shared in-memory stand-ins for the tabular store and the GBP API.
"""

import pytest

from gbp_harvest.models import ConfigurationRow, Location


#============================================
class FakeDatabase:
    """Implements the DatabasePersistence methods the harvest uses."""

    def __init__(self):
        self.settings = {}
        self.token = None
        self.accounts = []
        self.configuration = []
        self.locations = []
        self.insights = []
        self.log = []
        self.triggers = {}
        self.marker_history = []
        self._next_config_id = 1
        self._next_location_id = 1

    # settings & token
    def fetch_setting(self, key):
        return self.settings.get(key)

    def upsert_setting(self, key, value):
        self.settings[key] = value

    def upsert_gbp_token(self, token):
        self.token = token

    def fetch_gbp_token(self):
        return self.token

    # accounts & configuration
    def replace_accounts(self, accounts):
        self.accounts = [
            {'id': index + 1, 'name': acc.get('name'), 'account_name': acc.get('accountName')}
            for index, acc in enumerate(accounts)
        ]
        return len(accounts)

    def fetch_accounts(self):
        return [dict(acc) for acc in self.accounts]

    def find_account_by_display_name(self, account_name):
        for acc in self.accounts:
            if acc['account_name'] == account_name:
                return dict(acc)
        return None

    def fetch_configuration_rows(self):
        return [ConfigurationRow.from_row(dict(row)) for row in self.configuration]

    def insert_configuration(self, account_name, account_number, filter_status=None, filter_region=None):
        config_id = self._next_config_id
        self._next_config_id += 1
        self.configuration.append({
            'id': config_id,
            'account_name': account_name,
            'account_number': account_number,
            'filter_status': filter_status,
            'filter_region': filter_region,
            'last_location_update': '',
        })
        return config_id

    def clear_configuration(self):
        self.configuration = []

    def update_listing_marker(self, config_id, marker):
        for row in self.configuration:
            if row['id'] == config_id:
                row['last_location_update'] = marker

    def clear_listing_markers(self):
        for row in self.configuration:
            row['last_location_update'] = ''

    # locations
    def fetch_locations(self):
        return [Location.from_row(dict(row)) for row in sorted(self.locations, key=lambda r: r['id'])]

    def replace_config_locations(self, config_id, locations, listing_marker):
        self.locations = [row for row in self.locations if row['config_id'] != config_id]
        for loc in locations:
            self._insert_location(config_id=config_id, last_insights_update='', **loc)
        self.update_listing_marker(config_id, listing_marker)
        return len(locations)

    def update_location_markers(self, location_ids, marker):
        count = 0
        for row in self.locations:
            if row['id'] in location_ids:
                row['last_insights_update'] = marker
                self.marker_history.append((row['id'], marker))
                count += 1
        return count

    def clear_locations(self):
        self.locations = []

    def clear_location_markers(self):
        for row in self.locations:
            row['last_insights_update'] = ''

    def _insert_location(self, **row):
        row['id'] = self._next_location_id
        self._next_location_id += 1
        self.locations.append(row)
        return row['id']

    # insights
    def commit_unit(self, records, location_ids, marker):
        stored = list(self.insights)
        self.insights.extend(records)
        try:
            self.update_location_markers(location_ids, marker)
        except Exception:
            self.insights = stored
            raise
        return len(records)

    def clear_insights(self):
        self.insights = []

    def fetch_insight_week_starts(self):
        return sorted({record.start_week_date for record in self.insights})

    def delete_insights_for_week(self, start_week_date):
        before = len(self.insights)
        self.insights = [r for r in self.insights if r.start_week_date != start_week_date]
        return before - len(self.insights)

    # audit log
    def append_log(self, logged_at, message):
        self.log.append({'logged_at': logged_at, 'message': message})

    def trim_log(self, max_rows):
        removed = max(len(self.log) - max_rows, 0)
        if removed:
            self.log = self.log[removed:]
        return removed

    def fetch_recent_log(self, limit=20):
        return list(reversed(self.log))[:limit]

    # triggers
    def fetch_triggers(self):
        return [dict(trigger) for trigger in self.triggers.values()]

    def upsert_trigger(self, name, cadence, week_day=None, hour=None):
        self.triggers[name] = {'name': name, 'cadence': cadence, 'week_day': week_day, 'hour': hour}

    def delete_trigger(self, name):
        return 1 if self.triggers.pop(name, None) else 0

    def delete_all_triggers(self):
        count = len(self.triggers)
        self.triggers = {}
        return count

    # test helpers
    def add_location(self, account, name, marker='', config_id=1):
        return self._insert_location(
            config_id=config_id,
            account=account,
            name=name,
            location_name=f"Store {name}",
            store_code=name.split('/')[-1],
            status='OPEN',
            region='IT',
            category_name='Cafe',
            last_insights_update=marker,
        )

    def add_configuration(self, account_number, marker='', account_name='Brand'):
        config_id = self.insert_configuration(account_name, account_number, '-none-', None)
        self.update_listing_marker(config_id, marker)
        return config_id

    def markers(self):
        return [row['last_insights_update'] for row in sorted(self.locations, key=lambda r: r['id'])]

    def log_messages(self):
        return [entry['message'] for entry in self.log]


#============================================
class FakeGBPClient:
    """
    Scripted GBP API. report_insights succeeds unless the batch contains a
    location listed in fail_names (or always_fail is set).
    """

    def __init__(self):
        self.insight_calls = []
        self.location_calls = []
        self.fail_names = set()
        self.always_fail = False
        self.location_pages = {}
        self.accounts = []

    def report_insights(self, account_number, location_names, window):
        self.insight_calls.append((account_number, list(location_names), window))
        if self.always_fail or self.fail_names.intersection(location_names):
            return [{'error': {'code': 500, 'message': 'Internal error encountered.'}}]
        return [{
            'locationMetrics': [
                {
                    'locationName': f"{account_number}/{name}",
                    'timeZone': 'Europe/Rome',
                    'metricValues': [
                        {'metric': 'VIEWS_MAPS', 'totalValue': {'value': '12'}},
                        {'metric': 'ACTIONS_PHONE', 'totalValue': {'value': '3'}},
                    ],
                }
                for name in location_names
            ]
        }]

    def fetch_locations(self, account_number, filter_status=None, filter_region=None):
        self.location_calls.append((account_number, filter_status, filter_region))
        return self.location_pages.get(account_number, [{}])

    def fetch_accounts(self):
        return list(self.accounts)


#============================================
@pytest.fixture
def db():
    return FakeDatabase()


@pytest.fixture
def client():
    return FakeGBPClient()


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    """Retry backoff never sleeps in tests; the requested delays are recorded."""
    sleeps = []
    monkeypatch.setattr("gbp_harvest.insights_fetcher.time.sleep", sleeps.append)
    return sleeps

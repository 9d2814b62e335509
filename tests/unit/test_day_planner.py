"""
Unit tests for marketpollen/engine/day_planner.py.

crm, geocoding and the email drafter are patched where day_planner imports them.
"""

from datetime import date
from unittest.mock import patch

import pytest

from marketpollen.engine.day_planner import build_day_plan, parse_plan_date, plan_route
from marketpollen.models import CalendarEvent, Contact, Opportunity, Store

STORE = Store(id=1, name='Downtown', address='1 Main St', city='Springfield', state='IL', zip_code='62701')

OPPS = [
    Opportunity(id=10, store_id=1, place_id='a', name='A', address='10 A St'),
    Opportunity(id=11, store_id=1, place_id='b', name='B', address='11 B St'),
    Opportunity(id=12, store_id=1, place_id='c', name='C', address='12 C St'),
]

COORDS = {
    '1 Main St, Springfield, IL, 62701': (0.0, 0.0),
    '10 A St': (0.0, 1.0),
    '11 B St': (0.0, 3.0),
    '12 C St': (0.0, 2.0),
}


@pytest.fixture
def cfg():
    with patch('marketpollen.engine.day_planner.config') as mock_config:
        mock_config.GOOGLE_MAPS_API_KEY = 'AIza-test'
        mock_config.MAX_OPPORTUNITIES_IN_PLAN = 10
        yield mock_config


@pytest.fixture
def mock_geocode():
    with patch('marketpollen.engine.day_planner.geocode_or_none', side_effect=COORDS.get) as mock:
        yield mock


@pytest.fixture
def mock_crm():
    with patch('marketpollen.engine.day_planner.crm') as mock:
        mock.get_store.return_value = STORE
        mock.list_opportunities.return_value = list(OPPS)
        mock.list_calendar_events.return_value = []
        mock.list_contacts_with_reachouts.return_value = []
        yield mock


@pytest.fixture
def mock_bus():
    with patch('marketpollen.engine.day_planner.bus') as mock:
        yield mock


# ---------------------------------------------------------------------------
# parse_plan_date
# ---------------------------------------------------------------------------

def test_parse_plan_date():
    assert parse_plan_date('2026-10-19') == date(2026, 10, 19)
    assert parse_plan_date(' 2026-10-19 ') == date(2026, 10, 19)


@pytest.mark.parametrize("bad", ['', None, '10/19/2026', '2026-13-01', 'tomorrow'])
def test_parse_plan_date_rejects(bad):
    with pytest.raises(ValueError, match='YYYY-MM-DD'):
        parse_plan_date(bad)


# ---------------------------------------------------------------------------
# plan_route
# ---------------------------------------------------------------------------

class TestPlanRoute:

    def test_nearest_neighbour_order(self, cfg, mock_geocode):
        route = plan_route(STORE.full_address(), OPPS)
        assert [s.name for s in route] == ['A', 'C', 'B']
        assert route[0].lat == 0.0 and route[0].lng == 1.0

    def test_ungeocodable_opportunity_left_off(self, cfg):
        coords = dict(COORDS)
        del coords['12 C St']
        with patch('marketpollen.engine.day_planner.geocode_or_none', side_effect=coords.get):
            route = plan_route(STORE.full_address(), OPPS)
        assert [s.name for s in route] == ['A', 'B']

    def test_no_api_key_keeps_given_order(self, cfg, mock_geocode):
        cfg.GOOGLE_MAPS_API_KEY = ''
        route = plan_route(STORE.full_address(), OPPS)
        assert [s.name for s in route] == ['A', 'B', 'C']
        mock_geocode.assert_not_called()

    def test_store_not_geocoded_keeps_given_order(self, cfg):
        with patch('marketpollen.engine.day_planner.geocode_or_none', return_value=None):
            route = plan_route(STORE.full_address(), OPPS)
        assert [s.name for s in route] == ['A', 'B', 'C']

    def test_capped(self, cfg, mock_geocode):
        cfg.MAX_OPPORTUNITIES_IN_PLAN = 2
        assert [s.name for s in plan_route(STORE.full_address(), OPPS)] == ['A', 'C']

    def test_no_opportunities(self, cfg, mock_geocode):
        assert plan_route(STORE.full_address(), []) == []


# ---------------------------------------------------------------------------
# build_day_plan
# ---------------------------------------------------------------------------

class TestBuildDayPlan:

    def test_full_plan(self, cfg, mock_geocode, mock_crm, mock_bus):
        jane = Contact(id=5, store_id=1, first_name='Jane', email='jane@acme.com')
        mock_crm.list_contacts_with_reachouts.return_value = [jane]
        mock_crm.list_calendar_events.return_value = [
            CalendarEvent(id=1, store_id=1, title='Email: Jane', type='email', contact_id=5,
                          description='Send the catering menu'),
        ]

        with patch('marketpollen.engine.day_planner.ai_available', return_value=True), \
             patch('marketpollen.engine.day_planner.draft_emails_for_tasks') as mock_drafts:
            plan = build_day_plan(1, '2026-10-19')

        assert plan.store_name == 'Downtown'
        assert plan.store_address == '1 Main St, Springfield, IL, 62701'
        assert plan.date == '2026-10-19'
        assert [t.contact_name for t in plan.follow_up_tasks] == ['Jane']
        assert [s.name for s in plan.optimized_route] == ['A', 'C', 'B']

        mock_crm.list_opportunities.assert_called_once_with(1, 'new')
        mock_crm.list_calendar_events.assert_called_once_with(1, date(2026, 10, 19))
        mock_crm.list_contacts_with_reachouts.assert_called_once_with(1, 5)
        tasks, by_id = mock_drafts.call_args[0]
        assert tasks == plan.follow_up_tasks
        assert by_id == {5: jane}
        mock_bus.emit.assert_called_once()
        assert mock_bus.emit.call_args[0][1] == {'store_id': 1, 'date': '2026-10-19', 'tasks': 1, 'stops': 3}

    def test_no_drafts_without_ai(self, cfg, mock_geocode, mock_crm, mock_bus):
        mock_crm.list_contacts_with_reachouts.return_value = [
            Contact(id=5, first_name='Jane', suggested_follow_up_date=date(2026, 10, 19)),
        ]
        with patch('marketpollen.engine.day_planner.ai_available', return_value=False), \
             patch('marketpollen.engine.day_planner.draft_emails_for_tasks') as mock_drafts:
            plan = build_day_plan(1, '2026-10-19')
        assert len(plan.follow_up_tasks) == 1
        mock_drafts.assert_not_called()

    def test_empty_day(self, cfg, mock_geocode, mock_crm, mock_bus):
        mock_crm.list_opportunities.return_value = []
        plan = build_day_plan(1, '2026-10-19')
        assert plan.to_dict()['followUpTasks'] == []
        assert plan.to_dict()['optimizedRoute'] == []

    def test_missing_store(self, cfg, mock_geocode, mock_crm, mock_bus):
        mock_crm.get_store.return_value = None
        with pytest.raises(LookupError, match='Store not found'):
            build_day_plan(99, '2026-10-19')
        mock_bus.emit.assert_not_called()

    def test_bad_date_reads_nothing(self, cfg, mock_crm, mock_bus):
        with pytest.raises(ValueError):
            build_day_plan(1, '19-10-2026')
        mock_crm.get_store.assert_not_called()

"""Unit tests for marketpollen/engine/donations.py."""

from datetime import date
from unittest.mock import patch

import pytest

from marketpollen.engine.donations import (
    calculate_mouths, quarter_date_range, quarter_label, quarter_progress,
)
from marketpollen.models import DonationData, Reachout


def test_calculate_mouths_accepts_dict_and_dataclass():
    assert calculate_mouths({'dozenBundtinis': 2, 'sampleTray': 1}) == 64
    assert calculate_mouths(DonationData(cake_8inch=1, cake_10inch=1)) == 30
    assert calculate_mouths(None) == 0
    assert calculate_mouths({}) == 0


@pytest.mark.parametrize("day,start,end", [
    (date(2026, 1, 1), date(2026, 1, 1), date(2026, 3, 31)),
    (date(2026, 5, 15), date(2026, 4, 1), date(2026, 6, 30)),
    (date(2026, 9, 30), date(2026, 7, 1), date(2026, 9, 30)),
    (date(2026, 12, 31), date(2026, 10, 1), date(2026, 12, 31)),
    (date(2028, 2, 29), date(2028, 1, 1), date(2028, 3, 31)),
])
def test_quarter_date_range(day, start, end):
    assert quarter_date_range(day) == (start, end)


def test_quarter_label():
    assert quarter_label(date(2026, 10, 18)) == 'Q4 2026'
    assert quarter_label(date(2026, 3, 31)) == 'Q1 2026'


class TestQuarterProgress:

    def _run(self, reachouts, goal=10000):
        with patch('marketpollen.engine.donations.crm') as mock_crm, \
             patch('marketpollen.engine.donations.config') as mock_config:
            mock_crm.list_donation_reachouts.return_value = reachouts
            mock_config.QUARTERLY_MOUTHS_GOAL = goal
            result = quarter_progress(1, date(2026, 10, 18))
        return result, mock_crm

    def test_totals_the_quarter(self):
        reachouts = [
            Reachout(donation=DonationData(dozen_bundtinis=1, sample_tray=1)),
            Reachout(donation=DonationData(cake_10inch=2)),
        ]
        result, mock_crm = self._run(reachouts, goal=1000)
        mock_crm.list_donation_reachouts.assert_called_once_with(1, date(2026, 10, 1), date(2026, 12, 31))
        assert result == {
            'quarter': 'Q4 2026',
            'start': '2026-10-01',
            'end': '2026-12-31',
            'totalMouths': 92,
            'goal': 1000,
            'percentage': 9.2,
            'donationCount': 2,
        }

    def test_percentage_capped_at_100(self):
        result, _ = self._run([Reachout(donation=DonationData(sample_tray=5))], goal=100)
        assert result['totalMouths'] == 200
        assert result['percentage'] == 100

    def test_zero_goal(self):
        result, _ = self._run([], goal=0)
        assert result['percentage'] == 0
        assert result['totalMouths'] == 0

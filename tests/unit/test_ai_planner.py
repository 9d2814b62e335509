"""
Unit tests for marketpollen/engine/ai_planner.py.

call_ai_json is patched at marketpollen.engine.ai_planner; the guardrails and the
default suggestion are pure and tested directly.
"""

from datetime import date, datetime, timedelta
from unittest.mock import patch

import pytest

from marketpollen.engine.ai_planner import (
    apply_follow_up_guardrails,
    build_follow_up_prompt,
    default_follow_up,
    extract_call_notes,
    format_phone,
    suggest_follow_up,
)
from marketpollen.models import Contact, DonationData, Reachout

TODAY = date(2026, 10, 19)
TOMORROW = TODAY + timedelta(days=1)


# ---------------------------------------------------------------------------
# format_phone
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("raw,expected", [
    ('555-123-4567', '(555) 123-4567'),
    ('+1 555 123 4567', '(555) 123-4567'),
    ('5551234567', '(555) 123-4567'),
    ('+44 20 7946 0958', '+44 20 7946 0958'),
    ('', None),
    (None, None),
])
def test_format_phone(raw, expected):
    assert format_phone(raw) == expected


# ---------------------------------------------------------------------------
# extract_call_notes
# ---------------------------------------------------------------------------

class TestExtractCallNotes:

    def test_maps_fields(self):
        ai = {
            'firstName': 'Jane', 'lastName': 'Doe', 'email': 'jane@acme.com',
            'phone': '555.123.4567', 'personalDetails': 'Has two kids',
            'reachoutNote': 'Gave them a dozen bundtinis for the staff meeting',
            'suggestedFollowUpDays': 2,
            'donation': {'dozenBundtinis': 1},
        }
        with patch('marketpollen.engine.ai_planner.call_ai_json', return_value=ai) as mock_ai:
            result = extract_call_notes('Spoke with Jane at Acme, gave them a dozen bundtinis')

        assert result.first_name == 'Jane'
        assert result.phone == '(555) 123-4567'
        assert result.suggested_follow_up_days == 2
        assert result.donation.dozen_bundtinis == 1
        assert result.donation.mouths() == 12
        assert 'gave them a dozen bundtinis' in mock_ai.call_args[0][0]
        assert mock_ai.call_args.kwargs['temperature'] == 0.3

    def test_missing_fields_are_none(self):
        with patch('marketpollen.engine.ai_planner.call_ai_json', return_value={'firstName': '  '}):
            result = extract_call_notes('short call')
        assert result.first_name is None
        assert result.donation is None
        assert result.suggested_follow_up_days is None

    @pytest.mark.parametrize("days,expected", [(0, 1), (-3, 1), ('4', 4), ('soon', None)])
    def test_follow_up_days_minimum_one(self, days, expected):
        with patch('marketpollen.engine.ai_planner.call_ai_json',
                   return_value={'suggestedFollowUpDays': days}):
            assert extract_call_notes('x').suggested_follow_up_days == expected

    def test_ai_failure_propagates(self):
        with patch('marketpollen.engine.ai_planner.call_ai_json', side_effect=RuntimeError('timeout')):
            with pytest.raises(RuntimeError):
                extract_call_notes('x')


# ---------------------------------------------------------------------------
# Guardrails
# ---------------------------------------------------------------------------

class TestGuardrails:

    def test_valid_suggestion_passes_through(self):
        raw = {'suggestedDate': '2026-10-22', 'suggestedMethod': 'call', 'message': 'Ask about order',
               'priority': 'high'}
        s = apply_follow_up_guardrails(raw, has_email=True, has_phone=True, today=TODAY)
        assert s.suggested_date == date(2026, 10, 22)
        assert s.suggested_method == 'call'
        assert s.priority == 'high'
        assert s.message == 'Ask about order'

    @pytest.mark.parametrize("suggested", ['2026-10-19', '2026-10-01', 'next tuesday', None])
    def test_same_day_past_or_bad_date_clamps_to_tomorrow(self, suggested):
        s = apply_follow_up_guardrails({'suggestedDate': suggested, 'suggestedMethod': 'email'},
                                       has_email=True, has_phone=False, today=TODAY)
        assert s.suggested_date == TOMORROW

    def test_email_without_address_becomes_meeting(self):
        s = apply_follow_up_guardrails({'suggestedMethod': 'email'}, has_email=False, has_phone=True, today=TODAY)
        assert s.suggested_method == 'meeting'

    @pytest.mark.parametrize("method", ['call', 'text', 'CALL'])
    def test_call_or_text_without_phone_becomes_meeting(self, method):
        s = apply_follow_up_guardrails({'suggestedMethod': method}, has_email=True, has_phone=False, today=TODAY)
        assert s.suggested_method == 'meeting'

    def test_unknown_method_priority_and_empty_message(self):
        s = apply_follow_up_guardrails({'suggestedMethod': 'fax', 'priority': 'urgent', 'message': ' '},
                                       has_email=True, has_phone=True, today=TODAY)
        assert s.suggested_method == 'other'
        assert s.priority == 'medium'
        assert s.message == 'Follow up on the last conversation'

    @pytest.mark.parametrize("has_email,has_phone", [(False, False), (False, True), (True, False)])
    @pytest.mark.parametrize("method", ['email', 'call', 'text', 'meeting', 'other', 'bogus'])
    def test_method_always_reachable(self, method, has_email, has_phone):
        s = apply_follow_up_guardrails({'suggestedMethod': method}, has_email, has_phone, today=TODAY)
        if not has_email:
            assert s.suggested_method != 'email'
        if not has_phone:
            assert s.suggested_method not in ('call', 'text')


# ---------------------------------------------------------------------------
# Default suggestion
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("has_email,has_phone,method", [
    (True, True, 'email'),
    (False, True, 'call'),
    (False, False, 'meeting'),
])
def test_default_follow_up(has_email, has_phone, method):
    s = default_follow_up('Jane', has_email, has_phone, today=TODAY)
    assert s.suggested_date == TODAY + timedelta(days=3)
    assert s.suggested_method == method
    assert s.message == 'Follow up with Jane'
    assert s.priority == 'medium'


def test_default_follow_up_without_name():
    assert default_follow_up(None, False, False, today=TODAY).message == 'Follow up with contact'


# ---------------------------------------------------------------------------
# suggest_follow_up
# ---------------------------------------------------------------------------

def _reachout(note, **donation):
    return Reachout(date=datetime(2026, 10, 18, 14, 0), note=note, type='call',
                    donation=DonationData(**donation))


class TestSuggestFollowUp:

    def test_prompt_mentions_missing_channels_and_donations(self):
        contact = Contact(first_name='Jane', phone='(555) 123-4567')
        prompt = build_follow_up_prompt(contact, [_reachout('Gave a sample tray', sample_tray=1)], TODAY)
        assert 'NOT PROVIDED - cannot suggest email' in prompt
        assert 'Available methods: call, text, meeting, other' in prompt
        assert 'DONATION' in prompt
        assert '2026-10-20 or later' in prompt

    def test_guarded_ai_suggestion(self):
        contact = Contact(first_name='Jane', phone='(555) 123-4567')
        ai = {'suggestedDate': '2026-10-19', 'suggestedMethod': 'email', 'message': 'Ask how the tray went',
              'priority': 'high'}
        with patch('marketpollen.engine.ai_planner.call_ai_json', return_value=ai), \
             patch('marketpollen.engine.ai_planner.bus') as mock_bus:
            s = suggest_follow_up(contact, [_reachout('note')], today=TODAY)

        assert s.suggested_date == TOMORROW
        assert s.suggested_method == 'meeting'
        assert s.message == 'Ask how the tray went'
        mock_bus.emit.assert_called_once()

    def test_ai_failure_uses_default(self):
        contact = Contact(first_name='Jane', email='jane@acme.com')
        with patch('marketpollen.engine.ai_planner.call_ai_json', side_effect=RuntimeError('timed out')), \
             patch('marketpollen.engine.ai_planner.bus'):
            s = suggest_follow_up(contact, [], today=TODAY)

        assert s.suggested_date == TODAY + timedelta(days=3)
        assert s.suggested_method == 'email'
        assert s.message == 'Follow up with Jane'

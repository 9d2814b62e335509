from datetime import date, timedelta
from unittest.mock import patch

import pytest
from pytest_bdd import scenarios, given, when, then, parsers

from marketpollen.cli.main import cli
from marketpollen.models import Business, Store

scenarios("features/call_intake.feature")

NOTES = "Spoke with Jane Doe at Acme Corp, jane@acme.com. Dropped off a dozen bundtinis for the team."


@pytest.fixture
def engine_crm():
    with patch("marketpollen.engine.call_intake.crm") as mock:
        mock.list_businesses.return_value = []
        mock.create_business.return_value = 8
        mock.create_contact.return_value = 5
        mock.log_reachout.return_value = 11
        mock.create_calendar_event.return_value = 21
        yield mock


@given(parsers.parse('the stores "{first}" and "{second}"'))
def two_stores(engine_crm, context, first, second):
    stores = [Store(id=1, name=first), Store(id=2, name=second)]
    engine_crm.list_stores.return_value = stores
    context["stores"] = {s.name: s.id for s in stores}


@given("the AI is configured")
def ai_configured(context):
    context["ai"] = True
    context["ai_responses"] = []


@given(parsers.parse('"{store}" has no business called "{business}"'))
def no_business(engine_crm, store, business):
    engine_crm.list_businesses.return_value = []


@given(parsers.parse('"{store}" already has the business "{business}"'))
def existing_business(engine_crm, context, store, business):
    engine_crm.list_businesses.return_value = [
        Business(id=4, store_id=context["stores"][store], name=business),
    ]


@given(parsers.parse('the AI reads the notes as "{first}" "{last}" with email "{email}" and a dozen bundtinis'))
def ai_extraction(context, first, last, email):
    context["ai_responses"].append({
        "firstName": first,
        "lastName": last,
        "email": email,
        "reachoutNote": "Dropped off a dozen bundtinis for the team.",
        "suggestedFollowUpDays": 2,
        "donation": {"dozenBundtinis": 1},
    })


@given(parsers.parse('the AI suggests an "{method}" follow-up in {days:d} days with "{priority}" priority'))
def ai_suggestion(context, method, days, priority):
    context["ai_responses"].append({
        "suggestedDate": (date.today() + timedelta(days=days)).isoformat(),
        "suggestedMethod": method,
        "message": "Ask how the team liked the bundtinis",
        "priority": priority,
    })


@given(parsers.parse('the AI suggests a "{method}" follow-up for today'))
def ai_same_day_suggestion(context, method):
    context["ai_responses"].append({
        "suggestedDate": date.today().isoformat(),
        "suggestedMethod": method,
        "message": "Call about an order",
        "priority": "high",
    })


@when(parsers.parse('the call notes are submitted for "{store}" and "{business}"'))
def submit_notes(runner, context, engine_crm, store, business):
    no_match = {"matchedId": None, "confidence": "low", "reason": "no plausible match"}
    with patch("marketpollen.engine.call_intake.ai_available", return_value=context.get("ai", False)), \
         patch("marketpollen.engine.ai_planner.call_ai_json", side_effect=context.get("ai_responses", [])), \
         patch("marketpollen.engine.entity_resolver.call_ai_json", return_value=no_match):
        context["result"] = runner.invoke(cli, ["intake", NOTES, "--store", store, "--business", business])


@then(parsers.parse('the business "{business}" was created under "{store}"'))
def business_created(engine_crm, context, business, store):
    created = engine_crm.create_business.call_args[0][0]
    assert created.name == business
    assert created.store_id == context["stores"][store]
    assert engine_crm.create_contact.call_args[0][0].business_id == 8


@then("no business was created")
def no_business_created(engine_crm):
    engine_crm.create_business.assert_not_called()
    assert engine_crm.create_contact.call_args[0][0].business_id == 4


@then("a completed reachout event and a scheduled follow-up were recorded")
def events_recorded(engine_crm):
    events = [c[0][0] for c in engine_crm.create_calendar_event.call_args_list]
    assert [(e.type, e.status) for e in events] == [("reachout", "completed"), ("followup", "scheduled")]
    assert events[0].date == date.today()


@then(parsers.parse('the follow-up is by "{method}" in {days:d} days'))
def follow_up_is(engine_crm, method, days):
    contact = engine_crm.create_contact.call_args[0][0]
    assert contact.suggested_follow_up_method == method
    assert contact.suggested_follow_up_date == date.today() + timedelta(days=days)
    follow_up = engine_crm.create_calendar_event.call_args_list[-1][0][0]
    assert follow_up.date == date.today() + timedelta(days=days)


@then("nothing was written")
def nothing_written(engine_crm):
    engine_crm.create_business.assert_not_called()
    engine_crm.create_contact.assert_not_called()
    engine_crm.log_reachout.assert_not_called()
    engine_crm.create_calendar_event.assert_not_called()

"""
Day Planner - one store's plan for one day.

  1. store, open opportunities, the day's calendar events and contacts are read concurrently
  2. follow-up tasks are aggregated and, when AI is configured, email bodies drafted
  3. opportunities are geocoded and ordered as a nearest-neighbour driving route

Geocoding and drafting problems degrade the plan (unordered route, missing drafts);
they never fail it.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime
from typing import List, Optional, Sequence

from marketpollen.logging_config import log_call
from marketpollen.engine import crm
from marketpollen.engine.ai_client import ai_available
from marketpollen.engine.email_composer import draft_emails_for_tasks
from marketpollen.engine.follow_up import aggregate_follow_up_tasks
from marketpollen.engine.geo import order_by_nearest_neighbor
from marketpollen.engine.lead_scout import geocode_or_none
from marketpollen.models import DayPlan, Opportunity, RouteStop
from marketpollen.bus.events import bus, EVENT_DAY_PLAN_READY
from marketpollen.config import config

logger = logging.getLogger(__name__)


def parse_plan_date(date_str: Optional[str]) -> date:
    """YYYY-MM-DD → date. Raises ValueError otherwise."""
    try:
        return datetime.strptime((date_str or '').strip(), '%Y-%m-%d').date()
    except ValueError:
        raise ValueError("date must be YYYY-MM-DD")


def plan_route(store_address: str, opportunities: Sequence[Opportunity]) -> List[RouteStop]:
    """
    Order opportunities as a driving route from the store.

    Falls back to the given order when geocoding is unavailable or the store
    cannot be located. Opportunities that fail to geocode are left off the route.
    """
    stops = [RouteStop.from_opportunity(o) for o in opportunities]
    limit = config.MAX_OPPORTUNITIES_IN_PLAN

    if not (config.GOOGLE_MAPS_API_KEY and store_address and stops):
        return stops[:limit]

    origin = geocode_or_none(store_address)
    if origin is None:
        logger.warning(f"Store address {store_address!r} could not be geocoded; route left unordered")
        return stops[:limit]

    located: List[RouteStop] = []
    for stop, opp in zip(stops, opportunities):
        address = opp.full_address()
        if not address:
            continue
        coords = geocode_or_none(address)
        if coords is None:
            logger.debug(f"Opportunity {opp.id} ({opp.name}) not geocoded; left off route")
            continue
        stop.lat, stop.lng = coords
        located.append(stop)

    route = order_by_nearest_neighbor(origin[0], origin[1], located)
    logger.debug(f"plan_route: {len(located)}/{len(stops)} opportunities located")
    return route[:limit]


@log_call
def build_day_plan(store_id: int, date_str: str) -> DayPlan:
    """
    Build the day plan for a store.

    Raises:
        ValueError: date is not YYYY-MM-DD
        LookupError: store does not exist
    """
    target = parse_plan_date(date_str)

    # each read runs on its own connection
    with ThreadPoolExecutor(max_workers=4, thread_name_prefix='dayplan') as pool:
        store_future = pool.submit(crm.get_store, store_id)
        opps_future = pool.submit(crm.list_opportunities, store_id, 'new')
        events_future = pool.submit(crm.list_calendar_events, store_id, target)
        contacts_future = pool.submit(crm.list_contacts_with_reachouts, store_id, 5)

        store = store_future.result()
        opportunities = opps_future.result()
        events = events_future.result()
        contacts = contacts_future.result()

    if store is None:
        raise LookupError("Store not found")

    store_address = store.full_address()

    tasks = aggregate_follow_up_tasks(events, contacts, target)
    if tasks and ai_available():
        draft_emails_for_tasks(tasks, {c.id: c for c in contacts})

    route = plan_route(store_address, opportunities)

    plan = DayPlan(
        store_name=store.name,
        store_address=store_address,
        date=target.isoformat(),
        follow_up_tasks=tasks,
        optimized_route=route,
    )

    logger.info(f"Day plan for store {store_id} on {target}: {len(tasks)} tasks, {len(route)} stops")
    bus.emit(EVENT_DAY_PLAN_READY, {
        'store_id': store_id,
        'date': plan.date,
        'tasks': len(tasks),
        'stops': len(route),
    })
    return plan

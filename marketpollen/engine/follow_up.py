"""
Follow-up task aggregation.

Merges two sources of "who to reach today" into one list with at most one task per contact:
  A. calendar events of a follow-up-like type that name a contact
  B. contacts whose AI-suggested follow-up date falls on the target day

All of A comes first, in event order, then B in contact order.
The list is not sorted by time or priority.
"""

import logging
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Set, Union

from marketpollen.models import CalendarEvent, Contact, FollowUpTask, FOLLOW_UP_METHODS

logger = logging.getLogger(__name__)

FOLLOW_UP_EVENT_TYPES = ('email', 'call', 'followup', 'meeting', 'text')


def _as_date(value: Union[date, datetime, str, None]) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def default_message(contact: Contact) -> str:
    return f"Follow up with {contact.display_name}"


def _method_for_event(event: CalendarEvent, contact: Contact) -> str:
    method = event.type
    if event.type == 'followup':
        method = contact.suggested_follow_up_method or 'email'
    return method if method in FOLLOW_UP_METHODS else 'other'


def aggregate_follow_up_tasks(
    events: Iterable[CalendarEvent],
    contacts: Iterable[Contact],
    target_date: date
) -> List[FollowUpTask]:
    """
    Build today's follow-up task list.

    Args:
        events: Non-cancelled calendar events of the store on target_date
        contacts: Contacts of the store
        target_date: Day being planned

    Returns: tasks, one per contact at most
    """
    contacts = list(contacts)
    by_id: Dict[int, Contact] = {c.id: c for c in contacts}
    seen: Set[int] = set()
    tasks: List[FollowUpTask] = []

    # Source A: calendar events
    for event in events:
        if event.type not in FOLLOW_UP_EVENT_TYPES or not event.contact_id:
            continue
        if event.contact_id in seen:
            continue
        contact = by_id.get(event.contact_id)
        if contact is None:
            logger.debug(f"Event {event.id} names contact {event.contact_id} which is not in this store; skipped")
            continue

        seen.add(contact.id)
        tasks.append(FollowUpTask(
            contact_id=contact.id,
            contact_name=contact.display_name,
            method=_method_for_event(event, contact),
            message=event.description or contact.suggested_follow_up_note or default_message(contact),
            event_title=event.title,
        ))

    from_events = len(tasks)

    # Source B: suggested follow-up dates
    for contact in contacts:
        if contact.id in seen:
            continue
        if _as_date(contact.suggested_follow_up_date) != target_date:
            continue

        seen.add(contact.id)
        method = contact.suggested_follow_up_method
        tasks.append(FollowUpTask(
            contact_id=contact.id,
            contact_name=contact.display_name,
            method=method if method in FOLLOW_UP_METHODS else 'email',
            message=contact.suggested_follow_up_note or default_message(contact),
        ))

    logger.debug(f"aggregate_follow_up_tasks: {from_events} from events, "
                 f"{len(tasks) - from_events} from suggested dates")
    return tasks

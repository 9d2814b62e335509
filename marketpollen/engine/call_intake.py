"""
Call Intake - create a contact from phone-call notes.

Pipeline:
  store name → store (must exist)
  notes      → structured fields (AI extraction)
  business   → existing business, or a new one under the store
  contact + initial reachout + completed "reachout" event
  follow-up suggestion (guarded) → scheduled "follow-up" event
"""

import logging
import random
import string
import time
from datetime import date, datetime, timezone
from typing import Optional

from marketpollen.logging_config import log_call
from marketpollen.engine import crm
from marketpollen.engine.ai_client import ai_available
from marketpollen.engine.ai_planner import extract_call_notes, suggest_follow_up
from marketpollen.engine.entity_resolver import candidates_from, resolve_name
from marketpollen.models import Business, CalendarEvent, Contact, DonationData, Reachout
from marketpollen.bus.events import bus, EVENT_CONTACT_INTAKE_COMPLETE

logger = logging.getLogger(__name__)

CREATED_BY = 'ai-phone-system'

_ID_ALPHABET = string.ascii_uppercase + string.digits


def new_contact_id(now_ms: Optional[int] = None) -> str:
    """Application-level contact id: CONT-<epoch ms>-<6 upper alnum>."""
    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    suffix = ''.join(random.choices(_ID_ALPHABET, k=6))
    return f"CONT-{now_ms}-{suffix}"


def _require(value: Optional[str], message: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(message)
    return value


def resolve_store(store_name: str) -> int:
    store_id = resolve_name(store_name, candidates_from(crm.list_stores()), kind='store',
                            use_ai=ai_available())
    if store_id is None:
        raise ValueError(f'Store "{store_name}" not found. Please check the store name.')
    return store_id


def resolve_or_create_business(business_name: str, store_id: int) -> int:
    business_id = resolve_name(business_name, candidates_from(crm.list_businesses(store_id)),
                               kind='business', use_ai=ai_available())
    if business_id is not None:
        return business_id

    logger.info(f"No business matches '{business_name}' in store {store_id}; creating it")
    return crm.create_business(Business(
        store_id=store_id,
        name=business_name.strip(),
        created_by=CREATED_BY,
    ))


@log_call
def create_contact_from_call(notes: str, store_name: str, business_name: str) -> Contact:
    """
    Run the whole call-note intake.

    Returns: the created Contact, carrying its initial reachout.
    Raises:
        ValueError: missing input or unknown store
        RuntimeError: AI not configured, or the notes could not be extracted
    """
    _require(notes, 'Notes/transcript is required')
    _require(store_name, 'storeName is required')
    _require(business_name, 'businessName is required')

    if not ai_available():
        raise RuntimeError("AI API key is not configured")

    store_id = resolve_store(store_name)
    extraction = extract_call_notes(notes)
    business_id = resolve_or_create_business(business_name, store_id)

    now = datetime.now(timezone.utc)
    today = date.today()

    reachout = Reachout(
        store_id=store_id,
        date=now,
        note=extraction.reachout_note or 'Contact created from AI phone call',
        raw_notes=notes,
        type='call',
        donation=extraction.donation or DonationData(),
        created_by=CREATED_BY,
    )

    contact = Contact(
        contact_id=new_contact_id(),
        business_id=business_id,
        store_id=store_id,
        first_name=extraction.first_name,
        last_name=extraction.last_name,
        email=extraction.email,
        phone=extraction.phone,
        personal_details=extraction.personal_details,
        last_reachout_date=now,
        status='new',
        created_by=CREATED_BY,
    )

    suggestion = suggest_follow_up(contact, [reachout], today=today)
    contact.suggested_follow_up_date = suggestion.suggested_date
    contact.suggested_follow_up_method = suggestion.suggested_method
    contact.suggested_follow_up_note = suggestion.message
    contact.suggested_follow_up_priority = suggestion.priority

    contact.id = crm.create_contact(contact)
    contact.created_at = now

    reachout.contact_id = contact.id
    reachout.id = crm.log_reachout(reachout)
    contact.reachouts = [reachout]

    name = contact.display_name

    crm.create_calendar_event(CalendarEvent(
        store_id=store_id,
        title=f"Reachout: {name}",
        description=extraction.reachout_note or notes,
        date=today,
        type='reachout',
        contact_id=contact.id,
        business_id=business_id,
        priority='medium',
        status='completed',
        completed_at=now,
        created_by=CREATED_BY,
    ))

    if suggestion.suggested_date:
        crm.create_calendar_event(CalendarEvent(
            store_id=store_id,
            title=f"Follow-up: {name}",
            description=suggestion.message or f"Follow up with {name}",
            date=suggestion.suggested_date,
            type='followup',
            contact_id=contact.id,
            business_id=business_id,
            priority=suggestion.priority or 'medium',
            status='scheduled',
            created_by=CREATED_BY,
        ))

    logger.info(f"Intake complete: contact {contact.contact_id} ({name}) for store {store_id}, "
                f"follow-up {suggestion.suggested_method} on {suggestion.suggested_date}")
    bus.emit(EVENT_CONTACT_INTAKE_COMPLETE, {
        'id': contact.id,
        'contact_id': contact.contact_id,
        'store_id': store_id,
        'business_id': business_id,
        'mouths': reachout.donation.mouths(),
    })
    return contact

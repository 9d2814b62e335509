"""
AI Planner - call-note extraction and follow-up strategy.
Uses DeepSeek or Claude via the unified ai_client module.

AI output is never trusted as-is: follow-up suggestions pass through
deterministic guardrails, and a failed suggestion call falls back to a fixed default.
"""

import json
import logging
import re
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from marketpollen.logging_config import log_call
from marketpollen.engine.ai_client import call_ai_json
from marketpollen.models import (
    CallNoteExtraction, Contact, DonationData, FollowUpSuggestion, Reachout,
    EVENT_PRIORITIES, FOLLOW_UP_METHODS,
)
from marketpollen.bus.events import bus, EVENT_FOLLOW_UP_SUGGESTED

logger = logging.getLogger(__name__)

DEFAULT_FOLLOW_UP_DAYS = 3


# =============================================================================
# CALL-NOTE EXTRACTION
# =============================================================================

EXTRACTION_SYSTEM_PROMPT = """You extract contact information from phone call notes for a bakery's community outreach program.

CONTEXT:
- The bakery gives free products to local businesses and their people.
- "Donation" always means WE (the bakery) gave products TO the contact, never the other way around.
- Products: Bundtlet Card, Dozen Bundtinis, 8" Cake, 10" Cake, Sample Tray, Bundtlet Tower.

Return a JSON object with these fields (omit any that are not mentioned):
- firstName, lastName
- email
- phone: formatted as (XXX) XXX-XXXX when it has 10 digits
- personalDetails: personal information (family, hobbies, preferences) as one friendly sentence
- reachoutNote: a detailed note of the conversation. Keep EVERY concrete fact: orders, products, quantities,
  dates, deadlines, meetings, prices, commitments, who does what next. Do not summarize or condense.
- suggestedFollowUpDays: days until the next follow-up (usually 2-7, minimum 1)
- donation: include only if products were given ("gave", "free", "donated", "sample", "treat", "gift",
  "complimentary"). Fields: freeBundletCard, dozenBundtinis, cake8inch, cake10inch, sampleTray,
  bundtletTower (counts), cakesDonatedNotes (anything not captured by the counts),
  orderedFromUs (they placed an order with us), followedUp (we already followed up).

Return valid JSON only."""

_PHONE_DIGITS = re.compile(r'\D')


def format_phone(phone: Optional[str]) -> Optional[str]:
    """Format 10-digit (or 1 + 10-digit) US numbers as (XXX) XXX-XXXX; leave others alone."""
    if not phone:
        return None
    digits = _PHONE_DIGITS.sub('', phone)
    if len(digits) == 11 and digits.startswith('1'):
        digits = digits[1:]
    if len(digits) == 10:
        return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"
    return phone.strip() or None


def _text(data: Dict[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


@log_call
def extract_call_notes(notes: str, model: Optional[str] = None) -> CallNoteExtraction:
    """
    Pull structured contact and donation fields out of free-text call notes.
    Raises RuntimeError when the AI call fails or returns something unusable.
    """
    data = call_ai_json(
        f'Extract contact info from these call notes: "{notes}"',
        model=model,
        system=EXTRACTION_SYSTEM_PROMPT,
        max_tokens=1000,
        temperature=0.3,
    )

    days = data.get('suggestedFollowUpDays')
    try:
        days = max(int(days), 1) if days is not None else None
    except (TypeError, ValueError):
        days = None

    donation = data.get('donation')
    extraction = CallNoteExtraction(
        first_name=_text(data, 'firstName'),
        last_name=_text(data, 'lastName'),
        email=_text(data, 'email'),
        phone=format_phone(_text(data, 'phone')),
        personal_details=_text(data, 'personalDetails'),
        reachout_note=_text(data, 'reachoutNote'),
        suggested_follow_up_days=days,
        donation=DonationData.from_dict(donation) if isinstance(donation, dict) else None,
    )
    logger.info(f"Extracted call notes: name={extraction.first_name} {extraction.last_name}, "
                f"email={'yes' if extraction.email else 'no'}, phone={'yes' if extraction.phone else 'no'}, "
                f"donation={'yes' if extraction.donation else 'no'}")
    return extraction


# =============================================================================
# FOLLOW-UP SUGGESTION
# =============================================================================

FOLLOW_UP_SYSTEM_PROMPT = """You are a relationship manager for a bakery's community outreach program. \
Suggest the best next follow-up for a contact.

HARD RULES:
- Never suggest "email" if the contact has no email address.
- Never suggest "call" or "text" if the contact has no phone number.
- Never suggest a same-day follow-up. Tomorrow is the earliest allowed date.

Return JSON:
- suggestedDate: YYYY-MM-DD
- suggestedMethod: "email", "call", "meeting", "text" or "other"
- message: what to talk about or send, personalised with details and recent conversations
- priority: "low", "medium" or "high"

Guidelines:
- Donations are gifts FROM the bakery TO the contact. After a donation, follow up within 1-3 days
  to ask whether they enjoyed it and whether they would like to order. Do not thank them for donating.
- New contacts: 2-3 days. Interest in a demo, proposal or order: a meeting within 1-3 days.
- High priority = 1 day, medium = 2-3 days, low = 4-10 days."""


def available_methods(has_email: bool, has_phone: bool) -> List[str]:
    methods = []
    if has_email:
        methods.append('email')
    if has_phone:
        methods.extend(['call', 'text'])
    methods.extend(['meeting', 'other'])
    return methods


def build_follow_up_prompt(contact: Contact, reachouts: List[Reachout], today: date) -> str:
    history = []
    for r in reachouts[:5]:
        when = r.date.date().isoformat() if hasattr(r.date, 'date') else (r.date or today).isoformat()
        line = f"{when} [{r.type}]: {r.note or ''}"
        if r.donation and not r.donation.is_empty():
            line += f" [DONATION: {json.dumps(r.donation.to_dict())}]"
        history.append(line)

    has_donations = any(r.donation and not r.donation.is_empty() for r in reachouts)

    return f"""TODAY: {today.strftime('%A, %B %d, %Y')} ({today.isoformat()})

Contact: {' '.join(p for p in (contact.first_name, contact.last_name) if p) or 'the contact'}
Status: {contact.status or 'new'}
Email: {contact.email or 'NOT PROVIDED - cannot suggest email'}
Phone: {contact.phone or 'NOT PROVIDED - cannot suggest call or text'}
Available methods: {', '.join(available_methods(bool(contact.email), bool(contact.phone)))}
Personal details: {contact.personal_details or 'none'}
Has donations: {'YES - follow up soon' if has_donations else 'No'}

Recent reachouts (most recent first):
{chr(10).join(history) if history else 'No previous reachouts'}

Suggest the follow-up now. The date must be {(today + timedelta(days=1)).isoformat()} or later."""


def _parse_day(value: Any) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        return None


def apply_follow_up_guardrails(
    raw: Dict[str, Any],
    has_email: bool,
    has_phone: bool,
    today: Optional[date] = None
) -> FollowUpSuggestion:
    """
    Turn a raw AI suggestion into one that is safe to schedule.

    - email without an email address, or call/text without a phone, becomes 'meeting'
    - an unknown method becomes 'other'
    - a missing, unparsable, same-day or past date becomes tomorrow
    - an unknown priority becomes 'medium'
    """
    today = today or date.today()
    tomorrow = today + timedelta(days=1)

    method = str(raw.get('suggestedMethod') or '').strip().lower()
    if method not in FOLLOW_UP_METHODS:
        logger.debug(f"Guardrail: unknown method {method!r} → other")
        method = 'other'
    if method == 'email' and not has_email:
        logger.info("Guardrail: email suggested but contact has no email → meeting")
        method = 'meeting'
    if method in ('call', 'text') and not has_phone:
        logger.info(f"Guardrail: {method} suggested but contact has no phone → meeting")
        method = 'meeting'

    suggested = _parse_day(raw.get('suggestedDate'))
    if suggested is None or suggested < tomorrow:
        logger.info(f"Guardrail: suggested date {raw.get('suggestedDate')!r} clamped to {tomorrow}")
        suggested = tomorrow

    priority = str(raw.get('priority') or '').strip().lower()
    if priority not in EVENT_PRIORITIES:
        priority = 'medium'

    message = str(raw.get('message') or '').strip() or 'Follow up on the last conversation'

    return FollowUpSuggestion(
        suggested_date=suggested,
        suggested_method=method,
        message=message,
        priority=priority,
    )


def default_follow_up(
    first_name: Optional[str],
    has_email: bool,
    has_phone: bool,
    today: Optional[date] = None
) -> FollowUpSuggestion:
    """Deterministic suggestion used when the AI call fails."""
    today = today or date.today()
    if has_email:
        method = 'email'
    elif has_phone:
        method = 'call'
    else:
        method = 'meeting'
    return FollowUpSuggestion(
        suggested_date=today + timedelta(days=DEFAULT_FOLLOW_UP_DAYS),
        suggested_method=method,
        message=f"Follow up with {first_name or 'contact'}",
        priority='medium',
    )


@log_call
def suggest_follow_up(
    contact: Contact,
    reachouts: List[Reachout],
    today: Optional[date] = None,
    model: Optional[str] = None
) -> FollowUpSuggestion:
    """
    Suggest the next follow-up for a contact.
    Never raises for AI problems; falls back to default_follow_up instead.
    """
    today = today or date.today()
    has_email = bool(contact.email)
    has_phone = bool(contact.phone)

    try:
        raw = call_ai_json(
            build_follow_up_prompt(contact, reachouts, today),
            model=model,
            system=FOLLOW_UP_SYSTEM_PROMPT,
            max_tokens=300,
            temperature=0.7,
        )
        suggestion = apply_follow_up_guardrails(raw, has_email, has_phone, today)
    except Exception as e:
        logger.warning(f"Follow-up suggestion failed for {contact.display_name}, using default: {e}")
        suggestion = default_follow_up(contact.first_name, has_email, has_phone, today)

    bus.emit(EVENT_FOLLOW_UP_SUGGESTED, {
        'contact_id': contact.contact_id,
        'suggestion': suggestion,
    })
    return suggestion

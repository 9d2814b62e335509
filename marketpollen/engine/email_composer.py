"""
Email Composer - short follow-up email bodies via AI.
Drafts are suggestions attached to day-plan tasks; a failed draft is simply left out.
"""

import logging
from typing import Dict, List, Optional

from marketpollen.engine.ai_client import call_ai
from marketpollen.models import Contact, FollowUpTask
from marketpollen.config import config

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You write short, warm follow-up emails for a local bakery's community outreach team. \
You sound like a real neighbour, not a marketer."""


def build_draft_prompt(contact_name: str, last_note: Optional[str], message: str) -> str:
    return f"""Write the body of a short follow-up email.

RECIPIENT: {contact_name}
LAST CONVERSATION: {last_note or 'No notes from the last conversation.'}
WHAT TO FOLLOW UP ON: {message}

REQUIREMENTS:
- 2-4 sentences
- Friendly and specific to the last conversation
- No subject line, no greeting line, no signature"""


def draft_follow_up_email(
    contact_name: str,
    last_note: Optional[str],
    message: str,
    model: Optional[str] = None
) -> Optional[str]:
    """
    Draft one follow-up email body.
    Returns: the draft text, or None when the AI call fails or returns nothing.
    """
    prompt = build_draft_prompt(contact_name, last_note, message)
    try:
        text = call_ai(prompt, model=model, system=SYSTEM_PROMPT, max_tokens=200, temperature=0.6)
    except Exception as e:
        logger.warning(f"Email draft for {contact_name} failed: {e}")
        return None

    text = (text or '').strip()
    return text or None


def draft_emails_for_tasks(
    tasks: List[FollowUpTask],
    contacts_by_id: Dict[int, Contact],
    max_drafts: Optional[int] = None,
    model: Optional[str] = None
) -> int:
    """
    Attach draft bodies to email tasks, in task order, until max_drafts are attached.
    A failed draft does not use up a slot. Tasks are updated in place.

    Returns: number of drafts attached
    """
    limit = config.MAX_EMAIL_DRAFTS if max_drafts is None else max_drafts
    attempts = 0
    drafted = 0

    for task in tasks:
        if drafted >= limit:
            break
        if task.method != 'email':
            continue

        attempts += 1
        contact = contacts_by_id.get(task.contact_id)
        last_note = contact.reachouts[0].note if contact and contact.reachouts else None

        draft = draft_follow_up_email(task.contact_name, last_note, task.message, model=model)
        if draft:
            task.draft_email = draft
            drafted += 1

    logger.info(f"Drafted {drafted}/{attempts} follow-up emails")
    return drafted

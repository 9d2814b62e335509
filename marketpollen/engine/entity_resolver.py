"""
Entity Resolver - fuzzy store/business name matching.

Resolution order, first hit wins:
  1. exact, case-insensitive name equality
  2. AI match (accepted only at 'high' or 'medium' confidence)
  3. substring containment in either direction, in candidate order
An AI failure is logged and resolution continues with step 3.
"""

import json
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

from marketpollen.engine.ai_client import call_ai_json
from marketpollen.models import NameCandidate

logger = logging.getLogger(__name__)

ACCEPTED_CONFIDENCE = ('high', 'medium')

# (target, candidates, kind) -> {'matchedId', 'confidence', 'reason'}
Matcher = Callable[[str, Sequence[NameCandidate], str], Dict[str, Any]]


def _build_match_prompt(target: str, candidates: Sequence[NameCandidate], kind: str) -> str:
    listing = json.dumps([{'id': c.id, 'name': c.name} for c in candidates], indent=2, default=str)
    return f"""You match a {kind} name typed by a person against a list of known {kind}s.
Names may have typos, abbreviations, missing words or extra words.

Known {kind}s:
{listing}

Name to match: "{target}"

Return a JSON object:
{{"matchedId": <id of the best match, or null if none is plausible>,
  "confidence": "high" | "medium" | "low",
  "reason": "<one short sentence>"}}"""


def ai_match(target: str, candidates: Sequence[NameCandidate], kind: str) -> Dict[str, Any]:
    """Ask the LLM which candidate the target refers to."""
    prompt = _build_match_prompt(target, candidates, kind)
    return call_ai_json(
        prompt,
        system=f"You are a precise {kind} name matcher. Respond with JSON only.",
        max_tokens=200,
        temperature=0,
    )


def _exact(target: str, candidates: Sequence[NameCandidate]) -> Optional[NameCandidate]:
    wanted = target.strip().lower()
    for c in candidates:
        if (c.name or '').strip().lower() == wanted:
            return c
    return None


def _substring(target: str, candidates: Sequence[NameCandidate]) -> Optional[NameCandidate]:
    wanted = target.strip().lower()
    for c in candidates:
        name = (c.name or '').strip().lower()
        if name and (name in wanted or wanted in name):
            return c
    return None


def _accept_ai(result: Any, candidates: Sequence[NameCandidate]) -> Optional[NameCandidate]:
    if not isinstance(result, dict):
        return None
    if result.get('confidence') not in ACCEPTED_CONFIDENCE:
        return None
    matched = result.get('matchedId')
    if matched is None:
        return None
    # ids may come back as strings for integer keys
    for c in candidates:
        if c.id == matched or str(c.id) == str(matched):
            return c
    logger.warning(f"AI matched id {matched!r} which is not a candidate; ignoring")
    return None


def resolve_name(
    target: str,
    candidates: Sequence[NameCandidate],
    kind: str = 'business',
    matcher: Optional[Matcher] = None,
    use_ai: bool = True
) -> Optional[Any]:
    """
    Resolve a free-text name to a candidate id.

    Args:
        target: Name as typed or spoken
        candidates: Known {id, name} pairs
        kind: 'store' or 'business', used in prompts and logs
        matcher: AI matcher (default: ai_match)
        use_ai: False skips the AI step

    Returns: matching candidate id, or None
    """
    if not target or not target.strip() or not candidates:
        return None

    hit = _exact(target, candidates)
    if hit:
        logger.debug(f"resolve_name: exact {kind} match '{target}' → {hit.id}")
        return hit.id

    if use_ai:
        matcher = matcher or ai_match
        try:
            result = matcher(target, candidates, kind)
            hit = _accept_ai(result, candidates)
            if hit:
                logger.info(f"resolve_name: AI {kind} match '{target}' → '{hit.name}' "
                            f"({result.get('confidence')}: {result.get('reason', '')})")
                return hit.id
            logger.debug(f"resolve_name: AI gave no usable {kind} match for '{target}': {result}")
        except Exception as e:
            logger.warning(f"resolve_name: AI {kind} matching failed for '{target}', falling back: {e}")

    hit = _substring(target, candidates)
    if hit:
        logger.debug(f"resolve_name: substring {kind} match '{target}' → {hit.id}")
        return hit.id

    logger.info(f"resolve_name: no {kind} matches '{target}'")
    return None


def candidates_from(records: List[Any]) -> List[NameCandidate]:
    """Store/Business records → NameCandidate list, preserving order."""
    return [NameCandidate(id=r.id, name=r.name) for r in records]

"""
Donation program reporting - mouths fed per calendar quarter.
"""

import logging
from datetime import date, timedelta
from typing import Any, Dict, Optional, Tuple, Union

from marketpollen.engine import crm
from marketpollen.models import DonationData
from marketpollen.config import config

logger = logging.getLogger(__name__)


def calculate_mouths(donation: Union[DonationData, Dict[str, Any], None]) -> int:
    """Mouths fed by one donation: Σ count × weight over the product weight table."""
    if donation is None:
        return 0
    if isinstance(donation, dict):
        donation = DonationData.from_dict(donation)
    return donation.mouths()


def quarter_date_range(day: date) -> Tuple[date, date]:
    """First and last day of the calendar quarter containing day."""
    first_month = 3 * ((day.month - 1) // 3) + 1
    start = date(day.year, first_month, 1)
    if first_month == 10:
        next_start = date(day.year + 1, 1, 1)
    else:
        next_start = date(day.year, first_month + 3, 1)
    return start, next_start - timedelta(days=1)


def quarter_label(day: date) -> str:
    return f"Q{(day.month - 1) // 3 + 1} {day.year}"


def quarter_progress(store_id: int, day: Optional[date] = None) -> Dict[str, Any]:
    """
    Progress of a store towards the quarterly mouths goal.
    Returns: quarter, start/end dates, total mouths, goal, percentage (capped at 100)
    """
    day = day or date.today()
    start, end = quarter_date_range(day)

    reachouts = crm.list_donation_reachouts(store_id, start, end)
    total = sum(r.donation.mouths() for r in reachouts)
    goal = config.QUARTERLY_MOUTHS_GOAL
    percentage = min(round(total / goal * 100, 1), 100) if goal > 0 else 0

    logger.debug(f"quarter_progress: store {store_id} {quarter_label(day)} → {total}/{goal}")
    return {
        'quarter': quarter_label(day),
        'start': start.isoformat(),
        'end': end.isoformat(),
        'totalMouths': total,
        'goal': goal,
        'percentage': percentage,
        'donationCount': len(reachouts),
    }

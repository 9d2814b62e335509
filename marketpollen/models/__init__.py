"""
Data Models
Dataclasses for all entities. These are pure Python objects, no database logic.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional


# =============================================================================
# ENUMERATIONS
# =============================================================================

OPPORTUNITY_STATUSES = ('new', 'converted', 'dismissed')

EVENT_TYPES = ('reachout', 'followup', 'meeting', 'call', 'email', 'text', 'other')
EVENT_PRIORITIES = ('low', 'medium', 'high')
EVENT_STATUSES = ('scheduled', 'completed', 'cancelled')

FOLLOW_UP_METHODS = ('email', 'call', 'meeting', 'text', 'other')
REACHOUT_TYPES = ('call', 'email', 'meeting', 'other')

PLACE_STATUS_NEW = 'NEW'
PLACE_STATUS_ENRICHED = 'ENRICHED'
PLACE_STATUSES = (PLACE_STATUS_NEW, PLACE_STATUS_ENRICHED)

# Mouths fed per unit of each donated product
MOUTH_VALUES = {
    'free_bundlet_card': 1,
    'dozen_bundtinis': 12,
    'cake_8inch': 10,
    'cake_10inch': 20,
    'sample_tray': 40,
    'bundtlet_tower': 1,
}

# LLM / JSON payloads use camelCase keys
_DONATION_KEYS = {
    'freeBundletCard': 'free_bundlet_card',
    'dozenBundtinis': 'dozen_bundtinis',
    'cake8inch': 'cake_8inch',
    'cake10inch': 'cake_10inch',
    'sampleTray': 'sample_tray',
    'bundtletTower': 'bundtlet_tower',
}


def _count(value: Any) -> int:
    try:
        return max(int(value or 0), 0)
    except (TypeError, ValueError):
        return 0


def _iso(value: Any) -> Optional[str]:
    return value.isoformat() if value is not None else None


def join_address(*parts: Optional[str]) -> str:
    """Join the non-empty address components with ', '."""
    return ', '.join(p.strip() for p in parts if p and p.strip())


# =============================================================================
# ENTITIES
# =============================================================================

@dataclass
class Store:
    """A bakery location. Owns businesses, opportunities, contacts and events."""
    id: Optional[int] = None
    name: str = ''
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def full_address(self) -> str:
        return join_address(self.address, self.city, self.state, self.zip_code)


@dataclass
class Business:
    """A tracked business the store does outreach with."""
    id: Optional[int] = None
    store_id: int = 0
    name: str = ''
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    place_id: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'storeId': self.store_id,
            'name': self.name,
            'address': self.address,
            'city': self.city,
            'state': self.state,
            'zipCode': self.zip_code,
            'placeId': self.place_id,
            'createdBy': self.created_by,
            'createdAt': _iso(self.created_at),
        }


@dataclass
class Opportunity:
    """A prospective business found by a places search, not yet converted."""
    id: Optional[int] = None
    store_id: int = 0
    place_id: str = ''
    name: str = ''
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    status: str = 'new'
    business_id: Optional[int] = None
    converted_at: Optional[datetime] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def full_address(self) -> str:
        return join_address(self.address, self.city, self.state, self.zip_code)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'storeId': self.store_id,
            'placeId': self.place_id,
            'name': self.name,
            'address': self.address,
            'city': self.city,
            'state': self.state,
            'zipCode': self.zip_code,
            'status': self.status,
            'businessId': self.business_id,
            'createdAt': _iso(self.created_at),
            'createdBy': self.created_by,
            'convertedAt': _iso(self.converted_at),
        }


@dataclass
class DonationData:
    """Products given to a contact during one reachout."""
    free_bundlet_card: int = 0
    dozen_bundtinis: int = 0
    cake_8inch: int = 0
    cake_10inch: int = 0
    sample_tray: int = 0
    bundtlet_tower: int = 0
    cakes_donated_notes: Optional[str] = None
    ordered_from_us: bool = False
    followed_up: bool = False

    def mouths(self) -> int:
        return sum(getattr(self, name) * weight for name, weight in MOUTH_VALUES.items())

    def merge(self, other: 'DonationData') -> 'DonationData':
        """Sum every counter, OR the flags, join the notes."""
        counts = {name: getattr(self, name) + getattr(other, name) for name in MOUTH_VALUES}
        notes = '; '.join(n for n in (self.cakes_donated_notes, other.cakes_donated_notes) if n)
        return DonationData(
            **counts,
            cakes_donated_notes=notes or None,
            ordered_from_us=self.ordered_from_us or other.ordered_from_us,
            followed_up=self.followed_up or other.followed_up,
        )

    def is_empty(self) -> bool:
        return self.mouths() == 0 and not self.cakes_donated_notes

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'DonationData':
        """Build from camelCase (LLM / API) or snake_case (row) keys."""
        if not data:
            return cls()
        counts = {}
        for camel, snake in _DONATION_KEYS.items():
            counts[snake] = _count(data.get(camel, data.get(snake)))
        notes = data.get('cakesDonatedNotes', data.get('cakes_donated_notes'))
        return cls(
            **counts,
            cakes_donated_notes=notes or None,
            ordered_from_us=data.get('orderedFromUs', data.get('ordered_from_us')) is True,
            followed_up=data.get('followedUp', data.get('followed_up')) is True,
        )

    def to_dict(self) -> Dict[str, Any]:
        out = {camel: getattr(self, snake) for camel, snake in _DONATION_KEYS.items()}
        out['cakesDonatedNotes'] = self.cakes_donated_notes
        out['orderedFromUs'] = self.ordered_from_us
        out['followedUp'] = self.followed_up
        return out


@dataclass
class Reachout:
    """One logged interaction with a contact."""
    id: Optional[int] = None
    contact_id: int = 0
    store_id: int = 0
    date: Optional[datetime] = None
    note: Optional[str] = None
    raw_notes: Optional[str] = None
    type: str = 'call'
    donation: DonationData = field(default_factory=DonationData)
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'Reachout':
        """Rows carry the donation counters as flat columns."""
        row = dict(row)
        donation_fields = list(MOUTH_VALUES) + ['cakes_donated_notes', 'ordered_from_us', 'followed_up']
        donation = DonationData(**{k: row.pop(k) for k in donation_fields if k in row})
        return cls(donation=donation, **row)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'date': _iso(self.date),
            'note': self.note,
            'rawNotes': self.raw_notes,
            'type': self.type,
            'storeId': self.store_id,
            'createdBy': self.created_by,
            'donation': self.donation.to_dict(),
        }


@dataclass
class Contact:
    """A person at a business."""
    id: Optional[int] = None
    contact_id: str = ''
    business_id: int = 0
    store_id: int = 0
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    employee_count: Optional[int] = None
    personal_details: Optional[str] = None
    suggested_follow_up_date: Optional[datetime] = None
    suggested_follow_up_method: Optional[str] = None
    suggested_follow_up_note: Optional[str] = None
    suggested_follow_up_priority: Optional[str] = None
    last_reachout_date: Optional[datetime] = None
    status: str = 'active'
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    reachouts: List[Reachout] = field(default_factory=list)

    @property
    def display_name(self) -> str:
        name = ' '.join(p for p in (self.first_name, self.last_name) if p).strip()
        return name or self.email or 'Contact'

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'contactId': self.contact_id,
            'businessId': self.business_id,
            'storeId': self.store_id,
            'firstName': self.first_name,
            'lastName': self.last_name,
            'email': self.email,
            'phone': self.phone,
            'personalDetails': self.personal_details,
            'suggestedFollowUpDate': _iso(self.suggested_follow_up_date),
            'suggestedFollowUpMethod': self.suggested_follow_up_method,
            'suggestedFollowUpNote': self.suggested_follow_up_note,
            'suggestedFollowUpPriority': self.suggested_follow_up_priority,
            'lastReachoutDate': _iso(self.last_reachout_date),
            'status': self.status,
            'createdBy': self.created_by,
            'createdAt': _iso(self.created_at),
            'reachouts': [r.to_dict() for r in self.reachouts],
        }


@dataclass
class CalendarEvent:
    id: Optional[int] = None
    store_id: int = 0
    title: str = ''
    description: Optional[str] = None
    date: Optional[date] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    type: str = 'other'
    contact_id: Optional[int] = None
    business_id: Optional[int] = None
    priority: str = 'medium'
    status: str = 'scheduled'
    completed_at: Optional[datetime] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class DiscoveredPlace:
    """Store-independent cache row for any place a discovery search returned."""
    id: Optional[int] = None
    place_id: str = ''
    name: str = ''
    primary_type: Optional[str] = None
    formatted_address: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    status: str = PLACE_STATUS_NEW
    first_seen_at: Optional[datetime] = None
    last_seen_at: Optional[datetime] = None
    enriched_at: Optional[datetime] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    rating: Optional[float] = None
    review_count: Optional[int] = None
    price_level: Optional[int] = None
    opening_hours: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'placeId': self.place_id,
            'name': self.name,
            'primaryType': self.primary_type,
            'formattedAddress': self.formatted_address,
            'lat': self.lat,
            'lng': self.lng,
            'status': self.status,
            'firstSeenAt': self.first_seen_at.isoformat() if self.first_seen_at else None,
            'lastSeenAt': self.last_seen_at.isoformat() if self.last_seen_at else None,
            'enrichedAt': self.enriched_at.isoformat() if self.enriched_at else None,
            'phone': self.phone,
            'website': self.website,
            'rating': self.rating,
            'reviewCount': self.review_count,
            'priceLevel': self.price_level,
            'openingHours': self.opening_hours,
        }


# =============================================================================
# VALUE TYPES
# =============================================================================

@dataclass
class NameCandidate:
    id: Any
    name: str


@dataclass
class RouteStop:
    """An opportunity placed on the day's driving route."""
    id: Any
    name: str
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None

    @classmethod
    def from_opportunity(cls, opp: Opportunity) -> 'RouteStop':
        return cls(id=opp.id, name=opp.name, address=opp.address, city=opp.city,
                   state=opp.state, zip_code=opp.zip_code)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'address': self.address,
            'city': self.city,
            'state': self.state,
            'zipCode': self.zip_code,
        }


@dataclass
class FollowUpTask:
    """One contact to reach today."""
    contact_id: Any
    contact_name: str
    method: str
    message: str
    draft_email: Optional[str] = None
    event_title: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out = {
            'contactId': self.contact_id,
            'contactName': self.contact_name,
            'method': self.method,
            'message': self.message,
        }
        if self.draft_email:
            out['draftEmail'] = self.draft_email
        if self.event_title:
            out['eventTitle'] = self.event_title
        return out


@dataclass
class DayPlan:
    store_name: str
    store_address: str
    date: str
    follow_up_tasks: List[FollowUpTask] = field(default_factory=list)
    optimized_route: List[RouteStop] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'storeName': self.store_name,
            'storeAddress': self.store_address,
            'date': self.date,
            'followUpTasks': [t.to_dict() for t in self.follow_up_tasks],
            'optimizedRoute': [s.to_dict() for s in self.optimized_route],
        }


@dataclass
class FollowUpSuggestion:
    suggested_date: date
    suggested_method: str
    message: str
    priority: str = 'medium'

    def to_dict(self) -> Dict[str, Any]:
        return {
            'suggestedDate': self.suggested_date.isoformat(),
            'suggestedMethod': self.suggested_method,
            'message': self.message,
            'priority': self.priority,
        }


@dataclass
class CallNoteExtraction:
    """Structured fields pulled out of free-text call notes."""
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    personal_details: Optional[str] = None
    reachout_note: Optional[str] = None
    suggested_follow_up_days: Optional[int] = None
    donation: Optional[DonationData] = None


@dataclass
class PlaceResult:
    """A places-search hit, shaped for the opportunity picker."""
    place_id: str
    name: str
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    distance_m: Optional[float] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    primary_type: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out = {'placeId': self.place_id, 'name': self.name}
        for key, value in (('address', self.address), ('city', self.city), ('state', self.state),
                           ('zipCode', self.zip_code)):
            if value:
                out[key] = value
        if self.distance_m is not None:
            out['distanceM'] = round(self.distance_m)
        return out

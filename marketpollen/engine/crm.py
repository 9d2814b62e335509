"""
CRM Engine - Core Database Operations
Pure Python module with no AI dependency. Handles all CRUD operations.
Other modules learn about writes through the event bus.
"""

import logging
from datetime import date
from typing import List, Optional, Dict, Any, Iterable, Set, Tuple

from psycopg2.extras import Json

from marketpollen.db.connection import get_db_cursor
from marketpollen.models import (
    Store, Business, Opportunity, Contact, Reachout, CalendarEvent,
    DiscoveredPlace, PlaceResult, MOUTH_VALUES, OPPORTUNITY_STATUSES, PLACE_STATUSES,
)
from marketpollen.bus.events import (
    bus, EVENT_STORE_CREATED, EVENT_BUSINESS_CREATED, EVENT_CONTACT_CREATED,
    EVENT_REACHOUT_LOGGED, EVENT_CALENDAR_EVENT_CREATED, EVENT_OPPORTUNITIES_ADDED,
    EVENT_OPPORTUNITY_CONVERTED, EVENT_OPPORTUNITY_DISMISSED, EVENT_PLACE_DISCOVERED,
)

logger = logging.getLogger(__name__)

# Fields a caller may override when converting an opportunity into a business
_CONVERT_OVERRIDE_COLUMNS = {'name', 'address', 'city', 'state', 'zip_code'}

_REACHOUT_COLUMNS = (
    "id, contact_id, store_id, date, note, raw_notes, type, "
    "free_bundlet_card, dozen_bundtinis, cake_8inch, cake_10inch, sample_tray, "
    "bundtlet_tower, cakes_donated_notes, ordered_from_us, followed_up, "
    "created_by, created_at"
)

MAX_DISCOVERED_PAGE = 100


def _validate_columns(updates: Dict[str, Any], allowed: set, entity: str) -> None:
    """Raise ValueError if any key in updates is not an allowed column name."""
    invalid = set(updates.keys()) - allowed
    if invalid:
        raise ValueError(f"Invalid {entity} fields: {invalid}")


# =============================================================================
# STORE OPERATIONS
# =============================================================================

def create_store(store: Store) -> int:
    """
    Create a new store.
    Returns: store id
    """
    with get_db_cursor() as cur:
        cur.execute("""
            INSERT INTO stores (name, address, city, state, zip_code, created_by, created_at, updated_at)
            VALUES (%(name)s, %(address)s, %(city)s, %(state)s, %(zip_code)s, %(created_by)s, NOW(), NOW())
            RETURNING id
        """, store.__dict__)

        store_id = cur.fetchone()['id']
        logger.info(f"Created store ID {store_id}: {store.name}")
        bus.emit(EVENT_STORE_CREATED, {'store_id': store_id, 'store': store})
        return store_id


def get_store(store_id: int) -> Optional[Store]:
    """Get store by ID."""
    with get_db_cursor() as cur:
        cur.execute("SELECT * FROM stores WHERE id = %s", (store_id,))
        row = cur.fetchone()
        if row:
            return Store(**row)
        logger.debug(f"get_store: store_id={store_id} not found")
        return None


def list_stores() -> List[Store]:
    with get_db_cursor() as cur:
        cur.execute("SELECT * FROM stores ORDER BY name ASC")
        rows = cur.fetchall()
        logger.debug(f"list_stores: {len(rows)} stores")
        return [Store(**row) for row in rows]


def can_access_store(uid: str, store_id: int) -> bool:
    """A user may act on a store if they are a global admin or hold a permission row for it."""
    with get_db_cursor() as cur:
        cur.execute("""
            SELECT
                EXISTS (SELECT 1 FROM users WHERE uid = %(uid)s AND is_global_admin)
                OR EXISTS (SELECT 1 FROM store_permissions WHERE uid = %(uid)s AND store_id = %(store_id)s)
                AS allowed
        """, {'uid': uid, 'store_id': store_id})
        allowed = bool(cur.fetchone()['allowed'])
        if not allowed:
            logger.warning(f"can_access_store: uid={uid} denied for store_id={store_id}")
        return allowed


# =============================================================================
# BUSINESS OPERATIONS
# =============================================================================

def create_business(business: Business) -> int:
    """
    Create a new business under a store.
    Returns: business id
    """
    with get_db_cursor() as cur:
        cur.execute("""
            INSERT INTO businesses (
                store_id, name, address, city, state, zip_code, place_id,
                created_by, created_at, updated_at
            ) VALUES (
                %(store_id)s, %(name)s, %(address)s, %(city)s, %(state)s, %(zip_code)s,
                %(place_id)s, %(created_by)s, NOW(), NOW()
            ) RETURNING id
        """, business.__dict__)

        business_id = cur.fetchone()['id']
        logger.info(f"Created business ID {business_id}: {business.name} (store {business.store_id})")
        bus.emit(EVENT_BUSINESS_CREATED, {'business_id': business_id, 'business': business})
        return business_id


def list_businesses(store_id: int) -> List[Business]:
    with get_db_cursor() as cur:
        cur.execute("""
            SELECT * FROM businesses
            WHERE store_id = %s
            ORDER BY name ASC
        """, (store_id,))
        rows = cur.fetchall()
        logger.debug(f"list_businesses: store_id={store_id} → {len(rows)} businesses")
        return [Business(**row) for row in rows]


# =============================================================================
# OPPORTUNITY OPERATIONS
# =============================================================================

def list_opportunities(store_id: int, status: Optional[str] = 'new') -> List[Opportunity]:
    """Opportunities for a store, newest first. status=None returns every status."""
    if status is not None and status not in OPPORTUNITY_STATUSES:
        raise ValueError(f"Invalid opportunity status '{status}'")

    conditions = ["store_id = %(store_id)s"]
    params = {'store_id': store_id}
    if status:
        conditions.append("status = %(status)s")
        params['status'] = status

    where_clause = " AND ".join(conditions)

    with get_db_cursor() as cur:
        cur.execute(f"""
            SELECT * FROM opportunities
            WHERE {where_clause}
            ORDER BY created_at DESC, id DESC
        """, params)
        rows = cur.fetchall()
        logger.debug(f"list_opportunities: store_id={store_id} status={status} → {len(rows)}")
        return [Opportunity(**row) for row in rows]


def get_opportunity(opportunity_id: int) -> Optional[Opportunity]:
    with get_db_cursor() as cur:
        cur.execute("SELECT * FROM opportunities WHERE id = %s", (opportunity_id,))
        row = cur.fetchone()
        return Opportunity(**row) if row else None


def add_opportunities(
    store_id: int,
    places: Iterable[PlaceResult],
    created_by: Optional[str] = None
) -> Tuple[List[Opportunity], int]:
    """
    Bulk-add places as opportunities for a store.
    A (store, place) pair that already exists is skipped, not treated as an error.

    Returns: (inserted opportunities, number skipped as duplicates)
    """
    inserted: List[Opportunity] = []
    skipped = 0

    with get_db_cursor() as cur:
        for place in places:
            if not place.place_id or not place.name:
                logger.warning(f"add_opportunities: ignoring entry without placeId/name: {place!r}")
                continue

            cur.execute("""
                INSERT INTO opportunities (
                    store_id, place_id, name, address, city, state, zip_code,
                    status, created_by, created_at, updated_at
                ) VALUES (
                    %(store_id)s, %(place_id)s, %(name)s, %(address)s, %(city)s, %(state)s,
                    %(zip_code)s, 'new', %(created_by)s, NOW(), NOW()
                )
                ON CONFLICT (store_id, place_id) DO NOTHING
                RETURNING *
            """, {
                'store_id': store_id,
                'place_id': place.place_id,
                'name': place.name,
                'address': place.address,
                'city': place.city,
                'state': place.state,
                'zip_code': place.zip_code,
                'created_by': created_by,
            })

            row = cur.fetchone()
            if row:
                inserted.append(Opportunity(**row))
            else:
                skipped += 1
                logger.debug(f"add_opportunities: place {place.place_id} already tracked for store {store_id}")

    logger.info(f"Added {len(inserted)} opportunities to store {store_id} ({skipped} duplicates skipped)")
    bus.emit(EVENT_OPPORTUNITIES_ADDED, {
        'store_id': store_id,
        'inserted': len(inserted),
        'skipped': skipped,
    })
    return inserted, skipped


def convert_opportunity(
    opportunity_id: int,
    overrides: Optional[Dict[str, Any]] = None,
    created_by: Optional[str] = None
) -> Tuple[Opportunity, Business]:
    """
    Turn an opportunity into a tracked business, in one transaction.
    overrides may replace name/address/city/state/zip_code; empty values are ignored.

    Returns: (updated opportunity, new business)
    Raises: LookupError if the opportunity does not exist,
            ValueError if it was already converted or dismissed.
    """
    overrides = {k: v for k, v in (overrides or {}).items() if v}
    _validate_columns(overrides, _CONVERT_OVERRIDE_COLUMNS, 'opportunity override')

    with get_db_cursor() as cur:
        cur.execute("SELECT * FROM opportunities WHERE id = %s FOR UPDATE", (opportunity_id,))
        row = cur.fetchone()
        if not row:
            raise LookupError("Opportunity not found")

        opp = Opportunity(**row)
        if opp.status == 'converted':
            raise ValueError("Opportunity already converted")
        if opp.status == 'dismissed':
            raise ValueError("Opportunity was dismissed")

        business = Business(
            store_id=opp.store_id,
            name=overrides.get('name', opp.name),
            address=overrides.get('address', opp.address),
            city=overrides.get('city', opp.city),
            state=overrides.get('state', opp.state),
            zip_code=overrides.get('zip_code', opp.zip_code),
            place_id=opp.place_id,
            created_by=created_by,
        )

        cur.execute("""
            INSERT INTO businesses (
                store_id, name, address, city, state, zip_code, place_id,
                created_by, created_at, updated_at
            ) VALUES (
                %(store_id)s, %(name)s, %(address)s, %(city)s, %(state)s, %(zip_code)s,
                %(place_id)s, %(created_by)s, NOW(), NOW()
            ) RETURNING *
        """, business.__dict__)
        business = Business(**cur.fetchone())

        cur.execute("""
            UPDATE opportunities
            SET status = 'converted', business_id = %s, converted_at = NOW(), updated_at = NOW()
            WHERE id = %s
            RETURNING *
        """, (business.id, opportunity_id))
        opp = Opportunity(**cur.fetchone())

    logger.info(f"Converted opportunity {opportunity_id} into business {business.id}")
    bus.emit(EVENT_BUSINESS_CREATED, {'business_id': business.id, 'business': business})
    bus.emit(EVENT_OPPORTUNITY_CONVERTED, {'opportunity_id': opportunity_id, 'business_id': business.id})
    return opp, business


def dismiss_opportunity(opportunity_id: int) -> Opportunity:
    """
    Mark a new opportunity as dismissed (terminal).
    Raises: LookupError if absent, ValueError if it is no longer new.
    """
    with get_db_cursor() as cur:
        cur.execute("""
            UPDATE opportunities
            SET status = 'dismissed', updated_at = NOW()
            WHERE id = %s AND status = 'new'
            RETURNING *
        """, (opportunity_id,))
        row = cur.fetchone()

        if not row:
            cur.execute("SELECT status FROM opportunities WHERE id = %s", (opportunity_id,))
            existing = cur.fetchone()
            if not existing:
                raise LookupError("Opportunity not found")
            raise ValueError(f"Opportunity is already {existing['status']}")

    logger.info(f"Dismissed opportunity {opportunity_id}")
    bus.emit(EVENT_OPPORTUNITY_DISMISSED, {'opportunity_id': opportunity_id})
    return Opportunity(**row)


def known_place_ids(store_id: int) -> Set[str]:
    """Place ids already recorded for a store as a business or an opportunity."""
    with get_db_cursor() as cur:
        cur.execute("""
            SELECT place_id FROM businesses WHERE store_id = %(store_id)s AND place_id IS NOT NULL
            UNION
            SELECT place_id FROM opportunities WHERE store_id = %(store_id)s
        """, {'store_id': store_id})
        return {row['place_id'] for row in cur.fetchall()}


# =============================================================================
# CONTACT OPERATIONS
# =============================================================================

def create_contact(contact: Contact) -> int:
    """
    Create a new contact.
    Returns: contact row id
    """
    with get_db_cursor() as cur:
        cur.execute("""
            INSERT INTO contacts (
                contact_id, business_id, store_id, first_name, last_name, email, phone,
                employee_count, personal_details, suggested_follow_up_date,
                suggested_follow_up_method, suggested_follow_up_note,
                suggested_follow_up_priority, last_reachout_date, status, created_by,
                created_at, updated_at
            ) VALUES (
                %(contact_id)s, %(business_id)s, %(store_id)s, %(first_name)s, %(last_name)s,
                %(email)s, %(phone)s, %(employee_count)s, %(personal_details)s,
                %(suggested_follow_up_date)s, %(suggested_follow_up_method)s,
                %(suggested_follow_up_note)s, %(suggested_follow_up_priority)s,
                %(last_reachout_date)s, %(status)s, %(created_by)s, NOW(), NOW()
            ) RETURNING id
        """, contact.__dict__)

        row_id = cur.fetchone()['id']
        logger.info(f"Created contact ID {row_id} ({contact.contact_id}): {contact.display_name}")
        bus.emit(EVENT_CONTACT_CREATED, {'id': row_id, 'contact': contact})
        return row_id


def get_contact(contact_row_id: int) -> Optional[Contact]:
    """Get contact by row ID, with its reachouts most recent first."""
    with get_db_cursor() as cur:
        cur.execute("SELECT * FROM contacts WHERE id = %s", (contact_row_id,))
        row = cur.fetchone()
        if not row:
            logger.debug(f"get_contact: id={contact_row_id} not found")
            return None
        contact = Contact(**row)

        cur.execute(f"""
            SELECT {_REACHOUT_COLUMNS} FROM reachouts
            WHERE contact_id = %s
            ORDER BY date DESC
        """, (contact_row_id,))
        contact.reachouts = [Reachout.from_row(r) for r in cur.fetchall()]
        return contact


def list_contacts_with_reachouts(store_id: int, reachout_limit: int = 5) -> List[Contact]:
    """All contacts of a store, each carrying up to reachout_limit reachouts, most recent first."""
    with get_db_cursor() as cur:
        cur.execute("""
            SELECT * FROM contacts
            WHERE store_id = %s
            ORDER BY created_at ASC, id ASC
        """, (store_id,))
        contacts = [Contact(**row) for row in cur.fetchall()]
        if not contacts:
            return []

        cur.execute(f"""
            SELECT {_REACHOUT_COLUMNS} FROM (
                SELECT r.*, ROW_NUMBER() OVER (PARTITION BY r.contact_id ORDER BY r.date DESC) AS rn
                FROM reachouts r
                WHERE r.store_id = %s
            ) ranked
            WHERE rn <= %s
            ORDER BY contact_id, date DESC
        """, (store_id, reachout_limit))
        rows = cur.fetchall()

    by_contact: Dict[int, List[Reachout]] = {}
    for row in rows:
        reachout = Reachout.from_row(row)
        by_contact.setdefault(reachout.contact_id, []).append(reachout)
    for contact in contacts:
        contact.reachouts = by_contact.get(contact.id, [])

    logger.debug(f"list_contacts_with_reachouts: store_id={store_id} → {len(contacts)} contacts")
    return contacts


# =============================================================================
# REACHOUT OPERATIONS
# =============================================================================

def log_reachout(reachout: Reachout) -> int:
    """
    Log a reachout for a contact.
    The contact's last_reachout_date is left as is.
    Returns: reachout id
    """
    params = dict(reachout.__dict__)
    params.update(reachout.donation.__dict__)

    with get_db_cursor() as cur:
        cur.execute("""
            INSERT INTO reachouts (
                contact_id, store_id, date, note, raw_notes, type,
                free_bundlet_card, dozen_bundtinis, cake_8inch, cake_10inch, sample_tray,
                bundtlet_tower, cakes_donated_notes, ordered_from_us, followed_up,
                created_by, created_at
            ) VALUES (
                %(contact_id)s, %(store_id)s, COALESCE(%(date)s, NOW()), %(note)s,
                %(raw_notes)s, %(type)s, %(free_bundlet_card)s, %(dozen_bundtinis)s,
                %(cake_8inch)s, %(cake_10inch)s, %(sample_tray)s, %(bundtlet_tower)s,
                %(cakes_donated_notes)s, %(ordered_from_us)s, %(followed_up)s,
                %(created_by)s, NOW()
            ) RETURNING id
        """, params)

        reachout_id = cur.fetchone()['id']
        logger.info(f"Logged reachout ID {reachout_id} for contact {reachout.contact_id}")
        bus.emit(EVENT_REACHOUT_LOGGED, {
            'reachout_id': reachout_id,
            'contact_id': reachout.contact_id,
            'mouths': reachout.donation.mouths(),
        })
        return reachout_id


def get_reachouts(contact_row_id: int) -> List[Reachout]:
    """All reachouts for a contact, most recent first."""
    with get_db_cursor() as cur:
        cur.execute(f"""
            SELECT {_REACHOUT_COLUMNS} FROM reachouts
            WHERE contact_id = %s
            ORDER BY date DESC
        """, (contact_row_id,))
        rows = cur.fetchall()
        logger.debug(f"get_reachouts: contact_id={contact_row_id} → {len(rows)} reachouts")
        return [Reachout.from_row(row) for row in rows]


def list_donation_reachouts(store_id: int, start: date, end: date) -> List[Reachout]:
    """Reachouts of a store dated between start and end (inclusive) that carry any donation."""
    any_donation = " OR ".join(f"{column} > 0" for column in MOUTH_VALUES)
    with get_db_cursor() as cur:
        cur.execute(f"""
            SELECT {_REACHOUT_COLUMNS} FROM reachouts
            WHERE store_id = %s
              AND date::date BETWEEN %s AND %s
              AND ({any_donation})
            ORDER BY date ASC
        """, (store_id, start, end))
        rows = cur.fetchall()
        logger.debug(f"list_donation_reachouts: store_id={store_id} {start}..{end} → {len(rows)}")
        return [Reachout.from_row(row) for row in rows]


# =============================================================================
# CALENDAR OPERATIONS
# =============================================================================

def create_calendar_event(event: CalendarEvent) -> int:
    """
    Create a calendar event.
    Returns: event id
    """
    with get_db_cursor() as cur:
        cur.execute("""
            INSERT INTO calendar_events (
                store_id, title, description, date, start_time, end_time, type,
                contact_id, business_id, priority, status, completed_at, created_by,
                created_at, updated_at
            ) VALUES (
                %(store_id)s, %(title)s, %(description)s, %(date)s, %(start_time)s,
                %(end_time)s, %(type)s, %(contact_id)s, %(business_id)s, %(priority)s,
                %(status)s, %(completed_at)s, %(created_by)s, NOW(), NOW()
            ) RETURNING id
        """, event.__dict__)

        event_id = cur.fetchone()['id']
        logger.info(f"Created calendar event ID {event_id}: {event.title} on {event.date}")
        bus.emit(EVENT_CALENDAR_EVENT_CREATED, {'event_id': event_id, 'event': event})
        return event_id


def list_calendar_events(store_id: int, day: date) -> List[CalendarEvent]:
    """Non-cancelled events of a store on one day, by start time."""
    with get_db_cursor() as cur:
        cur.execute("""
            SELECT * FROM calendar_events
            WHERE store_id = %s
              AND date = %s
              AND status <> 'cancelled'
            ORDER BY date ASC, start_time ASC NULLS LAST, id ASC
        """, (store_id, day))
        rows = cur.fetchall()
        logger.debug(f"list_calendar_events: store_id={store_id} day={day} → {len(rows)} events")
        return [CalendarEvent(**row) for row in rows]


# =============================================================================
# DISCOVERED PLACE OPERATIONS
# =============================================================================

def existing_discovered_place_ids(place_ids: List[str]) -> Set[str]:
    if not place_ids:
        return set()
    with get_db_cursor() as cur:
        cur.execute("""
            SELECT place_id FROM discovered_places WHERE place_id = ANY(%s)
        """, (list(place_ids),))
        return {row['place_id'] for row in cur.fetchall()}


def touch_discovered_places(place_ids: List[str]) -> int:
    """Bump last_seen_at for places seen again. Nothing else changes."""
    if not place_ids:
        return 0
    with get_db_cursor() as cur:
        cur.execute("""
            UPDATE discovered_places
            SET last_seen_at = NOW()
            WHERE place_id = ANY(%s)
        """, (list(place_ids),))
        logger.debug(f"touch_discovered_places: {cur.rowcount} rows")
        return cur.rowcount


def insert_discovered_place(place: DiscoveredPlace) -> bool:
    """
    Record a newly seen place.
    Returns: False when another request recorded the same place first.
    """
    params = dict(place.__dict__)
    params['opening_hours'] = Json(place.opening_hours) if place.opening_hours is not None else None

    with get_db_cursor() as cur:
        cur.execute("""
            INSERT INTO discovered_places (
                place_id, name, primary_type, formatted_address, lat, lng, status,
                first_seen_at, last_seen_at, enriched_at, phone, website, rating,
                review_count, price_level, opening_hours
            ) VALUES (
                %(place_id)s, %(name)s, %(primary_type)s, %(formatted_address)s, %(lat)s,
                %(lng)s, %(status)s, NOW(), NOW(), %(enriched_at)s, %(phone)s, %(website)s,
                %(rating)s, %(review_count)s, %(price_level)s, %(opening_hours)s
            )
            ON CONFLICT (place_id) DO NOTHING
            RETURNING id
        """, params)

        row = cur.fetchone()
        if not row:
            logger.info(f"insert_discovered_place: {place.place_id} already recorded, skipped")
            return False

    logger.info(f"Discovered place {place.place_id}: {place.name} ({place.status})")
    bus.emit(EVENT_PLACE_DISCOVERED, {'place_id': place.place_id, 'status': place.status})
    return True


def list_discovered_places(
    status: Optional[str] = None,
    primary_type: Optional[str] = None,
    limit: int = 50,
    offset: int = 0
) -> Tuple[List[DiscoveredPlace], int]:
    """
    Page through the discovery cache, most recently seen first.
    Returns: (places, total matching rows)
    """
    if status and status not in PLACE_STATUSES:
        raise ValueError(f"Invalid place status '{status}'")

    conditions = ["TRUE"]
    params: Dict[str, Any] = {}

    if status:
        conditions.append("status = %(status)s")
        params['status'] = status

    if primary_type:
        conditions.append("primary_type = %(primary_type)s")
        params['primary_type'] = primary_type

    params['limit'] = min(max(int(limit or 50), 1), MAX_DISCOVERED_PAGE)
    params['offset'] = max(int(offset or 0), 0)

    where_clause = " AND ".join(conditions)

    with get_db_cursor() as cur:
        cur.execute(f"""
            SELECT * FROM discovered_places
            WHERE {where_clause}
            ORDER BY last_seen_at DESC
            LIMIT %(limit)s OFFSET %(offset)s
        """, params)
        rows = cur.fetchall()

        cur.execute(f"SELECT COUNT(*) AS total FROM discovered_places WHERE {where_clause}", params)
        total = cur.fetchone()['total']

    logger.debug(f"list_discovered_places: {len(rows)} of {total} (status={status}, type={primary_type})")
    return [DiscoveredPlace(**row) for row in rows], total

"""
Lead Scout - nearby business discovery.
Geocoding via the Google Maps client, place search and details via the Places API (New).

Two flows:
  find_nearby_places  - candidates for a store's opportunity list
  discover_places     - populate the store-independent discovered_places cache
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import googlemaps
import requests
from tqdm import tqdm

from marketpollen.engine import crm
from marketpollen.engine.geo import distance_meters
from marketpollen.logging_config import log_call
from marketpollen.models import DiscoveredPlace, PlaceResult, PLACE_STATUS_ENRICHED, PLACE_STATUS_NEW
from marketpollen.config import config

logger = logging.getLogger(__name__)

PLACES_API_BASE = 'https://places.googleapis.com/v1'

SEARCH_FIELD_MASK = ','.join([
    'places.id',
    'places.displayName',
    'places.formattedAddress',
    'places.addressComponents',
    'places.primaryType',
    'places.location',
])

DETAILS_FIELD_MASK = ','.join([
    'id',
    'displayName',
    'formattedAddress',
    'primaryType',
    'location',
    'nationalPhoneNumber',
    'internationalPhoneNumber',
    'websiteUri',
    'rating',
    'userRatingCount',
    'priceLevel',
    'currentOpeningHours',
])

PRICE_LEVELS = {
    'PRICE_LEVEL_FREE': 0,
    'PRICE_LEVEL_INEXPENSIVE': 1,
    'PRICE_LEVEL_MODERATE': 2,
    'PRICE_LEVEL_EXPENSIVE': 3,
    'PRICE_LEVEL_VERY_EXPENSIVE': 4,
}

DISCOVERY_MODES = ('NEARBY', 'TEXT')


class PlacesApiError(RuntimeError):
    """A geocoding / Places API failure, carrying the HTTP status to report upstream."""

    def __init__(self, message: str, status_code: int = 502):
        super().__init__(message)
        self.status_code = status_code


# =============================================================================
# GEOCODING (googlemaps client)
# =============================================================================

def _api_key() -> str:
    if not config.GOOGLE_MAPS_API_KEY:
        raise PlacesApiError("Google Places API key is not configured", status_code=500)
    return config.GOOGLE_MAPS_API_KEY


def geocode(address: str) -> Optional[Tuple[float, float]]:
    """
    Geocode an address.
    Returns: (lat, lng), or None when Google has no result for it.
    Raises: PlacesApiError for API-level and transport errors.
    """
    gmaps = googlemaps.Client(key=_api_key(), timeout=config.PLACES_TIMEOUT_SECONDS)

    try:
        results = gmaps.geocode(address)
    except googlemaps.exceptions.ApiError as e:
        logger.error(f"Geocode API error for {address!r}: {e.status} {e.message}")
        raise PlacesApiError(f"Geocoding error: {e.status} - {e.message or 'Unknown'}", status_code=400)
    except (googlemaps.exceptions.TransportError, googlemaps.exceptions.Timeout) as e:
        logger.error(f"Geocode transport error for {address!r}: {e}")
        raise PlacesApiError(f"Geocoding failed: {e}", status_code=502)

    if not results:
        logger.info(f"Geocode: no results for {address!r}")
        return None

    location = results[0].get('geometry', {}).get('location', {})
    if location.get('lat') is None or location.get('lng') is None:
        return None
    return location['lat'], location['lng']


def geocode_or_none(address: str) -> Optional[Tuple[float, float]]:
    """geocode() for best-effort callers: any failure is logged and reads as 'no location'."""
    if not address:
        return None
    try:
        return geocode(address)
    except Exception as e:
        logger.warning(f"Geocoding skipped for {address!r}: {e}")
        return None


# =============================================================================
# PLACES API (NEW)
# =============================================================================

def _headers(field_mask: str) -> Dict[str, str]:
    return {
        'Content-Type': 'application/json',
        'X-Goog-Api-Key': _api_key(),
        'X-Goog-FieldMask': field_mask,
    }


def _raise_for_places(response: requests.Response) -> None:
    if response.ok:
        return
    try:
        message = response.json().get('error', {}).get('message')
    except ValueError:
        message = None
    message = message or f"Places API returned HTTP {response.status_code}"
    logger.error(f"Places API error {response.status_code}: {message}")
    raise PlacesApiError(message, status_code=response.status_code)


def _request(method: str, url: str, field_mask: str, body: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    try:
        if method == 'POST':
            response = requests.post(url, json=body, headers=_headers(field_mask),
                                     timeout=config.PLACES_TIMEOUT_SECONDS)
        else:
            response = requests.get(url, headers=_headers(field_mask), timeout=config.PLACES_TIMEOUT_SECONDS)
    except requests.exceptions.Timeout:
        raise PlacesApiError(f"Places API timed out after {config.PLACES_TIMEOUT_SECONDS}s", status_code=504)
    except requests.exceptions.RequestException as e:
        raise PlacesApiError(f"Places API request failed: {e}", status_code=502)

    _raise_for_places(response)
    return response.json() or {}


def place_id_from_name(name: Optional[str]) -> Optional[str]:
    """'places/ChIJ...' → 'ChIJ...'. Bare ids pass through."""
    if not name or not isinstance(name, str):
        return None
    return name[len('places/'):] if name.startswith('places/') else name


def _place_id(raw: Dict[str, Any]) -> Optional[str]:
    return place_id_from_name(raw.get('name')) or place_id_from_name(raw.get('id'))


def _display_name(raw: Dict[str, Any]) -> str:
    name = raw.get('displayName')
    if isinstance(name, dict):
        name = name.get('text')
    return name or 'Unknown'


def parse_address_components(components: Optional[List[Dict[str, Any]]]) -> Dict[str, Optional[str]]:
    """Pull city / state / zip out of Places addressComponents."""
    out: Dict[str, Optional[str]] = {'city': None, 'state': None, 'zip_code': None}
    for c in components or []:
        types = c.get('types') or []
        text = c.get('longText') or c.get('shortText') or ''
        if 'locality' in types:
            out['city'] = text
        elif 'administrative_area_level_1' in types:
            out['state'] = text
        elif 'postal_code' in types:
            out['zip_code'] = text
    return out


def _circle(lat: float, lng: float, radius_m: float) -> Dict[str, Any]:
    return {'circle': {'center': {'latitude': lat, 'longitude': lng}, 'radius': radius_m}}


def _with_ids(places: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    out = []
    for raw in places:
        place_id = _place_id(raw)
        if not place_id:
            continue
        out.append(dict(raw, placeId=place_id))
    return out


def search_nearby(
    center_lat: float,
    center_lng: float,
    radius_m: Optional[float] = None,
    included_types: Optional[List[str]] = None,
    max_results: Optional[int] = None
) -> List[Dict[str, Any]]:
    """Places within a circle, nearest first. Each result carries a normalised 'placeId'."""
    body: Dict[str, Any] = {
        'locationRestriction': _circle(center_lat, center_lng, radius_m or config.NEARBY_RADIUS_M),
        'maxResultCount': max_results or config.MAX_PLACE_RESULTS,
        'rankPreference': 'DISTANCE',
    }
    if included_types:
        body['includedTypes'] = included_types

    data = _request('POST', f"{PLACES_API_BASE}/places:searchNearby", SEARCH_FIELD_MASK, body)
    places = _with_ids(data.get('places') or [])
    logger.debug(f"search_nearby ({center_lat}, {center_lng}): {len(places)} places")
    return places


def search_text(
    text_query: str,
    center_lat: Optional[float] = None,
    center_lng: Optional[float] = None,
    radius_m: Optional[float] = None,
    included_type: Optional[str] = None,
    strict_type_filtering: bool = False,
    max_results: Optional[int] = None
) -> List[Dict[str, Any]]:
    """Keyword search ("event venue", "law firm"), biased towards a circle when a center is given."""
    body: Dict[str, Any] = {
        'textQuery': text_query,
        'maxResultCount': max_results or config.MAX_PLACE_RESULTS,
    }
    if center_lat is not None and center_lng is not None:
        body['locationBias'] = _circle(center_lat, center_lng, radius_m or config.NEARBY_RADIUS_M)
    if included_type:
        body['includedType'] = included_type
        body['strictTypeFiltering'] = strict_type_filtering

    data = _request('POST', f"{PLACES_API_BASE}/places:searchText", SEARCH_FIELD_MASK, body)
    places = _with_ids(data.get('places') or [])
    logger.debug(f"search_text {text_query!r}: {len(places)} places")
    return places


def to_discovered_place(raw: Dict[str, Any]) -> DiscoveredPlace:
    """Basic (un-enriched) cache record from a search result."""
    location = raw.get('location') or {}
    return DiscoveredPlace(
        place_id=raw.get('placeId') or _place_id(raw),
        name=_display_name(raw),
        primary_type=raw.get('primaryType'),
        formatted_address=raw.get('formattedAddress'),
        lat=location.get('latitude'),
        lng=location.get('longitude'),
        status=PLACE_STATUS_NEW,
    )


def get_place_details(place_id: str) -> DiscoveredPlace:
    """Full details for one place, as an ENRICHED cache record."""
    raw = _request('GET', f"{PLACES_API_BASE}/places/{place_id}", DETAILS_FIELD_MASK)

    place = to_discovered_place(raw)
    place.place_id = _place_id(raw) or place_id
    place.status = PLACE_STATUS_ENRICHED
    place.enriched_at = datetime.now(timezone.utc)
    place.phone = raw.get('nationalPhoneNumber') or raw.get('internationalPhoneNumber')
    place.website = raw.get('websiteUri')
    place.rating = raw.get('rating')
    place.review_count = raw.get('userRatingCount')
    place.price_level = PRICE_LEVELS.get(raw.get('priceLevel'))

    hours = raw.get('currentOpeningHours')
    if hours:
        place.opening_hours = {
            'weekdayDescriptions': hours.get('weekdayDescriptions'),
            'openNow': hours.get('openNow'),
        }
    return place


# =============================================================================
# NEARBY SEARCH FOR A STORE
# =============================================================================

@log_call
def find_nearby_places(
    store_id: int,
    address: Optional[str] = None,
    lat: Optional[float] = None,
    lng: Optional[float] = None,
    text_query: Optional[str] = None
) -> List[PlaceResult]:
    """
    Businesses around a location that the store is not tracking yet.

    Places already recorded for the store (as business or opportunity) and places
    within SAME_LOCATION_THRESHOLD_M of the search origin are left out.
    Sorted by distance, unknown distances last.
    """
    if lat is None or lng is None:
        address = (address or '').strip()
        if not address:
            raise ValueError("address or lat/lng required")
        location = geocode(address)
        if location is None:
            raise ValueError("Could not geocode address - no results found")
        lat, lng = location

    existing = crm.known_place_ids(store_id)

    text_query = (text_query or '').strip()
    if text_query:
        raw_places = search_text(text_query, center_lat=lat, center_lng=lng)
    else:
        raw_places = search_nearby(lat, lng)

    results: List[PlaceResult] = []
    for raw in raw_places:
        place_id = raw['placeId']
        if place_id in existing:
            continue

        location = raw.get('location') or {}
        place_lat, place_lng = location.get('latitude'), location.get('longitude')
        distance = None
        if place_lat is not None and place_lng is not None:
            distance = distance_meters(lat, lng, place_lat, place_lng)
            # the store's own address
            if distance < config.SAME_LOCATION_THRESHOLD_M:
                continue

        existing.add(place_id)
        parts = parse_address_components(raw.get('addressComponents'))
        results.append(PlaceResult(
            place_id=place_id,
            name=_display_name(raw),
            address=raw.get('formattedAddress'),
            city=parts['city'],
            state=parts['state'],
            zip_code=parts['zip_code'],
            distance_m=distance,
            lat=place_lat,
            lng=place_lng,
            primary_type=raw.get('primaryType'),
        ))

    results.sort(key=lambda p: p.distance_m if p.distance_m is not None else float('inf'))
    logger.info(f"find_nearby_places: store {store_id} → {len(results)} new places of {len(raw_places)} found")
    return results


# =============================================================================
# DISCOVERY CACHE
# =============================================================================

@log_call
def discover_places(
    mode: str,
    center_lat: Optional[float] = None,
    center_lng: Optional[float] = None,
    radius_m: Optional[float] = None,
    included_types: Optional[List[str]] = None,
    text_query: Optional[str] = None,
    included_type: Optional[str] = None,
    strict_type_filtering: bool = False,
    show_progress: bool = False
) -> Dict[str, Any]:
    """
    Run a discovery search and record what it found.

    Known places only get last_seen_at bumped. New places are enriched with
    details and stored ENRICHED; when enrichment fails they are stored NEW with
    the basic search fields and still returned.

    Returns: {'new_places': [DiscoveredPlace], 'existing_count': int, 'total_search_results': int}
    """
    if mode not in DISCOVERY_MODES:
        raise ValueError('mode must be "NEARBY" or "TEXT"')

    if mode == 'NEARBY':
        if center_lat is None or center_lng is None:
            raise ValueError("centerLat and centerLng required for NEARBY mode")
        raw_places = search_nearby(center_lat, center_lng, radius_m=radius_m, included_types=included_types)
    else:
        if not (text_query or '').strip():
            raise ValueError("textQuery required for TEXT mode")
        raw_places = search_text(text_query.strip(), center_lat=center_lat, center_lng=center_lng,
                                 radius_m=radius_m, included_type=included_type,
                                 strict_type_filtering=strict_type_filtering)

    total = len(raw_places)
    if total == 0:
        return {'new_places': [], 'existing_count': 0, 'total_search_results': 0}

    place_ids = [raw['placeId'] for raw in raw_places]
    known = crm.existing_discovered_place_ids(place_ids)
    if known:
        crm.touch_discovered_places(sorted(known))

    fresh = []
    seen = set(known)
    for raw in raw_places:
        if raw['placeId'] not in seen:
            seen.add(raw['placeId'])
            fresh.append(raw)

    new_places: List[DiscoveredPlace] = []
    for raw in tqdm(fresh, desc="Enriching places", unit="place", disable=not show_progress):
        try:
            place = get_place_details(raw['placeId'])
        except Exception as e:
            logger.warning(f"Enrichment failed for {raw['placeId']}, storing basic record: {e}")
            place = to_discovered_place(raw)

        if crm.insert_discovered_place(place):
            new_places.append(place)

    logger.info(f"discover_places ({mode}): {len(new_places)} new, {len(known)} already known, {total} total")
    return {
        'new_places': new_places,
        'existing_count': total - len(fresh),
        'total_search_results': total,
    }

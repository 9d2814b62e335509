"""
HTTP API for the outreach CRM.

Every error body is {"error": "<message>"}. Store-scoped endpoints answer
404 "Store not found" for stores that are missing and for stores the caller
may not see.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import Body, Depends, FastAPI, Header, HTTPException, Query
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import uvicorn

from marketpollen.config import config
from marketpollen.logging_config import configure_logging
from marketpollen.engine import crm
from marketpollen.engine.call_intake import create_contact_from_call
from marketpollen.engine.day_planner import build_day_plan, parse_plan_date
from marketpollen.engine.donations import quarter_progress
from marketpollen.engine.lead_scout import discover_places, find_nearby_places
from marketpollen.models import PlaceResult
from marketpollen.api.auth import optional_uid, require_uid, validate_api_key

logger = logging.getLogger(__name__)

app = FastAPI(
    title="MarketPollen",
    description="Outreach CRM for bakery stores",
    version="0.1.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# ERROR HANDLERS
# =============================================================================

def _error(status_code: int, message: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={'error': str(message)})


@app.exception_handler(StarletteHTTPException)
async def http_error(request, exc: StarletteHTTPException):
    return _error(exc.status_code, exc.detail)


@app.exception_handler(RequestValidationError)
async def validation_error(request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = '.'.join(str(p) for p in first.get('loc', ()) if p not in ('body', 'query', 'path'))
        return _error(400, f"Invalid {field}: {first.get('msg')}" if field else first.get('msg'))
    return _error(400, "Invalid request")


@app.exception_handler(ValueError)
async def value_error(request, exc: ValueError):
    return _error(400, exc)


@app.exception_handler(LookupError)
async def lookup_error(request, exc: LookupError):
    return _error(404, exc.args[0] if exc.args else "Not found")


@app.exception_handler(KeyError)
async def key_error(request, exc: KeyError):
    logger.exception(f"{request.method} {request.url.path} crashed: KeyError {exc}")
    return _error(500, f"Missing key: {exc}")


@app.exception_handler(IndexError)
async def index_error(request, exc: IndexError):
    logger.exception(f"{request.method} {request.url.path} crashed: IndexError {exc}")
    return _error(500, "Internal server error")


@app.exception_handler(RuntimeError)
async def upstream_error(request, exc: RuntimeError):
    logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return _error(getattr(exc, 'status_code', 500), exc)


@app.exception_handler(Exception)
async def unhandled_error(request, exc: Exception):
    logger.exception(f"{request.method} {request.url.path} crashed: {exc}")
    return _error(500, exc)


# =============================================================================
# HELPERS
# =============================================================================

def _authorize_store(uid: str, store_id: int) -> None:
    if not crm.can_access_store(uid, store_id):
        raise LookupError("Store not found")


def _store_id(value: Any) -> int:
    if value is None or str(value).strip() == '':
        raise ValueError("storeId required")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError("storeId must be an integer")


def _float(payload: Dict[str, Any], key: str) -> Optional[float]:
    value = payload.get(key)
    if value is None or value == '':
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{key} must be a number")


# =============================================================================
# DAY PLAN
# =============================================================================

@app.get("/api/day-planner")
def day_planner(
    storeId: Optional[int] = None,
    date: Optional[str] = None,
    uid: str = Depends(require_uid)
):
    """Follow-up tasks and an ordered visiting route for one store and day."""
    if storeId is None or not date:
        raise ValueError("storeId and date (YYYY-MM-DD) are required")
    _authorize_store(uid, storeId)
    parse_plan_date(date)
    return build_day_plan(storeId, date).to_dict()


# =============================================================================
# CALL INTAKE
# =============================================================================

@app.post("/api/create-contact-from-call")
def create_contact_from_call_route(
    payload: Optional[Dict[str, Any]] = Body(None),
    uid: Optional[str] = Depends(optional_uid),
    x_api_key: Optional[str] = Header(None)
):
    """
    Create a contact from phone-call notes.
    Accepts a bearer identity, or the voice API key as apiKey in the body or X-API-Key.
    """
    payload = payload or {}
    if not uid:
        provided = payload.get('apiKey') or x_api_key
        if not provided:
            raise HTTPException(status_code=401, detail="Unauthorized - Authentication required "
                                                        "(Bearer token or apiKey in body)")
        if not validate_api_key(provided):
            raise HTTPException(status_code=401, detail="Invalid API key")

    try:
        contact = create_contact_from_call(
            payload.get('notes'),
            payload.get('storeName'),
            payload.get('businessName'),
        )
    except ValueError:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to create contact: {e}")

    return {
        'success': True,
        'contactId': contact.id,
        'contact': contact.to_dict(),
        'message': 'Contact created successfully from call notes',
    }


# =============================================================================
# PLACES
# =============================================================================

@app.post("/api/places-nearby")
def places_nearby(payload: Optional[Dict[str, Any]] = Body(None), uid: str = Depends(require_uid)):
    payload = payload or {}
    store_id = _store_id(payload.get('storeId'))
    _authorize_store(uid, store_id)

    places = find_nearby_places(
        store_id,
        address=payload.get('address'),
        lat=_float(payload, 'lat'),
        lng=_float(payload, 'lng'),
        text_query=payload.get('textQuery'),
    )
    return {'places': [p.to_dict() for p in places]}


@app.post("/api/discovery/search")
def discovery_search(payload: Optional[Dict[str, Any]] = Body(None), uid: str = Depends(require_uid)):
    """Populate the discovery cache from a NEARBY or TEXT search."""
    payload = payload or {}
    store_id = _store_id(payload.get('storeId'))
    mode = payload.get('mode')
    if mode not in ('NEARBY', 'TEXT'):
        raise ValueError('mode must be "NEARBY" or "TEXT"')
    _authorize_store(uid, store_id)

    included_types = payload.get('includedTypes')
    result = discover_places(
        mode,
        center_lat=_float(payload, 'centerLat'),
        center_lng=_float(payload, 'centerLng'),
        radius_m=_float(payload, 'radiusM'),
        included_types=included_types if isinstance(included_types, list) else None,
        text_query=payload.get('textQuery'),
        included_type=payload.get('includedType'),
        strict_type_filtering=bool(payload.get('strictTypeFiltering', False)),
    )
    return {
        'newPlaces': [p.to_dict() for p in result['new_places']],
        'existingCount': result['existing_count'],
        'totalSearchResults': result['total_search_results'],
    }


@app.get("/api/discovered-places")
def discovered_places(
    status: Optional[str] = None,
    primaryType: Optional[str] = None,
    limit: int = Query(50, ge=1),
    offset: int = Query(0, ge=0),
    uid: str = Depends(require_uid)
):
    places, total = crm.list_discovered_places(status=status, primary_type=primaryType,
                                               limit=limit, offset=offset)
    return {
        'places': [p.to_dict() for p in places],
        'total': total,
        'limit': min(limit, crm.MAX_DISCOVERED_PAGE),
        'offset': offset,
    }


# =============================================================================
# OPPORTUNITIES
# =============================================================================

@app.get("/api/opportunities")
def list_opportunities(
    storeId: Optional[int] = None,
    status: str = 'new',
    uid: str = Depends(require_uid)
):
    store_id = _store_id(storeId)
    _authorize_store(uid, store_id)
    return [o.to_dict() for o in crm.list_opportunities(store_id, status)]


@app.post("/api/opportunities", status_code=201)
def add_opportunities(
    storeId: Optional[int] = None,
    payload: Optional[Dict[str, Any]] = Body(None),
    uid: str = Depends(require_uid)
):
    """Bulk-add places as opportunities. Places the store already has are skipped."""
    store_id = _store_id(storeId)
    _authorize_store(uid, store_id)

    entries = (payload or {}).get('opportunities')
    if not isinstance(entries, list) or not entries:
        raise ValueError("opportunities array is required")

    places: List[PlaceResult] = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        places.append(PlaceResult(
            place_id=entry.get('placeId') or '',
            name=entry.get('name') or '',
            address=entry.get('address'),
            city=entry.get('city'),
            state=entry.get('state'),
            zip_code=entry.get('zipCode'),
        ))

    inserted, skipped = crm.add_opportunities(store_id, places, created_by=uid)
    return {'inserted': [o.to_dict() for o in inserted], 'skippedCount': skipped}


def _opportunity_for(uid: str, opportunity_id: int):
    opp = crm.get_opportunity(opportunity_id)
    if not opp or not crm.can_access_store(uid, opp.store_id):
        raise LookupError("Opportunity not found")
    return opp


@app.post("/api/opportunities/{opportunity_id}/convert")
def convert_opportunity(
    opportunity_id: int,
    payload: Optional[Dict[str, Any]] = Body(None),
    uid: str = Depends(require_uid)
):
    _opportunity_for(uid, opportunity_id)

    payload = payload or {}
    overrides = {
        'name': payload.get('name'),
        'address': payload.get('address'),
        'city': payload.get('city'),
        'state': payload.get('state'),
        'zip_code': payload.get('zipCode'),
    }
    opp, business = crm.convert_opportunity(opportunity_id, overrides, created_by=uid)
    return {'business': business.to_dict(), 'opportunity': opp.to_dict()}


@app.patch("/api/opportunities/{opportunity_id}")
def update_opportunity(
    opportunity_id: int,
    payload: Optional[Dict[str, Any]] = Body(None),
    uid: str = Depends(require_uid)
):
    """Only dismissal is supported."""
    _opportunity_for(uid, opportunity_id)
    if (payload or {}).get('status') != 'dismissed':
        raise ValueError("Invalid status or no changes")
    return crm.dismiss_opportunity(opportunity_id).to_dict()


# =============================================================================
# DONATIONS
# =============================================================================

@app.get("/api/donations/progress")
def donations_progress(
    storeId: Optional[int] = None,
    date: Optional[str] = None,
    uid: str = Depends(require_uid)
):
    store_id = _store_id(storeId)
    _authorize_store(uid, store_id)
    day = parse_plan_date(date) if date else None
    return quarter_progress(store_id, day)


def run(host: Optional[str] = None, port: Optional[int] = None):
    configure_logging()
    uvicorn.run(app, host=host or config.API_HOST, port=port or config.API_PORT)

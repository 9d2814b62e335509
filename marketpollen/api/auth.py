"""
Request identity for the HTTP API.

Browser clients send a bearer identity token (JWT). The phone/voice intake
caller may instead present the shared VOICE_API_KEY.
"""

import hashlib
import hmac
import logging
from typing import Optional

from fastapi import Header, HTTPException
from jose import JWTError, jwt

from marketpollen.cache import TTLCache
from marketpollen.config import config

logger = logging.getLogger(__name__)

# Validated keys, by digest. Per process.
api_key_cache = TTLCache(config.API_KEY_CACHE_TTL_SECONDS)


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(' ')
    if scheme.lower() != 'bearer' or not token.strip():
        return None
    return token.strip()


def verify_id_token(authorization: Optional[str]) -> Optional[str]:
    """
    Resolve an Authorization header to a user id.
    Returns: the token's uid / user_id / sub claim, or None if absent or invalid.
    """
    token = _bearer_token(authorization)
    if not token:
        return None
    if not config.AUTH_JWT_SECRET:
        logger.error("AUTH_JWT_SECRET not set; rejecting bearer token")
        return None

    try:
        claims = jwt.decode(token, config.AUTH_JWT_SECRET, algorithms=[config.AUTH_JWT_ALGORITHM])
    except JWTError as e:
        logger.info(f"Rejected bearer token: {e}")
        return None

    return claims.get('uid') or claims.get('user_id') or claims.get('sub')


def validate_api_key(provided: Optional[str], cache: Optional[TTLCache] = None) -> bool:
    """
    Check a shared API key against VOICE_API_KEY.
    A successful check is remembered for the cache TTL. No configured key means no key is valid.
    """
    cache = cache if cache is not None else api_key_cache
    if not provided or not config.VOICE_API_KEY:
        return False

    digest = hashlib.sha256(provided.encode('utf-8')).hexdigest()
    if cache.get(digest):
        return True

    valid = hmac.compare_digest(provided.encode('utf-8'), config.VOICE_API_KEY.encode('utf-8'))
    if valid:
        cache.set(digest, True)
    else:
        logger.warning("Invalid API key presented")
    return valid


# =============================================================================
# FASTAPI DEPENDENCIES
# =============================================================================

def require_uid(authorization: Optional[str] = Header(None)) -> str:
    uid = verify_id_token(authorization)
    if not uid:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return uid


def optional_uid(authorization: Optional[str] = Header(None)) -> Optional[str]:
    return verify_id_token(authorization)

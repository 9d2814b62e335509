"""
Unit tests for marketpollen/api/auth.py.

Tokens are signed with python-jose against a patched AUTH_JWT_SECRET.
"""

from unittest.mock import patch

import pytest
from fastapi import HTTPException
from jose import jwt

from marketpollen.api import auth
from marketpollen.api.auth import optional_uid, require_uid, validate_api_key, verify_id_token
from marketpollen.cache import TTLCache

SECRET = 'test-secret'


@pytest.fixture(autouse=True)
def cfg():
    with patch('marketpollen.api.auth.config') as mock_config:
        mock_config.AUTH_JWT_SECRET = SECRET
        mock_config.AUTH_JWT_ALGORITHM = 'HS256'
        mock_config.VOICE_API_KEY = 'voice-key'
        yield mock_config


def _bearer(claims, secret=SECRET):
    return 'Bearer ' + jwt.encode(claims, secret, algorithm='HS256')


# ---------------------------------------------------------------------------
# Identity tokens
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("claims,expected", [
    ({'uid': 'u1'}, 'u1'),
    ({'user_id': 'u2'}, 'u2'),
    ({'sub': 'u3'}, 'u3'),
    ({'email': 'x@y.z'}, None),
])
def test_verify_id_token_claims(claims, expected):
    assert verify_id_token(_bearer(claims)) == expected


@pytest.mark.parametrize("header", [None, '', 'Basic abc', 'Bearer ', 'Bearer not-a-jwt'])
def test_verify_id_token_rejects_malformed(header):
    assert verify_id_token(header) is None


def test_verify_id_token_wrong_secret():
    assert verify_id_token(_bearer({'uid': 'u1'}, secret='other')) is None


def test_verify_id_token_without_configured_secret(cfg):
    header = _bearer({'uid': 'u1'})
    cfg.AUTH_JWT_SECRET = ''
    assert verify_id_token(header) is None


def test_require_uid():
    assert require_uid(_bearer({'uid': 'u1'})) == 'u1'
    with pytest.raises(HTTPException) as exc:
        require_uid(None)
    assert exc.value.status_code == 401


def test_optional_uid():
    assert optional_uid(None) is None
    assert optional_uid(_bearer({'uid': 'u1'})) == 'u1'


# ---------------------------------------------------------------------------
# API keys
# ---------------------------------------------------------------------------

class TestValidateApiKey:

    def test_valid_key_is_cached(self):
        cache = TTLCache(300)
        assert validate_api_key('voice-key', cache) is True
        assert len(cache) == 1
        assert 'voice-key' not in cache

    def test_cached_key_skips_comparison(self):
        cache = TTLCache(300)
        validate_api_key('voice-key', cache)
        with patch('marketpollen.api.auth.hmac.compare_digest') as mock_compare:
            assert validate_api_key('voice-key', cache) is True
        mock_compare.assert_not_called()

    def test_invalid_key_not_cached(self):
        cache = TTLCache(300)
        assert validate_api_key('wrong', cache) is False
        assert len(cache) == 0

    @pytest.mark.parametrize("provided", [None, ''])
    def test_missing_key(self, provided):
        assert validate_api_key(provided, TTLCache(300)) is False

    def test_no_configured_key_rejects_everything(self, cfg):
        cfg.VOICE_API_KEY = ''
        assert validate_api_key('voice-key', TTLCache(300)) is False

    def test_default_cache_is_module_level(self):
        auth.api_key_cache.clear()
        assert validate_api_key('voice-key') is True
        assert len(auth.api_key_cache) == 1
        auth.api_key_cache.clear()

"""
MarketPollen Configuration
Loads settings from environment variables with sensible defaults.
"""

import logging
import os
from pathlib import Path
from dotenv import load_dotenv

_logger = logging.getLogger(__name__)

# Load .env file
env_path = Path(__file__).parent.parent / '.env'
load_dotenv(env_path)


class Config:
    """Application configuration."""

    # Database: must be set in .env; never hardcode credentials here
    DATABASE_URL = os.getenv('DATABASE_URL')
    if not DATABASE_URL:
        _logger.critical("DATABASE_URL is not set, cannot start. Copy .env.example to .env and configure it.")
        raise ValueError("DATABASE_URL environment variable is not set. Copy .env.example to .env and configure it.")

    DB_CONNECT_TIMEOUT_SECONDS = int(os.getenv('DB_CONNECT_TIMEOUT_SECONDS', '5'))
    DB_STATEMENT_TIMEOUT_MS = int(os.getenv('DB_STATEMENT_TIMEOUT_MS', '5000'))

    # AI
    # DeepSeek (routine tasks: name matching, note extraction, follow-up strategy)
    DEEPSEEK_API_KEY = os.getenv('DEEPSEEK_API_KEY', '')
    DEEPSEEK_BASE_URL = os.getenv('DEEPSEEK_BASE_URL', 'https://api.deepseek.com')
    DEFAULT_AI_MODEL = os.getenv('DEFAULT_AI_MODEL', 'deepseek-chat')
    # Claude (optional alternative backend)
    ANTHROPIC_API_KEY = os.getenv('ANTHROPIC_API_KEY', '')
    CLAUDE_MODEL = os.getenv('CLAUDE_MODEL', 'claude-3-5-sonnet-latest')
    AI_TIMEOUT_SECONDS = float(os.getenv('AI_TIMEOUT_SECONDS', '10'))

    # Google Maps (geocoding + Places API)
    GOOGLE_MAPS_API_KEY = os.getenv('GOOGLE_MAPS_API_KEY', '')
    PLACES_TIMEOUT_SECONDS = float(os.getenv('PLACES_TIMEOUT_SECONDS', '10'))
    NEARBY_RADIUS_M = int(os.getenv('NEARBY_RADIUS_M', '2000'))
    MAX_PLACE_RESULTS = int(os.getenv('MAX_PLACE_RESULTS', '20'))
    SAME_LOCATION_THRESHOLD_M = float(os.getenv('SAME_LOCATION_THRESHOLD_M', '50'))

    # Day planner
    MAX_EMAIL_DRAFTS = int(os.getenv('MAX_EMAIL_DRAFTS', '5'))
    MAX_OPPORTUNITIES_IN_PLAN = int(os.getenv('MAX_OPPORTUNITIES_IN_PLAN', '10'))

    # Donation program
    QUARTERLY_MOUTHS_GOAL = int(os.getenv('QUARTERLY_MOUTHS_GOAL', '10000'))

    # Voice / phone intake shared key
    VOICE_API_KEY = os.getenv('VOICE_API_KEY', '')
    API_KEY_CACHE_TTL_SECONDS = float(os.getenv('API_KEY_CACHE_TTL_SECONDS', '300'))

    # Bearer identity tokens
    AUTH_JWT_SECRET = os.getenv('AUTH_JWT_SECRET', '')
    AUTH_JWT_ALGORITHM = os.getenv('AUTH_JWT_ALGORITHM', 'HS256')

    # HTTP server
    API_HOST = os.getenv('API_HOST', '127.0.0.1')
    API_PORT = int(os.getenv('API_PORT', '8000'))
    CORS_ORIGINS = [o.strip() for o in os.getenv('CORS_ORIGINS', '*').split(',') if o.strip()]


# Singleton instance
config = Config()

"""
AI Client - Unified interface for all AI backends.
Supports: Claude API, DeepSeek Chat, DeepSeek Reasoner.
Every call is bounded by AI_TIMEOUT_SECONDS.
"""

import json
import logging
import re
from typing import Any, Dict, Optional

import requests
from anthropic import Anthropic

from marketpollen.config import config

logger = logging.getLogger(__name__)

MODEL_CHOICES = ['claude', 'deepseek-chat', 'deepseek-reasoner']

DEFAULT_SYSTEM = "You are a helpful assistant for a bakery's community outreach team."

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


# =============================================================================
# CLAUDE CLIENT
# =============================================================================

def call_claude(
    prompt: str,
    system: Optional[str] = None,
    max_tokens: int = 2000,
    temperature: Optional[float] = None
) -> str:
    """Call Claude API. Returns generated text."""
    if not config.ANTHROPIC_API_KEY:
        raise ValueError("ANTHROPIC_API_KEY not set in environment")

    client = Anthropic(api_key=config.ANTHROPIC_API_KEY, timeout=config.AI_TIMEOUT_SECONDS)

    kwargs: Dict[str, Any] = {}
    if temperature is not None:
        kwargs['temperature'] = temperature

    try:
        logger.debug("Calling Claude API")
        message = client.messages.create(
            model=config.CLAUDE_MODEL,
            max_tokens=max_tokens,
            system=system if system else DEFAULT_SYSTEM,
            messages=[
                {"role": "user", "content": prompt}
            ],
            **kwargs
        )
        return message.content[0].text

    except Exception as e:
        logger.error(f"Claude API error: {e}")
        raise RuntimeError(f"Failed to call Claude API: {e}")


# =============================================================================
# DEEPSEEK CLIENT
# =============================================================================

def call_deepseek(
    prompt: str,
    model: str = 'deepseek-chat',
    system: Optional[str] = None,
    max_tokens: int = 2000,
    json_mode: bool = False,
    temperature: Optional[float] = None
) -> str:
    """Call DeepSeek API (OpenAI-compatible). Returns generated text."""
    if not config.DEEPSEEK_API_KEY:
        raise ValueError("DEEPSEEK_API_KEY not set in environment")

    url = f"{config.DEEPSEEK_BASE_URL}/chat/completions"

    messages = []
    if system:
        messages.append({"role": "system", "content": system})
    messages.append({"role": "user", "content": prompt})

    payload: Dict[str, Any] = {
        "model": model,
        "messages": messages,
        "max_tokens": max_tokens,
        "stream": False,
    }
    if json_mode:
        payload["response_format"] = {"type": "json_object"}
    if temperature is not None:
        payload["temperature"] = temperature

    headers = {
        "Authorization": f"Bearer {config.DEEPSEEK_API_KEY}",
        "Content-Type": "application/json",
    }

    try:
        logger.debug(f"Calling DeepSeek API with model {model}")
        response = requests.post(url, json=payload, headers=headers, timeout=config.AI_TIMEOUT_SECONDS)
        response.raise_for_status()

        result = response.json()
        return result['choices'][0]['message']['content']

    except requests.exceptions.Timeout as e:
        logger.error(f"DeepSeek API timed out after {config.AI_TIMEOUT_SECONDS}s: {e}")
        raise RuntimeError(f"DeepSeek API timed out after {config.AI_TIMEOUT_SECONDS}s")
    except requests.exceptions.RequestException as e:
        logger.error(f"DeepSeek API error: {e}")
        raise RuntimeError(f"Failed to call DeepSeek API: {e}")
    except (KeyError, IndexError) as e:
        logger.error(f"DeepSeek response parse error: {e}")
        raise RuntimeError(f"Unexpected DeepSeek response format: {e}")


# =============================================================================
# UNIFIED ROUTER
# =============================================================================

def ai_available(model: Optional[str] = None) -> bool:
    """True when the API key for the given (or default) model is configured."""
    model = model or config.DEFAULT_AI_MODEL
    if model == 'claude':
        return bool(config.ANTHROPIC_API_KEY)
    return bool(config.DEEPSEEK_API_KEY)


def call_ai(
    prompt: str,
    model: Optional[str] = None,
    system: Optional[str] = None,
    max_tokens: int = 2000,
    json_mode: bool = False,
    temperature: Optional[float] = None
) -> str:
    """
    Route an AI call to the appropriate backend.

    Args:
        prompt: User prompt text
        model: One of 'claude', 'deepseek-chat', 'deepseek-reasoner' (default: DEFAULT_AI_MODEL)
        system: Optional system prompt
        max_tokens: Max tokens to generate
        json_mode: Ask the backend for a single JSON object
        temperature: Optional sampling temperature

    Returns: Generated text
    """
    model = model or config.DEFAULT_AI_MODEL
    if model == 'claude':
        return call_claude(prompt, system=system, max_tokens=max_tokens, temperature=temperature)
    elif model in ('deepseek-chat', 'deepseek-reasoner'):
        return call_deepseek(prompt, model=model, system=system, max_tokens=max_tokens,
                             json_mode=json_mode, temperature=temperature)
    else:
        raise ValueError(f"Unknown AI model '{model}'. Choose from: {', '.join(MODEL_CHOICES)}")


def parse_json_object(text: str) -> Dict[str, Any]:
    """Parse model output as a JSON object, tolerating Markdown code fences."""
    cleaned = _FENCE_RE.sub('', (text or '').strip())
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise RuntimeError(f"AI response is not valid JSON: {e}")
    if not isinstance(data, dict):
        raise RuntimeError("AI response is not a JSON object")
    return data


def call_ai_json(
    prompt: str,
    model: Optional[str] = None,
    system: Optional[str] = None,
    max_tokens: int = 1000,
    temperature: Optional[float] = None
) -> Dict[str, Any]:
    """call_ai in JSON mode, returning the parsed object."""
    text = call_ai(prompt, model=model, system=system, max_tokens=max_tokens,
                   json_mode=True, temperature=temperature)
    return parse_json_object(text)

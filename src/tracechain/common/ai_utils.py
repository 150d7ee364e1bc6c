"""
AI Utilities for TraceChain

Centralized Claude client initialization and response parsing.
"""

import json
import logging
import re
from typing import Any, Optional, Tuple

from .utils import get_api_key_from_env

try:
    import anthropic
    ANTHROPIC_AVAILABLE = True
except ImportError:
    anthropic = None
    ANTHROPIC_AVAILABLE = False

logger = logging.getLogger("tracechain.ai")

_CODE_BLOCK = re.compile(r'```(?:json)?\s*\n(.*?)\n```', re.DOTALL)


def create_anthropic_client(
    api_key: Optional[str] = None,
    raise_on_error: bool = False
) -> Tuple[Optional[Any], bool, str]:
    """
    Create an Anthropic client with standardized error handling.

    Args:
        api_key: Optional API key (if not provided, reads from ANTHROPIC_API_KEY env var)
        raise_on_error: If True, raises exceptions. If False, returns None client with error message

    Returns:
        Tuple of (client, is_available, status_message)

    Examples:
        client, available, msg = create_anthropic_client()
        if not available:
            print(msg)
    """
    if not ANTHROPIC_AVAILABLE:
        error_msg = "⚠ Claude AI not available: anthropic library not installed (pip install anthropic)"
        if raise_on_error:
            raise ImportError(error_msg)
        logger.info(error_msg)
        return None, False, error_msg

    # SECURITY: API key comes from the environment, never from the CLI
    if api_key is None:
        api_key = get_api_key_from_env()

    if not api_key:
        error_msg = "⚠ Claude AI not available: ANTHROPIC_API_KEY not set"
        if raise_on_error:
            raise ValueError(
                "API key required. Set ANTHROPIC_API_KEY environment variable.\n"
                "Example: export ANTHROPIC_API_KEY=your_key"
            )
        logger.info(error_msg)
        return None, False, error_msg

    try:
        client = anthropic.Anthropic(api_key=api_key)
    except Exception as e:
        error_msg = f"⚠ Claude AI initialization failed: {e}"
        if raise_on_error:
            raise
        logger.warning(error_msg)
        return None, False, error_msg

    return client, True, "✓ Claude AI enabled"


def extract_json_payload(response_text: str) -> Any:
    """
    Decode JSON from a model answer, with or without a ```json fence.

    Raises:
        ValueError: If no JSON can be decoded
    """
    matches = _CODE_BLOCK.findall(response_text)
    payload = matches[0] if matches else response_text.strip()
    return json.loads(payload)

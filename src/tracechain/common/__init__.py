"""
TraceChain Common Utilities

Shared utilities and helpers used across TraceChain modules.
"""

from .utils import get_api_key_from_env, url_host, url_path
from .ai_utils import create_anthropic_client, extract_json_payload, ANTHROPIC_AVAILABLE

__all__ = [
    'get_api_key_from_env',
    'url_host',
    'url_path',
    'create_anthropic_client',
    'extract_json_payload',
    'ANTHROPIC_AVAILABLE',
]

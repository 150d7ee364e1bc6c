"""
TraceChain Common Utilities

Shared helpers for environment access and URL naming.
"""

import os
from typing import Optional
from urllib.parse import urlsplit


def get_api_key_from_env() -> Optional[str]:
    """
    Retrieve the Anthropic API key from the ANTHROPIC_API_KEY variable.

    API keys are never accepted on the command line, to keep them out of
    process lists and shell history.
    """
    return os.environ.get('ANTHROPIC_API_KEY')


def url_path(url: str) -> str:
    """Path part of a URL, ``/`` when empty or unparseable."""
    try:
        return urlsplit(url).path or '/'
    except ValueError:
        return '/'


def url_host(netloc: str) -> str:
    """Host as written in a netloc; ``urlsplit().hostname`` lowercases it."""
    host = netloc.rpartition('@')[2]
    if host.startswith('['):
        return host[1:host.find(']')]
    return host.partition(':')[0]

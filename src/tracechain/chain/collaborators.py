"""
TraceChain Collaborators

Two narrow capabilities the pipeline consults but does not own:

- naming: choose variable names for chains and display names for requests
- locator resolution: turn a recorded JSON path into one that survives
  structural changes in future responses

Each has an offline, deterministic implementation and a Claude-backed one.
Claude-backed implementations raise CollaboratorFailure for anything that is
not a well-formed answer; callers decide how to fall back.
"""

import json
import logging
import re
from dataclasses import dataclass, asdict, field
from textwrap import dedent
from typing import Any, List, Optional, Tuple

from ..common import create_anthropic_client, extract_json_payload, url_path
from .config import ChainConfig
from .errors import CollaboratorFailure
from .locator import parse_path

logger = logging.getLogger("tracechain.collaborators")

# Keys too generic to name a variable on their own
GENERIC_KEYS = {"id", "value", "key", "code", "uuid", "guid", "token", "name", "data", "result"}


@dataclass
class NamingRequest:
    """What the naming collaborator knows about one chain."""

    origin_url: str
    origin_path: str
    example_value: str
    hint: Optional[str] = None
    proposed_name: Optional[str] = None


@dataclass
class NamingResult:
    name: str
    init_script: Optional[str] = None


@dataclass
class RequestNamingRequest:
    url: str
    method: str
    sequence: int


@dataclass
class ResolutionRequest:
    """What the locator resolver gets for one chain origin."""

    url: str
    current_path: str
    value: str
    partial_json: Any
    usage_paths: List[str] = field(default_factory=list)


class NamingCollaborator:
    """Names chains and requests. Must answer exactly once per input."""

    def name_variables(self, requests: List[NamingRequest]) -> List[NamingResult]:
        raise NotImplementedError

    def name_requests(self, requests: List[RequestNamingRequest]) -> List[str]:
        raise NotImplementedError


class LocatorResolver:
    """Returns one revised locator expression per request."""

    def resolve(self, request: ResolutionRequest) -> str:
        raise NotImplementedError


def derive_variable_name(origin_path: str) -> str:
    """
    Guess a variable name from where the value came from.

    Examples:
        token                 -> token
        data.items[0].id      -> item_id
        X-Request-Id          -> X-Request-Id (sanitized later)
        set-cookie.SESSIONID  -> sessionid
    """
    if origin_path.startswith(('cookie.', 'set-cookie.')):
        return origin_path.split('.', 1)[1].lower()

    try:
        keys = [t for t in parse_path(origin_path) if isinstance(t, str)]
    except ValueError:
        # JSONPath: $.offers[?(@.type == 'primary')].id -> [..., 'primary', 'id']
        keys = re.findall(r'[A-Za-z_][A-Za-z0-9_-]*', origin_path)

    if not keys:
        return "value"

    last = keys[-1]
    if last.lower() in GENERIC_KEYS and len(keys) > 1:
        previous = keys[-2]
        base = previous[:-1] if previous.endswith('s') and len(previous) > 1 else previous
        return f"{base}_{last}"
    return last


class OfflineNamingCollaborator(NamingCollaborator):
    """Deterministic naming from locator paths and URLs."""

    def name_variables(self, requests: List[NamingRequest]) -> List[NamingResult]:
        return [
            NamingResult(name=r.proposed_name or derive_variable_name(r.origin_path))
            for r in requests
        ]

    def name_requests(self, requests: List[RequestNamingRequest]) -> List[str]:
        return [f"{r.method.upper()} {url_path(r.url)}" for r in requests]


class OfflineLocatorResolver(LocatorResolver):
    """Keeps every path as recorded."""

    def resolve(self, request: ResolutionRequest) -> str:
        return request.current_path


class ClaudeCollaborator:
    """Shared Claude plumbing for the AI-backed collaborators."""

    def __init__(self, client: Any, model: str):
        self.client = client
        self.model = model

    def _ask(self, prompt: str, max_tokens: int = 2048) -> str:
        try:
            message = self.client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                messages=[{"role": "user", "content": prompt}]
            )
            return message.content[0].text
        except Exception as e:
            raise CollaboratorFailure(f"Claude request failed: {e}") from e

    def _ask_json_array(self, prompt: str, expected: int) -> List[Any]:
        response_text = self._ask(prompt)
        try:
            payload = extract_json_payload(response_text)
        except ValueError as e:
            raise CollaboratorFailure(f"Unparseable answer: {e}") from e

        if not isinstance(payload, list):
            raise CollaboratorFailure(f"Expected a JSON array, got {type(payload).__name__}")
        if len(payload) != expected:
            raise CollaboratorFailure(f"Expected {expected} results, got {len(payload)}")
        return payload


class ClaudeNamingCollaborator(ClaudeCollaborator, NamingCollaborator):
    """Names chains and requests with Claude."""

    def name_variables(self, requests: List[NamingRequest]) -> List[NamingResult]:
        if not requests:
            return []

        data_json = json.dumps([asdict(r) for r in requests], indent=2)
        prompt = dedent(f"""
        You are naming variables for an API test collection. Each value below was
        returned by an API response and reused by later requests.

        Values:
        ```json
        {data_json}
        ```

        For each entry return a concise, descriptive snake_case variable name, the way
        a human would name it. Avoid filler words such as "value" or "identifier"
        unless they are essential. Names must be unique. If "proposed_name" is set,
        return it unchanged. If "hint" is set, also return a short JavaScript
        "init_script" that initializes the variable as the hint describes; otherwise
        use null.

        Return a JSON array with exactly {len(requests)} objects, in the same order:
        ```json
        [{{"name": "auth_token", "init_script": null}}]
        ```

        Output the JSON array now:
        """).strip()

        results = []
        for item in self._ask_json_array(prompt, len(requests)):
            if isinstance(item, str):
                item = {"name": item}
            if not isinstance(item, dict) or not isinstance(item.get("name"), str) or not item["name"].strip():
                raise CollaboratorFailure(f"Malformed naming result: {item!r}")
            script = item.get("init_script")
            results.append(NamingResult(
                name=item["name"].strip(),
                init_script=script if isinstance(script, str) and script.strip() else None
            ))
        return results

    def name_requests(self, requests: List[RequestNamingRequest]) -> List[str]:
        if not requests:
            return []

        data_json = json.dumps([asdict(r) for r in requests], indent=2)
        prompt = dedent(f"""
        Below is a list of API calls with their method, URL and position in the
        recorded sequence.

        ```json
        {data_json}
        ```

        Give each call a short, clear, human-readable name describing what it does.
        Repeated calls may share a name. Always return a name for every call.

        Return a JSON array with exactly {len(requests)} objects, in the same order:
        ```json
        [{{"name": "Log in"}}]
        ```

        Output the JSON array now:
        """).strip()

        names = []
        for item in self._ask_json_array(prompt, len(requests)):
            name = item.get("name") if isinstance(item, dict) else item
            if not isinstance(name, str) or not name.strip():
                raise CollaboratorFailure(f"Malformed request name: {item!r}")
            names.append(name.strip())
        return names


class ClaudeLocatorResolver(ClaudeCollaborator, LocatorResolver):
    """Asks Claude for a locator that survives changes in array order."""

    def resolve(self, request: ResolutionRequest) -> str:
        data_json = json.dumps(asdict(request), indent=2, ensure_ascii=False)
        prompt = dedent(f"""
        We have a pruned JSON response ("partial_json"), the path a value was found
        at ("current_path"), and the value itself ("value"). Branches that are not
        relevant were replaced by placeholders; array indices are preserved.

        ```json
        {data_json}
        ```

        We need an expression that finds this value again in future responses of
        the same endpoint, even if the JSON differs.
        - If plain object/array syntax (e.g. foo.bar[0].baz) is stable, return it.
        - Rewrite an array index to [0] only if that does not change which element is targeted.
        - If array positions may vary, return a JSONPath expression that selects the
          element by a stable sibling field, e.g. $.items[?(@.type == 'primary')].id
        - "usage_paths" shows where later requests use the value.

        Return only the path or JSONPath expression, with no explanation or markup.
        """).strip()

        return self._ask(prompt, max_tokens=512).strip()


def create_collaborators(
    config: ChainConfig,
    api_key: Optional[str] = None
) -> Tuple[NamingCollaborator, LocatorResolver, str]:
    """
    Pick Claude-backed collaborators when AI is enabled and available,
    offline ones otherwise.

    Returns:
        Tuple of (naming, resolver, status_message)
    """
    if not config.use_ai:
        return OfflineNamingCollaborator(), OfflineLocatorResolver(), "⚠️  Claude AI disabled (offline naming)"

    client, available, message = create_anthropic_client(api_key=api_key)
    if not available:
        return OfflineNamingCollaborator(), OfflineLocatorResolver(), f"{message} (offline naming)"

    return (
        ClaudeNamingCollaborator(client, config.model),
        ClaudeLocatorResolver(client, config.model),
        message,
    )


def sanitize_name(name: str) -> str:
    """Reduce a name to ``[A-Za-z0-9_]``, never starting with a digit."""
    cleaned = re.sub(r'[^A-Za-z0-9_]+', '_', name.strip()).strip('_')
    if not cleaned:
        return "var"
    if cleaned[0].isdigit():
        cleaned = f"_{cleaned}"
    return cleaned

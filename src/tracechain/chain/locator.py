"""
TraceChain Locator Paths

Locator paths address a leaf inside a decoded JSON document:

    token                 object key
    data.items[2].id      nested keys and array index
    [0].id                top-level array
    headers["x.y"]        keys that need quoting use a JSON string in brackets

Paths produced by flattening always resolve back to the same leaf. JSONPath
expressions (starting with ``$``) are evaluated with jsonpath-ng.
"""

import json
import re
from typing import Any, List, Union

from jsonpath_ng.ext import parse as jsonpath_parse

from .errors import LocatorResolutionMismatch

Token = Union[str, int]

# Keys that can be written bare, i.e. without ["..."] quoting. A leading "$"
# would read as JSONPath.
SIMPLE_KEY = re.compile(r'^(?!\$)[^.\[\]"\s]+$')

# Marker used when pruning drops a branch
ELLIPSIS = "…"

_JSON_DECODER = json.JSONDecoder()


def parse_path(path: str) -> List[Token]:
    """
    Split a locator path into keys (str) and indices (int).

    Raises:
        ValueError: If the path is not valid locator syntax
    """
    tokens: List[Token] = []
    i = 0
    n = len(path)

    while i < n:
        ch = path[i]

        if ch == '[':
            if i + 1 < n and path[i + 1] == '"':
                try:
                    key, end = _JSON_DECODER.raw_decode(path, i + 1)
                except json.JSONDecodeError as e:
                    raise ValueError(f"Bad quoted key at {i} in {path!r}: {e}") from e
                if end >= n or path[end] != ']':
                    raise ValueError(f"Unclosed bracket at {i} in {path!r}")
                tokens.append(key)
                i = end + 1
            else:
                end = path.find(']', i)
                index = path[i + 1:end] if end != -1 else ''
                if not index.isdigit():
                    raise ValueError(f"Bad array index at {i} in {path!r}")
                tokens.append(int(index))
                i = end + 1
            continue

        if ch == '.':
            if not tokens:
                raise ValueError(f"Path cannot start with '.': {path!r}")
            i += 1
        elif tokens:
            raise ValueError(f"Expected '.' or '[' at {i} in {path!r}")

        start = i
        while i < n and path[i] not in '.[':
            i += 1
        key = path[start:i]
        if not SIMPLE_KEY.match(key):
            raise ValueError(f"Bad key {key!r} in {path!r}")
        tokens.append(key)

    return tokens


def format_path(tokens: List[Token]) -> str:
    """Inverse of parse_path."""
    parts = []
    for token in tokens:
        if isinstance(token, int):
            parts.append(f"[{token}]")
        elif SIMPLE_KEY.match(token):
            parts.append(f".{token}" if parts else token)
        else:
            parts.append(f"[{json.dumps(token)}]")
    return ''.join(parts)


def is_simple_path(expression: str) -> bool:
    """True for plain dotted/bracket paths, False for JSONPath or garbage."""
    try:
        parse_path(expression)
        return True
    except ValueError:
        return False


def resolve_path(document: Any, path: Union[str, List[Token]]) -> Any:
    """
    Follow a locator path into a decoded JSON document.

    Raises:
        LocatorResolutionMismatch: If a key is missing, an index is out of
            range, or a container has the wrong type
    """
    try:
        tokens = parse_path(path) if isinstance(path, str) else path
    except ValueError as e:
        raise LocatorResolutionMismatch(str(e)) from e

    current = document
    for token in tokens:
        if isinstance(token, int):
            if not isinstance(current, list) or token >= len(current):
                raise LocatorResolutionMismatch(f"Index [{token}] does not resolve in {format_path(tokens)}")
            current = current[token]
        else:
            if not isinstance(current, dict) or token not in current:
                raise LocatorResolutionMismatch(f"Key {token!r} does not resolve in {format_path(tokens)}")
            current = current[token]
    return current


def normalize_locator(expression: str) -> str:
    """
    Clean up a locator expression returned by a resolver.

    Strips whitespace, code fences, surrounding quotes, and a leading ``$.``
    when what remains is a plain path. JSONPath expressions that need the
    ``$`` are returned untouched.
    """
    expr = (expression or '').strip()

    fence = re.match(r'^```[a-zA-Z]*\s*(.*?)\s*```$', expr, re.DOTALL)
    if fence:
        expr = fence.group(1).strip()

    while len(expr) >= 2 and expr[0] == expr[-1] and expr[0] in '`\'"':
        expr = expr[1:-1].strip()

    if expr.startswith('$'):
        rest = expr[1:]
        if rest.startswith('.') and not rest.startswith('..'):
            rest = rest[1:]
        if rest == '' or is_simple_path(rest):
            return rest

    return expr


def evaluate_locator(document: Any, expression: str) -> List[Any]:
    """
    Evaluate a plain path or JSONPath expression.

    Returns:
        Matching values (a plain path yields exactly one)

    Raises:
        LocatorResolutionMismatch: If the expression does not parse or matches nothing
    """
    if is_simple_path(expression):
        return [resolve_path(document, expression)]

    try:
        matches = jsonpath_parse(expression).find(document)
    except Exception as e:
        raise LocatorResolutionMismatch(f"Invalid JSONPath {expression!r}: {e}") from e

    if not matches:
        raise LocatorResolutionMismatch(f"JSONPath {expression!r} matched nothing")
    return [m.value for m in matches]


def prune_neighborhood(
    document: Any,
    path: Union[str, List[Token]],
    descendant_depth: int = 3,
    sibling_depth: int = 1,
    array_window: int = 3
) -> Any:
    """
    Cut a document down to the neighbourhood of one path.

    Containers along the path are kept with all their keys and with array
    indices preserved. Below the target, ``descendant_depth`` levels survive.
    Off-path branches keep ``sibling_depth`` levels; deeper containers become
    ``"<object: N keys>"`` / ``"<array: N items>"``. Array elements more than
    ``array_window`` positions from the path index become ``"…"``.

    Raises:
        LocatorResolutionMismatch: If the path does not resolve
    """
    try:
        tokens = parse_path(path) if isinstance(path, str) else list(path)
    except ValueError as e:
        raise LocatorResolutionMismatch(str(e)) from e

    max_items = 2 * array_window + 1

    def truncate(node: Any, depth: int) -> Any:
        if isinstance(node, dict):
            if depth <= 0:
                return f"<object: {len(node)} keys>"
            return {k: truncate(v, depth - 1) for k, v in node.items()}
        if isinstance(node, list):
            if depth <= 0:
                return f"<array: {len(node)} items>"
            kept = [truncate(v, depth - 1) for v in node[:max_items]]
            if len(node) > max_items:
                kept.append(f"{ELLIPSIS} {len(node) - max_items} more")
            return kept
        return node

    def prune(node: Any, remaining: List[Token]) -> Any:
        if not remaining:
            return truncate(node, descendant_depth)

        head, rest = remaining[0], remaining[1:]
        if isinstance(head, int):
            if not isinstance(node, list) or head >= len(node):
                raise LocatorResolutionMismatch(f"Index [{head}] does not resolve in {format_path(tokens)}")
            pruned = []
            for i, item in enumerate(node):
                if i == head:
                    pruned.append(prune(item, rest))
                elif abs(i - head) <= array_window:
                    pruned.append(truncate(item, sibling_depth))
                else:
                    pruned.append(ELLIPSIS)
            return pruned

        if not isinstance(node, dict) or head not in node:
            raise LocatorResolutionMismatch(f"Key {head!r} does not resolve in {format_path(tokens)}")
        return {
            k: prune(v, rest) if k == head else truncate(v, sibling_depth)
            for k, v in node.items()
        }

    return prune(document, tokens)

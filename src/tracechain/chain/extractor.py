"""
TraceChain Value Extractor

Turns one Interaction into a flat list of located values:

- JSON bodies are flattened into leaves (``data.items[0].id``)
- form bodies become ``key[i]`` values
- headers become one value per header (minus plumbing headers); cookies are
  split per cookie and ``Authorization: Bearer`` is reduced to the token
- request URLs yield the host, each path segment and each query value

A body or URL that fails to parse contributes nothing; the failure is
recorded as a diagnostic and the rest of the Interaction is still extracted.
"""

import json
import logging
import posixpath
from dataclasses import dataclass, field
from typing import Any, Iterable, List, NamedTuple, Optional, Tuple
from urllib.parse import parse_qsl, unquote, urlsplit

from .config import ChainConfig
from .diagnostics import DiagnosticLog
from .errors import MalformedBody
from .locator import Token, format_path
from .models import (
    Direction,
    ExtractedValue,
    Interaction,
    LiteralValue,
    ValueLocation,
)
from ..common import url_host

logger = logging.getLogger("tracechain.extractor")

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"

# Connection management, caching, negotiation and browser noise. Never chained.
HEADER_BLACKLIST = {
    "connection", "keep-alive", "proxy-connection", "transfer-encoding",
    "upgrade", "te", "trailer", "content-length", "content-encoding",
    "host", "accept", "accept-encoding", "accept-language", "accept-ranges",
    "user-agent", "cache-control", "pragma", "expires", "date", "age",
    "vary", "server", "via", "origin", "referer", "dnt", "priority",
    "last-modified", "if-modified-since", "upgrade-insecure-requests",
    "strict-transport-security", "x-content-type-options", "x-frame-options",
    "x-xss-protection", "x-powered-by", "content-security-policy",
    "access-control-allow-origin", "access-control-allow-credentials",
    "access-control-allow-headers", "access-control-allow-methods",
    "access-control-expose-headers", "access-control-max-age",
    "access-control-request-method", "access-control-request-headers",
    "sec-ch-ua", "sec-ch-ua-mobile", "sec-ch-ua-platform",
    "sec-fetch-dest", "sec-fetch-mode", "sec-fetch-site", "sec-fetch-user",
    "x-requested-with",
}


class FlatLeaf(NamedTuple):
    """A scalar leaf of a JSON document and how to reach it."""

    path: str
    value: Any
    ancestors: Tuple[Any, ...]


@dataclass
class InteractionValues:
    """Everything extracted from one Interaction, per side."""

    interaction_index: int
    request: List[ExtractedValue] = field(default_factory=list)
    response: List[ExtractedValue] = field(default_factory=list)

    def in_capture_order(self) -> List[ExtractedValue]:
        """Request values first: a request is sent before its response arrives."""
        return self.request + self.response


def flatten_json(document: Any) -> List[FlatLeaf]:
    """
    Flatten a decoded JSON document into its scalar leaves.

    Object keys join with ``.``, array elements append ``[i]``. Empty objects
    and arrays have no leaves.

    Example:
        >>> [leaf.path for leaf in flatten_json({"a": [{"b": 1}]})]
        ['a[0].b']
    """
    leaves: List[FlatLeaf] = []

    def walk(node: Any, tokens: List[Token], ancestors: Tuple[Any, ...]) -> None:
        if isinstance(node, dict):
            for key, child in node.items():
                walk(child, tokens + [key], ancestors + (node,))
        elif isinstance(node, list):
            for i, child in enumerate(node):
                walk(child, tokens + [i], ancestors + (node,))
        else:
            leaves.append(FlatLeaf(format_path(tokens), node, ancestors))

    walk(document, [], ())
    return leaves


def decode_form(text: str) -> List[Tuple[str, str]]:
    """
    Decode a form-urlencoded body into ``(key[i], value)`` pairs.

    ``i`` counts earlier occurrences of the same key.
    """
    counts = {}
    pairs = []
    for key, value in parse_qsl(text, keep_blank_values=True):
        index = counts.get(key, 0)
        counts[key] = index + 1
        pairs.append((f"{key}[{index}]", value))
    return pairs


def is_json_content(content_type: Optional[str], body: str) -> bool:
    """JSON by content type, or by sniffing when no content type was recorded."""
    if content_type:
        return 'json' in content_type.lower()
    return body.lstrip()[:1] in ('{', '[')


def is_form_content(content_type: Optional[str]) -> bool:
    return bool(content_type) and FORM_CONTENT_TYPE in content_type.lower()


def parse_json_body(body: str) -> Any:
    """
    Raises:
        MalformedBody: If the body is not valid JSON
    """
    try:
        return json.loads(body)
    except (json.JSONDecodeError, TypeError, ValueError) as e:
        raise MalformedBody(f"Invalid JSON body: {e}") from e


def clean_url_path(path: str) -> str:
    """Lexically clean a URL path (``/a//b/../c`` -> ``/a/c``)."""
    if not path:
        return '.'
    cleaned = posixpath.normpath(path)
    # normpath keeps a leading "//" per POSIX; URLs do not care
    if cleaned.startswith('//'):
        cleaned = '/' + cleaned.lstrip('/')
    return cleaned


def split_cookie_header(value: str) -> List[Tuple[str, str]]:
    """``a=1; b=2`` -> ``[('a', '1'), ('b', '2')]``"""
    cookies = []
    for part in value.split(';'):
        name, sep, cookie_value = part.strip().partition('=')
        if sep and name:
            cookies.append((name.strip(), cookie_value.strip()))
    return cookies


class ValueExtractor:
    """
    Extract candidate values from Interactions.

    Example:
        extractor = ValueExtractor(ChainConfig(), diagnostics)
        values = extractor.extract(interaction)
        for value in values.request:
            print(value.path, value.canonical())
    """

    def __init__(self, config: Optional[ChainConfig] = None, diagnostics: Optional[DiagnosticLog] = None):
        self.config = config or ChainConfig()
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticLog()
        self.header_blacklist = HEADER_BLACKLIST | {
            h.lower() for h in self.config.extra_blacklisted_headers
        }

    def extract_all(self, interactions: Iterable[Interaction]) -> List[InteractionValues]:
        return [self.extract(interaction) for interaction in interactions]

    def extract(self, interaction: Interaction) -> InteractionValues:
        """Extract request-side and response-side values of one Interaction."""
        request = interaction.request
        response = interaction.response
        result = InteractionValues(interaction.index)

        result.request.extend(self._extract_body(
            interaction.index,
            Direction.REQUEST,
            request.body,
            request.content_type or request.header('Content-Type')
        ))
        result.request.extend(self._extract_headers(interaction.index, Direction.REQUEST, request.headers))
        result.request.extend(self._extract_url(interaction.index, request.url))

        result.response.extend(self._extract_body(
            interaction.index,
            Direction.RESPONSE,
            response.body,
            response.content_type or response.header('Content-Type')
        ))
        result.response.extend(self._extract_headers(interaction.index, Direction.RESPONSE, response.headers))

        logger.debug(
            f"Interaction #{interaction.index}: {len(result.request)} request values, "
            f"{len(result.response)} response values"
        )
        return result

    def _extract_body(
        self,
        index: int,
        direction: Direction,
        body: Optional[str],
        content_type: Optional[str]
    ) -> List[ExtractedValue]:
        if not body or not body.strip():
            return []

        if is_form_content(content_type):
            return [
                ExtractedValue(LiteralValue.string(value), path, ValueLocation.BODY_FORM, direction, index)
                for path, value in decode_form(body)
            ]

        if not is_json_content(content_type, body):
            return []

        try:
            document = parse_json_body(body)
        except MalformedBody as e:
            self.diagnostics.record('extract', 'MalformedBody', f"{direction.value} body: {e}", index)
            return []

        return [
            ExtractedValue(
                LiteralValue.of(leaf.value),
                leaf.path,
                ValueLocation.BODY_JSON,
                direction,
                index,
                ancestors=leaf.ancestors
            )
            for leaf in flatten_json(document)
        ]

    def _extract_headers(
        self,
        index: int,
        direction: Direction,
        headers: Iterable[Tuple[str, str]]
    ) -> List[ExtractedValue]:
        values = []
        for name, value in headers:
            lowered = name.lower()
            if lowered in self.header_blacklist or lowered.startswith(':'):
                continue

            if lowered == 'cookie':
                for cookie_name, cookie_value in split_cookie_header(value):
                    values.append(ExtractedValue(
                        LiteralValue.string(cookie_value), f"cookie.{cookie_name}",
                        ValueLocation.COOKIE, direction, index, header_name=name
                    ))
                continue

            if lowered == 'set-cookie':
                first = split_cookie_header(value.split(';', 1)[0])
                if first:
                    cookie_name, cookie_value = first[0]
                    values.append(ExtractedValue(
                        LiteralValue.string(cookie_value), f"set-cookie.{cookie_name}",
                        ValueLocation.COOKIE, direction, index, header_name=name
                    ))
                continue

            if lowered == 'authorization' and value[:7].lower() == 'bearer ':
                value = value[7:]

            values.append(ExtractedValue(
                LiteralValue.string(value), name, ValueLocation.HEADER, direction, index, header_name=name
            ))
        return values

    def _extract_url(self, index: int, url: str) -> List[ExtractedValue]:
        try:
            parsed = urlsplit(url)
            host = url_host(parsed.netloc)
        except ValueError as e:
            self.diagnostics.record('extract', 'MalformedUrl', f"{url}: {e}", index)
            return []

        values = []
        if host:
            values.append(ExtractedValue(
                LiteralValue.string(host), "host", ValueLocation.URL_HOST, Direction.REQUEST, index
            ))

        for i, segment in enumerate(clean_url_path(parsed.path).split('/')):
            if segment and segment != '.':
                values.append(ExtractedValue(
                    LiteralValue.string(unquote(segment)), f"path[{i}]",
                    ValueLocation.URL_PATH, Direction.REQUEST, index
                ))

        counts = {}
        for key, value in parse_qsl(parsed.query, keep_blank_values=True):
            j = counts.get(key, 0)
            counts[key] = j + 1
            values.append(ExtractedValue(
                LiteralValue.string(value), f"query.{key}[{j}]",
                ValueLocation.URL_QUERY, Direction.REQUEST, index
            ))

        return values

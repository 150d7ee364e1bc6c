"""
TraceChain Data Model

Interactions, the values extracted from them, and the chains that link a
response value to the requests that later reuse it.

Cross references are integer indices into the run's Interaction list and
Chain list, never object references, so nothing here forms a cycle and every
structure can be dumped with ``to_dict()``.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class ValueKind(Enum):
    """Tag of a LiteralValue."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    NULL = "null"


class Direction(Enum):
    """Which half of an Interaction a value was found in."""

    REQUEST = "request"
    RESPONSE = "response"


class ValueLocation(Enum):
    """Where inside the request or response a value was found."""

    BODY_JSON = "body_json"
    BODY_FORM = "body_form"
    HEADER = "header"
    COOKIE = "cookie"
    URL_HOST = "url_host"
    URL_PATH = "url_path"
    URL_QUERY = "url_query"


@dataclass(frozen=True)
class LiteralValue:
    """
    A scalar found in traffic: string, number, boolean or null.

    ``canonical()`` is the only stringification used for grouping and
    substitution:

    - strings are returned as-is
    - integers render as decimal digits
    - integral floats below 1e21 render without a fraction (1234.0 -> "1234")
    - other floats use ``repr``
    - booleans render as ``true``/``false`` and null as ``null``
    """

    kind: ValueKind
    raw: Any = None

    @classmethod
    def of(cls, value: Any) -> 'LiteralValue':
        """Tag a JSON-decoded scalar."""
        if value is None:
            return cls(ValueKind.NULL)
        if isinstance(value, bool):
            return cls(ValueKind.BOOLEAN, value)
        if isinstance(value, (int, float)):
            return cls(ValueKind.NUMBER, value)
        if isinstance(value, str):
            return cls(ValueKind.STRING, value)
        raise TypeError(f"Not a scalar value: {type(value).__name__}")

    @classmethod
    def string(cls, value: str) -> 'LiteralValue':
        return cls(ValueKind.STRING, value)

    def canonical(self) -> str:
        if self.kind is ValueKind.STRING:
            return self.raw
        if self.kind is ValueKind.NULL:
            return "null"
        if self.kind is ValueKind.BOOLEAN:
            return "true" if self.raw else "false"
        if isinstance(self.raw, float):
            if math.isfinite(self.raw) and self.raw.is_integer() and abs(self.raw) < 1e21:
                return str(int(self.raw))
            return repr(self.raw)
        return str(self.raw)

    def __str__(self) -> str:
        return self.canonical()


@dataclass(frozen=True)
class Request:
    """Recorded HTTP request."""

    method: str
    url: str
    headers: Tuple[Tuple[str, str], ...] = ()
    body: Optional[str] = None
    content_type: Optional[str] = None

    def header(self, name: str) -> Optional[str]:
        """First header value with the given name (case-insensitive)."""
        return _find_header(self.headers, name)


@dataclass(frozen=True)
class Response:
    """Recorded HTTP response."""

    status: int = 0
    headers: Tuple[Tuple[str, str], ...] = ()
    body: Optional[str] = None
    content_type: Optional[str] = None

    def header(self, name: str) -> Optional[str]:
        return _find_header(self.headers, name)


@dataclass(frozen=True)
class Interaction:
    """One recorded request/response pair at a fixed position in capture order."""

    index: int
    request: Request
    response: Response = field(default_factory=Response)


@dataclass(eq=False)
class ExtractedValue:
    """
    A literal found at one location in one Interaction.

    Identity semantics (``eq=False``): two usages with the same literal are
    still different usages.
    """

    value: LiteralValue
    path: str
    location: ValueLocation
    direction: Direction
    interaction_index: int
    header_name: Optional[str] = None
    ancestors: Tuple[Any, ...] = ()
    chain_id: Optional[int] = None

    @property
    def is_request(self) -> bool:
        return self.direction is Direction.REQUEST

    @property
    def is_response(self) -> bool:
        return self.direction is Direction.RESPONSE

    def canonical(self) -> str:
        return self.value.canonical()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'value': self.value.raw,
            'kind': self.value.kind.value,
            'path': self.path,
            'location': self.location.value,
            'direction': self.direction.value,
            'interaction_index': self.interaction_index,
            'header_name': self.header_name,
            'chain_id': self.chain_id,
        }


@dataclass(eq=False)
class Chain:
    """
    A value proven to flow from a response into later requests, or a value
    declared by the user.

    ``origin`` is the first response-side usage and is ``None`` only for
    external chains.
    """

    id: int
    value: str
    usages: List[ExtractedValue] = field(default_factory=list)
    origin: Optional[ExtractedValue] = None
    name: Optional[str] = None
    external: bool = False
    init_hint: Optional[str] = None
    init_script: Optional[str] = None

    @property
    def request_usages(self) -> List[ExtractedValue]:
        return [u for u in self.usages if u.is_request]

    def is_available_to(self, interaction_index: int) -> bool:
        """Whether a request at ``interaction_index`` may reference this chain."""
        if self.external:
            return True
        return self.origin is not None and self.origin.interaction_index < interaction_index

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'value': self.value,
            'name': self.name,
            'external': self.external,
            'origin': self.origin.to_dict() if self.origin else None,
            'usages': [u.to_dict() for u in self.usages],
        }


@dataclass(frozen=True)
class DeclaredValue:
    """A user-supplied named value to parameterize wherever it appears."""

    name: str
    value: str
    initializer: Optional[str] = None


def _find_header(headers: Tuple[Tuple[str, str], ...], name: str) -> Optional[str]:
    wanted = name.lower()
    for key, value in headers:
        if key.lower() == wanted:
            return value
    return None

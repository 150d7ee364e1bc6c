"""
TraceChain Collection Assembler

Builds the replay collection from interactions and named chains:

- each request's URL, headers and body with chain values replaced by
  ``{{name}}`` placeholders
- for each response that originates chains, one extraction instruction per
  variable
- the list of declared variables

The result is format-agnostic; see ``tracechain.export.postman`` for the
Postman rendering.
"""

import logging
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional, Sequence, Tuple
from urllib.parse import parse_qsl, urlsplit

from .diagnostics import DiagnosticLog
from .errors import LocatorResolutionMismatch, MalformedBody
from .extractor import decode_form, is_form_content, parse_json_body
from .locator import evaluate_locator
from .models import Chain, Interaction, LiteralValue, ValueLocation
from .substitution import build_replacements, substitute_literals
from ..common import url_host, url_path

logger = logging.getLogger("tracechain.assembler")

# Extraction sources
SOURCE_BODY = "body"
SOURCE_FORM = "form"
SOURCE_HEADER = "header"
SOURCE_COOKIE = "cookie"

_SOURCES = {
    ValueLocation.BODY_JSON: SOURCE_BODY,
    ValueLocation.BODY_FORM: SOURCE_FORM,
    ValueLocation.HEADER: SOURCE_HEADER,
    ValueLocation.COOKIE: SOURCE_COOKIE,
}


@dataclass
class UrlParts:
    raw: str
    protocol: str = ""
    host: str = ""
    port: Optional[str] = None
    path: List[str] = field(default_factory=list)
    query: List[Tuple[str, str]] = field(default_factory=list)


@dataclass
class ExtractionInstruction:
    """Read ``locator`` from the response ``source`` and store it as ``variable``."""

    variable: str
    source: str
    locator: str
    verified: bool = True


@dataclass
class CollectionItem:
    name: str
    method: str
    url: UrlParts
    headers: List[Tuple[str, str]] = field(default_factory=list)
    body: Optional[str] = None
    content_type: Optional[str] = None
    extractions: List[ExtractionInstruction] = field(default_factory=list)
    interaction_index: int = 0


@dataclass
class DeclaredVariable:
    name: str
    description: Optional[str] = None
    initial_value: Optional[str] = None
    init_script: Optional[str] = None


@dataclass
class ReplayCollection:
    name: str
    items: List[CollectionItem] = field(default_factory=list)
    variables: List[DeclaredVariable] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class CollectionAssembler:
    """
    Example:
        assembler = CollectionAssembler(diagnostics)
        collection = assembler.assemble(interactions, chains, request_names, "Checkout flow")
    """

    def __init__(self, diagnostics: Optional[DiagnosticLog] = None):
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticLog()

    def assemble(
        self,
        interactions: Sequence[Interaction],
        chains: Sequence[Chain],
        request_names: Optional[Sequence[str]] = None,
        name: str = "Generated Collection"
    ) -> ReplayCollection:
        missing = [c.id for c in chains if not c.name]
        if missing:
            raise ValueError(f"Chains must be named before assembly: {missing}")

        collection = ReplayCollection(name=name)

        for position, interaction in enumerate(interactions):
            request = interaction.request
            item_name = (
                request_names[position]
                if request_names and position < len(request_names)
                else f"{request.method.upper()} {url_path(request.url)}"
            )
            url, headers, body = self.rewrite_request(interaction, chains)
            collection.items.append(CollectionItem(
                name=item_name,
                method=request.method.upper(),
                url=url,
                headers=headers,
                body=body,
                content_type=request.content_type or request.header('Content-Type'),
                extractions=self.extraction_instructions(interaction, chains),
                interaction_index=interaction.index
            ))

        for chain in chains:
            collection.variables.append(DeclaredVariable(
                name=chain.name,
                description=chain.origin.path if chain.origin else "Declared value",
                initial_value=chain.value if chain.external else None,
                init_script=chain.init_script
            ))

        logger.info(f"Assembled {len(collection.items)} requests with {len(collection.variables)} variables")
        return collection

    def rewrite_request(
        self,
        interaction: Interaction,
        chains: Sequence[Chain]
    ) -> Tuple[UrlParts, List[Tuple[str, str]], Optional[str]]:
        """Substitute every chain value available to this request, field by field."""
        named = [(c.value, c.name) for c in chains if c.is_available_to(interaction.index)]
        plain = build_replacements(named)
        encoded = build_replacements(named, include_encoded=True)

        request = interaction.request
        url = self._rewrite_url(interaction, plain, encoded)
        headers = [(name, substitute_literals(value, plain)) for name, value in request.headers]

        content_type = request.content_type or request.header('Content-Type')
        body_replacements = encoded if is_form_content(content_type) else plain
        body = substitute_literals(request.body, body_replacements)

        return url, headers, body

    def _rewrite_url(self, interaction: Interaction, plain: Dict[str, str], encoded: Dict[str, str]) -> UrlParts:
        raw = interaction.request.url
        try:
            parsed = urlsplit(raw)
            hostname = url_host(parsed.netloc)
            port = parsed.port
        except ValueError as e:
            self.diagnostics.record('assemble', 'MalformedUrl', f"{raw}: {e}", interaction.index)
            return UrlParts(raw=substitute_literals(raw, encoded))

        return UrlParts(
            raw=substitute_literals(raw, encoded),
            protocol=parsed.scheme,
            host=substitute_literals(hostname, plain),
            port=str(port) if port is not None else None,
            path=[substitute_literals(segment, encoded) for segment in parsed.path.split('/') if segment],
            query=[
                (key, substitute_literals(value, plain))
                for key, value in parse_qsl(parsed.query, keep_blank_values=True)
            ]
        )

    def extraction_instructions(
        self,
        interaction: Interaction,
        chains: Sequence[Chain]
    ) -> List[ExtractionInstruction]:
        """
        One instruction per distinct variable originating in this response.

        Each instruction is checked against the recorded response on its own;
        a failed check is a diagnostic and marks only that instruction.
        """
        instructions = []
        seen = set()
        for chain in chains:
            origin = chain.origin
            if origin is None or origin.interaction_index != interaction.index or chain.name in seen:
                continue
            seen.add(chain.name)

            source = _SOURCES.get(origin.location)
            if source is None:
                self.diagnostics.record(
                    'assemble', 'UnsupportedOrigin',
                    f"Cannot extract {chain.name!r} from {origin.location.value}",
                    interaction.index, chain.value
                )
                continue

            locator = origin.path
            if source == SOURCE_HEADER:
                locator = origin.header_name or origin.path
            elif source == SOURCE_COOKIE:
                locator = origin.path.split('.', 1)[1]

            instruction = ExtractionInstruction(chain.name, source, locator)
            try:
                self._verify(interaction, instruction, chain.value)
            except (LocatorResolutionMismatch, MalformedBody) as e:
                instruction.verified = False
                self.diagnostics.record('assemble', type(e).__name__, str(e), interaction.index, chain.value)
            instructions.append(instruction)

        return instructions

    @staticmethod
    def _verify(interaction: Interaction, instruction: ExtractionInstruction, expected: str) -> None:
        response = interaction.response

        if instruction.source == SOURCE_BODY:
            found = evaluate_locator(parse_json_body(response.body or ''), instruction.locator)[0]
            actual = None if isinstance(found, (dict, list)) else LiteralValue.of(found).canonical()
        elif instruction.source == SOURCE_FORM:
            actual = dict(decode_form(response.body or '')).get(instruction.locator)
        elif instruction.source == SOURCE_HEADER:
            actual = response.header(instruction.locator)
            if actual is not None and instruction.locator.lower() == 'authorization' and actual[:7].lower() == 'bearer ':
                actual = actual[7:]
        else:
            return

        if actual != expected:
            raise LocatorResolutionMismatch(
                f"{instruction.source} locator {instruction.locator!r} gives {actual!r}, expected {expected!r}"
            )

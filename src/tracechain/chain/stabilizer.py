"""
TraceChain Locator Stabilizer

A recorded path such as ``offers[2].id`` was true for one response. Replayed
against a fresh response the third offer may be a different one. The
stabilizer shows the locator resolver a pruned neighbourhood of the value and
accepts a revised expression only if it still finds the recorded value in
the recorded response. Anything else leaves the path as recorded.
"""

import logging
from typing import Any, List, Optional, Sequence

from .collaborators import LocatorResolver, OfflineLocatorResolver, ResolutionRequest
from .config import ChainConfig
from .diagnostics import DiagnosticLog
from .errors import CollaboratorFailure, LocatorResolutionMismatch, MalformedBody
from .extractor import parse_json_body
from .locator import evaluate_locator, normalize_locator, prune_neighborhood
from .models import Chain, ExtractedValue, Interaction, LiteralValue, ValueLocation
from .retry import with_retries

logger = logging.getLogger("tracechain.stabilizer")


def _is_blank(answer: Any) -> bool:
    return not isinstance(answer, str) or not answer.strip()


class LocatorStabilizer:
    """
    Example:
        stabilizer = LocatorStabilizer(ClaudeLocatorResolver(client, model), config, diagnostics)
        stabilizer.stabilize_all(chains, interactions)
    """

    def __init__(
        self,
        resolver: Optional[LocatorResolver] = None,
        config: Optional[ChainConfig] = None,
        diagnostics: Optional[DiagnosticLog] = None
    ):
        self.resolver = resolver or OfflineLocatorResolver()
        self.config = config or ChainConfig()
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticLog()

    def stabilize_all(self, chains: Sequence[Chain], interactions: Sequence[Interaction]) -> None:
        for chain in chains:
            self.stabilize(chain, interactions)

    def stabilize(self, chain: Chain, interactions: Sequence[Interaction]) -> str:
        """
        Stabilize one chain's origin path in place.

        Returns:
            The origin's path after stabilization (unchanged on any failure)
        """
        origin = chain.origin
        if origin is None or not origin.is_response or origin.location is not ValueLocation.BODY_JSON:
            return origin.path if origin else ''

        interaction = interactions[origin.interaction_index]
        current = origin.path
        # Scalar body: the root path has no indices to stabilize
        if current == '':
            return current

        document = self._document_for(origin, interaction)
        if document is None:
            return current

        try:
            partial = prune_neighborhood(
                document,
                current,
                descendant_depth=self.config.descendant_depth,
                sibling_depth=self.config.sibling_depth,
                array_window=self.config.array_window
            )
        except LocatorResolutionMismatch as e:
            self.diagnostics.record('stabilize', 'LocatorResolutionMismatch', str(e), origin.interaction_index, chain.value)
            return current

        request = ResolutionRequest(
            url=interaction.request.url,
            current_path=current,
            value=chain.value,
            partial_json=partial,
            usage_paths=[u.path for u in chain.request_usages]
        )

        try:
            answer = with_retries(
                self.resolver.resolve,
                attempts=self.config.retry_attempts,
                is_retryable=_is_blank
            )(request)
        except CollaboratorFailure as e:
            self.diagnostics.record('stabilize', 'CollaboratorFailure', str(e), origin.interaction_index, chain.value)
            return current

        revised = normalize_locator(answer)
        if not revised and current:
            return current

        if revised != current:
            if not self._finds_value(document, revised, chain.value):
                self.diagnostics.record(
                    'stabilize', 'LocatorResolutionMismatch',
                    f"Revised locator {revised!r} does not find the recorded value; keeping {current!r}",
                    origin.interaction_index, chain.value
                )
                return current
            logger.info(f"Updated locator from {current!r} to {revised!r}")

        origin.path = revised
        return revised

    def _document_for(self, origin: ExtractedValue, interaction: Interaction) -> Optional[Any]:
        if origin.ancestors:
            return origin.ancestors[0]

        body = interaction.response.body
        if not body:
            return None
        try:
            return parse_json_body(body)
        except MalformedBody as e:
            self.diagnostics.record('stabilize', 'MalformedBody', str(e), origin.interaction_index)
            return None

    @staticmethod
    def _finds_value(document: Any, expression: str, expected: str) -> bool:
        try:
            matches: List[Any] = evaluate_locator(document, expression)
        except LocatorResolutionMismatch:
            return False

        first = matches[0]
        if isinstance(first, (dict, list)):
            return False
        return LiteralValue.of(first).canonical() == expected

"""
TraceChain Chain Detector

Finds values that a response produced and a later request consumed.

The causal rule: scanning every occurrence of a value in capture order, a
request occurrence is only acceptable after some response occurrence. One
request occurrence before any response (a hard-coded constant, a value the
client made up) disqualifies the value entirely.
"""

import logging
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence

from .diagnostics import DiagnosticLog
from .extractor import InteractionValues
from .filters import InterestingnessFilter
from .models import Chain, DeclaredValue, ExtractedValue

logger = logging.getLogger("tracechain.detector")


class ScanState(Enum):
    RESPONSE_NOT_YET_SEEN = "response_not_yet_seen"
    RESPONSE_SEEN = "response_seen"


def is_causally_chained(usages: Sequence[ExtractedValue]) -> bool:
    """
    Run the two-state scan over usages of one value, in capture order.

    Returns:
        True if no request precedes the first response and at least one
        request follows it
    """
    state = ScanState.RESPONSE_NOT_YET_SEEN
    consumed = False

    for usage in usages:
        if usage.is_response:
            state = ScanState.RESPONSE_SEEN
        elif state is ScanState.RESPONSE_NOT_YET_SEEN:
            return False
        else:
            consumed = True

    return consumed


def group_by_value(values: Iterable[ExtractedValue]) -> Dict[str, List[ExtractedValue]]:
    """Group values by canonical string, keeping first-appearance order."""
    groups: Dict[str, List[ExtractedValue]] = {}
    for value in values:
        groups.setdefault(value.canonical(), []).append(value)
    return groups


class ChainDetector:
    """
    Detect causally chained values across a capture.

    Example:
        detector = ChainDetector(InterestingnessFilter(config), diagnostics)
        chains = detector.detect(extracted)
        chains = detector.merge_declared(chains, extracted, declared_values)
    """

    def __init__(
        self,
        value_filter: Optional[InterestingnessFilter] = None,
        diagnostics: Optional[DiagnosticLog] = None
    ):
        self.value_filter = value_filter or InterestingnessFilter()
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticLog()

    def detect(self, extracted: Sequence[InteractionValues]) -> List[Chain]:
        """
        Args:
            extracted: Per-interaction values in ascending interaction order

        Returns:
            Chains in order of each value's first appearance
        """
        ordered = sorted(extracted, key=lambda values: values.interaction_index)
        candidates = (
            value
            for values in ordered
            for value in values.in_capture_order()
            if self.value_filter(value)
        )

        chains: List[Chain] = []
        for literal, usages in group_by_value(candidates).items():
            if len(usages) < 2:
                continue
            if not is_causally_chained(usages):
                logger.debug(f"Discarded {literal!r}: used in a request before any response produced it")
                continue

            origin = next(u for u in usages if u.is_response)
            chain = Chain(id=len(chains), value=literal, usages=list(usages), origin=origin)
            chains.append(chain)

        for chain in chains:
            for usage in chain.usages:
                usage.chain_id = chain.id

        logger.info(f"Detected {len(chains)} chained values")
        return chains

    def merge_declared(
        self,
        chains: List[Chain],
        extracted: Sequence[InteractionValues],
        declared: Iterable[DeclaredValue]
    ) -> List[Chain]:
        """
        Add user-declared values as external chains.

        A declared value matches every request-side value with the same
        canonical string, interesting or not. Detected chains with the same
        literal are replaced by the declared one. Chain ids are renumbered.
        """
        declared_chains: List[Chain] = []
        for item in declared:
            usages = [
                value
                for values in sorted(extracted, key=lambda v: v.interaction_index)
                for value in values.request
                if value.canonical() == item.value
            ]
            if not usages:
                self.diagnostics.record(
                    'detect', 'UnusedDeclaredValue',
                    f"Declared value {item.name!r} does not appear in any request",
                    value=item.value
                )
                continue

            declared_chains.append(Chain(
                id=-1,
                value=item.value,
                usages=usages,
                name=item.name,
                external=True,
                init_hint=item.initializer
            ))

        declared_literals = {chain.value for chain in declared_chains}
        merged = []
        for chain in chains:
            if chain.value in declared_literals:
                logger.info(f"Declared value replaces detected chain for {chain.value!r}")
                continue
            merged.append(chain)
        merged.extend(declared_chains)

        for chain_id, chain in enumerate(merged):
            chain.id = chain_id
            for usage in chain.usages:
                usage.chain_id = chain_id

        # Usages of a dropped detected chain must not keep a stale id
        live = {id(usage) for chain in merged for usage in chain.usages}
        for chain in chains:
            if chain not in merged:
                for usage in chain.usages:
                    if id(usage) not in live:
                        usage.chain_id = None

        return merged

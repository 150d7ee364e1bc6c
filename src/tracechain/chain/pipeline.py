"""
TraceChain Pipeline

Runs the stages in order over one capture:

    extract -> filter/detect -> merge declared values -> stabilize -> name -> assemble

Every stage recovers from its own failures and records a diagnostic. The only
error that ends a run is OutputWriteFailure from ``run_and_write``.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional, Sequence

from .assembler import CollectionAssembler, ReplayCollection
from .collaborators import (
    LocatorResolver,
    NamingCollaborator,
    OfflineLocatorResolver,
    OfflineNamingCollaborator,
)
from .config import ChainConfig
from .detector import ChainDetector
from .diagnostics import DiagnosticLog
from .errors import OutputWriteFailure
from .extractor import ValueExtractor
from .filters import InterestingnessFilter
from .models import Chain, DeclaredValue, Interaction
from .naming import assign_chain_names, assign_request_names
from .stabilizer import LocatorStabilizer

logger = logging.getLogger("tracechain.pipeline")


@dataclass
class PipelineResult:
    collection: ReplayCollection
    chains: List[Chain] = field(default_factory=list)
    diagnostics: DiagnosticLog = field(default_factory=DiagnosticLog)


class ChainPipeline:
    """
    Turn an ordered capture into a parameterized replay collection.

    Example:
        pipeline = ChainPipeline(ChainConfig(use_ai=False))
        result = pipeline.run(interactions)
        for chain in result.chains:
            print(chain.name, chain.value)
    """

    def __init__(
        self,
        config: Optional[ChainConfig] = None,
        naming: Optional[NamingCollaborator] = None,
        resolver: Optional[LocatorResolver] = None
    ):
        self.config = config or ChainConfig()
        self.naming = naming or OfflineNamingCollaborator()
        self.resolver = resolver or OfflineLocatorResolver()

    def run(
        self,
        interactions: Sequence[Interaction],
        declared: Iterable[DeclaredValue] = ()
    ) -> PipelineResult:
        """
        Args:
            interactions: Capture in chronological order; ``index`` must equal position
            declared: User-supplied named values

        Raises:
            ValueError: If interaction indices do not match their positions
        """
        interactions = list(interactions)
        if [i.index for i in interactions] != list(range(len(interactions))):
            raise ValueError("Interaction indices must be 0..n-1 in capture order")

        diagnostics = DiagnosticLog()
        config = self.config

        extracted = ValueExtractor(config, diagnostics).extract_all(interactions)

        detector = ChainDetector(InterestingnessFilter(config), diagnostics)
        chains = detector.detect(extracted)
        chains = detector.merge_declared(chains, extracted, declared)

        if config.stabilize:
            LocatorStabilizer(self.resolver, config, diagnostics).stabilize_all(chains, interactions)

        assign_chain_names(chains, interactions, self.naming, config.retry_attempts, diagnostics)
        request_names = assign_request_names(interactions, self.naming, config.retry_attempts, diagnostics)

        collection = CollectionAssembler(diagnostics).assemble(
            interactions, chains, request_names, config.collection_name
        )

        logger.info(
            f"Processed {len(interactions)} interactions: {len(chains)} chains, "
            f"{len(diagnostics)} diagnostics"
        )
        return PipelineResult(collection=collection, chains=chains, diagnostics=diagnostics)

    def run_and_write(
        self,
        interactions: Sequence[Interaction],
        writer: Callable[[ReplayCollection], None],
        declared: Iterable[DeclaredValue] = ()
    ) -> PipelineResult:
        """
        Run the pipeline and hand the collection to ``writer``.

        Raises:
            OutputWriteFailure: If the writer fails for any reason
        """
        result = self.run(interactions, declared)
        try:
            writer(result.collection)
        except OutputWriteFailure:
            raise
        except Exception as e:
            raise OutputWriteFailure(f"Could not write collection: {e}") from e
        return result

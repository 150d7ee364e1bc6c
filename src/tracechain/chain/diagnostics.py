"""
Structured diagnostics for recoverable failures.
"""

import logging
from dataclasses import dataclass, asdict
from typing import Any, Dict, Iterator, List, Optional

logger = logging.getLogger("tracechain.diagnostics")


@dataclass(frozen=True)
class Diagnostic:
    """One recovered failure: which stage, what went wrong, and where."""

    stage: str
    kind: str
    message: str
    interaction_index: Optional[int] = None
    value: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class DiagnosticLog:
    """
    Collects diagnostics for a single run.

    Every recorded entry is also emitted as a WARNING so recoveries show up in
    normal logging output.

    Example:
        log = DiagnosticLog()
        log.record('extract', 'MalformedBody', 'invalid JSON', interaction_index=3)
        assert log.has('MalformedBody')
    """

    def __init__(self):
        self.entries: List[Diagnostic] = []

    def record(
        self,
        stage: str,
        kind: str,
        message: str,
        interaction_index: Optional[int] = None,
        value: Optional[str] = None
    ) -> Diagnostic:
        diagnostic = Diagnostic(stage, kind, message, interaction_index, value)
        self.entries.append(diagnostic)

        where = f" (interaction #{interaction_index})" if interaction_index is not None else ""
        logger.warning(f"[{stage}] {kind}: {message}{where}")
        return diagnostic

    def has(self, kind: str, stage: Optional[str] = None) -> bool:
        return any(
            d.kind == kind and (stage is None or d.stage == stage)
            for d in self.entries
        )

    def by_stage(self, stage: str) -> List[Diagnostic]:
        return [d for d in self.entries if d.stage == stage]

    def to_list(self) -> List[Dict[str, Any]]:
        return [d.to_dict() for d in self.entries]

    def __iter__(self) -> Iterator[Diagnostic]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

"""
TraceChain Chaining Engine

Detects values that flow from one response into later requests and rewrites
a capture into a parameterized replay collection.
"""

from .models import (
    Chain,
    DeclaredValue,
    Direction,
    ExtractedValue,
    Interaction,
    LiteralValue,
    Request,
    Response,
    ValueKind,
    ValueLocation,
)
from .config import ChainConfig
from .diagnostics import Diagnostic, DiagnosticLog
from .errors import (
    CollaboratorFailure,
    LocatorResolutionMismatch,
    MalformedBody,
    OutputWriteFailure,
    TraceChainError,
)
from .extractor import ValueExtractor, flatten_json
from .filters import InterestingnessFilter
from .detector import ChainDetector
from .stabilizer import LocatorStabilizer
from .assembler import CollectionAssembler, ReplayCollection
from .pipeline import ChainPipeline, PipelineResult

__all__ = [
    'Chain',
    'DeclaredValue',
    'Direction',
    'ExtractedValue',
    'Interaction',
    'LiteralValue',
    'Request',
    'Response',
    'ValueKind',
    'ValueLocation',
    'ChainConfig',
    'Diagnostic',
    'DiagnosticLog',
    'CollaboratorFailure',
    'LocatorResolutionMismatch',
    'MalformedBody',
    'OutputWriteFailure',
    'TraceChainError',
    'ValueExtractor',
    'flatten_json',
    'InterestingnessFilter',
    'ChainDetector',
    'LocatorStabilizer',
    'CollectionAssembler',
    'ReplayCollection',
    'ChainPipeline',
    'PipelineResult',
]

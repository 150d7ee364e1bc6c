"""
TraceChain Capture Input

Decoding of capture files and user-declared values.
"""

from .loader import CaptureLoader
from .declared import load_declared_values, parse_declared_values

__all__ = [
    'CaptureLoader',
    'load_declared_values',
    'parse_declared_values',
]

"""
TraceChain Export

Writers for replay collections.
"""

from .postman import PostmanExporter, jsonpath_to_js, path_to_js

__all__ = [
    'PostmanExporter',
    'jsonpath_to_js',
    'path_to_js',
]

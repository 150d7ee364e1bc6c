"""
TraceChain - value chaining for recorded HTTP traffic

Finds values that a response hands to later requests (tokens, ids, cursors)
and rewrites the capture into a replayable Postman collection that passes
them along as variables.
"""

__version__ = "0.1.0"

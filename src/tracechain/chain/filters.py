"""
Interestingness filter for extracted values.

Decides which values are worth chaining. Pure: the same value, path and
header always give the same answer.
"""

from typing import Optional

from .config import ChainConfig
from .models import ExtractedValue, ValueKind


class InterestingnessFilter:
    """
    Drops values that would only produce noise chains.

    Rejected:
    - null and boolean values
    - values under a type-discriminator key (``@type``, ``__typename``, ...)
    - the Content-Type header
    - strings shorter than ``min_string_length``
    - numbers whose magnitude is not above ``numeric_threshold``
    """

    def __init__(self, config: Optional[ChainConfig] = None):
        config = config or ChainConfig()
        self.min_string_length = config.min_string_length
        self.numeric_threshold = config.numeric_threshold
        self.discriminator_markers = tuple(config.discriminator_markers)

    def is_interesting(self, value: ExtractedValue) -> bool:
        kind = value.value.kind
        if kind in (ValueKind.NULL, ValueKind.BOOLEAN):
            return False

        if any(marker in value.path for marker in self.discriminator_markers):
            return False

        if value.header_name and value.header_name.lower() == 'content-type':
            return False

        if kind is ValueKind.STRING:
            return len(value.value.raw) >= self.min_string_length

        return abs(value.value.raw) > self.numeric_threshold

    __call__ = is_interesting

"""
Literal substitution of chain values.

Replacement is a single left-to-right scan: at each position the longest
matching literal wins, and placeholder text that was just inserted is never
scanned again. A shorter chain value can therefore never corrupt a longer
one, or the name inside a placeholder.
"""

from typing import Dict, Iterable, List, Optional, Tuple
from urllib.parse import quote, quote_plus


def placeholder(name: str) -> str:
    return f"{{{{{name}}}}}"


def substitute_literals(text: Optional[str], replacements: Dict[str, str]) -> Optional[str]:
    """
    Replace every occurrence of each literal in ``replacements`` with its value.

    Text that contains none of the literals is returned unchanged (the same
    object).

    Example:
        >>> substitute_literals("Bearer abc123", {"abc123": "{{token}}"})
        'Bearer {{token}}'
    """
    if not text or not replacements:
        return text

    literals = sorted((lit for lit in replacements if lit), key=len, reverse=True)
    if not any(lit in text for lit in literals):
        return text

    parts: List[str] = []
    start = 0
    i = 0
    n = len(text)
    while i < n:
        for literal in literals:
            if text.startswith(literal, i):
                parts.append(text[start:i])
                parts.append(replacements[literal])
                i += len(literal)
                start = i
                break
        else:
            i += 1
    parts.append(text[start:])
    return ''.join(parts)


def encoded_variants(literal: str) -> List[str]:
    """URL-encoded spellings of a literal that differ from the literal itself."""
    variants = []
    for encoded in (quote(literal, safe=''), quote_plus(literal, safe='')):
        if encoded != literal and encoded not in variants:
            variants.append(encoded)
    return variants


def build_replacements(
    named_values: Iterable[Tuple[str, str]],
    include_encoded: bool = False
) -> Dict[str, str]:
    """
    Map literal -> ``{{name}}`` for ``(literal, name)`` pairs.

    With ``include_encoded`` the URL-encoded spellings map to the same
    placeholder, for raw URLs and form bodies.
    """
    replacements: Dict[str, str] = {}
    for literal, name in named_values:
        replacements.setdefault(literal, placeholder(name))
        if include_encoded:
            for variant in encoded_variants(literal):
                replacements.setdefault(variant, placeholder(name))
    return replacements

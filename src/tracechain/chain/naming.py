"""
Name assignment for chains and requests.

Every chain has its final name before any rewriting happens. Declared
(external) chains keep the name the user gave them; detected chains take the
collaborator's answer, or ``var_1``, ``var_2``, ... if the collaborator fails.
"""

import logging
from typing import List, Optional, Sequence

from .collaborators import (
    NamingCollaborator,
    NamingRequest,
    RequestNamingRequest,
    sanitize_name,
)
from .diagnostics import DiagnosticLog
from .errors import CollaboratorFailure
from .models import Chain, Interaction
from .retry import with_retries
from ..common import url_path

logger = logging.getLogger("tracechain.naming")

FALLBACK_PREFIX = "var"


def unique_names(names: Sequence[str]) -> List[str]:
    """Sanitize names and suffix duplicates with ``_2``, ``_3``, ..."""
    seen = set()
    result = []
    for name in names:
        base = sanitize_name(name)
        candidate = base
        counter = 2
        while candidate in seen:
            candidate = f"{base}_{counter}"
            counter += 1
        seen.add(candidate)
        result.append(candidate)
    return result


def fallback_names(count: int) -> List[str]:
    return [f"{FALLBACK_PREFIX}_{i}" for i in range(1, count + 1)]


def naming_request_for(chain: Chain, interactions: Sequence[Interaction]) -> NamingRequest:
    origin = chain.origin
    if origin is not None:
        origin_url = interactions[origin.interaction_index].request.url
        origin_path = origin.path
    else:
        first = chain.request_usages[0] if chain.request_usages else None
        origin_url = interactions[first.interaction_index].request.url if first else ''
        origin_path = first.path if first else ''

    return NamingRequest(
        origin_url=origin_url,
        origin_path=origin_path,
        example_value=chain.value,
        hint=chain.init_hint,
        proposed_name=chain.name if chain.external else None
    )


def assign_chain_names(
    chains: List[Chain],
    interactions: Sequence[Interaction],
    naming: NamingCollaborator,
    attempts: int = 3,
    diagnostics: Optional[DiagnosticLog] = None
) -> None:
    """
    Give every chain its final, unique name (in place).

    A collaborator failure, an unparseable answer, or a batch of the wrong
    length is recorded as a diagnostic and replaced by sequential names.
    """
    diagnostics = diagnostics if diagnostics is not None else DiagnosticLog()
    if not chains:
        return

    requests = [naming_request_for(chain, interactions) for chain in chains]

    def call(batch: List[NamingRequest]):
        results = naming.name_variables(batch)
        if len(results) != len(batch):
            raise CollaboratorFailure(f"Naming returned {len(results)} results for {len(batch)} chains")
        return results

    try:
        results = with_retries(call, attempts=attempts)(requests)
        proposed = [
            chain.name if chain.external else result.name
            for chain, result in zip(chains, results)
        ]
        for chain, result in zip(chains, results):
            if result.init_script:
                chain.init_script = result.init_script
    except CollaboratorFailure as e:
        diagnostics.record('naming', 'CollaboratorFailure', f"Falling back to sequential names: {e}")
        sequential = iter(fallback_names(sum(1 for c in chains if not c.external)))
        proposed = [chain.name if chain.external else next(sequential) for chain in chains]

    # Declared names are reserved first so a generated name never steals one
    external_first = sorted(range(len(chains)), key=lambda i: not chains[i].external)
    final = unique_names([proposed[i] for i in external_first])
    for position, index in enumerate(external_first):
        chains[index].name = final[position]

    for chain in chains:
        logger.debug(f"Chain {chain.id} ({chain.value!r}) named {chain.name!r}")


def assign_request_names(
    interactions: Sequence[Interaction],
    naming: NamingCollaborator,
    attempts: int = 3,
    diagnostics: Optional[DiagnosticLog] = None
) -> List[str]:
    """
    Name every request; falls back to ``METHOD /path`` on failure.

    Returns:
        One name per interaction, in order
    """
    diagnostics = diagnostics if diagnostics is not None else DiagnosticLog()
    requests = [
        RequestNamingRequest(url=i.request.url, method=i.request.method, sequence=position + 1)
        for position, i in enumerate(interactions)
    ]
    if not requests:
        return []

    def call(batch: List[RequestNamingRequest]) -> List[str]:
        names = naming.name_requests(batch)
        if len(names) != len(batch):
            raise CollaboratorFailure(f"Request naming returned {len(names)} names for {len(batch)} requests")
        return names

    try:
        return with_retries(call, attempts=attempts)(requests)
    except CollaboratorFailure as e:
        diagnostics.record('naming', 'CollaboratorFailure', f"Falling back to URL paths for request names: {e}")
        return [f"{r.method.upper()} {url_path(r.url)}" for r in requests]

"""
Bounded retries for collaborator calls.

Collaborator calls only read and analyse, so repeating one is harmless.
"""

import functools
import logging
from typing import Callable, Optional, TypeVar

from tenacity import (
    RetryError,
    Retrying,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    wait_fixed,
)

from .errors import CollaboratorFailure

logger = logging.getLogger("tracechain.retry")

T = TypeVar("T")


def _never(result) -> bool:
    return False


def with_retries(
    func: Callable[..., T],
    attempts: int = 3,
    is_retryable: Optional[Callable[[T], bool]] = None,
    wait_seconds: float = 0
) -> Callable[..., T]:
    """
    Wrap ``func`` so it is called up to ``attempts`` times.

    A call is retried when it raises CollaboratorFailure or when
    ``is_retryable(result)`` is true (e.g. an empty answer). Any other
    exception propagates immediately.

    Raises:
        CollaboratorFailure: When the last attempt still failed

    Example:
        resolve = with_retries(resolver.resolve, attempts=3, is_retryable=lambda r: not r)
        path = resolve(request)
    """
    result_predicate = is_retryable or _never

    @functools.wraps(func)
    def wrapper(*args, **kwargs) -> T:
        retrying = Retrying(
            stop=stop_after_attempt(max(1, attempts)),
            wait=wait_fixed(wait_seconds),
            retry=retry_if_exception_type(CollaboratorFailure) | retry_if_result(result_predicate),
            before_sleep=lambda state: logger.debug(
                f"Retrying {getattr(func, '__name__', 'call')} (attempt {state.attempt_number} failed)"
            ),
        )
        try:
            return retrying(func, *args, **kwargs)
        except RetryError as e:
            last = e.last_attempt
            if last.failed:
                raise CollaboratorFailure(
                    f"Failed after {attempts} attempts: {last.exception()}"
                ) from last.exception()
            raise CollaboratorFailure(f"Unusable result after {attempts} attempts") from e

    return wrapper

"""Resilient remote calls with exponential backoff.

Every call that leaves the process (jobs API, LLM provider) goes through
``with_backoff``. Operations report their outcome as a tagged result,
``Ok(value)`` or ``Err(error)``, so retry logic never has to inspect payload
shapes. ``result_from_response`` builds that result from an HTTP response,
including the case where the remote function layer reports a failure as an
``errorMessage`` field inside a 2xx body.
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

import httpx

from jobfeed.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RemoteCallError(Exception):
    """Single exception surface for transport and application failures."""

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Err:
    error: RemoteCallError


Result = Ok | Err

# Exceptions that mean "the remote side did not answer properly"
TRANSPORT_ERRORS: tuple[type[BaseException], ...] = (
    httpx.HTTPError,
    asyncio.TimeoutError,
    OSError,
)


def result_from_response(response: httpx.Response) -> Result:
    """Convert an HTTP response into a tagged result.

    Args:
        response: Response returned by httpx

    Returns:
        Ok with the decoded JSON body (None for empty bodies), or Err when the
        status is 4xx/5xx or the body carries an ``errorMessage`` string
    """
    payload: Any = None
    if response.content:
        try:
            payload = response.json()
        except ValueError:
            payload = response.text

    if response.is_error:
        detail = payload.get("detail") if isinstance(payload, dict) else payload
        return Err(
            RemoteCallError(
                f"HTTP {response.status_code}: {detail or response.reason_phrase}",
                status_code=response.status_code,
            )
        )

    # Edge functions report failures inside a successful envelope
    if isinstance(payload, dict) and isinstance(payload.get("errorMessage"), str):
        return Err(
            RemoteCallError(payload["errorMessage"], status_code=response.status_code)
        )

    return Ok(payload)


def backoff_delay(
    attempt: int,
    base_delay: float,
    rng: Callable[[float, float], float] = random.uniform,
) -> float:
    """Full-jitter delay to wait after a failed attempt (1-based)."""
    ceiling = base_delay * (2 ** (attempt - 1))
    return rng(0.0, ceiling)


async def with_backoff(
    operation: Callable[[], Awaitable[Result]],
    *,
    max_attempts: int | None = None,
    base_delay: float | None = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    rng: Callable[[float, float], float] = random.uniform,
) -> Any:
    """Run a remote operation, retrying failed attempts with backoff.

    The operation may be executed several times, so it must be safe to
    repeat (read-only, or a convergent write such as a status overwrite).

    Args:
        operation: Zero-argument coroutine factory returning Ok or Err
        max_attempts: Total attempts (default: settings.remote_max_attempts)
        base_delay: Base delay in seconds (default: settings.remote_base_delay)
        sleep: Awaitable sleep, replaceable in tests
        rng: Jitter source, ``rng(low, high)``

    Returns:
        The value carried by the first Ok result

    Raises:
        RemoteCallError: The error of the last attempt, unchanged
    """
    if max_attempts is None:
        max_attempts = settings.remote_max_attempts
    if base_delay is None:
        base_delay = settings.remote_base_delay
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    last_error: RemoteCallError | None = None

    for attempt in range(1, max_attempts + 1):
        try:
            result = await operation()
        except RemoteCallError as e:
            result = Err(e)
        except TRANSPORT_ERRORS as e:
            error = RemoteCallError(f"{type(e).__name__}: {e}")
            error.__cause__ = e
            result = Err(error)

        if isinstance(result, Ok):
            return result.value

        last_error = result.error
        if attempt == max_attempts:
            break

        delay = backoff_delay(attempt, base_delay, rng)
        logger.warning(
            f"Remote call attempt {attempt}/{max_attempts} failed "
            f"({last_error}), retrying in {delay:.2f}s"
        )
        await sleep(delay)

    logger.error(f"Remote call failed after {max_attempts} attempts: {last_error}")
    raise last_error

"""
Shared utility functions used throughout the Campaign Orchestrator codebase.

Provides:
    - utc_now(): Timezone-aware UTC datetime (for Supabase TIMESTAMPTZ columns)
    - epoch_ms(): Current time in epoch milliseconds (session document timestamps)
    - generate_id(): UUID4 string generator (session ids, database keys)
    - generate_entry_id(): Short time-prefixed id for log entries and assets
    - extract_json_object(text): First ``{...}`` substring of model output, parsed
    - truncate(text, limit): Length-capped text for log messages
    - @with_retry: Decorator with exponential backoff for transient failures
"""

from datetime import datetime, timezone
import json
import random
import re
import string
import uuid
import asyncio
import logging
import time as time_module
from functools import wraps
from typing import Callable, TypeVar, Any, Dict, Tuple, Type, Optional

from src.exceptions import RetryExhaustedError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Type variable for generic return types in the retry decorator
# ---------------------------------------------------------------------------
T = TypeVar("T")

# Greedy on purpose: spans from the first "{" to the last "}" in the text.
_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")

_ID_ALPHABET = string.ascii_lowercase + string.digits


# ===========================================================================
# TIMEZONE UTILITIES
# All timestamps stored in Supabase must be timezone-aware (TIMESTAMPTZ)
# ===========================================================================


def utc_now() -> datetime:
    """
    Get current UTC time as timezone-aware datetime.

    ALWAYS use this instead of ``datetime.now()`` or ``datetime.utcnow()``
    for Supabase compatibility (TIMESTAMPTZ columns).

    Returns:
        Timezone-aware datetime in UTC.
    """
    return datetime.now(timezone.utc)


def epoch_ms() -> int:
    """Current UTC time as integer milliseconds since the epoch."""
    return int(time_module.time() * 1000)


def generate_id() -> str:
    """
    Generate a unique ID for sessions and database records.

    Uses UUID4 which is suitable for:
    - Session ids (the sole external handle of a run)
    - Database primary keys

    Returns:
        A unique UUID string (compatible with Supabase UUID type).
    """
    return str(uuid.uuid4())


def generate_entry_id() -> str:
    """
    Generate a short id for log entries and generated assets.

    Format is ``"<epoch_ms>-<7 random chars>"`` so ids sort roughly by
    creation time when read back from the session document.

    Returns:
        Id string such as ``"1718450000000-k3j9x2a"``.
    """
    suffix = "".join(random.choices(_ID_ALPHABET, k=7))
    return f"{epoch_ms()}-{suffix}"


# ===========================================================================
# TEXT UTILITIES
# ===========================================================================


def extract_json_object(text: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    Locate and parse the first JSON object embedded in free-form model text.

    The match is greedy: it runs from the first ``{`` to the last ``}``, so
    prose before and after a single object is tolerated while two separate
    objects in one response will not parse.

    Args:
        text: Raw model output.

    Returns:
        The parsed object, or ``None`` when no ``{...}`` substring exists,
        it is not valid JSON, or it decodes to something other than a dict.
    """
    if not text:
        return None
    match = _JSON_OBJECT_RE.search(text)
    if match is None:
        return None
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    if not isinstance(parsed, dict):
        return None
    return parsed


def truncate(text: str, limit: int) -> str:
    """Cap *text* at *limit* characters, appending ``...`` when cut."""
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


# ===========================================================================
# RETRY DECORATOR WITH EXPONENTIAL BACKOFF
# Retries are for transient failures (rate limits, timeouts).
# Eventually raises if all attempts fail.
# ===========================================================================


def with_retry(
    max_attempts: int = 3,
    base_delay: float = 2.0,
    retryable_exceptions: Tuple[Type[Exception], ...] = (Exception,),
    operation_name: Optional[str] = None,
) -> Callable:
    """
    Decorator for retry logic with exponential backoff.

    Behaviour:
    - Retries are for transient failures (rate limits, timeouts).
    - Eventually raises ``RetryExhaustedError`` if all attempts fail.
    - Logs each retry attempt for debugging.

    Wraps coroutine functions only.

    Args:
        max_attempts: Maximum number of attempts (default ``3``).
        base_delay: Initial delay in seconds before the first retry
            (default ``2.0``). Subsequent delays grow exponentially:
            ``base_delay * (2 ** attempt)``.
        retryable_exceptions: Tuple of exception types that should trigger
            a retry. Any exception **not** in this tuple will propagate
            immediately without retrying.
        operation_name: Human-readable name used in log messages. If
            ``None``, the wrapped function's ``__name__`` is used.

    Raises:
        RetryExhaustedError: When all retry attempts have been exhausted.
            The original exception is chained as the ``last_error``
            attribute and as the ``__cause__``.

    Usage::

        @with_retry(max_attempts=3, base_delay=2.0)
        async def fetch_plan(prompt: str) -> str:
            return await llm.generate(prompt)
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        op_name = operation_name or func.__name__

        @wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> T:
            last_error: Optional[Exception] = None
            for attempt in range(1, max_attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except retryable_exceptions as e:
                    last_error = e
                    if attempt < max_attempts:
                        delay = base_delay * (2 ** (attempt - 1))
                        logger.warning(
                            "[RETRY] %s attempt %d/%d failed: %s. "
                            "Retrying in %.1fs...",
                            op_name,
                            attempt,
                            max_attempts,
                            e,
                            delay,
                        )
                        await asyncio.sleep(delay)
                    else:
                        logger.error(
                            "[RETRY EXHAUSTED] %s failed after %d attempts: %s",
                            op_name,
                            max_attempts,
                            e,
                        )
            raise RetryExhaustedError(
                op_name, max_attempts, last_error  # type: ignore[arg-type]
            ) from last_error

        return async_wrapper  # type: ignore[return-value]

    return decorator

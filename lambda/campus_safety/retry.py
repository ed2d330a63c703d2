import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from botocore.exceptions import ClientError

from campus_safety.errors import OracleError, TransientOracleError

logger = logging.getLogger(__name__)

T = TypeVar("T")

THROTTLING_CODES = {
    "ThrottlingException",
    "TooManyRequestsException",
    "ServiceQuotaExceededException",
}


def is_rate_limit_error(error: BaseException) -> bool:
    if isinstance(error, TransientOracleError):
        return True
    if isinstance(error, OracleError):
        # Classified already; the message may carry model text
        return False
    if isinstance(error, ClientError):
        if error.response.get("Error", {}).get("Code") in THROTTLING_CODES:
            return True
        if error.response.get("ResponseMetadata", {}).get("HTTPStatusCode") == 429:
            return True
    if getattr(error, "status", None) == 429 or getattr(error, "status_code", None) == 429:
        return True
    message = str(error)
    return "429" in message or "quota" in message.lower()


async def safe_api_call(
    fn: Callable[[], Awaitable[T]], retries: int = 3, delay: float = 1.0
) -> T:
    """Await ``fn()``, retrying rate-limit failures with exponential backoff.

    ``delay`` is in seconds and doubles on every retry. Any other failure, or a
    rate-limit failure once ``retries`` reaches zero, is re-raised unchanged.
    """
    try:
        return await fn()
    except Exception as error:
        if is_rate_limit_error(error) and retries > 0:
            logger.warning(f"Quota hit. Retrying in {delay:.1f}s... ({retries} retries left)")
            await asyncio.sleep(delay)
            return await safe_api_call(fn, retries - 1, delay * 2)
        raise

"""
Paystream - Transaction Helpers

Each public mutating service call is one transaction: commit on success,
rollback and re-raise on failure. Optimistic-lock conflicts (a stale
`version`) and insert races on unique keys roll back and re-run the whole
unit of work from a fresh read, a bounded number of times.
"""

import logging
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from paystream.config import settings
from paystream.utils.error_handling import ConflictException, ErrorCode


logger = logging.getLogger(__name__)

T = TypeVar("T")


async def run_in_transaction(
    db: AsyncSession,
    operation: Callable[[], Awaitable[T]],
    description: str,
    retry_on: Tuple[Type[Exception], ...] = (StaleDataError,),
    retries: Optional[int] = None,
) -> T:
    """
    Run `operation` and commit, retrying on the given conflict errors.

    The operation must re-read everything it depends on; it is invoked again
    from scratch after each rollback.

    Raises:
        ConflictException: conflicts persisted after all retries.
    """
    retries = settings.write_conflict_retries if retries is None else retries
    last_error = None
    for attempt in range(retries + 1):
        try:
            result = await operation()
            await db.commit()
            return result
        except retry_on as exc:
            await db.rollback()
            last_error = exc
            logger.warning(
                f"Write conflict during {description} (attempt {attempt + 1}/{retries + 1}): "
                f"{type(exc).__name__}"
            )
        except Exception:
            await db.rollback()
            raise

    code = ErrorCode.VERSION_CONFLICT
    if isinstance(last_error, IntegrityError):
        code = ErrorCode.RESOURCE_CONFLICT
    raise ConflictException(
        f"Concurrent modification during {description}; retry the operation",
        code=code,
        details={"attempts": retries + 1},
    )

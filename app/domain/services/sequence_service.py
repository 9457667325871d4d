"""
Sequence Service - year-scoped document numbers

Numbers look like ``TC-2025-0042``: a prefix, the calendar year and a
zero-padded counter. There is no counter table; the next number is derived
from the highest number already persisted, on every call. Two writers racing
for the same number are separated by the unique constraint on the column and
the loser re-derives through ``run_with_sequence_retry``.
"""
import re
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import SequenceConflictError
from app.core.logging import get_logger
from app.db.models.departure import Departure
from app.db.models.shipment import Shipment

logger = get_logger(__name__)

T = TypeVar("T")

_TRAILING_DIGITS_RE = re.compile(r"(\d+)$")


class SequenceScope(str, Enum):
    SHIPMENT_WAYBILL = "shipment-waybill"
    GENERAL_WAYBILL = "general-waybill"


_SCOPE_COLUMNS = {
    SequenceScope.SHIPMENT_WAYBILL: Shipment.waybill_number,
    SequenceScope.GENERAL_WAYBILL: Departure.general_waybill_number,
}


def default_prefix(scope: SequenceScope) -> str:
    if scope is SequenceScope.SHIPMENT_WAYBILL:
        return settings.SHIPMENT_WAYBILL_PREFIX
    return settings.GENERAL_WAYBILL_PREFIX


def format_identifier(prefix: str, year: int, number: int, min_digits: Optional[int] = None) -> str:
    """Pad to at least ``min_digits``; longer counters are never truncated"""
    width = min_digits or settings.SEQUENCE_MIN_DIGITS
    return f"{prefix}-{year}-{number:0{width}d}"


def parse_counter(identifier: Optional[str]) -> int:
    """Trailing digit run of an identifier, 0 when there is none"""
    if not identifier:
        return 0
    match = _TRAILING_DIGITS_RE.search(identifier)
    return int(match.group(1)) if match else 0


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SequenceAllocator:
    """Derives the next identifier of a scope from persisted state"""

    def __init__(self, db: AsyncSession, clock: Callable[[], datetime] = datetime.utcnow):
        self.db = db
        self.clock = clock

    async def next_identifier(self, scope: SequenceScope, prefix: Optional[str] = None) -> str:
        prefix = prefix or default_prefix(scope)
        year = self.clock().year
        column = _SCOPE_COLUMNS[scope]
        stem = f"{prefix}-{year}-"

        # Zero padding makes string order numeric order within one length;
        # ordering by length first keeps it correct once a counter outgrows the padding.
        result = await self.db.execute(
            select(column)
            .where(column.like(f"{_escape_like(stem)}%", escape="\\"))
            .order_by(func.length(column).desc(), column.desc())
            .limit(1)
        )
        latest = result.scalar_one_or_none()
        identifier = format_identifier(prefix, year, parse_counter(latest) + 1)

        logger.debug(
            "Sequence identifier derived",
            extra_data={"scope": scope.value, "latest": latest, "identifier": identifier},
        )
        return identifier


def is_sequence_collision(error: IntegrityError, scope: SequenceScope) -> bool:
    """True when the violated constraint is the scope's number column"""
    column = _SCOPE_COLUMNS[scope]
    return column.key in str(error.orig)


async def run_with_sequence_retry(
    db: AsyncSession,
    scope: SequenceScope,
    operation: Callable[[], Awaitable[T]],
    max_attempts: Optional[int] = None,
) -> T:
    """
    Run an operation that allocates and commits a number of ``scope``.

    On a collision the transaction is rolled back and the whole operation runs
    again, re-deriving the number from the now-committed competitor. Any other
    integrity error propagates after rollback.

    Raises:
        SequenceConflictError: collisions persisted for every attempt
    """
    attempts = max_attempts or settings.SEQUENCE_MAX_RETRIES
    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except IntegrityError as e:
            await db.rollback()
            if not is_sequence_collision(e, scope):
                raise
            logger.warning(
                "Sequence number collision, re-deriving",
                extra_data={"scope": scope.value, "attempt": attempt, "max_attempts": attempts},
            )

    logger.error(
        "Sequence allocation exhausted retries",
        extra_data={"scope": scope.value, "attempts": attempts},
    )
    raise SequenceConflictError(scope.value, attempts)

"""
Order Number Generator

Human-readable order numbers: PREFIX + zero-padded sequence, e.g. MRC000042.

The sequence lives in the order_sequences table and is advanced with a
single UPDATE inside its own transaction; the row lock taken by that UPDATE
serialises concurrent callers, including callers in other server processes.

Degraded mode:
    If the counter cannot be read or advanced, the generator falls back to
    PREFIX + the last digits of the epoch-millisecond clock. Such numbers are
    only *probably* unique. A collision is reported by the store as
    OrderNumberConflictError and the Order Service retries with a fresh number.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional

from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from canteen.models import OrderSequence

logger = logging.getLogger(__name__)


def format_order_number(prefix: str, value: int, digits: int = 6) -> str:
    return f"{prefix}{value:0{digits}d}"


class BaseOrderNumberGenerator(ABC):
    """Common formatting and the timestamp fallback."""

    def __init__(
        self,
        prefix: str = "MRC",
        digits: int = 6,
        clock: Callable[[], float] = time.time,
    ):
        self.prefix = prefix
        self.digits = digits
        self._clock = clock

    @abstractmethod
    async def _next_value(self) -> int:
        """Advance the durable counter and return its new value."""
        pass

    def fallback(self) -> str:
        """Timestamp-derived number. Probably unique, not guaranteed."""
        millis = str(int(self._clock() * 1000))
        return f"{self.prefix}{millis[-self.digits:].zfill(self.digits)}"

    async def next(self) -> str:
        try:
            value = await self._next_value()
        except Exception as e:
            number = self.fallback()
            logger.warning(
                f"Order number counter unavailable ({e!r}); "
                f"using degraded timestamp number {number}"
            )
            return number
        return format_order_number(self.prefix, value, self.digits)


class SequenceOrderNumberGenerator(BaseOrderNumberGenerator):
    """
    Database-backed counter.

    Example:
        >>> numbers = SequenceOrderNumberGenerator(session_factory)
        >>> await numbers.next()
        'MRC000001'
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        sequence_name: str = "orders",
        prefix: str = "MRC",
        digits: int = 6,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(prefix=prefix, digits=digits, clock=clock)
        self._session_factory = session_factory
        self.sequence_name = sequence_name

    async def _increment(self, session: AsyncSession) -> Optional[int]:
        result = await session.execute(
            update(OrderSequence)
            .where(OrderSequence.name == self.sequence_name)
            .values(value=OrderSequence.value + 1)
        )
        if result.rowcount == 0:
            return None
        value = await session.scalar(
            select(OrderSequence.value).where(OrderSequence.name == self.sequence_name)
        )
        return int(value)

    async def _next_value(self) -> int:
        async with self._session_factory() as session:
            async with session.begin():
                value = await self._increment(session)
                if value is not None:
                    return value

        # First use of this sequence: create the row. A concurrent creator
        # wins the insert; the loser falls through to a plain increment.
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await session.execute(
                        insert(OrderSequence).values(name=self.sequence_name, value=1)
                    )
            logger.info(f"Order sequence '{self.sequence_name}' created")
            return 1
        except IntegrityError:
            pass

        async with self._session_factory() as session:
            async with session.begin():
                value = await self._increment(session)
        if value is None:
            raise SQLAlchemyError(f"Order sequence '{self.sequence_name}' vanished")
        return value

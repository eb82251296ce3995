from typing import Sequence, TypeVar

from sqlalchemy import Select
from sqlalchemy.ext.asyncio import AsyncSession

T = TypeVar("T")


async def fetch_page(db: AsyncSession, stmt: Select, offset: int, limit: int) -> tuple[list, bool]:
    """
    Run `stmt` for one page. One extra row is read so `has_more` is exact
    rather than inferred from a full page.
    """
    rows = (await db.execute(stmt.offset(offset).limit(limit + 1))).unique().scalars().all()
    return split_page(rows, limit)


def split_page(rows: Sequence[T], limit: int) -> tuple[list[T], bool]:
    return list(rows[:limit]), len(rows) > limit

"""
Denormalised counters (followers, following, posts, likes, comments).

Each bump is one atomic UPDATE issued on the request's session, so it
commits or rolls back together with the row mutation that triggered it.
Decrements clamp at zero.
"""
from sqlalchemy import case, update
from sqlalchemy.ext.asyncio import AsyncSession


async def bump(db: AsyncSession, model, key_column, key: str, column_name: str, delta: int) -> None:
    column = getattr(model, column_name)
    if delta >= 0:
        new_value = column + delta
    else:
        new_value = case((column + delta < 0, 0), else_=column + delta)
    await db.execute(
        update(model)
        .where(key_column == key)
        .values({column_name: new_value})
        .execution_options(synchronize_session=False)
    )

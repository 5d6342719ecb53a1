"""
Dialect-aware INSERT ... ON CONFLICT DO NOTHING.

Used for rows that many requests may try to create at once (a trainer's
schedule row, a client's credit account) so that the loser of the race
does not poison its transaction with an IntegrityError.
"""

from sqlalchemy.ext.asyncio import AsyncSession


async def insert_or_ignore(db: AsyncSession, model, values: dict, index_elements: list[str]) -> None:
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise NotImplementedError(f"insert_or_ignore is not supported on {dialect}")

    await db.execute(
        insert(model).values(**values).on_conflict_do_nothing(index_elements=index_elements)
    )

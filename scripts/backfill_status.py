import asyncio

from sqlalchemy import text

from src.core.database import engine


async def run_migration() -> None:
    """Adds the columns introduced after the first profile schema and backfills legacy rows.

    Rows created before statuses existed are read as active; this makes that explicit.
    Fails gracefully if the columns already exist.
    """
    queries = [
        "ALTER TABLE profiles ADD COLUMN status VARCHAR(9)",
        "ALTER TABLE profiles ADD COLUMN version INTEGER NOT NULL DEFAULT 1",
    ]

    print("Executing profile status migration...")
    async with engine.begin() as conn:
        for query in queries:
            try:
                await conn.execute(text(query))
                print(f"Success: {query}")
            except Exception as e:
                # SQLite raises an OperationalError if the column already exists.
                print(f"Skipped (column likely exists): {e}")

        # Enum columns store member names
        result = await conn.execute(text("UPDATE profiles SET status = 'ACTIVE' WHERE status IS NULL"))
        print(f"Backfilled {result.rowcount} profile(s) to ACTIVE")

    print("Migration complete.")


if __name__ == "__main__":
    asyncio.run(run_migration())

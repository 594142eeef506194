"""Initialize database - Run this once to create all tables"""
import asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from folder_graph.config import settings
from folder_graph.db.base import Base
from folder_graph.db.session import async_database_url
import folder_graph.models  # noqa: F401

async def init_db():
    print("Creating database tables...")
    engine = create_async_engine(async_database_url(settings.DATABASE_URL), echo=True)

    async with engine.begin() as conn:
        # Drop all tables
        await conn.run_sync(Base.metadata.drop_all)
        # Create all tables
        await conn.run_sync(Base.metadata.create_all)

    await engine.dispose()
    print("Database initialized successfully!")

if __name__ == "__main__":
    asyncio.run(init_db())

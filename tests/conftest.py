import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./folder_graph_unused.db")
os.environ.setdefault("CELERY_BROKER_URL", "memory://")
os.environ.setdefault("CELERY_RESULT_BACKEND", "cache+memory://")
os.environ.setdefault("RATE_LIMIT_PER_MINUTE", "10000")

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from folder_graph.db.base import Base
from folder_graph.models import FolderPosition, FolderRelation
from folder_graph.models.enums import FolderType
from folder_graph.services.folder_service import FolderService
from folder_graph.services.permissions import OwnershipPermissionService
from folder_graph.services.search import SearchService

OWNER = "user-1"
OTHER = "user-2"


class RecordingSearchService(SearchService):
    def __init__(self):
        self.messages = []

    async def send_message(self, message):
        self.messages.append(message)


@pytest.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'graph.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False, autoflush=False)
    await engine.dispose()


@pytest.fixture
def search():
    return RecordingSearchService()


@pytest.fixture
def service(session_factory, search):
    return FolderService(
        session_factory,
        permissions=OwnershipPermissionService(session_factory),
        search=search,
    )


@pytest.fixture
def make_folder(service):
    async def make(title, parent=None, user_id=OWNER):
        folder_type = FolderType.SPACE if parent is None else FolderType.FOLDER
        parent_id = parent.id if parent is not None else None
        return await service.create_folder(user_id, title, folder_type=folder_type, parent_folder_id=parent_id)
    return make


@pytest.fixture
def all_edges(session_factory):
    async def load():
        async with session_factory() as session:
            result = await session.execute(select(FolderRelation).order_by(FolderRelation.id))
            return list(result.scalars().all())
    return load


@pytest.fixture
def all_positions(session_factory):
    async def load():
        async with session_factory() as session:
            result = await session.execute(select(FolderPosition).order_by(FolderPosition.id))
            return list(result.scalars().all())
    return load


@pytest.fixture
def edge_between(session_factory):
    async def load(parent_id, child_id):
        async with session_factory() as session:
            query = select(FolderRelation).where(FolderRelation.child_folder_id == child_id)
            if parent_id is None:
                query = query.where(FolderRelation.parent_folder_id.is_(None))
            else:
                query = query.where(FolderRelation.parent_folder_id == parent_id)
            return (await session.execute(query)).scalar_one_or_none()
    return load

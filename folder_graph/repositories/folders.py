from datetime import datetime
from typing import Dict, Iterable, List, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from folder_graph.core.exceptions import NotFoundError, ValidationError
from folder_graph.models.folder import Folder

UPDATABLE_FIELDS = ("title", "description", "color", "view_type")


def locking_select(folder_ids: List[int]):
    # rows are always locked in id order
    return select(Folder).where(Folder.id.in_(folder_ids)).order_by(Folder.id).with_for_update()


class FolderStore:
    """Plain data access for folder records. No graph logic lives here."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, folder_id: int, for_update: bool = False) -> Optional[Folder]:
        query = select(Folder).where(Folder.id == folder_id)
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_or_404(self, folder_id: int, for_update: bool = False) -> Folder:
        folder = await self.get(folder_id, for_update=for_update)
        if folder is None:
            raise NotFoundError(f"Folder {folder_id} not found")
        return folder

    async def get_many(self, folder_ids: Iterable[int]) -> List[Folder]:
        ids = list(set(folder_ids))
        if not ids:
            return []
        result = await self.session.execute(select(Folder).where(Folder.id.in_(ids)))
        return list(result.scalars().all())

    async def lock_many(self, folder_ids: Iterable[int]) -> Dict[int, Folder]:
        """Lock the given folders in id order. Missing ids raise ``NotFoundError``."""
        ids = sorted(set(folder_ids))
        result = await self.session.execute(locking_select(ids))
        folders = {f.id: f for f in result.scalars().all()}
        for folder_id in ids:
            if folder_id not in folders:
                raise NotFoundError(f"Folder {folder_id} not found")
        return folders

    async def add(self, folder: Folder) -> Folder:
        self.session.add(folder)
        await self.session.flush()
        return folder

    async def update(self, folder: Folder, **fields) -> Folder:
        for name, value in fields.items():
            if name not in UPDATABLE_FIELDS:
                raise ValueError(f"Field {name} cannot be updated directly")
            if name == "title" and not (value or "").strip():
                raise ValidationError("Title cannot be empty")
            setattr(folder, name, value)
        await self.session.flush()
        return folder

    # Lifecycle writers. Only the lifecycle manager calls these.

    @staticmethod
    def mark_archived(folder: Folder, user_id: str, why: Optional[str], when: datetime) -> None:
        folder.archived_at = when
        folder.archived_by = user_id
        folder.archived_why = why

    @staticmethod
    def clear_archived(folder: Folder) -> None:
        folder.archived_at = None
        folder.archived_by = None
        folder.archived_why = None

    @staticmethod
    def mark_deleted(folder: Folder, user_id: str, why: Optional[str], when: datetime) -> None:
        folder.deleted_at = when
        folder.deleted_by = user_id
        folder.deleted_why = why
        FolderStore.clear_archived(folder)

    @staticmethod
    def clear_deleted(folder: Folder) -> None:
        folder.deleted_at = None
        folder.deleted_by = None
        folder.deleted_why = None

"""Flat per-user ordering of favourite folders."""
import logging
from typing import List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from folder_graph.core.exceptions import ConflictError, NotFoundError
from folder_graph.models.enums import FolderType
from folder_graph.models.folder import Folder
from folder_graph.models.folder_favourite import FolderFavourite

logger = logging.getLogger(__name__)


class FavouriteManager:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def _ordered(self, user_id: str) -> List[FolderFavourite]:
        result = await self.session.execute(
            select(FolderFavourite)
            .where(FolderFavourite.user_id == user_id)
            .order_by(FolderFavourite.index, FolderFavourite.id)
        )
        return list(result.scalars().all())

    async def _get(self, folder_id: int, user_id: str) -> Optional[FolderFavourite]:
        result = await self.session.execute(
            select(FolderFavourite).where(
                FolderFavourite.folder_id == folder_id,
                FolderFavourite.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def mark(self, folder_id: int, user_id: str) -> FolderFavourite:
        if await self._get(folder_id, user_id) is not None:
            raise ConflictError(f"Folder {folder_id} is already a favourite")
        result = await self.session.execute(
            select(func.coalesce(func.max(FolderFavourite.index), -1)).where(FolderFavourite.user_id == user_id)
        )
        favourite = FolderFavourite(folder_id=folder_id, user_id=user_id, index=result.scalar_one() + 1)
        self.session.add(favourite)
        await self.session.flush()
        return favourite

    async def unmark(self, folder_id: int, user_id: str) -> None:
        favourite = await self._get(folder_id, user_id)
        if favourite is None:
            raise NotFoundError(f"Folder {folder_id} is not a favourite")
        await self.session.delete(favourite)
        await self.session.flush()
        await self._renumber(await self._ordered(user_id))

    async def list_for_user(self, user_id: str, folder_types: Optional[Sequence[FolderType]] = None) -> List[Folder]:
        query = (
            select(Folder)
            .join(FolderFavourite, FolderFavourite.folder_id == Folder.id)
            .where(
                FolderFavourite.user_id == user_id,
                Folder.archived_at.is_(None),
                Folder.deleted_at.is_(None),
            )
            .order_by(FolderFavourite.index, FolderFavourite.id)
        )
        if folder_types:
            query = query.where(Folder.folder_type.in_(list(folder_types)))
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def update_position(self, folder_id: int, user_id: str, index: int) -> List[FolderFavourite]:
        """Move one favourite to ``index``.

        Index 0 renumbers the whole list. Otherwise only the rows between
        the old and the new slot shift by one.
        """
        favourites = await self._ordered(user_id)
        moving = next((f for f in favourites if f.folder_id == folder_id), None)
        if moving is None:
            raise NotFoundError(f"Folder {folder_id} is not a favourite")

        index = max(0, min(index, len(favourites) - 1))
        if index == 0:
            favourites.remove(moving)
            favourites.insert(0, moving)
            await self._renumber(favourites)
            return favourites

        old = moving.index
        if index > old:
            for favourite in favourites:
                if old < favourite.index <= index:
                    favourite.index -= 1
        elif index < old:
            for favourite in favourites:
                if index <= favourite.index < old:
                    favourite.index += 1
        moving.index = index
        await self.session.flush()
        logger.debug(f"Favourite {folder_id} of {user_id} moved {old} -> {index}")
        return sorted(favourites, key=lambda f: f.index)

    async def _renumber(self, favourites: List[FolderFavourite]) -> None:
        for index, favourite in enumerate(favourites):
            if favourite.index != index:
                favourite.index = index
        await self.session.flush()

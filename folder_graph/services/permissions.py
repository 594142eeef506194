"""Permission collaborator.

The graph engine calls into this after its own transaction commits, so a
failure here never undoes a structural change.
"""
import logging
from typing import Dict, Iterable, List, Optional, Set

from sqlalchemy import or_, select

from folder_graph.db.transaction import UnitOfWork
from folder_graph.models.enums import EntityType, FolderType, PermissionLevel
from folder_graph.models.folder import Folder
from folder_graph.models.folder_follower import FolderFollower
from folder_graph.services.relation_graph import RelationGraph

logger = logging.getLogger(__name__)


class PermissionService:
    async def grant_owner(self, entity_type: EntityType, user_id: str, folder_id: int) -> None:
        raise NotImplementedError

    async def get_recursive_ids_for_user(
        self,
        user_id: str,
        entity_type: EntityType,
        permission: PermissionLevel,
        root_id: Optional[int] = None,
    ) -> Set[int]:
        raise NotImplementedError

    async def update_entity_position(self, entity_type: EntityType, folder_id: int) -> None:
        raise NotImplementedError

    async def copy_permissions_from_entity_to_another(
        self, entity_type: EntityType, source_id: int, target_id: int
    ) -> None:
        raise NotImplementedError

    async def check_users_has_permissions_on_entity(
        self,
        user_ids: Iterable[str],
        permission: PermissionLevel,
        entity_type: EntityType,
        folder_id: int,
    ) -> Dict[str, bool]:
        raise NotImplementedError


class OwnershipPermissionService(PermissionService):
    """Users see what they own or follow. Nothing is inherited along edges."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def grant_owner(self, entity_type: EntityType, user_id: str, folder_id: int) -> None:
        async with UnitOfWork(self.session_factory) as uow:
            await self._follow(uow.session, folder_id, [user_id])
        logger.info(f"User {user_id} granted owner on {entity_type.value} {folder_id}")

    async def get_recursive_ids_for_user(
        self,
        user_id: str,
        entity_type: EntityType,
        permission: PermissionLevel,
        root_id: Optional[int] = None,
    ) -> Set[int]:
        async with UnitOfWork(self.session_factory) as uow:
            query = (
                select(Folder.id)
                .outerjoin(
                    FolderFollower,
                    (FolderFollower.folder_id == Folder.id) & (FolderFollower.user_id == user_id),
                )
                .where(or_(Folder.user_id == user_id, FolderFollower.id.is_not(None)))
            )
            if entity_type == EntityType.SPACE:
                query = query.where(Folder.folder_type == FolderType.SPACE)
            if root_id is not None:
                scope = {root_id} | await RelationGraph(uow.session).descendant_ids(root_id)
                query = query.where(Folder.id.in_(scope))
            result = await uow.session.execute(query)
            return set(result.scalars().all())

    async def update_entity_position(self, entity_type: EntityType, folder_id: int) -> None:
        # ownership does not follow placement
        logger.debug(f"Position of {entity_type.value} {folder_id} changed, nothing to recompute")

    async def copy_permissions_from_entity_to_another(
        self, entity_type: EntityType, source_id: int, target_id: int
    ) -> None:
        async with UnitOfWork(self.session_factory) as uow:
            result = await uow.session.execute(
                select(FolderFollower.user_id).where(FolderFollower.folder_id == source_id)
            )
            await self._follow(uow.session, target_id, result.scalars().all())

    async def check_users_has_permissions_on_entity(
        self,
        user_ids: Iterable[str],
        permission: PermissionLevel,
        entity_type: EntityType,
        folder_id: int,
    ) -> Dict[str, bool]:
        user_ids = list(user_ids)
        async with UnitOfWork(self.session_factory) as uow:
            folder = await uow.session.get(Folder, folder_id)
            result = await uow.session.execute(
                select(FolderFollower.user_id).where(
                    FolderFollower.folder_id == folder_id,
                    FolderFollower.user_id.in_(user_ids),
                )
            )
            allowed = set(result.scalars().all())
        if folder is not None:
            allowed.add(folder.user_id)
        ret = {user_id: user_id in allowed for user_id in user_ids}
        for user_id, is_allowed in ret.items():
            if not is_allowed:
                logger.debug(f"Access denied to user {user_id} on {entity_type.value} {folder_id} ({permission.value})")
        return ret

    @staticmethod
    async def _follow(session, folder_id: int, user_ids: List[str]) -> None:
        result = await session.execute(
            select(FolderFollower.user_id).where(FolderFollower.folder_id == folder_id)
        )
        existing = set(result.scalars().all())
        for user_id in user_ids:
            if user_id not in existing:
                session.add(FolderFollower(folder_id=folder_id, user_id=user_id))
                existing.add(user_id)
        await session.flush()

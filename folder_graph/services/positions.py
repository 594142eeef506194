"""Per-(user, view) ordering of sibling edges.

After any completed operation the indexes of one user's positions under one
parent in one view are exactly 0..n-1.
"""
import logging
from collections import defaultdict
from typing import Collection, List, Optional, Tuple

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from folder_graph.models.folder import Folder
from folder_graph.models.folder_position import FolderPosition
from folder_graph.models.folder_relation import FolderRelation

logger = logging.getLogger(__name__)


def _parent_clause(parent_id: Optional[int]):
    if parent_id is None:
        return FolderRelation.parent_folder_id.is_(None)
    return FolderRelation.parent_folder_id == parent_id


class PositionManager:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def append(self, edge: FolderRelation, user_id: str, view: str) -> FolderPosition:
        """Place ``edge`` after the user's last positioned sibling."""
        result = await self.session.execute(
            select(func.coalesce(func.max(FolderPosition.index), -1))
            .join(FolderRelation, FolderRelation.id == FolderPosition.folder_relation_id)
            .where(
                _parent_clause(edge.parent_folder_id),
                FolderPosition.user_id == user_id,
                FolderPosition.view == view,
            )
        )
        position = FolderPosition(
            folder_relation_id=edge.id,
            user_id=user_id,
            view=view,
            index=result.scalar_one() + 1,
        )
        self.session.add(position)
        await self.session.flush()
        return position

    async def fix_index(
        self,
        parent_id: Optional[int],
        user_id: str,
        view: str,
        moving_child_id: Optional[int] = None,
        desired_index: Optional[int] = None,
        visible_ids: Optional[Collection[int]] = None,
    ) -> List[FolderPosition]:
        """Rewrite the user's sibling order under ``parent_id`` as 0..n-1.

        Visible siblings are live folders the user owns or, when
        ``visible_ids`` is given, holds a permission on (``None`` means every
        live sibling). They keep their current relative order, unpositioned
        ones last, with ``moving_child_id`` spliced in at ``desired_index``.
        Hidden siblings that already hold a position follow the visible ones.
        """
        result = await self.session.execute(
            select(FolderRelation, Folder, FolderPosition)
            .join(Folder, Folder.id == FolderRelation.child_folder_id)
            .outerjoin(
                FolderPosition,
                and_(
                    FolderPosition.folder_relation_id == FolderRelation.id,
                    FolderPosition.user_id == user_id,
                    FolderPosition.view == view,
                ),
            )
            .where(_parent_clause(parent_id))
            .order_by(FolderPosition.index.is_(None), FolderPosition.index, FolderRelation.id)
            .with_for_update(of=FolderRelation)
        )
        rows = result.all()

        def is_visible(folder: Folder) -> bool:
            if not folder.is_live:
                return False
            return visible_ids is None or folder.user_id == user_id or folder.id in visible_ids

        visible: List[Tuple[FolderRelation, Optional[FolderPosition]]] = []
        hidden: List[Tuple[FolderRelation, Optional[FolderPosition]]] = []
        moving = None
        for edge, folder, position in rows:
            if moving_child_id is not None and edge.child_folder_id == moving_child_id:
                moving = (edge, position)
            elif is_visible(folder):
                visible.append((edge, position))
            elif position is not None:
                hidden.append((edge, position))

        if moving is not None:
            index = len(visible) if desired_index is None else max(0, min(desired_index, len(visible)))
            visible.insert(index, moving)

        ordered = []
        for index, (edge, position) in enumerate(visible + hidden):
            if position is None:
                position = FolderPosition(folder_relation_id=edge.id, user_id=user_id, view=view, index=index)
                self.session.add(position)
            elif position.index != index:
                position.index = index
            ordered.append(position)

        await self.session.flush()
        logger.debug(f"Reindexed {len(ordered)} siblings under {parent_id} for {user_id}/{view}")
        return ordered

    async def compact(self, parent_id: Optional[int]) -> None:
        """Close the gaps left by removed edges, for every user and view under ``parent_id``."""
        result = await self.session.execute(
            select(FolderPosition)
            .join(FolderRelation, FolderRelation.id == FolderPosition.folder_relation_id)
            .where(_parent_clause(parent_id))
            .order_by(FolderPosition.user_id, FolderPosition.view, FolderPosition.index, FolderPosition.id)
        )
        groups = defaultdict(list)
        for position in result.scalars().all():
            groups[(position.user_id, position.view)].append(position)

        for positions in groups.values():
            for index, position in enumerate(positions):
                if position.index != index:
                    position.index = index
        await self.session.flush()

    async def sibling_indexes(self, parent_id: Optional[int], user_id: str, view: str) -> List[Tuple[int, int]]:
        """(child folder id, index) pairs of the user's positions under ``parent_id``."""
        result = await self.session.execute(
            select(FolderRelation.child_folder_id, FolderPosition.index)
            .join(FolderPosition, FolderPosition.folder_relation_id == FolderRelation.id)
            .where(
                _parent_clause(parent_id),
                FolderPosition.user_id == user_id,
                FolderPosition.view == view,
            )
            .order_by(FolderPosition.index)
        )
        return [(child_id, index) for child_id, index in result.all()]

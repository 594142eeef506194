"""Edges of the folder graph and their materialized paths.

Every edge stores the ancestry of its child for that edge alone. A new
edge extends the path of its parent's canonical edge, which is the
parent's primary edge or, failing that, its oldest bound edge. Paths of
edges further down are repaired after commit by change propagation.
"""
import logging
from collections import defaultdict, deque
from typing import Callable, Dict, Iterable, List, Optional, Set

from sqlalchemy import Integer, delete, exc as sa_exc, literal_column, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from folder_graph.config import settings
from folder_graph.core.exceptions import (
    ConflictError,
    FolderLoopError,
    IntegrityError,
    NotFoundError,
    ValidationError,
)
from folder_graph.models.enums import EdgeKind, FolderType
from folder_graph.models.folder import Folder
from folder_graph.models.folder_position import FolderPosition
from folder_graph.models.folder_relation import FolderRelation

logger = logging.getLogger(__name__)


def canonical_sort_key(edge: FolderRelation):
    return (bool(edge.is_bind), edge.id)


class RelationGraph:
    def __init__(self, session: AsyncSession, on_edge_changed: Optional[Callable[[int], None]] = None):
        self.session = session
        self._on_edge_changed = on_edge_changed

    def _changed(self, child_id: int) -> None:
        if self._on_edge_changed is not None:
            self._on_edge_changed(child_id)

    # Lookups

    async def get_edge(self, parent_id: Optional[int], child_id: int) -> Optional[FolderRelation]:
        query = select(FolderRelation).where(FolderRelation.child_folder_id == child_id)
        if parent_id is None:
            query = query.where(FolderRelation.parent_folder_id.is_(None))
        else:
            query = query.where(FolderRelation.parent_folder_id == parent_id)
        result = await self.session.execute(query)
        return result.scalars().first()

    async def edges_for_child(self, child_id: int) -> List[FolderRelation]:
        return await self.edges_for_children([child_id])

    async def edges_for_children(self, child_ids: Iterable[int], for_update: bool = False) -> List[FolderRelation]:
        ids = list(set(child_ids))
        if not ids:
            return []
        query = (
            select(FolderRelation)
            .where(FolderRelation.child_folder_id.in_(ids))
            .order_by(FolderRelation.is_bind, FolderRelation.id)
        )
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def child_edges(self, parent_id: Optional[int]) -> List[FolderRelation]:
        query = select(FolderRelation).order_by(FolderRelation.id)
        if parent_id is None:
            query = query.where(FolderRelation.parent_folder_id.is_(None))
        else:
            query = query.where(FolderRelation.parent_folder_id == parent_id)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def edges_for_parents(self, parent_ids: Iterable[int]) -> List[FolderRelation]:
        ids = list(set(parent_ids))
        if not ids:
            return []
        result = await self.session.execute(
            select(FolderRelation)
            .where(FolderRelation.parent_folder_id.in_(ids))
            .order_by(FolderRelation.id)
        )
        return list(result.scalars().all())

    async def canonical_edge(self, folder_id: int) -> Optional[FolderRelation]:
        edges = await self.edges_for_child(folder_id)
        return edges[0] if edges else None

    # Mutations

    async def create_edge(
        self,
        parent_id: Optional[int],
        child_id: int,
        kind: EdgeKind = EdgeKind.PRIMARY,
    ) -> FolderRelation:
        if parent_id == child_id:
            raise FolderLoopError()

        child = await self.session.get(Folder, child_id)
        if child is None:
            raise NotFoundError(f"Folder {child_id} not found")

        if await self.get_edge(parent_id, child_id) is not None:
            raise ConflictError(f"Folder {child_id} is already placed under {parent_id}")

        if parent_id is None:
            path_ids, path_str = [child_id], [child.title]
        else:
            parent_edge = await self.canonical_edge(parent_id)
            if parent_edge is None:
                raise ValidationError(f"Parent folder {parent_id} has no placement in the graph")
            await self.assert_no_loop(parent_id, child_id)
            path_ids = list(parent_edge.path_ids) + [child_id]
            path_str = list(parent_edge.path_str) + [child.title]

        edge = FolderRelation(
            parent_folder_id=parent_id,
            child_folder_id=child_id,
            is_bind=kind.is_bind,
            path_ids=path_ids,
            path_str=path_str,
        )
        self.session.add(edge)
        try:
            await self.session.flush()
        except sa_exc.IntegrityError as e:
            # a concurrent writer won the (parent, child) pair
            raise ConflictError(f"Folder {child_id} is already placed under {parent_id}") from e

        logger.debug(f"Edge {edge.id} created {parent_id}->{child_id} ({kind.value})")
        self._changed(child_id)
        return edge

    async def remove_edge(self, edge: FolderRelation) -> None:
        await self.session.execute(
            delete(FolderPosition).where(FolderPosition.folder_relation_id == edge.id)
        )
        await self.session.delete(edge)
        await self.session.flush()
        logger.debug(f"Edge {edge.id} removed {edge.parent_folder_id}->{edge.child_folder_id}")
        self._changed(edge.child_folder_id)

    # Traversal

    async def ancestor_ids(self, folder_id: int) -> Set[int]:
        ancestors = (
            select(FolderRelation.parent_folder_id.label("folder_id"))
            .where(
                FolderRelation.child_folder_id == folder_id,
                FolderRelation.parent_folder_id.is_not(None),
            )
            .cte("ancestors", recursive=True)
        )
        up = aliased(FolderRelation)
        ancestors = ancestors.union(
            select(up.parent_folder_id)
            .join(ancestors, up.child_folder_id == ancestors.c.folder_id)
            .where(up.parent_folder_id.is_not(None))
        )
        result = await self.session.execute(select(ancestors.c.folder_id))
        return set(result.scalars().all())

    async def descendant_ids(self, folder_id: int) -> Set[int]:
        descendants = (
            select(FolderRelation.child_folder_id.label("folder_id"))
            .where(FolderRelation.parent_folder_id == folder_id)
            .cte("descendants", recursive=True)
        )
        down = aliased(FolderRelation)
        descendants = descendants.union(
            select(down.child_folder_id).join(descendants, down.parent_folder_id == descendants.c.folder_id)
        )
        result = await self.session.execute(select(descendants.c.folder_id))
        return set(result.scalars().all()) - {folder_id}

    async def assert_no_loop(self, parent_id: Optional[int], child_id: int) -> None:
        """Reject placing ``child_id`` under ``parent_id`` when that closes a cycle.

        The first tier climbs from the parent through all of its edges, bound
        or not. The second tier walks every edge below the child, across
        spaces, so a subtree already reaching the parent through another
        space is caught as well.
        """
        if parent_id is None:
            return
        if parent_id == child_id:
            raise FolderLoopError()

        if child_id in await self.ancestor_ids(parent_id):
            logger.info(f"Loop rejected: {child_id} is an ancestor of {parent_id}")
            raise FolderLoopError()

        if parent_id in await self.descendant_ids(child_id):
            logger.info(f"Loop rejected: {parent_id} is reachable from {child_id}")
            raise FolderLoopError()

    async def get_space_id(self, folder_id: int, include_inactive: bool = False) -> Optional[int]:
        """Nearest space above (or equal to) ``folder_id``.

        Nearest by number of hops, lowest id on a tie. Unless
        ``include_inactive`` is set, the walk only climbs through live parents.
        """
        up = (
            select(Folder.id.label("folder_id"), literal_column("0", Integer).label("depth"))
            .where(Folder.id == folder_id)
            .cte("space_walk", recursive=True)
        )
        fr = aliased(FolderRelation)
        parent = aliased(Folder)
        step = (
            select(fr.parent_folder_id, up.c.depth + 1)
            .join(up, fr.child_folder_id == up.c.folder_id)
            .join(parent, parent.id == fr.parent_folder_id)
            .where(up.c.depth < settings.MAX_TREE_DEPTH)
        )
        if not include_inactive:
            step = step.where(parent.archived_at.is_(None), parent.deleted_at.is_(None))
        up = up.union(step)

        root_edge = aliased(FolderRelation)
        query = (
            select(Folder.id)
            .join(up, up.c.folder_id == Folder.id)
            .join(root_edge, root_edge.child_folder_id == Folder.id)
            .where(Folder.folder_type == FolderType.SPACE, root_edge.parent_folder_id.is_(None))
            .order_by(up.c.depth, Folder.id)
            .limit(1)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    # Path maintenance

    async def repair_descendant_paths(self, folder_id: int) -> Set[int]:
        """Recompute the paths of every edge at or below ``folder_id``.

        Nodes are visited parents first, so each edge extends an already
        repaired canonical path. Returns the ids of the nodes visited.
        """
        nodes = {folder_id} | await self.descendant_ids(folder_id)
        edges = await self.edges_for_children(nodes, for_update=True)
        titles = {f.id: f.title for f in (await self.session.execute(
            select(Folder).where(Folder.id.in_(nodes))
        )).scalars().all()}

        incoming: Dict[int, List[FolderRelation]] = defaultdict(list)
        for edge in edges:
            incoming[edge.child_folder_id].append(edge)

        outside = {
            e.parent_folder_id for e in edges
            if e.parent_folder_id is not None and e.parent_folder_id not in nodes
        }
        canonical_paths = {}
        for edge in await self.edges_for_children(outside):
            if edge.child_folder_id not in canonical_paths:
                canonical_paths[edge.child_folder_id] = (list(edge.path_ids), list(edge.path_str))

        pending = {
            n: {e.parent_folder_id for e in incoming[n] if e.parent_folder_id in nodes}
            for n in nodes
        }
        dependants: Dict[int, Set[int]] = defaultdict(set)
        for n, parents in pending.items():
            for p in parents:
                dependants[p].add(n)
        ready = deque(sorted(n for n, parents in pending.items() if not parents))

        changed = 0
        visited = set()
        while ready:
            node = ready.popleft()
            visited.add(node)
            for edge in sorted(incoming[node], key=canonical_sort_key):
                if edge.is_root:
                    new_ids, new_str = [node], [titles[node]]
                elif edge.parent_folder_id in canonical_paths:
                    parent_ids, parent_str = canonical_paths[edge.parent_folder_id]
                    new_ids, new_str = parent_ids + [node], parent_str + [titles[node]]
                else:
                    logger.warning(f"Edge {edge.id}: parent {edge.parent_folder_id} has no placement, path left as is")
                    continue
                if list(edge.path_ids) != new_ids or list(edge.path_str) != new_str:
                    edge.path_ids = new_ids
                    edge.path_str = new_str
                    changed += 1
                if node not in canonical_paths:
                    canonical_paths[node] = (new_ids, new_str)
            for dependant in sorted(dependants[node]):
                pending[dependant].discard(node)
                if not pending[dependant]:
                    ready.append(dependant)

        if visited != nodes:
            raise IntegrityError(f"Cycle detected below folder {folder_id}: {sorted(nodes - visited)}")

        await self.session.flush()
        logger.debug(f"Repaired {changed} edge paths below folder {folder_id}")
        return nodes

"""Lifecycle operations over the folder graph.

Each public coroutine runs as one unit of work. Cascades (archive, delete,
restore) happen inside that same transaction, so a failure part way
through leaves nothing behind. Permission calls are made after commit.
"""
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from functools import partial
from typing import Callable, Collection, Dict, List, Optional, Sequence, Set

from folder_graph.config import settings
from folder_graph.core.exceptions import (
    FolderLoopError,
    IntegrityError,
    NotFoundError,
    PermissionPropagationError,
    ValidationError,
)
from folder_graph.db.transaction import UnitOfWork
from folder_graph.models.enums import (
    EdgeKind,
    EntityType,
    FolderType,
    FolderViewType,
    LifecycleState,
    PermissionLevel,
)
from folder_graph.models.folder import Folder
from folder_graph.models.folder_follower import FolderFollower
from folder_graph.models.folder_relation import FolderRelation
from folder_graph.repositories.folders import FolderStore
from folder_graph.services.favourites import FavouriteManager
from folder_graph.services.folder_tree import get_folder_tree
from folder_graph.services.permissions import PermissionService
from folder_graph.services.positions import PositionManager
from folder_graph.services.propagation import ChangePropagation
from folder_graph.services.relation_graph import RelationGraph
from folder_graph.services.search import SearchService
from folder_graph.schemas.folder import FolderTreeNode

logger = logging.getLogger(__name__)


@dataclass
class GraphContext:
    uow: UnitOfWork
    store: FolderStore
    graph: RelationGraph
    positions: PositionManager


def entity_type_of(folder: Folder) -> EntityType:
    return EntityType.SPACE if folder.is_space else EntityType.FOLDER


def ensure_allowed(folder_id: Optional[int], allowed_ids: Optional[Collection[int]]) -> None:
    # unknown and forbidden look the same to the caller
    if folder_id is not None and allowed_ids is not None and folder_id not in allowed_ids:
        raise NotFoundError(f"Folder {folder_id} not found")


class FolderService:
    def __init__(self, session_factory, permissions: PermissionService, search: SearchService):
        self.session_factory = session_factory
        self.permissions = permissions
        self.propagation = ChangePropagation(session_factory, search)

    @asynccontextmanager
    async def transaction(self):
        async with UnitOfWork(self.session_factory) as uow:
            yield GraphContext(
                uow=uow,
                store=FolderStore(uow.session),
                graph=RelationGraph(uow.session, on_edge_changed=partial(self.propagation.mark_changed, uow)),
                positions=PositionManager(uow.session),
            )

    async def _after_commit(self, description: str, call) -> None:
        try:
            await call
        except Exception as e:
            logger.error(f"Permission update failed after commit ({description}): {e}", exc_info=True)
            raise PermissionPropagationError(f"{description}: {e}") from e

    # Create / update

    async def create_folder(
        self,
        user_id: str,
        title: str,
        folder_type: FolderType = FolderType.FOLDER,
        parent_folder_id: Optional[int] = None,
        view_type: Optional[FolderViewType] = None,
        description: Optional[str] = None,
        color: Optional[str] = None,
        member_ids: Sequence[str] = (),
        allowed_ids: Optional[Collection[int]] = None,
    ) -> Folder:
        if folder_type == FolderType.SPACE and parent_folder_id is not None:
            raise ValidationError("A space cannot be created inside a folder")
        if folder_type != FolderType.SPACE and parent_folder_id is None:
            raise ValidationError(f"A {folder_type.value} needs a parent folder")
        ensure_allowed(parent_folder_id, allowed_ids)

        members = [m for m in dict.fromkeys(member_ids) if m != user_id]
        if members and parent_folder_id is not None:
            await self._verify_space_members(parent_folder_id, members)

        async with self.transaction() as ctx:
            if parent_folder_id is not None:
                parent = await ctx.store.get_or_404(parent_folder_id, for_update=True)
                if not parent.is_live:
                    raise ValidationError(f"Parent folder {parent_folder_id} is {parent.state.value}")

            folder = await ctx.store.add(Folder(
                user_id=user_id,
                title=title,
                folder_type=folder_type,
                view_type=view_type,
                description=description,
                color=color,
            ))
            edge = await ctx.graph.create_edge(parent_folder_id, folder.id, EdgeKind.PRIMARY)
            await ctx.positions.append(edge, user_id, settings.DEFAULT_FOLDER_VIEW)
            for member_id in members:
                ctx.uow.session.add(FolderFollower(folder_id=folder.id, user_id=member_id))
            await ctx.uow.session.flush()

        logger.info(f"{folder_type.value.capitalize()} {folder.id} created under {parent_folder_id} by {user_id}")
        await self._after_commit(
            f"grant owner on {folder.id}",
            self.permissions.grant_owner(entity_type_of(folder), user_id, folder.id),
        )
        return folder

    async def _verify_space_members(self, parent_folder_id: int, member_ids: List[str]) -> None:
        async with self.transaction() as ctx:
            space_id = await ctx.graph.get_space_id(parent_folder_id)
        if space_id is None:
            return
        ret = await self.permissions.check_users_has_permissions_on_entity(
            member_ids, PermissionLevel.READ, EntityType.SPACE, space_id
        )
        missing = [user_id for user_id, allowed in ret.items() if not allowed]
        if missing:
            raise ValidationError(f"Users with the ids {', '.join(missing)} don't have permissions on space {space_id}")

    async def update_folder(self, folder_id: int, user_id: str, allowed_ids: Optional[Collection[int]] = None, **fields) -> Folder:
        ensure_allowed(folder_id, allowed_ids)
        async with self.transaction() as ctx:
            folder = await ctx.store.get_or_404(folder_id, for_update=True)
            if folder.state is LifecycleState.DELETED:
                raise NotFoundError(f"Folder {folder_id} not found")
            title_changed = "title" in fields and fields["title"] != folder.title
            await ctx.store.update(folder, **fields)
            if title_changed:
                # titles are part of every path through this folder
                self.propagation.mark_changed(ctx.uow, folder_id)
        logger.info(f"Folder {folder_id} updated by {user_id}: {sorted(fields)}")
        return folder

    # Bind / unbind

    async def bind_folder(
        self,
        parent_folder_id: int,
        child_folder_id: int,
        user_id: str,
        allowed_ids: Optional[Collection[int]] = None,
    ) -> FolderRelation:
        if parent_folder_id == child_folder_id:
            raise FolderLoopError()
        ensure_allowed(parent_folder_id, allowed_ids)
        ensure_allowed(child_folder_id, allowed_ids)

        async with self.transaction() as ctx:
            locked = await ctx.store.lock_many([parent_folder_id, child_folder_id])
            parent, child = locked[parent_folder_id], locked[child_folder_id]
            for folder in (parent, child):
                if not folder.is_live:
                    raise ValidationError(f"Folder {folder.id} is {folder.state.value}")
            edge = await ctx.graph.create_edge(parent_folder_id, child_folder_id, EdgeKind.BOUND)
            await ctx.positions.append(edge, user_id, settings.DEFAULT_FOLDER_VIEW)

        logger.info(f"Folder {child_folder_id} bound under {parent_folder_id} by {user_id}")
        await self._after_commit(
            f"copy permissions {parent_folder_id} -> {child_folder_id}",
            self.permissions.copy_permissions_from_entity_to_another(
                entity_type_of(child), parent_folder_id, child_folder_id
            ),
        )
        return edge

    async def unbind_folder(
        self,
        parent_folder_id: int,
        child_folder_id: int,
        user_id: str,
        allowed_ids: Optional[Collection[int]] = None,
    ) -> List[FolderRelation]:
        """Remove one placement. A folder left without any is re-anchored under its space."""
        ensure_allowed(parent_folder_id, allowed_ids)
        ensure_allowed(child_folder_id, allowed_ids)
        re_anchored = False
        async with self.transaction() as ctx:
            child = await ctx.store.get_or_404(child_folder_id, for_update=True)
            edge = await ctx.graph.get_edge(parent_folder_id, child_folder_id)
            if edge is None:
                raise NotFoundError(f"Folder {child_folder_id} is not placed under {parent_folder_id}")
            space_id = await ctx.graph.get_space_id(child_folder_id, include_inactive=True)

            await ctx.graph.remove_edge(edge)
            await ctx.positions.compact(parent_folder_id)

            remaining = await ctx.graph.edges_for_child(child_folder_id)
            if not remaining:
                if space_id is None or space_id == child.id:
                    raise IntegrityError(f"Folder {child_folder_id} would be left without a parent")
                anchor = await ctx.graph.create_edge(space_id, child_folder_id, EdgeKind.PRIMARY)
                await ctx.positions.append(anchor, user_id, settings.DEFAULT_FOLDER_VIEW)
                remaining = [anchor]
                re_anchored = True

        logger.info(
            f"Folder {child_folder_id} unbound from {parent_folder_id} by {user_id}"
            + (f", re-anchored under space {space_id}" if re_anchored else "")
        )
        if re_anchored:
            await self._after_commit(
                f"update position of {child_folder_id}",
                self.permissions.update_entity_position(entity_type_of(child), child_folder_id),
            )
        return remaining

    # Archive / delete

    async def archive(
        self,
        folder_id: int,
        user_id: str,
        why: Optional[str] = None,
        allowed_ids: Optional[Collection[int]] = None,
    ) -> Set[int]:
        """Archive ``folder_id`` and every descendant for which it was the last live path."""
        ensure_allowed(folder_id, allowed_ids)
        when = datetime.utcnow()
        async with self.transaction() as ctx:
            folder = await ctx.store.get(folder_id, for_update=True)
            if folder is None or not folder.is_live:
                raise NotFoundError(f"Folder {folder_id} not found or already archived")
            marked = await self._cascade(
                ctx,
                folder,
                blocked=lambda f: not f.is_live,
                mark=lambda f: FolderStore.mark_archived(f, user_id, why, when),
            )
        logger.info(f"Folder {folder_id} archived by {user_id}, {len(marked)} folders in cascade")
        return marked

    async def delete(
        self,
        folder_id: int,
        user_id: str,
        why: Optional[str] = None,
        allowed_ids: Optional[Collection[int]] = None,
    ) -> Set[int]:
        """Soft delete. Supersedes archive on every folder it reaches."""
        ensure_allowed(folder_id, allowed_ids)
        when = datetime.utcnow()
        async with self.transaction() as ctx:
            folder = await ctx.store.get(folder_id, for_update=True)
            if folder is None or folder.deleted_at is not None:
                raise NotFoundError(f"Folder {folder_id} not found or already deleted")
            marked = await self._cascade(
                ctx,
                folder,
                blocked=lambda f: f.deleted_at is not None,
                mark=lambda f: FolderStore.mark_deleted(f, user_id, why, when),
            )
        logger.info(f"Folder {folder_id} deleted by {user_id}, {len(marked)} folders in cascade")
        return marked

    async def _cascade(
        self,
        ctx: GraphContext,
        root: Folder,
        blocked: Callable[[Folder], bool],
        mark: Callable[[Folder], None],
    ) -> Set[int]:
        """Mark ``root`` and every descendant that has no anchor left.

        A descendant is marked once every edge into it comes from a marked
        or blocked parent. A root edge or any other parent counts as an
        anchor. Edges from marked parents into descendants that stay
        anchored are severed. The outcome does not depend on visiting order.
        """
        candidates: Dict[int, Folder] = {}
        seen = {root.id}
        frontier = [root.id]
        while frontier:
            edges = await ctx.graph.edges_for_parents(frontier)
            next_ids = {e.child_folder_id for e in edges} - seen
            seen |= next_ids
            frontier = []
            for folder in await ctx.store.get_many(next_ids):
                if not blocked(folder):
                    candidates[folder.id] = folder
                    frontier.append(folder.id)

        incoming: Dict[int, List[FolderRelation]] = defaultdict(list)
        for edge in await ctx.graph.edges_for_children(candidates):
            incoming[edge.child_folder_id].append(edge)

        outside_parents = {
            e.parent_folder_id
            for edges in incoming.values()
            for e in edges
            if e.parent_folder_id is not None and e.parent_folder_id not in candidates and e.parent_folder_id != root.id
        }
        blocked_parents = {f.id for f in await ctx.store.get_many(outside_parents) if blocked(f)}

        marked = {root.id}
        changed = True
        while changed:
            changed = False
            for folder_id in sorted(candidates):
                if folder_id in marked:
                    continue
                if all(
                    e.parent_folder_id is not None
                    and (e.parent_folder_id in marked or e.parent_folder_id in blocked_parents)
                    for e in incoming[folder_id]
                ):
                    marked.add(folder_id)
                    changed = True

        mark(root)
        for folder_id in sorted(marked - {root.id}):
            mark(candidates[folder_id])
        await ctx.uow.session.flush()

        severed_parents = set()
        for folder_id in sorted(set(candidates) - marked):
            for edge in incoming[folder_id]:
                if edge.parent_folder_id in marked:
                    await ctx.graph.remove_edge(edge)
                    severed_parents.add(edge.parent_folder_id)
                    logger.debug(f"Folder {folder_id} stays reachable, edge from {edge.parent_folder_id} severed")
        for parent_id in sorted(severed_parents):
            await ctx.positions.compact(parent_id)

        self.propagation.mark_changed(ctx.uow, root.id)
        return marked

    # Restore

    async def restore_archived(
        self,
        folder_id: int,
        user_id: str,
        allowed_ids: Optional[Collection[int]] = None,
    ) -> Set[int]:
        return await self._restore(
            folder_id,
            user_id,
            allowed_ids,
            is_target=lambda f: f.archived_at is not None and f.deleted_at is None,
            clear=FolderStore.clear_archived,
            label="archived",
        )

    async def restore_deleted(
        self,
        folder_id: int,
        user_id: str,
        allowed_ids: Optional[Collection[int]] = None,
    ) -> Set[int]:
        return await self._restore(
            folder_id,
            user_id,
            allowed_ids,
            is_target=lambda f: f.deleted_at is not None,
            clear=FolderStore.clear_deleted,
            label="deleted",
        )

    async def _restore(self, folder_id, user_id, allowed_ids, is_target, clear, label) -> Set[int]:
        ensure_allowed(folder_id, allowed_ids)
        re_anchored = False
        async with self.transaction() as ctx:
            folder = await ctx.store.get(folder_id, for_update=True)
            if folder is None or not is_target(folder):
                raise NotFoundError(f"Folder {folder_id} not found or not {label}")

            # children that went down together with the folder come back with it
            restored = {folder.id: folder}
            frontier = [folder.id]
            while frontier:
                edges = await ctx.graph.edges_for_parents(frontier)
                next_ids = {e.child_folder_id for e in edges} - set(restored)
                frontier = []
                for child in await ctx.store.get_many(next_ids):
                    if is_target(child):
                        restored[child.id] = child
                        frontier.append(child.id)
            for restored_folder in restored.values():
                clear(restored_folder)
            await ctx.uow.session.flush()

            if not folder.is_space:
                re_anchored = await self._detach_from_inactive_parents(ctx, folder, user_id)
            self.propagation.mark_changed(ctx.uow, folder.id)

        logger.info(f"Folder {folder_id} restored from {label} by {user_id}, {len(restored)} folders in cascade")
        if re_anchored:
            await self._after_commit(
                f"update position of {folder_id}",
                self.permissions.update_entity_position(entity_type_of(folder), folder_id),
            )
        return set(restored)

    async def _detach_from_inactive_parents(self, ctx: GraphContext, folder: Folder, user_id: str) -> bool:
        edges = await ctx.graph.edges_for_child(folder.id)
        parents = {f.id: f for f in await ctx.store.get_many(
            e.parent_folder_id for e in edges if e.parent_folder_id is not None
        )}
        stale = [e for e in edges if e.parent_folder_id is not None and not parents[e.parent_folder_id].is_live]
        if not stale:
            return False

        space_id = await ctx.graph.get_space_id(folder.id, include_inactive=True)
        if space_id is None:
            raise IntegrityError(f"Folder {folder.id} has no enclosing space")
        space = await ctx.store.get_or_404(space_id)
        if not space.is_live:
            raise ValidationError(f"Space {space_id} is {space.state.value}, restore it first")

        removed_primary = False
        for edge in stale:
            removed_primary = removed_primary or edge.kind is EdgeKind.PRIMARY
            await ctx.graph.remove_edge(edge)
            await ctx.positions.compact(edge.parent_folder_id)

        remaining = await ctx.graph.edges_for_child(folder.id)
        needs_anchor = not remaining or (
            removed_primary and all(e.kind is EdgeKind.BOUND for e in remaining)
        )
        if not needs_anchor or any(e.parent_folder_id == space_id for e in remaining):
            return True

        anchor = await ctx.graph.create_edge(space_id, folder.id, EdgeKind.PRIMARY)
        await ctx.positions.append(anchor, user_id, settings.DEFAULT_FOLDER_VIEW)
        logger.info(f"Folder {folder.id} re-anchored under space {space_id}")
        return True

    # Positions

    async def update_position(
        self,
        folder_id: int,
        user_id: str,
        index: int,
        view: str = settings.DEFAULT_FOLDER_VIEW,
        parent_old_id: Optional[int] = None,
        parent_new_id: Optional[int] = None,
        allowed_ids: Optional[Collection[int]] = None,
    ) -> List[Dict[str, int]]:
        """Reorder a folder among its siblings, or move it to another parent of the same space."""
        ensure_allowed(folder_id, allowed_ids)
        ensure_allowed(parent_new_id, allowed_ids)
        moved = False
        async with self.transaction() as ctx:
            locked = await ctx.store.lock_many(i for i in (folder_id, parent_new_id) if i is not None)
            folder = locked[folder_id]
            if (parent_old_id is None) != (parent_new_id is None):
                raise ValidationError("A folder cannot be moved between the root and a folder")
            if parent_old_id is None and not folder.is_space:
                raise ValidationError("Only spaces are ordered at the root")
            if folder.is_space and parent_old_id != parent_new_id:
                raise ValidationError("A space cannot be moved into another folder")

            edge = await ctx.graph.get_edge(parent_old_id, folder_id)
            if edge is None:
                raise NotFoundError(f"Folder {folder_id} is not placed under {parent_old_id}")

            if parent_old_id != parent_new_id:
                new_parent = locked[parent_new_id]
                if not new_parent.is_live:
                    raise ValidationError(f"Folder {parent_new_id} is {new_parent.state.value}")
                old_space = await ctx.graph.get_space_id(parent_old_id, include_inactive=True)
                new_space = await ctx.graph.get_space_id(parent_new_id, include_inactive=True)
                if old_space != new_space:
                    raise ValidationError("cross-space move")

                kind = edge.kind
                await ctx.graph.remove_edge(edge)
                await ctx.positions.fix_index(parent_old_id, user_id, view, visible_ids=allowed_ids)
                await ctx.positions.compact(parent_old_id)
                await ctx.graph.create_edge(parent_new_id, folder_id, kind)
                moved = True

            ordered = await ctx.positions.fix_index(
                parent_new_id, user_id, view,
                moving_child_id=folder_id,
                desired_index=index,
                visible_ids=allowed_ids,
            )
            siblings = await ctx.positions.sibling_indexes(parent_new_id, user_id, view)

        logger.info(f"Folder {folder_id} positioned at {index} under {parent_new_id} ({len(ordered)} siblings)")
        if moved:
            await self._after_commit(
                f"update position of {folder_id}",
                self.permissions.update_entity_position(entity_type_of(folder), folder_id),
            )
        return [{"folder_id": child_id, "index": position} for child_id, position in siblings]

    # Reads

    async def get_folder(self, folder_id: int, allowed_ids: Optional[Collection[int]] = None) -> Folder:
        ensure_allowed(folder_id, allowed_ids)
        async with self.transaction() as ctx:
            return await ctx.store.get_or_404(folder_id)

    async def get_children(self, parent_folder_id: int, allowed_ids: Optional[Collection[int]] = None) -> List[Folder]:
        ensure_allowed(parent_folder_id, allowed_ids)
        async with self.transaction() as ctx:
            await ctx.store.get_or_404(parent_folder_id)
            edges = await ctx.graph.child_edges(parent_folder_id)
            folders = {f.id: f for f in await ctx.store.get_many(e.child_folder_id for e in edges)}
        return [
            folders[e.child_folder_id] for e in edges
            if folders[e.child_folder_id].is_live
            and (allowed_ids is None or e.child_folder_id in allowed_ids)
        ]

    async def get_parent_relations(self, folder_id: int, allowed_ids: Optional[Collection[int]] = None) -> List[FolderRelation]:
        ensure_allowed(folder_id, allowed_ids)
        async with self.transaction() as ctx:
            await ctx.store.get_or_404(folder_id)
            return await ctx.graph.edges_for_child(folder_id)

    async def get_sibling_positions(self, parent_folder_id: Optional[int], user_id: str, view: str = settings.DEFAULT_FOLDER_VIEW):
        async with self.transaction() as ctx:
            return await ctx.positions.sibling_indexes(parent_folder_id, user_id, view)

    async def get_space_id(self, folder_id: int, include_inactive: bool = False) -> Optional[int]:
        async with self.transaction() as ctx:
            await ctx.store.get_or_404(folder_id)
            return await ctx.graph.get_space_id(folder_id, include_inactive=include_inactive)

    async def get_folder_tree(
        self,
        user_id: str,
        view: str = settings.DEFAULT_FOLDER_VIEW,
        root_ids: Optional[Collection[int]] = None,
        depth: Optional[int] = None,
        parent_folder_id: Optional[int] = None,
        show_archived: bool = False,
        show_deleted: bool = False,
        allowed_ids: Optional[Collection[int]] = None,
    ) -> List[FolderTreeNode]:
        async with self.transaction() as ctx:
            return await get_folder_tree(
                ctx.uow.session,
                user_id,
                view,
                root_ids=root_ids,
                depth=depth,
                parent_folder_id=parent_folder_id,
                show_archived=show_archived,
                show_deleted=show_deleted,
                allowed_ids=allowed_ids,
            )

    # Favourites

    async def mark_favourite(self, folder_id: int, user_id: str, allowed_ids: Optional[Collection[int]] = None):
        ensure_allowed(folder_id, allowed_ids)
        async with self.transaction() as ctx:
            folder = await ctx.store.get_or_404(folder_id)
            if not folder.is_live:
                raise ValidationError(f"Folder {folder_id} is {folder.state.value}")
            return await FavouriteManager(ctx.uow.session).mark(folder_id, user_id)

    async def unmark_favourite(self, folder_id: int, user_id: str) -> None:
        async with self.transaction() as ctx:
            await FavouriteManager(ctx.uow.session).unmark(folder_id, user_id)

    async def get_favourites(self, user_id: str, folder_types: Optional[Sequence[FolderType]] = None) -> List[Folder]:
        async with self.transaction() as ctx:
            return await FavouriteManager(ctx.uow.session).list_for_user(user_id, folder_types)

    async def update_favourite_position(self, folder_id: int, user_id: str, index: int):
        async with self.transaction() as ctx:
            return await FavouriteManager(ctx.uow.session).update_position(folder_id, user_id, index)

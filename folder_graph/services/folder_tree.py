"""Read side: the folder tree as seen by one user in one view."""
import logging
from collections import defaultdict
from typing import Collection, Dict, List, Optional

from sqlalchemy import Integer, and_, literal_column, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from folder_graph.config import settings
from folder_graph.core.exceptions import ValidationError
from folder_graph.models.folder import Folder
from folder_graph.models.folder_position import FolderPosition
from folder_graph.models.folder_relation import FolderRelation
from folder_graph.schemas.folder import FolderTreeNode

logger = logging.getLogger(__name__)


def _lifecycle_filter(folder, show_archived: bool, show_deleted: bool):
    clauses = []
    if not show_archived:
        clauses.append(folder.archived_at.is_(None))
    if not show_deleted:
        clauses.append(folder.deleted_at.is_(None))
    return clauses


async def get_folder_tree(
    session: AsyncSession,
    user_id: str,
    view: str,
    root_ids: Optional[Collection[int]] = None,
    depth: Optional[int] = None,
    parent_folder_id: Optional[int] = None,
    show_archived: bool = False,
    show_deleted: bool = False,
    allowed_ids: Optional[Collection[int]] = None,
) -> List[FolderTreeNode]:
    """Build the tree below the given spaces, or below ``parent_folder_id``.

    ``depth`` counts levels, the top level being 1. ``allowed_ids`` of
    ``None`` disables permission filtering. A hidden folder hides its
    whole subtree under that placement.
    """
    max_depth = depth if depth is not None else settings.MAX_TREE_DEPTH
    if max_depth < 1:
        raise ValidationError("depth must be at least 1")

    top = aliased(Folder)
    base = (
        select(
            FolderRelation.id.label("fr_id"),
            FolderRelation.child_folder_id.label("folder_id"),
            literal_column("1", Integer).label("depth"),
        )
        .join(top, top.id == FolderRelation.child_folder_id)
        .where(*_lifecycle_filter(top, show_archived, show_deleted))
    )
    if parent_folder_id is not None:
        base = base.where(FolderRelation.parent_folder_id == parent_folder_id)
    else:
        base = base.where(FolderRelation.parent_folder_id.is_(None))
        if root_ids is not None:
            base = base.where(FolderRelation.child_folder_id.in_(list(root_ids)))
    tree = base.cte("folder_tree", recursive=True)

    fr = aliased(FolderRelation)
    child = aliased(Folder)
    tree = tree.union(
        select(fr.id, fr.child_folder_id, tree.c.depth + 1)
        .join(tree, fr.parent_folder_id == tree.c.folder_id)
        .join(child, child.id == fr.child_folder_id)
        .where(tree.c.depth < max_depth, *_lifecycle_filter(child, show_archived, show_deleted))
    )

    result = await session.execute(
        select(FolderRelation, Folder, FolderPosition.index)
        .join(Folder, Folder.id == FolderRelation.child_folder_id)
        .outerjoin(
            FolderPosition,
            and_(
                FolderPosition.folder_relation_id == FolderRelation.id,
                FolderPosition.user_id == user_id,
                FolderPosition.view == view,
            ),
        )
        .where(FolderRelation.id.in_(select(tree.c.fr_id)))
    )

    by_parent: Dict[Optional[int], list] = defaultdict(list)
    seen = set()
    for edge, folder, index in result.all():
        if edge.id in seen:
            continue
        seen.add(edge.id)
        if allowed_ids is not None and folder.id not in allowed_ids:
            continue
        by_parent[edge.parent_folder_id].append((edge, folder, index))
    for rows in by_parent.values():
        rows.sort(key=lambda row: (row[2] is None, row[2] if row[2] is not None else 0, row[0].id))

    def build(parent_id: Optional[int], level: int, ancestors: frozenset) -> List[FolderTreeNode]:
        nodes = []
        for edge, folder, index in by_parent.get(parent_id, []):
            if folder.id in ancestors:
                logger.error(f"Cycle through folder {folder.id} while building tree")
                continue
            children = []
            if level < max_depth:
                children = build(folder.id, level + 1, ancestors | {folder.id})
            nodes.append(FolderTreeNode(
                id=folder.id,
                fr_id=edge.id,
                parent_folder_id=edge.parent_folder_id,
                title=folder.title,
                folder_type=folder.folder_type,
                view_type=folder.view_type,
                color=folder.color,
                user_id=folder.user_id,
                state=folder.state,
                kind=edge.kind,
                path_ids=list(edge.path_ids),
                path_str=list(edge.path_str),
                index=index,
                depth=level,
                children=children,
            ))
        return nodes

    roots = build(parent_folder_id, 1, frozenset() if parent_folder_id is None else frozenset({parent_folder_id}))
    logger.debug(f"Folder tree for {user_id}/{view}: {len(seen)} edges, {len(roots)} roots")
    return roots

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict

from folder_graph.models.enums import EdgeKind, FolderType, FolderViewType, LifecycleState


class FolderRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    folder_type: FolderType
    view_type: Optional[FolderViewType] = None
    description: Optional[str] = None
    color: Optional[str] = None
    user_id: str
    state: LifecycleState
    archived_at: Optional[datetime] = None
    archived_by: Optional[str] = None
    archived_why: Optional[str] = None
    deleted_at: Optional[datetime] = None
    deleted_by: Optional[str] = None
    deleted_why: Optional[str] = None


class FolderRelationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    parent_folder_id: Optional[int] = None
    child_folder_id: int
    kind: EdgeKind
    path_ids: List[int]
    path_str: List[str]


class SiblingPosition(BaseModel):
    folder_id: int
    index: int


class FolderTreeNode(BaseModel):
    """One placement of a folder in the tree.

    A bound folder appears once per parent it is placed under, each time
    with the path and index of that particular edge.
    """
    id: int
    fr_id: int
    parent_folder_id: Optional[int] = None
    title: str
    folder_type: FolderType
    view_type: Optional[FolderViewType] = None
    color: Optional[str] = None
    user_id: str
    state: LifecycleState
    kind: EdgeKind
    path_ids: List[int]
    path_str: List[str]
    index: Optional[int] = None
    depth: int
    children: List["FolderTreeNode"] = []


FolderTreeNode.model_rebuild()

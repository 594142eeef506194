from typing import List, Optional, Set

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from folder_graph.api.deps import get_allowed_ids, get_current_user_id, get_folder_service
from folder_graph.config import settings
from folder_graph.models.enums import FolderType, FolderViewType
from folder_graph.schemas.folder import FolderRead, FolderRelationRead, FolderTreeNode, SiblingPosition
from folder_graph.services.folder_service import FolderService

router = APIRouter()

class FolderCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=256)
    folder_type: FolderType = FolderType.FOLDER
    parent_folder_id: Optional[int] = None
    view_type: Optional[FolderViewType] = None
    description: Optional[str] = Field(None, max_length=512)
    color: Optional[str] = Field(None, max_length=32)
    member_ids: List[str] = []

class FolderUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=256)
    view_type: Optional[FolderViewType] = None
    description: Optional[str] = Field(None, max_length=512)
    color: Optional[str] = Field(None, max_length=32)

class LifecycleReason(BaseModel):
    why: Optional[str] = Field(None, max_length=512)

class PositionUpdate(BaseModel):
    index: int = Field(..., ge=0)
    view: str = settings.DEFAULT_FOLDER_VIEW
    parent_folder_old_id: Optional[int] = None
    parent_folder_new_id: Optional[int] = None

class FavouritePositionUpdate(BaseModel):
    index: int = Field(..., ge=0)

class CascadeResult(BaseModel):
    folder_ids: List[int]

@router.post("/", response_model=FolderRead, status_code=201)
async def create_folder(
    folder_data: FolderCreate,
    user_id: str = Depends(get_current_user_id),
    allowed_ids: Set[int] = Depends(get_allowed_ids),
    service: FolderService = Depends(get_folder_service),
):
    """Create a space, or a folder/project under a parent"""
    folder = await service.create_folder(
        user_id,
        folder_data.title,
        folder_type=folder_data.folder_type,
        parent_folder_id=folder_data.parent_folder_id,
        view_type=folder_data.view_type,
        description=folder_data.description,
        color=folder_data.color,
        member_ids=folder_data.member_ids,
        allowed_ids=allowed_ids,
    )
    return FolderRead.model_validate(folder)

@router.get("/tree", response_model=List[FolderTreeNode])
async def get_folder_tree(
    view: str = settings.DEFAULT_FOLDER_VIEW,
    space_ids: Optional[List[int]] = Query(None),
    depth: Optional[int] = Query(None, ge=1),
    parent_folder_id: Optional[int] = None,
    show_archived: bool = False,
    show_deleted: bool = False,
    user_id: str = Depends(get_current_user_id),
    allowed_ids: Set[int] = Depends(get_allowed_ids),
    service: FolderService = Depends(get_folder_service),
):
    return await service.get_folder_tree(
        user_id,
        view,
        root_ids=space_ids,
        depth=depth,
        parent_folder_id=parent_folder_id,
        show_archived=show_archived,
        show_deleted=show_deleted,
        allowed_ids=allowed_ids,
    )

@router.get("/favourites", response_model=List[FolderRead])
async def get_favourites(
    folder_types: Optional[List[FolderType]] = Query(None),
    user_id: str = Depends(get_current_user_id),
    service: FolderService = Depends(get_folder_service),
):
    folders = await service.get_favourites(user_id, folder_types)
    return [FolderRead.model_validate(f) for f in folders]

@router.get("/{folder_id}", response_model=FolderRead)
async def get_folder(
    folder_id: int,
    allowed_ids: Set[int] = Depends(get_allowed_ids),
    service: FolderService = Depends(get_folder_service),
):
    return FolderRead.model_validate(await service.get_folder(folder_id, allowed_ids=allowed_ids))

@router.patch("/{folder_id}", response_model=FolderRead)
async def update_folder(
    folder_id: int,
    folder_data: FolderUpdate,
    user_id: str = Depends(get_current_user_id),
    allowed_ids: Set[int] = Depends(get_allowed_ids),
    service: FolderService = Depends(get_folder_service),
):
    folder = await service.update_folder(
        folder_id, user_id, allowed_ids=allowed_ids, **folder_data.model_dump(exclude_unset=True)
    )
    return FolderRead.model_validate(folder)

@router.get("/{folder_id}/children", response_model=List[FolderRead])
async def get_children(
    folder_id: int,
    allowed_ids: Set[int] = Depends(get_allowed_ids),
    service: FolderService = Depends(get_folder_service),
):
    children = await service.get_children(folder_id, allowed_ids=allowed_ids)
    return [FolderRead.model_validate(f) for f in children]

@router.get("/{folder_id}/relations", response_model=List[FolderRelationRead])
async def get_parent_relations(
    folder_id: int,
    allowed_ids: Set[int] = Depends(get_allowed_ids),
    service: FolderService = Depends(get_folder_service),
):
    edges = await service.get_parent_relations(folder_id, allowed_ids=allowed_ids)
    return [FolderRelationRead.model_validate(e) for e in edges]

@router.post("/{folder_id}/bind/{parent_folder_id}", response_model=FolderRelationRead, status_code=201)
async def bind_folder(
    folder_id: int,
    parent_folder_id: int,
    user_id: str = Depends(get_current_user_id),
    allowed_ids: Set[int] = Depends(get_allowed_ids),
    service: FolderService = Depends(get_folder_service),
):
    """Place an existing folder under one more parent"""
    edge = await service.bind_folder(parent_folder_id, folder_id, user_id, allowed_ids=allowed_ids)
    return FolderRelationRead.model_validate(edge)

@router.delete("/{folder_id}/bind/{parent_folder_id}", response_model=List[FolderRelationRead])
async def unbind_folder(
    folder_id: int,
    parent_folder_id: int,
    user_id: str = Depends(get_current_user_id),
    allowed_ids: Set[int] = Depends(get_allowed_ids),
    service: FolderService = Depends(get_folder_service),
):
    edges = await service.unbind_folder(parent_folder_id, folder_id, user_id, allowed_ids=allowed_ids)
    return [FolderRelationRead.model_validate(e) for e in edges]

@router.post("/{folder_id}/archive", response_model=CascadeResult)
async def archive_folder(
    folder_id: int,
    reason: Optional[LifecycleReason] = None,
    user_id: str = Depends(get_current_user_id),
    allowed_ids: Set[int] = Depends(get_allowed_ids),
    service: FolderService = Depends(get_folder_service),
):
    marked = await service.archive(folder_id, user_id, why=reason.why if reason else None, allowed_ids=allowed_ids)
    return {"folder_ids": sorted(marked)}

@router.post("/{folder_id}/restore-archived", response_model=CascadeResult)
async def restore_archived_folder(
    folder_id: int,
    user_id: str = Depends(get_current_user_id),
    allowed_ids: Set[int] = Depends(get_allowed_ids),
    service: FolderService = Depends(get_folder_service),
):
    restored = await service.restore_archived(folder_id, user_id, allowed_ids=allowed_ids)
    return {"folder_ids": sorted(restored)}

@router.delete("/{folder_id}", response_model=CascadeResult)
async def delete_folder(
    folder_id: int,
    why: Optional[str] = Query(None, max_length=512),
    user_id: str = Depends(get_current_user_id),
    allowed_ids: Set[int] = Depends(get_allowed_ids),
    service: FolderService = Depends(get_folder_service),
):
    """Soft delete; the folder stays restorable"""
    marked = await service.delete(folder_id, user_id, why=why, allowed_ids=allowed_ids)
    return {"folder_ids": sorted(marked)}

@router.post("/{folder_id}/restore-deleted", response_model=CascadeResult)
async def restore_deleted_folder(
    folder_id: int,
    user_id: str = Depends(get_current_user_id),
    allowed_ids: Set[int] = Depends(get_allowed_ids),
    service: FolderService = Depends(get_folder_service),
):
    restored = await service.restore_deleted(folder_id, user_id, allowed_ids=allowed_ids)
    return {"folder_ids": sorted(restored)}

@router.patch("/{folder_id}/position", response_model=List[SiblingPosition])
async def update_folder_position(
    folder_id: int,
    position: PositionUpdate,
    user_id: str = Depends(get_current_user_id),
    allowed_ids: Set[int] = Depends(get_allowed_ids),
    service: FolderService = Depends(get_folder_service),
):
    """Reorder among siblings, or move under another parent of the same space"""
    return await service.update_position(
        folder_id,
        user_id,
        position.index,
        view=position.view,
        parent_old_id=position.parent_folder_old_id,
        parent_new_id=position.parent_folder_new_id,
        allowed_ids=allowed_ids,
    )

@router.post("/{folder_id}/favourite", status_code=201)
async def mark_favourite(
    folder_id: int,
    user_id: str = Depends(get_current_user_id),
    allowed_ids: Set[int] = Depends(get_allowed_ids),
    service: FolderService = Depends(get_folder_service),
):
    favourite = await service.mark_favourite(folder_id, user_id, allowed_ids=allowed_ids)
    return {"folder_id": favourite.folder_id, "index": favourite.index}

@router.delete("/{folder_id}/favourite", status_code=204)
async def unmark_favourite(
    folder_id: int,
    user_id: str = Depends(get_current_user_id),
    service: FolderService = Depends(get_folder_service),
):
    await service.unmark_favourite(folder_id, user_id)

@router.patch("/{folder_id}/favourite/position")
async def update_favourite_position(
    folder_id: int,
    position: FavouritePositionUpdate,
    user_id: str = Depends(get_current_user_id),
    service: FolderService = Depends(get_folder_service),
):
    favourites = await service.update_favourite_position(folder_id, user_id, position.index)
    return [{"folder_id": f.folder_id, "index": f.index} for f in favourites]

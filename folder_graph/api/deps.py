from functools import lru_cache
from typing import Set

from fastapi import Depends, Header, HTTPException

from folder_graph.db.session import AsyncSessionLocal
from folder_graph.models.enums import EntityType, PermissionLevel
from folder_graph.services.folder_service import FolderService
from folder_graph.services.permissions import OwnershipPermissionService
from folder_graph.services.search import CelerySearchService


@lru_cache
def get_folder_service() -> FolderService:
    return FolderService(
        AsyncSessionLocal,
        permissions=OwnershipPermissionService(AsyncSessionLocal),
        search=CelerySearchService(),
    )


async def get_current_user_id(x_user_id: str = Header(..., alias="X-User-Id")) -> str:
    """Identity is resolved upstream and forwarded as a header."""
    if not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing user")
    return x_user_id.strip()


async def get_allowed_ids(
    user_id: str = Depends(get_current_user_id),
    service: FolderService = Depends(get_folder_service),
) -> Set[int]:
    return await service.permissions.get_recursive_ids_for_user(user_id, EntityType.FOLDER, PermissionLevel.READ)

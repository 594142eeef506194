from enum import Enum


class FolderType(str, Enum):
    FOLDER = "folder"
    PROJECT = "project"
    SPACE = "space"


class FolderViewType(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"
    ARCHIVED = "archived"


class LifecycleState(str, Enum):
    LIVE = "live"
    ARCHIVED = "archived"
    DELETED = "deleted"


class EdgeKind(str, Enum):
    """Primary edges place a folder at creation time, bound edges are later cross-links."""
    PRIMARY = "primary"
    BOUND = "bound"

    @classmethod
    def from_is_bind(cls, is_bind: bool) -> "EdgeKind":
        return cls.BOUND if is_bind else cls.PRIMARY

    @property
    def is_bind(self) -> bool:
        return self is EdgeKind.BOUND


class EntityType(str, Enum):
    FOLDER = "folder"
    SPACE = "space"


class PermissionLevel(str, Enum):
    READ = "read"
    UPDATE = "update"
    OWNER = "owner"

from sqlalchemy import Column, String, Integer, Text, DateTime, Enum as SAEnum
from folder_graph.db.base import Base, TimestampMixin
from folder_graph.models.enums import FolderType, FolderViewType, LifecycleState

class Folder(Base, TimestampMixin):
    """A node of the folder graph. Spaces are folders with folder_type=space."""
    __tablename__ = "folders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), nullable=False, index=True)

    # Folder Info
    title = Column(String(256), nullable=False)
    folder_type = Column(SAEnum(FolderType, name="folder_type", values_callable=lambda e: [m.value for m in e]), nullable=False)
    view_type = Column(SAEnum(FolderViewType, name="folder_view_type", values_callable=lambda e: [m.value for m in e]))
    description = Column(String(512))
    color = Column(String(32))

    # Lifecycle (written only by the lifecycle operations)
    archived_at = Column(DateTime)
    archived_by = Column(String(36))
    archived_why = Column(String(512))
    deleted_at = Column(DateTime)
    deleted_by = Column(String(36))
    deleted_why = Column(Text)

    @property
    def state(self) -> LifecycleState:
        # delete supersedes archive
        if self.deleted_at is not None:
            return LifecycleState.DELETED
        if self.archived_at is not None:
            return LifecycleState.ARCHIVED
        return LifecycleState.LIVE

    @property
    def is_live(self) -> bool:
        return self.state is LifecycleState.LIVE

    @property
    def is_space(self) -> bool:
        return self.folder_type == FolderType.SPACE

    def __repr__(self):
        return f"<Folder {self.id} {self.folder_type.value if self.folder_type else None} {self.title!r}>"

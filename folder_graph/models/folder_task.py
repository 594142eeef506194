from sqlalchemy import Column, Integer, ForeignKey, UniqueConstraint
from folder_graph.db.base import Base, TimestampMixin

class FolderTask(Base, TimestampMixin):
    """Attachment of an externally managed task to a folder."""
    __tablename__ = "folder_tasks"
    __table_args__ = (
        UniqueConstraint("folder_id", "task_id", name="uq_folder_task_folder_task"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    folder_id = Column(Integer, ForeignKey("folders.id", ondelete="CASCADE"), nullable=False, index=True)
    task_id = Column(Integer, nullable=False, index=True)

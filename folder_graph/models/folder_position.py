from sqlalchemy import Column, Integer, String, ForeignKey, UniqueConstraint
from folder_graph.db.base import Base, TimestampMixin

class FolderPosition(Base, TimestampMixin):
    """Per-viewer index of an edge among its siblings."""
    __tablename__ = "folder_positions"
    __table_args__ = (
        UniqueConstraint("user_id", "view", "folder_relation_id", name="uq_folder_position_user_view_relation"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    folder_relation_id = Column(Integer, ForeignKey("folder_relations.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), nullable=False)
    view = Column(String(32), nullable=False)
    index = Column(Integer, nullable=False)

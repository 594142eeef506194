from sqlalchemy import Column, Integer, String, ForeignKey, UniqueConstraint
from folder_graph.db.base import Base, TimestampMixin

class FolderFavourite(Base, TimestampMixin):
    __tablename__ = "folder_favourites"
    __table_args__ = (
        UniqueConstraint("folder_id", "user_id", name="uq_folder_favourite_folder_user"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    folder_id = Column(Integer, ForeignKey("folders.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(36), nullable=False, index=True)
    index = Column(Integer, nullable=False, default=0)

from sqlalchemy import Column, Integer, Boolean, ForeignKey, UniqueConstraint, CheckConstraint, Index
from folder_graph.db.base import Base, TimestampMixin, IdPath, TitlePath
from folder_graph.models.enums import EdgeKind

class FolderRelation(Base, TimestampMixin):
    """Parent -> child edge carrying the materialized ancestry of its child.

    ``path_ids``/``path_str`` run from a root down to and including the child,
    for this edge only. A null parent marks a root edge (top level space).
    """
    __tablename__ = "folder_relations"
    __table_args__ = (
        UniqueConstraint("parent_folder_id", "child_folder_id", name="uq_folder_relation_parent_child"),
        CheckConstraint("parent_folder_id <> child_folder_id", name="ck_folder_relation_no_self_loop"),
        Index("ix_folder_relations_child", "child_folder_id"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    parent_folder_id = Column(Integer, ForeignKey("folders.id", ondelete="CASCADE"), index=True)
    child_folder_id = Column(Integer, ForeignKey("folders.id", ondelete="CASCADE"), nullable=False)
    is_bind = Column(Boolean, nullable=False, default=False)

    path_ids = Column(IdPath, nullable=False)
    path_str = Column(TitlePath, nullable=False)

    @property
    def kind(self) -> EdgeKind:
        return EdgeKind.from_is_bind(self.is_bind)

    @property
    def is_root(self) -> bool:
        return self.parent_folder_id is None

    def __repr__(self):
        return f"<FolderRelation {self.id} {self.parent_folder_id}->{self.child_folder_id} {self.kind.value}>"

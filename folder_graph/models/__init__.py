from folder_graph.models.folder import Folder
from folder_graph.models.folder_relation import FolderRelation
from folder_graph.models.folder_position import FolderPosition
from folder_graph.models.folder_favourite import FolderFavourite
from folder_graph.models.folder_follower import FolderFollower
from folder_graph.models.folder_task import FolderTask

__all__ = [
    "Folder",
    "FolderRelation",
    "FolderPosition",
    "FolderFavourite",
    "FolderFollower",
    "FolderTask",
]

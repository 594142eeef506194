import logging
from enum import Enum

from pydantic import BaseModel

from folder_graph.config import settings
from folder_graph.core.celery_app import celery_app

logger = logging.getLogger(__name__)


class SearchDocumentType(str, Enum):
    FOLDER = "folder"
    SPACE = "space"
    TASK = "task"


class SearchOperation(str, Enum):
    UPSERT = "upsert"
    DELETE = "delete"


class SearchMessage(BaseModel):
    document_type: SearchDocumentType
    operation: SearchOperation
    record_id: int


class SearchService:
    """Indexing collaborator. Receives one message per changed document."""

    async def send_message(self, message: SearchMessage) -> None:
        raise NotImplementedError


class CelerySearchService(SearchService):
    def __init__(self, app=celery_app, task_name: str = settings.SEARCH_INDEX_TASK):
        self.app = app
        self.task_name = task_name

    async def send_message(self, message: SearchMessage) -> None:
        self.app.send_task(self.task_name, kwargs=message.model_dump(mode="json"))
        logger.debug(f"Queued {message.operation.value} of {message.document_type.value} {message.record_id}")

from celery import Celery
from folder_graph.config import settings

celery_app = Celery(
    "folder_graph",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    task_ignore_result=True,
    task_routes={settings.SEARCH_INDEX_TASK: {"queue": settings.SEARCH_QUEUE}},
)

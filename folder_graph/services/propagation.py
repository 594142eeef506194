"""Post-commit reaction to edge changes.

Each unit of work collects the ids of folders whose incoming edges were
inserted, removed or renamed. Once it commits, the paths of every edge at
or below those folders are repaired in a fresh transaction and one search
message is sent per affected folder or space and per task attached to one.
"""
import logging
from functools import partial
from typing import Iterable, List, Set

from sqlalchemy import select

from folder_graph.db.transaction import UnitOfWork
from folder_graph.models.folder import Folder
from folder_graph.models.folder_task import FolderTask
from folder_graph.services.relation_graph import RelationGraph
from folder_graph.services.search import (
    SearchDocumentType,
    SearchMessage,
    SearchOperation,
    SearchService,
)

logger = logging.getLogger(__name__)

PENDING_KEY = "folder_graph.changed_folder_ids"


class ChangePropagation:
    def __init__(self, session_factory, search: SearchService):
        self.session_factory = session_factory
        self.search = search

    def mark_changed(self, uow: UnitOfWork, folder_id: int) -> None:
        pending = uow.info.get(PENDING_KEY)
        if pending is None:
            pending = uow.info[PENDING_KEY] = set()
            uow.on_commit(partial(self.propagate, pending))
        pending.add(folder_id)

    async def propagate(self, folder_ids: Iterable[int]) -> Set[int]:
        folder_ids = sorted(set(folder_ids))
        if not folder_ids:
            return set()

        affected: Set[int] = set()
        async with UnitOfWork(self.session_factory) as uow:
            graph = RelationGraph(uow.session)
            result = await uow.session.execute(select(Folder.id).where(Folder.id.in_(folder_ids)))
            existing = set(result.scalars().all())
            for folder_id in folder_ids:
                if folder_id not in existing:
                    logger.warning(f"Folder {folder_id} vanished before its paths could be repaired")
                    continue
                affected |= await graph.repair_descendant_paths(folder_id)
            messages = await self._messages(uow.session, affected)

        logger.info(f"Edge change on {folder_ids} touched {len(affected)} folders, {len(messages)} search messages")
        for message in messages:
            try:
                await self.search.send_message(message)
            except Exception:
                logger.exception(f"Search message for {message.document_type.value} {message.record_id} failed")
        return affected

    @staticmethod
    async def _messages(session, folder_ids: Set[int]) -> List[SearchMessage]:
        if not folder_ids:
            return []
        messages = []
        result = await session.execute(select(Folder).where(Folder.id.in_(folder_ids)).order_by(Folder.id))
        for folder in result.scalars().all():
            messages.append(SearchMessage(
                document_type=SearchDocumentType.SPACE if folder.is_space else SearchDocumentType.FOLDER,
                operation=SearchOperation.DELETE if folder.deleted_at is not None else SearchOperation.UPSERT,
                record_id=folder.id,
            ))

        result = await session.execute(
            select(FolderTask.task_id).where(FolderTask.folder_id.in_(folder_ids)).distinct().order_by(FolderTask.task_id)
        )
        for task_id in result.scalars().all():
            messages.append(SearchMessage(
                document_type=SearchDocumentType.TASK,
                operation=SearchOperation.UPSERT,
                record_id=task_id,
            ))
        return messages

"""Unit of work around one ``AsyncSession``.

Graph mutations run inside a single unit of work. Work that must only
observe committed state (path repair, search fan-out) is registered with
:meth:`UnitOfWork.on_commit` and runs after a successful commit, in
registration order. A rollback discards the hooks. Deadlocks and
serialization failures reported by the database surface as
``ConflictError``.
"""
import logging
from typing import Any, Awaitable, Callable, Dict, List

from sqlalchemy import exc as sa_exc

from folder_graph.core.exceptions import ConflictError

logger = logging.getLogger(__name__)

CommitHook = Callable[[], Awaitable[None]]

# deadlock_detected, serialization_failure
LOCK_CONFLICT_SQLSTATES = {"40P01", "40001"}


def is_lock_conflict(error: BaseException) -> bool:
    if not isinstance(error, sa_exc.DBAPIError):
        return False
    orig = error.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    return sqlstate in LOCK_CONFLICT_SQLSTATES


class UnitOfWork:
    def __init__(self, session_factory):
        self._session_factory = session_factory
        self._hooks: List[CommitHook] = []
        self.session = None
        # scratch space for components that batch per transaction
        self.info: Dict[str, Any] = {}

    async def __aenter__(self) -> "UnitOfWork":
        self.session = self._session_factory()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        committed = False
        try:
            if exc_type is None:
                try:
                    await self.session.commit()
                    committed = True
                except sa_exc.DBAPIError as e:
                    await self.session.rollback()
                    exc = e
                    if not is_lock_conflict(e):
                        raise
            else:
                await self.session.rollback()
        finally:
            await self.session.close()

        if exc is not None and is_lock_conflict(exc):
            self._hooks.clear()
            logger.warning(f"Transaction aborted by a concurrent writer: {exc}")
            raise ConflictError("Concurrent update, retry the operation") from exc

        if committed:
            await self._run_hooks()
        else:
            self._hooks.clear()
        return False

    def on_commit(self, hook: CommitHook) -> None:
        self._hooks.append(hook)

    async def _run_hooks(self) -> None:
        hooks, self._hooks = self._hooks, []
        for hook in hooks:
            try:
                await hook()
            except Exception:
                logger.exception(f"Post-commit hook {getattr(hook, '__qualname__', hook)} failed")

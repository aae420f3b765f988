"""
Background task supervision for document processing.

Each document has at most one processing task. Submitting a document again
supersedes (cancels) the task already running for it. The new run starts only
after the cancelled one has finished unwinding.
"""
import asyncio
from typing import Coroutine, Dict, Optional

from docgraph.utils.logging import get_logger

logger = get_logger(__name__)


class DocumentTaskRegistry:
    """Tracks the asyncio task that processes each document."""

    def __init__(self):
        self._tasks: Dict[str, asyncio.Task] = {}

    def submit(self, document_id: str, coro: Coroutine) -> asyncio.Task:
        """Schedule ``coro`` as the processing task for ``document_id``."""
        previous = self._tasks.get(document_id)
        if previous is not None and previous.done():
            previous = None
        if previous is not None:
            logger.info("document_task_superseded", document_id=document_id)
            previous.cancel()

        task = asyncio.create_task(
            self._run_after(previous, coro), name=f"process-{document_id}"
        )
        self._tasks[document_id] = task
        # a task cancelled before it starts never awaits coro
        task.add_done_callback(lambda t: coro.close())
        task.add_done_callback(lambda t: self._on_done(document_id, t))
        return task

    def cancel(self, document_id: str) -> bool:
        """Cancel the running task for a document; False if none is running."""
        task = self._tasks.get(document_id)
        if task is None or task.done():
            return False
        task.cancel()
        logger.info("document_task_cancel_requested", document_id=document_id)
        return True

    def get(self, document_id: str) -> Optional[asyncio.Task]:
        return self._tasks.get(document_id)

    def active_count(self) -> int:
        return sum(1 for task in self._tasks.values() if not task.done())

    async def shutdown(self) -> None:
        """Cancel every running task and wait for them to unwind."""
        running = [task for task in self._tasks.values() if not task.done()]
        for task in running:
            task.cancel()
        if running:
            await asyncio.gather(*running, return_exceptions=True)

    @staticmethod
    async def _run_after(previous: Optional[asyncio.Task], coro: Coroutine):
        if previous is not None:
            # asyncio.wait does not re-raise the cancellation of previous
            try:
                await asyncio.wait({previous})
            except asyncio.CancelledError:
                # a run superseding this one must still start after previous
                await asyncio.wait({previous})
                raise
        return await coro

    def _on_done(self, document_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(document_id) is task:
            del self._tasks[document_id]
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(
                "document_task_failed",
                document_id=document_id,
                error_type=type(error).__name__,
                error_message=str(error),
            )

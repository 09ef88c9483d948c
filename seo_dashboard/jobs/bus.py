"""
In-process event bus

Background jobs subscribe to named events with `@bus.function(event)`.
`send()` schedules every subscriber as an asyncio task and returns
immediately; `run()` awaits them, which is what FastAPI BackgroundTasks
and the tests use.

A failing job is logged here and never propagates to the caller. Job
functions record their own FAILED status before re-raising.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

logger = logging.getLogger(__name__)

JobFunction = Callable[[Dict[str, Any]], Awaitable[Any]]

# Event names
AUDIT_REQUESTED = "audit/requested"
KEYWORD_TRACKING_REQUESTED = "keyword-tracking/run.requested"
LOCAL_SCAN_REQUESTED = "local-seo/scan.requested"
GBP_REFRESH_REQUESTED = "local-seo/gbp.refresh"
AI_SEO_ANALYSIS_START = "ai-seo/analysis.start"


class EventBus:
    """Maps event names to async job functions."""

    def __init__(self):
        self._handlers: Dict[str, List[JobFunction]] = {}
        self._tasks: Set[asyncio.Task] = set()

    def function(self, event: str) -> Callable[[JobFunction], JobFunction]:
        """Register the decorated coroutine function as a handler for `event`."""
        def decorator(func: JobFunction) -> JobFunction:
            self._handlers.setdefault(event, []).append(func)
            logger.debug(f"Registered {func.__name__} for {event}")
            return func
        return decorator

    def handlers(self, event: str) -> List[JobFunction]:
        return list(self._handlers.get(event, []))

    async def _invoke(self, event: str, func: JobFunction, data: Dict[str, Any]) -> Optional[Any]:
        try:
            return await func(data)
        except Exception as e:
            logger.exception(f"Job {func.__name__} failed for {event}: {e}")
            return None

    async def run(self, event: str, data: Dict[str, Any]) -> List[Any]:
        """Run every handler for `event` to completion, in registration order."""
        handlers = self.handlers(event)
        if not handlers:
            logger.warning(f"No handlers registered for {event}")
            return []

        logger.info(f"Running {event} ({len(handlers)} handler(s))")
        return [await self._invoke(event, func, data) for func in handlers]

    def send(self, event: str, data: Dict[str, Any]) -> List[asyncio.Task]:
        """
        Schedule handlers for `event` on the running loop and return the tasks.

        Must be called from inside an event loop.
        """
        tasks = []
        for func in self.handlers(event):
            task = asyncio.create_task(self._invoke(event, func, data))
            # Keep a reference until done so the task is not garbage collected
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            tasks.append(task)

        if not tasks:
            logger.warning(f"No handlers registered for {event}")
        return tasks

    @property
    def pending(self) -> int:
        return len(self._tasks)


bus = EventBus()

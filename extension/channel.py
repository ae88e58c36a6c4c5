"""One-way message bus from the page context to the extension background.

Messages cross the boundary as plain dicts, never as shared objects. Posting is
fire-and-forget: a missing receiver or a failing handler is logged and the
sender carries on.
"""
from __future__ import annotations

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Optional, Set, Union

from core.log import get_logger
from models.messages import Message, message_from_dict

Handler = Callable[[Message], Union[Awaitable[Any], Any]]


class MessageChannel:
    def __init__(self):
        self._handler: Optional[Handler] = None
        self._pending: Set[asyncio.Task] = set()
        self.logger = get_logger("channel")

    def connect(self, handler: Handler) -> None:
        self._handler = handler

    def disconnect(self) -> None:
        self._handler = None

    def post(self, message: Message) -> Optional[asyncio.Task]:
        """Deliver ``message`` on the running loop; returns a task resolving to the ack."""
        if self._handler is None:
            self.logger.debug("No receiver for %s", message.type)
            return None
        payload = message.to_dict()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.logger.debug("No event loop, dropping %s", message.type)
            return None
        task = loop.create_task(self._deliver(self._handler, payload))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def request(self, message: Message) -> Any:
        task = self.post(message)
        if task is None:
            return None
        return await task

    async def drain(self) -> None:
        while self._pending:
            await asyncio.gather(*list(self._pending))

    async def _deliver(self, handler: Handler, payload: dict) -> Any:
        message = message_from_dict(payload)
        if message is None:
            return None
        try:
            result = handler(message)
            if inspect.isawaitable(result):
                result = await result
            return result
        except Exception as exc:
            self.logger.warning("Receiver failed on %s: %s", payload.get("type"), exc)
            return None


__all__ = ["MessageChannel"]

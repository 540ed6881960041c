"""
Inbound stream demultiplexing.

One task drains the FrameReader for the lifetime of a connection and routes
every validated datagram into one of two bounded FIFO queues:

- responses: command codes 0x2000-0x2FFF, direct replies to a request
- notifications: every other code (boot complete, scan results, PANA
  results, inbound UDP data)

Order is preserved within each queue. A full queue blocks the reader task
until the consumer drains it; nothing is buffered beyond the queue depth.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, NoReturn

from broute.exceptions import TransportError
from broute.protocol.constants import ProtocolConstants, is_response_code

if TYPE_CHECKING:
    from types import TracebackType

    from broute.protocol.datagram import Datagram
    from broute.protocol.frame_reader import FrameReader


class StreamDemultiplexer:
    """
    Routes inbound datagrams to the response or notification queue.

    Example:
        >>> async with StreamDemultiplexer(FrameReader(transport)) as demux:
        ...     await transport.write(hardware_reset().encode())
        ...     boot = await demux.receive(demux.notifications)

    Attributes:
        responses: Queue of command responses.
        notifications: Queue of asynchronous notifications.
        error: Exception that terminated the reader task, if any.
    """

    def __init__(
        self,
        frame_reader: FrameReader,
        *,
        queue_depth: int = ProtocolConstants.QUEUE_DEPTH,
        logger: logging.Logger | None = None,
    ) -> None:
        self._reader = frame_reader
        self._logger = logger or logging.getLogger(__name__)
        self.responses: asyncio.Queue[Datagram] = asyncio.Queue(maxsize=queue_depth)
        self.notifications: asyncio.Queue[Datagram] = asyncio.Queue(maxsize=queue_depth)
        self.error: BaseException | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        """Check if the reader task is alive."""
        return self._task is not None and not self._task.done()

    def queue_for(self, datagram: Datagram) -> asyncio.Queue[Datagram]:
        """Select the delivery queue for a datagram by its command code."""
        if is_response_code(datagram.command_code):
            return self.responses
        return self.notifications

    async def route(self, datagram: Datagram) -> None:
        """Put a datagram on its queue, waiting while the queue is full."""
        queue = self.queue_for(datagram)
        self._logger.debug("Received %r", datagram)
        await queue.put(datagram)

    async def _run(self) -> None:
        async for datagram in self._reader.frames():
            await self.route(datagram)

    def _on_task_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        self.error = task.exception()
        if self.error is not None:
            self._logger.error("Stream reader stopped: %s", self.error)

    def start(self) -> None:
        """
        Start the reader task.

        Raises:
            RuntimeError: If the task is already running.
        """
        if self.is_running:
            raise RuntimeError("Stream demultiplexer already running")
        self.error = None
        self._task = asyncio.get_running_loop().create_task(self._run(), name="j11-demux")
        self._task.add_done_callback(self._on_task_done)

    async def stop(self) -> None:
        """
        Cancel the reader task and wait for it to exit.

        Safe to call multiple times. A transport error that ended the task
        stays available in `error` and is not re-raised here.
        """
        task, self._task = self._task, None
        if task is None:
            return
        if not task.done():
            task.cancel()
        # Cancelling the caller still propagates
        await asyncio.wait({task})
        if not task.cancelled():
            task.exception()

    async def receive(self, queue: asyncio.Queue[Datagram]) -> Datagram:
        """
        Take the next datagram from one of the queues.

        Waits until a datagram is available. Wrap in asyncio.wait_for() to
        bound the wait.

        Raises:
            TransportError: If the reader task has stopped, immediately
                rather than waiting forever.
        """
        if not queue.empty():
            return queue.get_nowait()

        task = self._task
        if task is None or task.done():
            self._raise_stopped(task)

        getter = asyncio.ensure_future(queue.get())
        try:
            done, _ = await asyncio.wait({getter, task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            if not getter.done():
                getter.cancel()

        if getter in done:
            return getter.result()
        self._raise_stopped(task)

    def _raise_stopped(self, task: asyncio.Task[None] | None) -> NoReturn:
        if task is not None and task.done() and not task.cancelled():
            self.error = task.exception()
        if isinstance(self.error, TransportError):
            raise self.error
        if self.error is not None:
            raise TransportError(f"Stream reader failed: {self.error}") from self.error
        raise TransportError("Stream demultiplexer is not running")

    async def __aenter__(self) -> StreamDemultiplexer:
        self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.stop()

# Copyright 2025 Vijaykumar Singh <singhvjd@gmail.com>
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Buffered fan-out over a single async production.

A ListenableGenerator drains its source in one producer task and keeps
every value in an append-only buffer. Any number of readers created with
tee() replay the buffered history and then follow the live tail, each
with its own read offset, so the source is never iterated twice.
"""

import asyncio
import logging
from typing import AsyncIterable, AsyncIterator, Callable, Generic, List, Optional, Set, TypeVar

from victor_autocomplete.cancellation import AbortController

logger = logging.getLogger(__name__)

T = TypeVar("T")

Listener = Callable[[Optional[T]], None]


class ListenableGenerator(Generic[T]):
    """Wraps an async iterable with buffering, listeners and tee readers.

    Listeners receive every value followed by None at end of stream.
    Must be constructed inside a running event loop; the producer task
    starts immediately.
    """

    def __init__(
        self,
        source: AsyncIterable[T],
        on_error: Callable[[BaseException], None],
        abort_controller: AbortController,
    ):
        """Initialize and start consuming the source.

        Args:
            source: The underlying production
            on_error: Called with any exception raised by the source
            abort_controller: Controller whose signal was given to the source
        """
        self._source = source
        self._on_error = on_error
        self._abort_controller = abort_controller
        self._buffer: List[T] = []
        self._listeners: List[Listener] = []
        self._waiters: Set[asyncio.Future] = set()
        self._ended = False
        self._cancelled = False
        self._finished = False
        self._error: Optional[BaseException] = None
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        try:
            async for value in self._source:
                if self._ended:
                    break
                self._buffer.append(value)
                for listener in list(self._listeners):
                    listener(value)
                self._wake_readers()
        except Exception as e:
            self._error = e
            self._on_error(e)
        finally:
            await self._close_source()
            self._finish()

    async def _close_source(self) -> None:
        aclose = getattr(self._source, "aclose", None)
        if aclose is None:
            return
        try:
            await aclose()
        except Exception as e:
            logger.debug(f"Closing completion source failed: {e}")

    def _finish(self) -> None:
        if self._finished:
            return
        self._finished = True
        self._ended = True
        for listener in list(self._listeners):
            listener(None)
        self._wake_readers()

    def _wake_readers(self) -> None:
        for waiter in self._waiters:
            if not waiter.done():
                waiter.set_result(None)

    def cancel(self) -> None:
        """Abort the production and end every reader. Idempotent."""
        if self._cancelled:
            return
        self._cancelled = True
        self._abort_controller.abort()
        self._ended = True
        if not self._task.done():
            self._task.cancel()
        self._finish()

    def listen(self, listener: Listener) -> None:
        """Add a listener, replaying buffered values first."""
        self._listeners.append(listener)
        for value in self._buffer:
            listener(value)
        if self._finished:
            listener(None)

    def unlisten(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def tee(self) -> AsyncIterator[T]:
        """Create an independent reader over history and live values.

        Raises the source's exception, if any, after the buffered values
        have been delivered. After cancel() readers still replay the
        buffer but get no live tail, and a stored exception is not
        raised: a reader reusing a cancelled production sees only the
        text it had produced.
        """
        index = 0
        loop = asyncio.get_running_loop()
        while True:
            while index < len(self._buffer):
                value = self._buffer[index]
                index += 1
                yield value

            if self._ended or self._cancelled:
                break

            waiter = loop.create_future()
            self._waiters.add(waiter)
            try:
                await waiter
            finally:
                self._waiters.discard(waiter)

        if self._error is not None and not self._cancelled:
            raise self._error

    def get_buffer(self) -> List[T]:
        return list(self._buffer)

    def is_ended(self) -> bool:
        return self._ended

    def get_buffer_size(self) -> int:
        return len(self._buffer)

    def dispose(self) -> None:
        """Cancel and drop buffered state."""
        self.cancel()
        self._listeners.clear()
        self._buffer = []

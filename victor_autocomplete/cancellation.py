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

"""Cooperative cancellation primitives.

An AbortController owns an AbortSignal that is handed to a completion
production. Aborting is idempotent; listeners registered on the signal
run exactly once.
"""

import asyncio
import logging
from typing import Any, Callable, List, Optional

logger = logging.getLogger(__name__)


class AbortSignal:
    """Read side of an abort controller."""

    def __init__(self) -> None:
        self._aborted = False
        self._reason: Any = None
        self._listeners: List[Callable[[], None]] = []
        self._event: Optional[asyncio.Event] = None

    @property
    def aborted(self) -> bool:
        """Whether abort() has been called on the owning controller."""
        return self._aborted

    @property
    def reason(self) -> Any:
        return self._reason

    def add_listener(self, listener: Callable[[], None]) -> None:
        """Register a callback run once when the signal aborts.

        Runs immediately if the signal is already aborted.
        """
        if self._aborted:
            self._run_listener(listener)
            return
        self._listeners.append(listener)

    def remove_listener(self, listener: Callable[[], None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def throw_if_aborted(self) -> None:
        """Raise CancelledError if the signal has been aborted."""
        if self._aborted:
            raise asyncio.CancelledError(self._reason)

    async def wait(self) -> None:
        """Wait until the signal is aborted."""
        if self._aborted:
            return
        if self._event is None:
            self._event = asyncio.Event()
        await self._event.wait()

    def _abort(self, reason: Any) -> None:
        if self._aborted:
            return
        self._aborted = True
        self._reason = reason
        if self._event is not None:
            self._event.set()

        listeners, self._listeners = self._listeners, []
        for listener in listeners:
            self._run_listener(listener)

    @staticmethod
    def _run_listener(listener: Callable[[], None]) -> None:
        try:
            listener()
        except Exception as e:
            logger.warning(f"Abort listener failed: {e}")


class AbortController:
    """Owner of an AbortSignal."""

    def __init__(self) -> None:
        self._signal = AbortSignal()

    @property
    def signal(self) -> AbortSignal:
        return self._signal

    def abort(self, reason: Any = None) -> None:
        """Abort the signal. Safe to call more than once."""
        self._signal._abort(reason)


class CancellationToken:
    """Host-side cancellation flag checked between streamed chunks."""

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def is_cancellation_requested(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

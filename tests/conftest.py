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

"""Shared fixtures for autocomplete pipeline tests."""

import asyncio
from typing import AsyncIterator, List, Optional

import pytest

from victor_autocomplete.cancellation import AbortSignal
from victor_autocomplete.config import reset_settings
from victor_autocomplete.manager import reset_autocomplete_manager


class ScriptedSource:
    """Stream source that yields fixed chunks, optionally staying open.

    Usable both as a reuse-manager factory (``factory(signal)``) and as a
    StreamSource (``source(prefix, suffix, file_id, signal)``).
    """

    def __init__(
        self,
        chunks: List[str],
        hold_open: bool = False,
        error: Optional[Exception] = None,
    ):
        self.chunks = chunks
        self.hold_open = hold_open
        self.error = error
        self.calls = 0
        self.signals: List[AbortSignal] = []
        self._release = asyncio.Event()

    def factory(self, signal: AbortSignal) -> AsyncIterator[str]:
        self.calls += 1
        self.signals.append(signal)
        return self._stream()

    def __call__(self, prefix: str, suffix: str, file_id: str, signal: AbortSignal):
        return self.factory(signal)

    def release(self) -> None:
        self._release.set()

    async def _stream(self) -> AsyncIterator[str]:
        for chunk in self.chunks:
            await asyncio.sleep(0)
            yield chunk
        if self.error is not None:
            raise self.error
        if self.hold_open:
            await self._release.wait()


@pytest.fixture
def make_source():
    """Factory for scripted stream sources."""
    return ScriptedSource


@pytest.fixture(autouse=True)
def reset_singletons():
    """Reset global singletons between tests."""
    reset_settings()
    yield
    reset_autocomplete_manager()
    reset_settings()

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

"""Completion streamer with generation reuse and stream transforms.

Wraps the generation reuse manager with:
- A chain of configurable stream transforms
- A processing time limit on the underlying production
- Host-side cancellation between chunks
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import AsyncIterator, Callable, List, Optional

from victor_autocomplete.cancellation import AbortSignal, CancellationToken
from victor_autocomplete.protocol import GeneratorFactory, ReuseStatistics
from victor_autocomplete.reuse import GenerationReuseManager

logger = logging.getLogger(__name__)


FullStop = Callable[[], None]

# (stream, prefix, suffix, multiline, stop_sequences, full_stop) -> stream
StreamTransform = Callable[
    [AsyncIterator[str], str, str, bool, List[str], FullStop],
    AsyncIterator[str],
]


@dataclass
class CompletionOptions:
    """Per-request streaming options."""

    max_processing_time: Optional[float] = None  # Milliseconds
    stop: List[str] = field(default_factory=list)
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    apply_transforms: bool = True


class CompletionStreamer:
    """High-level streaming over a reusable generation."""

    def __init__(self, on_error: Optional[Callable[[BaseException], None]] = None):
        """Initialize the streamer.

        Args:
            on_error: Called with errors raised by the underlying production
        """
        self._reuse_manager = GenerationReuseManager(on_error)
        self._transforms: List[StreamTransform] = []

    @property
    def reuse_manager(self) -> GenerationReuseManager:
        return self._reuse_manager

    def add_transform(self, transform: StreamTransform) -> None:
        self._transforms.append(transform)

    def clear_transforms(self) -> None:
        self._transforms = []

    def _full_stop(self) -> None:
        generator = self._reuse_manager.current_generator
        if generator is not None:
            generator.cancel()

    async def stream_completion_with_filters(
        self,
        token: Optional[CancellationToken],
        completion_generator: GeneratorFactory,
        prefix: str,
        suffix: str,
        multiline: bool,
        options: Optional[CompletionOptions] = None,
        request_transforms: Optional[List[StreamTransform]] = None,
    ) -> AsyncIterator[str]:
        """Stream a completion through reuse, cancellation and transforms.

        Args:
            token: Host cancellation token, checked before every chunk
            completion_generator: Creates the underlying production
            prefix: Text before cursor
            suffix: Text after cursor
            multiline: Whether this is a multiline completion
            options: Streaming options
            request_transforms: Request-bound transforms applied before the registered ones

        Yields:
            Completion text chunks
        """
        options = options or CompletionOptions()
        max_processing_time = options.max_processing_time

        def factory(signal: AbortSignal) -> AsyncIterator[str]:
            generator = completion_generator(signal)
            if max_processing_time:
                return self._with_timeout(generator, max_processing_time)
            return generator

        try:
            generator = self._reuse_manager.get_generator(prefix, factory, multiline)
            stream = self._with_cancellation(generator, token)

            if options.apply_transforms:
                for transform in (request_transforms or []) + self._transforms:
                    stream = transform(
                        stream, prefix, suffix, multiline, options.stop, self._full_stop
                    )

            async for update in stream:
                yield update
        except Exception as e:
            logger.error(f"Completion streaming error: {e}")
            self._full_stop()
            raise

    async def _with_cancellation(
        self,
        generator: AsyncIterator[str],
        token: Optional[CancellationToken],
    ) -> AsyncIterator[str]:
        async for update in generator:
            if token is not None and token.is_cancellation_requested:
                self._full_stop()
                return
            yield update

    @staticmethod
    async def _with_timeout(
        generator: AsyncIterator[str],
        timeout_ms: float,
    ) -> AsyncIterator[str]:
        """End the production once timeout_ms has elapsed."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_ms / 1000
        iterator = generator.__aiter__()
        try:
            while True:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    logger.debug(f"Completion exceeded {timeout_ms}ms, stopping")
                    break
                try:
                    chunk = await asyncio.wait_for(iterator.__anext__(), remaining)
                except StopAsyncIteration:
                    break
                except asyncio.TimeoutError:
                    # A TimeoutError raised by the source itself is an error
                    if loop.time() < deadline:
                        raise
                    logger.debug(f"Completion exceeded {timeout_ms}ms, stopping")
                    break
                yield chunk
        finally:
            aclose = getattr(iterator, "aclose", None)
            if aclose is not None:
                await aclose()

    @staticmethod
    def stop_on_sequence(stop_sequences: List[str]) -> StreamTransform:
        """Transform that ends the stream before the first stop sequence.

        Text that could be the start of a stop sequence is held back until
        the next chunk disambiguates it.
        """

        async def transform(
            stream: AsyncIterator[str],
            prefix: str,
            suffix: str,
            multiline: bool,
            _stop_sequences: List[str],
            full_stop: FullStop,
        ) -> AsyncIterator[str]:
            stops = [s for s in stop_sequences if s]
            holdback = max((len(s) for s in stops), default=1) - 1
            pending = ""

            async for chunk in stream:
                pending += chunk

                indices = [pending.find(s) for s in stops]
                found = [i for i in indices if i >= 0]
                if found:
                    index = min(found)
                    if index > 0:
                        yield pending[:index]
                    full_stop()
                    return

                if len(pending) > holdback:
                    cut = len(pending) - holdback
                    yield pending[:cut]
                    pending = pending[cut:]

            if pending:
                yield pending

        return transform

    @staticmethod
    def trim_whitespace() -> StreamTransform:
        """Transform that drops leading and trailing whitespace."""

        async def transform(
            stream: AsyncIterator[str],
            prefix: str,
            suffix: str,
            multiline: bool,
            stop_sequences: List[str],
            full_stop: FullStop,
        ) -> AsyncIterator[str]:
            is_first = True
            buffer = ""

            async for chunk in stream:
                buffer += chunk
                if is_first:
                    trimmed = buffer.lstrip()
                    if trimmed:
                        yield trimmed
                        is_first = False
                        buffer = ""
                elif buffer.strip():
                    yield buffer
                    buffer = ""

        return transform

    def cancel(self) -> None:
        self._reuse_manager.cancel()

    def get_statistics(self) -> ReuseStatistics:
        return self._reuse_manager.get_statistics()

    def dispose(self) -> None:
        self._reuse_manager.dispose()

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

"""Generation reuse across keystrokes.

When the user keeps typing characters that agree with the text already
produced for an earlier request, the running production is reused
instead of starting a new one:
- Reuses the generation when the user types ahead
- Skips characters the user has already typed
- Cuts single-line completions at the first newline
"""

import logging
from typing import AsyncIterator, Callable, Optional

from victor_autocomplete.cancellation import AbortController
from victor_autocomplete.listenable import ListenableGenerator
from victor_autocomplete.protocol import GeneratorFactory, ReuseStatistics

logger = logging.getLogger(__name__)


class GenerationReuseManager:
    """Holds at most one pending generation and fans it out to requests."""

    def __init__(self, on_error: Optional[Callable[[BaseException], None]] = None):
        """Initialize the manager.

        Args:
            on_error: Called with errors raised by the underlying production
        """
        self._on_error = on_error or self._log_error
        self._current_generator: Optional[ListenableGenerator[str]] = None
        self._pending_prefix: Optional[str] = None
        self._pending_completion = ""
        self._last_request_reused = False

    @staticmethod
    def _log_error(error: BaseException) -> None:
        logger.warning(f"Completion generation failed: {error}")

    @property
    def current_generator(self) -> Optional[ListenableGenerator[str]]:
        """The active generation, if any."""
        return self._current_generator

    @property
    def last_request_reused(self) -> bool:
        """Whether the most recent request reused the running generation."""
        return self._last_request_reused

    def _create_listenable_generator(
        self,
        abort_controller: AbortController,
        source: AsyncIterator[str],
        prefix: str,
    ) -> None:
        if self._current_generator is not None:
            self._current_generator.cancel()

        listenable: ListenableGenerator[str] = ListenableGenerator(
            source, self._on_error, abort_controller
        )
        self._pending_prefix = prefix
        self._pending_completion = ""
        self._current_generator = listenable

        def record(chunk: Optional[str]) -> None:
            if chunk is not None and self._current_generator is listenable:
                self._pending_completion += chunk

        listenable.listen(record)

    def _should_reuse(self, prefix: str) -> bool:
        """Check whether the running generation can serve this prefix.

        Requires a generation whose prefix plus produced text starts with
        the new prefix, and a prefix that has not shrunk (no backspace).
        """
        return (
            self._current_generator is not None
            and self._pending_prefix is not None
            and (self._pending_prefix + self._pending_completion).startswith(prefix)
            and len(self._pending_prefix) <= len(prefix)
        )

    async def get_generator(
        self,
        prefix: str,
        factory: GeneratorFactory,
        multiline: bool,
    ) -> AsyncIterator[str]:
        """Get completion chunks for a prefix, reusing the running generation if possible.

        Args:
            prefix: Current prefix (text before cursor)
            factory: Creates a new production from an abort signal
            multiline: Whether this is a multiline completion

        Yields:
            The not-yet-typed remainder of the completion
        """
        if self._should_reuse(prefix):
            self._last_request_reused = True
            logger.debug(
                f"Reusing generation started at prefix length {len(self._pending_prefix or '')}"
            )
        else:
            self._last_request_reused = False
            abort_controller = AbortController()
            self._create_listenable_generator(
                abort_controller, factory(abort_controller.signal), prefix
            )
            logger.debug(f"Started new generation at prefix length {len(prefix)}")

        generator = self._current_generator
        if generator is None:
            return

        typed_since_last_generator = prefix[len(self._pending_prefix or "") :]

        async for chunk in generator.tee():
            if not chunk:
                continue

            # Skip characters the user has already typed
            while chunk and typed_since_last_generator:
                if chunk[0] != typed_since_last_generator[0]:
                    break
                typed_since_last_generator = typed_since_last_generator[1:]
                chunk = chunk[1:]

            newline_index = chunk.find("\n")
            if newline_index >= 0 and not multiline:
                if newline_index > 0:
                    yield chunk[:newline_index]
                break
            elif chunk:
                yield chunk

    def cancel(self) -> None:
        """Cancel the current generation and clear state. Idempotent."""
        if self._current_generator is not None:
            self._current_generator.cancel()
            logger.debug("Cancelled pending generation")
        self._current_generator = None
        self._pending_prefix = None
        self._pending_completion = ""

    def get_statistics(self) -> ReuseStatistics:
        return ReuseStatistics(
            has_generator=self._current_generator is not None,
            pending_prefix=self._pending_prefix,
            pending_completion_length=len(self._pending_completion),
            is_generator_ended=(
                self._current_generator.is_ended()
                if self._current_generator is not None
                else None
            ),
        )

    def dispose(self) -> None:
        self.cancel()

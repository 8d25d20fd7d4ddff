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

"""Bracket balancing for streamed completions.

Ensures a completion only closes brackets it is entitled to close:
- Brackets the completion itself opened
- Brackets left open by the last accepted completion in the same file (multiline)
- Brackets opened earlier on the current line (single-line)
- Closing brackets immediately following the cursor

A stream is cut at the first unmatched closing bracket.
"""

import logging
from typing import AsyncIterator, List, Optional

from victor_autocomplete.streamer import FullStop, StreamTransform

logger = logging.getLogger(__name__)


BRACKETS = {
    "(": ")",
    "{": "}",
    "[": "]",
}

BRACKETS_REVERSE = {close: open_ for open_, close in BRACKETS.items()}


def _scan(text: str, stack: List[str]) -> bool:
    """Push openers and pop matched closers onto stack.

    Returns False at the first unmatched closing bracket. A mismatched
    closer still consumes the opener it was compared against.
    """
    for char in text:
        if char in BRACKETS:
            stack.append(char)
        elif char in BRACKETS_REVERSE:
            if not stack or BRACKETS[stack.pop()] != char:
                return False
    return True


def _first_substantive_index(chunk: str) -> int:
    """Index of the first character that is neither whitespace nor a closer, or -1."""
    for index, char in enumerate(chunk):
        if not char.isspace() and char not in BRACKETS_REVERSE:
            return index
    return -1


class BracketBalanceFilter:
    """Tracks bracket context and truncates streams on unmatched closers."""

    def __init__(self) -> None:
        self._opening_brackets_from_last_completion: List[str] = []
        self._last_completion_file: Optional[str] = None
        self._truncations = 0

    @property
    def truncations(self) -> int:
        """Number of streams cut at an unmatched closing bracket."""
        return self._truncations

    def handle_accepted_completion(self, completion: str, file_id: str) -> None:
        """Record brackets left open by an accepted completion.

        Scanning stops at the first unmatched closing bracket; whatever is
        open at that point seeds the next multiline request in the file.

        Args:
            completion: The accepted completion text
            file_id: File where the completion was accepted
        """
        stack: List[str] = []
        _scan(completion, stack)
        self._opening_brackets_from_last_completion = stack
        self._last_completion_file = file_id

    def _seed_stack(self, prefix: str, suffix: str, file_id: str, multiline: bool) -> List[str]:
        stack: List[str] = []

        if multiline:
            if self._last_completion_file == file_id:
                stack = list(self._opening_brackets_from_last_completion)
            else:
                self._last_completion_file = None
        else:
            # Brackets opened on the current line but not closed on it
            current_line = prefix.split("\n")[-1] + suffix.split("\n")[0]
            _scan(current_line, stack)

        # Closers right after the cursor may be overwritten by the completion
        for char in suffix:
            if char == " ":
                continue
            open_bracket = BRACKETS_REVERSE.get(char)
            if open_bracket is None:
                break
            stack.insert(0, open_bracket)

        return stack

    async def stop_on_unmatched_closing_bracket(
        self,
        stream: AsyncIterator[str],
        prefix: str,
        suffix: str,
        file_id: str,
        multiline: bool,
    ) -> AsyncIterator[str]:
        """Filter a completion stream, ending it at an unmatched closing bracket.

        Args:
            stream: Completion chunks
            prefix: Text before cursor
            suffix: Text after cursor
            file_id: File identity
            multiline: Whether this is a multiline completion

        Yields:
            Chunks, the last one possibly truncated
        """
        stack = self._seed_stack(prefix, suffix, file_id, multiline)
        seen_substantive = False

        async for chunk in stream:
            # Closers and whitespace before any real text close existing context
            if not seen_substantive:
                index = _first_substantive_index(chunk)
                if index == -1:
                    yield chunk
                    continue
                if index > 0:
                    yield chunk[:index]
                chunk = chunk[index:]
                seen_substantive = True

            for index, char in enumerate(chunk):
                if char in BRACKETS:
                    stack.append(char)
                elif char in BRACKETS_REVERSE:
                    if not stack or BRACKETS[stack.pop()] != char:
                        self._truncations += 1
                        logger.debug(f"Truncating completion at unmatched {char!r}")
                        if index > 0:
                            yield chunk[:index]
                        return

            yield chunk

    def as_transform(self, file_id: str) -> StreamTransform:
        """Bind this filter to a file as a streamer transform."""

        def transform(
            stream: AsyncIterator[str],
            prefix: str,
            suffix: str,
            multiline: bool,
            stop_sequences: List[str],
            full_stop: FullStop,
        ) -> AsyncIterator[str]:
            return self.stop_on_unmatched_closing_bracket(
                stream, prefix, suffix, file_id, multiline
            )

        return transform

    def are_brackets_balanced(self, text: str) -> bool:
        stack: List[str] = []
        return _scan(text, stack) and not stack

    def get_unclosed_brackets(self, text: str) -> List[str]:
        """Get opening brackets left unclosed in text.

        Unmatched closing brackets are ignored.
        """
        stack: List[str] = []
        for char in text:
            if char in BRACKETS:
                stack.append(char)
            elif char in BRACKETS_REVERSE and stack and BRACKETS[stack[-1]] == char:
                stack.pop()
        return stack

    def get_closing_brackets_needed(self, text: str) -> str:
        """Get the closing brackets that would balance text, innermost first."""
        return "".join(BRACKETS[bracket] for bracket in reversed(self.get_unclosed_brackets(text)))

    def clear(self) -> None:
        """Forget bracket context from previous completions."""
        self._opening_brackets_from_last_completion = []
        self._last_completion_file = None

    def dispose(self) -> None:
        self.clear()

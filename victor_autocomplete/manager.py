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

"""Autocomplete manager for orchestrating the streaming pipeline.

Provides a high-level API for IDE integration following the
Facade pattern.
"""

import dataclasses
import logging
import time
from typing import AsyncIterator, Callable, List, Optional

from victor_autocomplete.brackets import BracketBalanceFilter
from victor_autocomplete.cancellation import AbortSignal, CancellationToken
from victor_autocomplete.config import AutocompleteSettings, get_settings
from victor_autocomplete.debouncer import AutocompleteDebouncer
from victor_autocomplete.outcome_log import OutcomeLifecycleLog
from victor_autocomplete.protocol import (
    AutocompleteOutcome,
    AutocompleteStatistics,
    AutocompleteSuggestion,
    CompletionRequest,
    StreamSource,
)
from victor_autocomplete.streamer import CompletionOptions, CompletionStreamer

logger = logging.getLogger(__name__)

SuggestionListener = Callable[[AutocompleteSuggestion], None]


class AutocompleteManager:
    """High-level manager for inline completion streaming.

    Coordinates:
    - Debouncing of rapid requests
    - Generation reuse while the user types ahead
    - Bracket balancing with context from accepted completions
    - Outcome tracking and statistics
    """

    def __init__(
        self,
        source: Optional[StreamSource] = None,
        settings: Optional[AutocompleteSettings] = None,
    ):
        """Initialize the autocomplete manager.

        Args:
            source: Completion stream source (can be set later)
            settings: Pipeline settings (uses global if not provided)
        """
        self._settings = settings or get_settings()
        self._source = source

        self._streamer = CompletionStreamer(on_error=self._on_stream_error)
        if self._settings.stop_sequences:
            self._streamer.add_transform(
                CompletionStreamer.stop_on_sequence(self._settings.stop_sequences)
            )
        if self._settings.trim_whitespace:
            self._streamer.add_transform(CompletionStreamer.trim_whitespace())

        self._bracket_filter = BracketBalanceFilter()
        self._outcome_log = OutcomeLifecycleLog(
            rejection_timeout_ms=self._settings.rejection_timeout_ms,
            rapid_change_threshold_ms=self._settings.rapid_change_threshold_ms,
        )
        self._debouncer = AutocompleteDebouncer()
        self._statistics = AutocompleteStatistics()
        self._completed_requests = 0
        self._listeners: List[SuggestionListener] = []

    @property
    def settings(self) -> AutocompleteSettings:
        return self._settings

    @property
    def streamer(self) -> CompletionStreamer:
        return self._streamer

    @property
    def bracket_filter(self) -> BracketBalanceFilter:
        return self._bracket_filter

    @property
    def outcome_log(self) -> OutcomeLifecycleLog:
        return self._outcome_log

    def set_source(self, source: StreamSource) -> None:
        """Set the completion stream source."""
        self._source = source

    def on_complete(self, listener: SuggestionListener) -> Callable[[], None]:
        """Subscribe to finished completion streams.

        Returns:
            A callable that removes the subscription
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    @staticmethod
    def _on_stream_error(error: BaseException) -> None:
        logger.warning(f"Completion source failed: {error}")

    async def get_completions(
        self,
        request: CompletionRequest,
        token: Optional[CancellationToken] = None,
    ) -> AsyncIterator[str]:
        """Stream completion chunks for a request.

        Yields nothing if the request is superseded during debouncing.

        Args:
            request: The completion request
            token: Host cancellation token

        Yields:
            Completion text chunks
        """
        source = self._source
        if source is None:
            raise RuntimeError("No completion stream source configured")

        start_time = time.time()
        self._statistics.total_requests += 1

        if await self._debouncer.delay_and_should_debounce(self._settings.debounce_delay_ms):
            self._statistics.debounced_requests += 1
            return

        def completion_generator(signal: AbortSignal) -> AsyncIterator[str]:
            return source(request.prefix, request.suffix, request.file_id, signal)

        options = CompletionOptions(
            max_processing_time=self._settings.max_processing_time_ms,
            stop=list(self._settings.stop_sequences),
            temperature=self._settings.temperature,
            max_tokens=self._settings.max_tokens,
        )

        full_completion = ""
        async for chunk in self._streamer.stream_completion_with_filters(
            token,
            completion_generator,
            request.prefix,
            request.suffix,
            request.multiline,
            options,
            request_transforms=[self._bracket_filter.as_transform(request.file_id)],
        ):
            full_completion += chunk
            yield chunk

        self._update_average_response_time((time.time() - start_time) * 1000)

        reused = self._streamer.reuse_manager.last_request_reused
        if reused:
            self._statistics.reused_generators += 1

        self._notify(
            AutocompleteSuggestion(
                text=full_completion,
                confidence=0.8,
                source="reuse" if reused else "llm",
            )
        )

    def _notify(self, suggestion: AutocompleteSuggestion) -> None:
        for listener in list(self._listeners):
            try:
                listener(suggestion)
            except Exception as e:
                logger.warning(f"Completion listener failed: {e}")

    def _update_average_response_time(self, elapsed_ms: float) -> None:
        self._completed_requests += 1
        completed = self._completed_requests
        current = self._statistics.average_response_time
        self._statistics.average_response_time = (
            current * (completed - 1) + elapsed_ms
        ) / completed

    def mark_displayed(
        self,
        completion_id: str,
        request: CompletionRequest,
        completion: str,
        model_name: Optional[str] = None,
        generation_time_ms: float = 0.0,
        cache_hit: Optional[bool] = None,
    ) -> AutocompleteOutcome:
        """Record that a completion is being shown.

        Args:
            completion_id: Completion ID
            request: The request the completion answers
            completion: Displayed text
            model_name: Model that produced it
            generation_time_ms: Time taken to produce it
            cache_hit: Whether it came from a reused generation (defaults to
                whether the last request reused one)

        Returns:
            The outcome record handed to the outcome log
        """
        if cache_hit is None:
            cache_hit = self._streamer.reuse_manager.last_request_reused

        outcome = AutocompleteOutcome(
            completion_id=completion_id,
            completion=completion,
            prefix=request.prefix,
            suffix=request.suffix,
            file_id=request.file_id,
            model_name=model_name,
            cache_hit=cache_hit,
            time=generation_time_ms,
            num_lines=len(completion.split("\n")),
        )
        self._outcome_log.mark_displayed(completion_id, outcome)
        return outcome

    def accept_completion(
        self,
        completion_id: str,
        file_id: str,
        completion: str,
    ) -> Optional[AutocompleteOutcome]:
        """Accept a completion and carry its open brackets forward.

        Returns:
            The resolved outcome, or None if the ID was unknown
        """
        self._bracket_filter.handle_accepted_completion(completion, file_id)
        return self._outcome_log.accept(completion_id)

    def get_statistics(self) -> AutocompleteStatistics:
        return dataclasses.replace(
            self._statistics,
            bracket_truncations=self._bracket_filter.truncations,
        )

    def clear_caches(self) -> None:
        """Drop bracket context and any pending generation."""
        self._bracket_filter.clear()
        self._streamer.cancel()

    def dispose(self) -> None:
        """Release every generation, timer and abort controller."""
        self._debouncer.cancel_all()
        self._streamer.dispose()
        self._outcome_log.dispose()
        self._bracket_filter.dispose()


# Global manager singleton
_autocomplete_manager: Optional[AutocompleteManager] = None


def get_autocomplete_manager() -> AutocompleteManager:
    """Get the global autocomplete manager.

    Returns:
        The singleton manager instance
    """
    global _autocomplete_manager
    if _autocomplete_manager is None:
        _autocomplete_manager = AutocompleteManager()
    return _autocomplete_manager


def reset_autocomplete_manager() -> None:
    """Reset the global autocomplete manager.

    Useful for testing.
    """
    global _autocomplete_manager
    if _autocomplete_manager is not None:
        _autocomplete_manager.dispose()
    _autocomplete_manager = None

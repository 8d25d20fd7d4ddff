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

"""Outcome tracking for displayed completions.

Users never say "no" to a suggestion, so rejection is inferred:
- A displayed completion not accepted within the rejection timeout is rejected
- A new display that continues the previous one supersedes it silently
- A display replaced within the rapid-change window is dropped silently

Also serves as the registry of per-request abort controllers.
"""

import asyncio
import logging
import time
from typing import Callable, Dict, List, Optional, Tuple

from victor_autocomplete.cancellation import AbortController
from victor_autocomplete.protocol import AutocompleteOutcome, OutcomeStatistics

logger = logging.getLogger(__name__)

REJECTION_TIMEOUT_MS = 10_000
RAPID_CHANGE_THRESHOLD_MS = 500

OutcomeListener = Callable[[AutocompleteOutcome], None]


def _first_line(text: str) -> str:
    return text.split("\n")[0]


class OutcomeLifecycleLog:
    """Classifies displayed completions as accepted, rejected or superseded."""

    def __init__(
        self,
        rejection_timeout_ms: float = REJECTION_TIMEOUT_MS,
        rapid_change_threshold_ms: float = RAPID_CHANGE_THRESHOLD_MS,
    ):
        """Initialize the log.

        Args:
            rejection_timeout_ms: Time after which an unaccepted display counts as rejected
            rapid_change_threshold_ms: Displays replaced faster than this are not counted
        """
        self._rejection_timeout_ms = rejection_timeout_ms
        self._rapid_change_threshold_ms = rapid_change_threshold_ms

        self._abort_controllers: Dict[str, AbortController] = {}
        self._rejection_timers: Dict[str, asyncio.TimerHandle] = {}
        self._outcomes: Dict[str, AutocompleteOutcome] = {}
        self._last_displayed: Optional[Tuple[str, float]] = None  # (id, monotonic ms)
        self._listeners: List[OutcomeListener] = []

        self._total_completions = 0
        self._accepted_completions = 0
        self._rejected_completions = 0
        self._total_time = 0.0
        self._cache_hits = 0

    @property
    def pending_ids(self) -> List[str]:
        """IDs of displayed completions awaiting a verdict."""
        return list(self._outcomes)

    def on_outcome_logged(self, listener: OutcomeListener) -> Callable[[], None]:
        """Subscribe to logged outcomes.

        Returns:
            A callable that removes the subscription
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # Abort controller registry

    def create_abort_controller(self, completion_id: str) -> AbortController:
        controller = AbortController()
        self._abort_controllers[completion_id] = controller
        return controller

    def delete_abort_controller(self, completion_id: str) -> None:
        self._abort_controllers.pop(completion_id, None)

    def cancel(self) -> None:
        """Abort every registered request and clear the registry."""
        controllers = list(self._abort_controllers.values())
        self._abort_controllers.clear()
        for controller in controllers:
            controller.abort()

    # Outcome lifecycle

    def mark_displayed(self, completion_id: str, outcome: AutocompleteOutcome) -> None:
        """Mark a completion as shown and start its rejection timeout.

        Must be called from a running event loop.

        Args:
            completion_id: Completion ID
            outcome: Outcome data for the displayed completion
        """
        loop = asyncio.get_running_loop()

        # Re-displaying an id restarts its timer
        existing = self._rejection_timers.pop(completion_id, None)
        if existing is not None:
            existing.cancel()

        self._outcomes[completion_id] = outcome
        self._rejection_timers[completion_id] = loop.call_later(
            self._rejection_timeout_ms / 1000,
            self._on_rejection_timeout,
            completion_id,
        )

        now = time.monotonic() * 1000
        previous = self._last_displayed
        if (
            previous is not None
            and previous[0] != completion_id
            and previous[0] in self._rejection_timers
        ):
            previous_id, displayed_at = previous
            previous_outcome = self._outcomes.get(previous_id)
            if previous_outcome is not None:
                c1 = _first_line(previous_outcome.completion)
                c2 = _first_line(outcome.completion)
                if c1.endswith(c2) or c2.endswith(c1) or c1.startswith(c2) or c2.startswith(c1):
                    logger.debug(f"Completion {completion_id} continues {previous_id}")
                    self.cancel_rejection_timeout(previous_id)
                elif now - displayed_at < self._rapid_change_threshold_ms:
                    logger.debug(f"Completion {previous_id} replaced rapidly")
                    self.cancel_rejection_timeout(previous_id)

        self._last_displayed = (completion_id, now)

    def _on_rejection_timeout(self, completion_id: str) -> None:
        self._rejection_timers.pop(completion_id, None)
        outcome = self._outcomes.pop(completion_id, None)
        if outcome is None:
            return
        outcome.accepted = False
        self._log_outcome(outcome)

    def accept(self, completion_id: str) -> Optional[AutocompleteOutcome]:
        """Mark a completion as accepted.

        Returns:
            The resolved outcome, or None for unknown or already resolved IDs
        """
        timer = self._rejection_timers.pop(completion_id, None)
        if timer is not None:
            timer.cancel()

        outcome = self._outcomes.pop(completion_id, None)
        if outcome is None:
            return None

        outcome.accepted = True
        self._log_outcome(outcome)
        return outcome

    def cancel_rejection_timeout(self, completion_id: str) -> None:
        """Drop a displayed completion without counting it."""
        timer = self._rejection_timers.pop(completion_id, None)
        if timer is not None:
            timer.cancel()
        self._outcomes.pop(completion_id, None)

    def _log_outcome(self, outcome: AutocompleteOutcome) -> None:
        self._total_completions += 1
        self._total_time += outcome.time
        if outcome.accepted:
            self._accepted_completions += 1
        else:
            self._rejected_completions += 1
        if outcome.cache_hit:
            self._cache_hits += 1

        logger.info(
            f"[AutocompleteLog] id={outcome.completion_id} accepted={outcome.accepted} "
            f"cache_hit={outcome.cache_hit} time={outcome.time:.1f}ms "
            f"num_lines={outcome.num_lines} model={outcome.model_name}"
        )

        for listener in list(self._listeners):
            try:
                listener(outcome)
            except Exception as e:
                logger.warning(f"Outcome listener failed: {e}")

    # Statistics

    def get_statistics(self) -> OutcomeStatistics:
        total = self._total_completions
        return OutcomeStatistics(
            total_completions=total,
            accepted_completions=self._accepted_completions,
            rejected_completions=self._rejected_completions,
            acceptance_rate=(self._accepted_completions / total * 100) if total else 0.0,
            average_time=(self._total_time / total) if total else 0.0,
            cache_hit_rate=(self._cache_hits / total * 100) if total else 0.0,
        )

    def reset_statistics(self) -> None:
        self._total_completions = 0
        self._accepted_completions = 0
        self._rejected_completions = 0
        self._total_time = 0.0
        self._cache_hits = 0

    def dispose(self) -> None:
        """Abort requests and drop all timers and pending outcomes."""
        self.cancel()
        for timer in self._rejection_timers.values():
            timer.cancel()
        self._rejection_timers.clear()
        self._outcomes.clear()
        self._last_displayed = None

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

"""Debouncing of keystroke-triggered completion requests."""

import asyncio
import itertools
import logging
import time
from typing import Optional

logger = logging.getLogger(__name__)


class AutocompleteDebouncer:
    """Lets only the most recent of a burst of requests proceed."""

    def __init__(self) -> None:
        self._current_request_id: Optional[str] = None
        self._counter = itertools.count()

    def _generate_request_id(self) -> str:
        return f"req-{int(time.time() * 1000)}-{next(self._counter)}"

    async def delay_and_should_debounce(self, debounce_delay_ms: float) -> bool:
        """Wait for the debounce delay.

        Args:
            debounce_delay_ms: Delay in milliseconds

        Returns:
            True if a newer request arrived meanwhile (drop this one),
            False if this request should proceed
        """
        request_id = self._generate_request_id()
        self._current_request_id = request_id

        await asyncio.sleep(debounce_delay_ms / 1000)

        should_debounce = self._current_request_id != request_id
        if should_debounce:
            logger.debug(f"Debounced request {request_id}")
        else:
            self._current_request_id = None
        return should_debounce

    def cancel_all(self) -> None:
        """Make every request still waiting report as debounced."""
        self._current_request_id = None

    def get_current_request_id(self) -> Optional[str]:
        return self._current_request_id

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

"""Autocomplete data types and protocol definitions.

Defines the request, outcome and statistics structures shared by
the streaming pipeline, and the contract of a completion stream source.
"""

import time
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Literal, Optional, Protocol, runtime_checkable

from pydantic import BaseModel, Field

from victor_autocomplete.cancellation import AbortSignal


@dataclass
class CompletionRequest:
    """A single inline completion request computed by the host."""

    prefix: str  # Text before the cursor
    suffix: str  # Text after the cursor
    file_id: str  # Stable identity of the edited file (URI or path)
    multiline: bool = False
    language: Optional[str] = None


class AutocompleteOutcome(BaseModel):
    """Telemetry record for a displayed completion.

    Created when a completion is shown and resolved exactly once
    (accepted, rejected by timeout, or silently superseded).
    """

    completion_id: str = Field(description="Unique completion ID")
    accepted: bool = Field(default=False, description="Whether the completion was accepted")
    completion: str = Field(description="Displayed completion text")
    prefix: str = Field(default="", description="Text before cursor")
    suffix: str = Field(default="", description="Text after cursor")
    file_id: str = Field(default="", description="File identity")
    model_name: Optional[str] = Field(default=None, description="Model used")
    cache_hit: bool = Field(default=False, description="Whether a reused generation served it")
    time: float = Field(default=0.0, description="Generation time in milliseconds")
    num_lines: int = Field(default=1, description="Number of lines in completion")
    timestamp: float = Field(
        default_factory=lambda: time.time() * 1000, description="Display time (epoch ms)"
    )


@dataclass
class OutcomeStatistics:
    """Aggregated outcome counters."""

    total_completions: int = 0
    accepted_completions: int = 0
    rejected_completions: int = 0
    acceptance_rate: float = 0.0  # Percent
    average_time: float = 0.0  # Milliseconds
    cache_hit_rate: float = 0.0  # Percent


@dataclass
class ReuseStatistics:
    """Diagnostic snapshot of the generation reuse manager."""

    has_generator: bool = False
    pending_prefix: Optional[str] = None
    pending_completion_length: int = 0
    is_generator_ended: Optional[bool] = None


@dataclass
class AutocompleteStatistics:
    """Request-level statistics of the autocomplete manager."""

    total_requests: int = 0
    debounced_requests: int = 0
    reused_generators: int = 0
    average_response_time: float = 0.0
    bracket_truncations: int = 0


@dataclass
class AutocompleteSuggestion:
    """Summary of a finished completion stream."""

    text: str
    confidence: float = 0.8
    source: Literal["llm", "reuse"] = "llm"


# Factory handed to the reuse manager: receives the abort signal of the
# generation it creates and returns the underlying chunk production.
GeneratorFactory = Callable[[AbortSignal], AsyncIterator[str]]


@runtime_checkable
class StreamSource(Protocol):
    """Protocol for completion stream sources.

    A stream source produces completion text as a lazy sequence of
    chunks. The sequence may end normally, raise, or stop early once
    the signal is aborted.
    """

    def __call__(
        self,
        prefix: str,
        suffix: str,
        file_id: str,
        signal: AbortSignal,
    ) -> AsyncIterator[str]:
        ...

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

"""Streaming pipeline for inline (ghost text) code completion.

Turns a token-by-token completion stream into a suggestion that is safe
to show while the user types:
- Reuses a running generation while the user types ahead
- Cuts the stream at unmatched closing brackets
- Infers accepted/rejected outcomes and keeps statistics

Example usage:
    from victor_autocomplete import (
        AutocompleteManager,
        CompletionRequest,
        FimStreamSource,
    )

    manager = AutocompleteManager(source=FimStreamSource(provider, model="qwen2.5-coder"))
    request = CompletionRequest(
        prefix="def add(a, b):\\n    return ",
        suffix="\\n",
        file_id="file:///src/math.py",
    )

    text = ""
    async for chunk in manager.get_completions(request):
        text += chunk

    manager.mark_displayed("c-1", request, text)
    manager.accept_completion("c-1", request.file_id, text)
"""

from victor_autocomplete.brackets import BRACKETS, BRACKETS_REVERSE, BracketBalanceFilter
from victor_autocomplete.cancellation import AbortController, AbortSignal, CancellationToken
from victor_autocomplete.config import (
    AutocompleteSettings,
    SettingsError,
    get_settings,
    load_settings,
    reset_settings,
    set_settings,
)
from victor_autocomplete.debouncer import AutocompleteDebouncer
from victor_autocomplete.listenable import ListenableGenerator
from victor_autocomplete.manager import (
    AutocompleteManager,
    get_autocomplete_manager,
    reset_autocomplete_manager,
)
from victor_autocomplete.outcome_log import OutcomeLifecycleLog
from victor_autocomplete.protocol import (
    AutocompleteOutcome,
    AutocompleteStatistics,
    AutocompleteSuggestion,
    CompletionRequest,
    GeneratorFactory,
    OutcomeStatistics,
    ReuseStatistics,
    StreamSource,
)
from victor_autocomplete.reuse import GenerationReuseManager
from victor_autocomplete.sources import FIM_TEMPLATES, FimStreamSource
from victor_autocomplete.streamer import CompletionOptions, CompletionStreamer, StreamTransform

__all__ = [
    # Protocol types
    "AutocompleteOutcome",
    "AutocompleteStatistics",
    "AutocompleteSuggestion",
    "CompletionRequest",
    "GeneratorFactory",
    "OutcomeStatistics",
    "ReuseStatistics",
    "StreamSource",
    # Cancellation
    "AbortController",
    "AbortSignal",
    "CancellationToken",
    # Pipeline components
    "ListenableGenerator",
    "GenerationReuseManager",
    "BracketBalanceFilter",
    "BRACKETS",
    "BRACKETS_REVERSE",
    "OutcomeLifecycleLog",
    "AutocompleteDebouncer",
    "CompletionOptions",
    "CompletionStreamer",
    "StreamTransform",
    # Sources
    "FIM_TEMPLATES",
    "FimStreamSource",
    # Settings
    "AutocompleteSettings",
    "SettingsError",
    "get_settings",
    "load_settings",
    "reset_settings",
    "set_settings",
    # Manager
    "AutocompleteManager",
    "get_autocomplete_manager",
    "reset_autocomplete_manager",
]

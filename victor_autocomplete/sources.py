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

"""LLM-backed completion stream source.

Streams fill-in-the-middle (FIM) completions from any provider that
exposes ``stream_chat(messages=..., max_tokens=..., temperature=..., stop=...)``
yielding objects with a ``content`` attribute.
"""

import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Union

from victor_autocomplete.cancellation import AbortSignal
from victor_autocomplete.config import AutocompleteSettings
from victor_autocomplete.protocol import CompletionRequest, GeneratorFactory

logger = logging.getLogger(__name__)


# FIM (Fill-In-the-Middle) prompt templates per model family
FIM_TEMPLATES: Dict[str, Dict[str, str]] = {
    "default": {
        "prefix": "<PRE>",
        "suffix": "<SUF>",
        "middle": "<MID>",
        "format": "{prefix}{pre}{suffix}{suf}{middle}",
    },
    "codellama": {
        "prefix": "<PRE>",
        "suffix": " <SUF>",
        "middle": " <MID>",
        "format": "{prefix} {pre}{suffix}{suf}{middle}",
    },
    "starcoder": {
        "prefix": "<fim_prefix>",
        "suffix": "<fim_suffix>",
        "middle": "<fim_middle>",
        "format": "{prefix}{pre}{suffix}{suf}{middle}",
    },
    "deepseek": {
        "prefix": "<｜fim▁begin｜>",
        "suffix": "<｜fim▁hole｜>",
        "middle": "<｜fim▁end｜>",
        "format": "{prefix}{pre}{suffix}{suf}{middle}",
    },
    "qwen": {
        "prefix": "<|fim_prefix|>",
        "suffix": "<|fim_suffix|>",
        "middle": "<|fim_middle|>",
        "format": "{prefix}{pre}{suffix}{suf}{middle}",
    },
}

DEFAULT_STOP_SEQUENCES = ["```", "<|endoftext|>"]


class FimStreamSource:
    """Stream source producing FIM completions from an LLM provider."""

    def __init__(
        self,
        provider: Any,
        model: Optional[str] = None,
        fim_template: Union[str, Dict[str, str]] = "default",
        max_context_lines: int = 100,
        max_tokens: int = 256,
        temperature: float = 0.0,
        stop: Optional[List[str]] = None,
    ):
        """Initialize the source.

        Args:
            provider: LLM provider with a ``stream_chat`` coroutine generator
            model: Model name, used to pick the FIM template
            fim_template: FIM template name or custom template dict
            max_context_lines: Maximum prefix/suffix lines in the prompt
            max_tokens: Maximum tokens to generate
            temperature: Sampling temperature
            stop: Stop sequences passed to the provider
        """
        self._provider = provider
        self._max_context_lines = max_context_lines
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._stop = stop or DEFAULT_STOP_SEQUENCES

        if isinstance(fim_template, dict):
            self._fim_template = fim_template
        else:
            self._fim_template = FIM_TEMPLATES.get(fim_template, FIM_TEMPLATES["default"])

        self._model: Optional[str] = None
        if model:
            self.set_model(model)

    @classmethod
    def from_settings(
        cls,
        provider: Any,
        settings: AutocompleteSettings,
        model: Optional[str] = None,
    ) -> "FimStreamSource":
        """Create a source configured from autocomplete settings."""
        return cls(
            provider,
            model=model,
            fim_template=settings.fim_template,
            max_context_lines=settings.max_context_lines,
            max_tokens=settings.max_tokens,
            temperature=settings.temperature,
            stop=list(settings.stop_sequences) or None,
        )

    @property
    def model(self) -> Optional[str]:
        return self._model

    async def __call__(
        self,
        prefix: str,
        suffix: str,
        file_id: str,
        signal: AbortSignal,
    ) -> AsyncIterator[str]:
        """Stream completion chunks until the provider ends or the signal aborts."""
        if signal.aborted:
            return

        prompt = self.build_fim_prompt(prefix, suffix)
        logger.debug(f"Streaming FIM completion for {file_id} ({len(prompt)} prompt chars)")

        async for chunk in self._provider.stream_chat(
            messages=[{"role": "user", "content": prompt}],
            max_tokens=self._max_tokens,
            temperature=self._temperature,
            stop=self._stop,
        ):
            if signal.aborted:
                logger.debug(f"FIM completion for {file_id} aborted")
                return
            content = self._strip_fim_tokens(getattr(chunk, "content", None) or "")
            if content:
                yield content

    def bind(self, request: CompletionRequest) -> GeneratorFactory:
        """Bind this source to a request, producing a generation factory."""

        def factory(signal: AbortSignal) -> AsyncIterator[str]:
            return self(request.prefix, request.suffix, request.file_id, signal)

        return factory

    def build_fim_prompt(self, prefix: str, suffix: str) -> str:
        """Build a Fill-In-the-Middle prompt.

        Keeps the last lines of the prefix and the first lines of the suffix.
        """
        max_lines = self._max_context_lines

        prefix_lines = prefix.split("\n")
        if len(prefix_lines) > max_lines:
            prefix = "\n".join(prefix_lines[-max_lines:])

        suffix_lines = suffix.split("\n")
        if len(suffix_lines) > max_lines:
            suffix = "\n".join(suffix_lines[:max_lines])

        template = self._fim_template
        return template["format"].format(
            prefix=template["prefix"],
            pre=prefix,
            suffix=template["suffix"],
            suf=suffix,
            middle=template["middle"],
        )

    @staticmethod
    def _strip_fim_tokens(text: str) -> str:
        for template in FIM_TEMPLATES.values():
            for key in ("prefix", "suffix", "middle"):
                text = text.replace(template[key].strip(), "")
        return text

    def set_model(self, model: str) -> None:
        """Set the model and pick the matching FIM template."""
        self._model = model

        model_lower = model.lower()
        for family in ("codellama", "starcoder", "deepseek", "qwen"):
            if family in model_lower:
                self._fim_template = FIM_TEMPLATES[family]
                break

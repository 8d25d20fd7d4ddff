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

"""Autocomplete settings.

Timing constants and behaviour switches for the streaming pipeline,
optionally loaded from a YAML file:

```yaml
autocomplete:
  rejection_timeout_ms: 10000
  rapid_change_threshold_ms: 500
  debounce_delay_ms: 150
  stop_sequences: ["```"]
  fim_template: qwen
```
"""

import logging
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)


class SettingsError(ValueError):
    """Raised when autocomplete settings cannot be loaded."""


class AutocompleteSettings(BaseModel):
    """Configuration for the autocomplete pipeline."""

    rejection_timeout_ms: float = Field(
        default=10_000, ge=0, description="Unaccepted displays count as rejected after this"
    )
    rapid_change_threshold_ms: float = Field(
        default=500, ge=0, description="Displays replaced faster than this are not counted"
    )
    debounce_delay_ms: float = Field(default=150, ge=0, description="Keystroke debounce delay")
    max_processing_time_ms: Optional[float] = Field(
        default=30_000, ge=0, description="Upper bound on a single generation"
    )
    stop_sequences: List[str] = Field(default_factory=list, description="Stop sequences")
    trim_whitespace: bool = Field(default=False, description="Trim completion whitespace")
    fim_template: str = Field(default="default", description="Fill-in-the-middle template name")
    max_context_lines: int = Field(default=100, ge=1, description="Context lines sent to the model")
    max_tokens: int = Field(default=256, ge=1, description="Maximum tokens to generate")
    temperature: float = Field(default=0.0, ge=0, description="Sampling temperature")


def load_settings(path: Path) -> AutocompleteSettings:
    """Load settings from a YAML file.

    Accepts either a top-level ``autocomplete`` mapping or a bare mapping.

    Args:
        path: Path to YAML file

    Returns:
        Parsed settings

    Raises:
        SettingsError: If the file is missing, malformed or invalid
    """
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise SettingsError(f"Failed to load autocomplete settings from {path}: {e}") from e

    if not isinstance(data, dict):
        raise SettingsError(f"Autocomplete settings in {path} must be a mapping")

    section = data.get("autocomplete", data)
    if not isinstance(section, dict):
        raise SettingsError(f"'autocomplete' section in {path} must be a mapping")

    try:
        settings = AutocompleteSettings(**section)
    except ValidationError as e:
        raise SettingsError(f"Invalid autocomplete settings in {path}: {e}") from e

    logger.debug(f"Loaded autocomplete settings from {path}")
    return settings


# Global settings singleton
_settings: Optional[AutocompleteSettings] = None


def get_settings() -> AutocompleteSettings:
    """Get the global autocomplete settings."""
    global _settings
    if _settings is None:
        _settings = AutocompleteSettings()
    return _settings


def set_settings(settings: AutocompleteSettings) -> None:
    global _settings
    _settings = settings


def reset_settings() -> None:
    """Reset the global settings.

    Useful for testing.
    """
    global _settings
    _settings = None

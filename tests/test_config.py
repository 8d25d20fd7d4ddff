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

"""Tests for autocomplete settings."""

import pytest
from pydantic import ValidationError

from victor_autocomplete.config import (
    AutocompleteSettings,
    SettingsError,
    get_settings,
    load_settings,
    reset_settings,
    set_settings,
)


class TestAutocompleteSettings:
    """Tests for the settings model."""

    def test_defaults(self):
        settings = AutocompleteSettings()

        assert settings.rejection_timeout_ms == 10_000
        assert settings.rapid_change_threshold_ms == 500
        assert settings.debounce_delay_ms == 150
        assert settings.max_processing_time_ms == 30_000
        assert settings.stop_sequences == []
        assert settings.trim_whitespace is False
        assert settings.fim_template == "default"

    def test_negative_timeout_rejected(self):
        with pytest.raises(ValidationError):
            AutocompleteSettings(rejection_timeout_ms=-1)

    def test_processing_limit_can_be_disabled(self):
        assert AutocompleteSettings(max_processing_time_ms=None).max_processing_time_ms is None


class TestLoadSettings:
    """Tests for loading settings from YAML."""

    def test_load_autocomplete_section(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text(
            "autocomplete:\n"
            "  debounce_delay_ms: 75\n"
            "  stop_sequences: [\"\\n\\n\"]\n"
            "  fim_template: qwen\n"
        )

        settings = load_settings(path)

        assert settings.debounce_delay_ms == 75
        assert settings.stop_sequences == ["\n\n"]
        assert settings.fim_template == "qwen"
        assert settings.rejection_timeout_ms == 10_000

    def test_load_bare_mapping(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("rejection_timeout_ms: 2000\ntrim_whitespace: true\n")

        settings = load_settings(path)

        assert settings.rejection_timeout_ms == 2000
        assert settings.trim_whitespace is True

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("")

        assert load_settings(path) == AutocompleteSettings()

    def test_missing_file(self, tmp_path):
        with pytest.raises(SettingsError):
            load_settings(tmp_path / "missing.yaml")

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("autocomplete: [unclosed\n")

        with pytest.raises(SettingsError):
            load_settings(path)

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("- one\n- two\n")

        with pytest.raises(SettingsError):
            load_settings(path)

    def test_invalid_value(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("autocomplete:\n  debounce_delay_ms: -5\n")

        with pytest.raises(SettingsError, match="Invalid autocomplete settings"):
            load_settings(path)


class TestGlobalSettings:
    def test_singleton(self):
        assert get_settings() is get_settings()

    def test_set_and_reset(self):
        custom = AutocompleteSettings(debounce_delay_ms=0)
        set_settings(custom)
        assert get_settings() is custom

        reset_settings()
        assert get_settings() is not custom

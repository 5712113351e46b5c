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

"""Tests for RelayGraphSettings precedence and validation."""

import logging

import pytest

from relaygraph.config.settings import RelayGraphSettings, load_settings, reset_settings
from relaygraph.core.errors import ConfigurationError, ErrorCategory


@pytest.fixture
def settings_file(tmp_path):
    path = tmp_path / "relaygraph.yaml"
    path.write_text("max_steps: 40\ncheckpoint_backend: SQLite\nlog_level: debug\n")
    return path


class TestSettingsDefaults:
    """Tests for default values."""

    def test_defaults(self):
        settings = RelayGraphSettings()

        assert settings.max_steps == 100
        assert settings.serialize_threads is True
        assert settings.checkpoint_backend == "memory"
        assert settings.checkpoint_path is None
        assert settings.keep_checkpoint_history is False
        assert settings.log_level == "INFO"
        assert settings.log_file is None

    def test_env_vars(self, monkeypatch):
        monkeypatch.setenv("RELAYGRAPH_MAX_STEPS", "25")
        monkeypatch.setenv("RELAYGRAPH_SERIALIZE_THREADS", "false")

        settings = RelayGraphSettings()

        assert settings.max_steps == 25
        assert settings.serialize_threads is False


class TestCheckpointPath:
    """Tests for backend-aware checkpoint locations."""

    def test_sqlite_default_is_database_file(self):
        settings = RelayGraphSettings(checkpoint_backend="sqlite")
        assert settings.resolve_checkpoint_path() == "~/.relaygraph/checkpoints.db"

    def test_json_default_is_directory(self):
        settings = RelayGraphSettings(checkpoint_backend="json")
        assert settings.resolve_checkpoint_path() == "~/.relaygraph/checkpoints"

    def test_backend_argument_overrides_configured_backend(self):
        settings = RelayGraphSettings(checkpoint_backend="sqlite")
        assert settings.resolve_checkpoint_path("json") == "~/.relaygraph/checkpoints"

    def test_explicit_path_used_for_every_backend(self, monkeypatch):
        monkeypatch.setenv("RELAYGRAPH_CHECKPOINT_PATH", "/data/graphs")

        settings = RelayGraphSettings(checkpoint_backend="json")

        assert settings.resolve_checkpoint_path() == "/data/graphs"
        assert settings.resolve_checkpoint_path("sqlite") == "/data/graphs"


class TestFromSources:
    """Tests for from_sources precedence."""

    def test_settings_file(self, settings_file):
        settings = RelayGraphSettings.from_sources(settings_file=settings_file)

        assert settings.max_steps == 40
        assert settings.checkpoint_backend == "sqlite"
        assert settings.log_level == "DEBUG"

    def test_env_beats_settings_file(self, monkeypatch, settings_file):
        monkeypatch.setenv("RELAYGRAPH_MAX_STEPS", "25")

        settings = RelayGraphSettings.from_sources(settings_file=settings_file)

        assert settings.max_steps == 25
        assert settings.checkpoint_backend == "sqlite"

    def test_cli_args_beat_everything(self, monkeypatch, settings_file):
        monkeypatch.setenv("RELAYGRAPH_MAX_STEPS", "25")

        settings = RelayGraphSettings.from_sources(
            cli_args={"max_steps": 5, "log_level": None, "not_a_setting": 1},
            settings_file=settings_file,
        )

        assert settings.max_steps == 5
        assert settings.log_level == "DEBUG"

    def test_unknown_file_keys_are_ignored(self, tmp_path, caplog):
        path = tmp_path / "relaygraph.yaml"
        path.write_text("max_steps: 7\nflux_capacitor: true\n")

        with caplog.at_level(logging.WARNING, logger="relaygraph.config.settings"):
            settings = RelayGraphSettings.from_sources(settings_file=path)

        assert settings.max_steps == 7
        assert "flux_capacitor" in caplog.text

    def test_empty_settings_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert RelayGraphSettings.from_sources(settings_file=path).max_steps == 100


class TestValidation:
    """Invalid values surface as ConfigurationError."""

    @pytest.mark.parametrize(
        "cli_args,key",
        [
            ({"max_steps": 0}, "max_steps"),
            ({"checkpoint_backend": "redis"}, "checkpoint_backend"),
            ({"log_level": "verbose"}, "log_level"),
        ],
    )
    def test_invalid_values(self, cli_args, key):
        with pytest.raises(ConfigurationError) as exc_info:
            RelayGraphSettings.from_sources(cli_args=cli_args)

        assert exc_info.value.config_key == key
        assert exc_info.value.category == ErrorCategory.CONFIG_INVALID

    def test_missing_settings_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Failed to load settings file"):
            RelayGraphSettings.from_sources(settings_file=tmp_path / "missing.yaml")

    def test_settings_file_must_be_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- max_steps\n- 3\n")
        with pytest.raises(ConfigurationError, match="must contain a mapping"):
            RelayGraphSettings.from_sources(settings_file=path)

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("max_steps: [unclosed\n")
        with pytest.raises(ConfigurationError):
            RelayGraphSettings.from_sources(settings_file=path)


class TestCachedSettings:
    def test_load_settings_is_cached(self):
        assert load_settings() is load_settings()

    def test_reset_settings_rereads_environment(self, monkeypatch):
        assert load_settings().max_steps == 100
        monkeypatch.setenv("RELAYGRAPH_MAX_STEPS", "12")
        assert load_settings().max_steps == 100

        reset_settings()

        assert load_settings().max_steps == 12

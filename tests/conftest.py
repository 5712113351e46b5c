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

"""Shared pytest fixtures and configuration."""

import pytest

from relaygraph.config.settings import reset_settings


@pytest.fixture(autouse=True)
def isolate_environment_variables(monkeypatch):
    """Isolate tests from RELAYGRAPH_* environment variables and .env files."""
    monkeypatch.setenv("RELAYGRAPH_SKIP_ENV_FILE", "1")
    for var in (
        "RELAYGRAPH_MAX_STEPS",
        "RELAYGRAPH_SERIALIZE_THREADS",
        "RELAYGRAPH_CHECKPOINT_BACKEND",
        "RELAYGRAPH_CHECKPOINT_PATH",
        "RELAYGRAPH_KEEP_CHECKPOINT_HISTORY",
        "RELAYGRAPH_LOG_LEVEL",
        "RELAYGRAPH_LOG_FILE",
    ):
        monkeypatch.delenv(var, raising=False)
    reset_settings()
    yield
    reset_settings()

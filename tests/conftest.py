"""
Global test configuration.
"""

import logging
import os

import pytest

from callqa_batch.core.criteria import CriteriaConfig
from callqa_batch.pipeline.invoker import ResilientInvoker


# --- Environment Isolation (Autouse) ---
@pytest.fixture(autouse=True)
def isolate_callqa_env(request, monkeypatch):
    """Ensure a clean CALLQA_* environment for each test.

    Escape hatch: @pytest.mark.allow_env_pollution keeps the current env.
    """
    if request.node.get_closest_marker("allow_env_pollution"):
        return
    for key in list(os.environ.keys()):
        if key.startswith("CALLQA_"):
            monkeypatch.delenv(key, raising=False)
    # Avoid DEBUG toggles switching telemetry on
    monkeypatch.delenv("DEBUG", raising=False)


@pytest.fixture(autouse=True)
def neutral_config_files(request, monkeypatch, tmp_path):
    """Keep resolution away from real pyproject.toml and home config files.

    Escape hatch: @pytest.mark.allow_real_config_files.
    """
    if request.node.get_closest_marker("allow_real_config_files"):
        return
    from callqa_batch.config import api

    fake_home = tmp_path / "home_config_isolated" / "callqa_batch.toml"
    monkeypatch.setattr(api._resolver.file_loader, "_home_config_path", fake_home)
    monkeypatch.chdir(tmp_path)


# --- Logging Fixtures ---
@pytest.fixture(scope="session", autouse=True)
def quiet_noisy_libraries():
    """Sets the log level for noisy external libraries to WARNING."""
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


# --- Test Environment Markers ---
def pytest_configure(config):
    """Configure custom markers for test organization."""
    markers = [
        "unit: Fast, isolated unit tests",
        "allow_env_pollution: Keep CALLQA_* environment variables",
        "allow_real_config_files: Read real pyproject.toml and home config",
    ]
    for marker in markers:
        config.addinivalue_line("markers", marker)


# --- Core Fixtures ---


class SleepRecorder:
    """Stand-in for ``asyncio.sleep`` that records delays without waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def sleeps():
    return SleepRecorder()


@pytest.fixture
def invoker(sleeps):
    """Invoker with production retry budget and no real waiting."""
    return ResilientInvoker(max_retries=3, base_delay=1.0, sleep=sleeps)


@pytest.fixture
def criteria():
    return CriteriaConfig.default()

"""
Pytest configuration and fixtures for rl4track tests.

This module provides shared fixtures used across unit, integration,
and security tests.
"""

import json
import tempfile
from pathlib import Path
from typing import Any, Callable, Generator

import pytest

from rl4track.store import MemoryBackend


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir).resolve()


@pytest.fixture
def workspace_root(temp_dir: Path) -> Path:
    """A workspace root with an existing .rl4 directory."""
    (temp_dir / ".rl4").mkdir()
    return temp_dir


@pytest.fixture
def memory_backend() -> MemoryBackend:
    """Fresh in-memory storage backend."""
    return MemoryBackend()


@pytest.fixture
def make_payload() -> Callable[..., str]:
    """Build a PostToolUse hook payload as stdin text."""

    def _make(
        tool_name: str,
        cwd: Path | str,
        session_id: str = "session-0123456789abcdef",
        **tool_input: Any,
    ) -> str:
        return json.dumps({
            "tool_name": tool_name,
            "tool_input": tool_input,
            "session_id": session_id,
            "cwd": str(cwd),
        })

    return _make

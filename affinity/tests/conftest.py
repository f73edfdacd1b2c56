"""Shared fixtures: a temporary vault, configs and fake extraction clients."""

import os
import tempfile
from pathlib import Path
from typing import List, Optional

import pytest

from affinity.engine.config import Config, IndexingConfig, RelatedConfig
from affinity.engine.errors import ExtractionTimeout, ProtocolError
from affinity.engine.extraction import KeywordExtractionClient


class FakeClient(KeywordExtractionClient):
    """Replays scripted answers; an Exception item is raised instead of returned."""

    def __init__(self, answers=None, default: Optional[List[str]] = None):
        self.answers = list(answers or [])
        self.default = default if default is not None else ["alpha", "beta", "gamma"]
        self.calls = []

    async def extract(self, content, label=None):
        self.calls.append((content, label))
        answer = self.answers.pop(0) if self.answers else self.default
        if isinstance(answer, Exception):
            raise answer
        return list(answer)


class FlakyClient(FakeClient):
    """Fails with a timeout, then a protocol error, then succeeds."""

    def __init__(self, keywords):
        super().__init__(
            answers=[ExtractionTimeout("slow"), ProtocolError("bad frame"), keywords]
        )


@pytest.fixture
def temp_vault():
    """Create a temporary vault for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        vault_path = Path(tmpdir) / "vault"
        vault_path.mkdir()
        yield vault_path


@pytest.fixture
def test_config(temp_vault):
    """Fast config: no retry pause, short visibility wait."""
    return Config(
        vault_path=temp_vault,
        indexing=IndexingConfig(retry_delay_s=0.0, visibility_timeout_s=0.5),
        related=RelatedConfig(),
    )


def write_note(vault: Path, rel_path: str, text: str, mtime_ms: Optional[int] = None) -> Path:
    path = vault / rel_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    if mtime_ms is not None:
        os.utime(path, ns=(mtime_ms * 1_000_000, mtime_ms * 1_000_000))
    return path

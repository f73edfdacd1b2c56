"""Tests for the aff command line."""

import frontmatter
import pytest
import yaml
from click.testing import CliRunner

from affinity.cli.aff import cli

from .conftest import write_note


@pytest.fixture
def config_file(tmp_path, temp_vault):
    path = tmp_path / "affinity.yaml"
    path.write_text(yaml.safe_dump({
        "vault_path": str(temp_vault),
        "extraction": {"base_url": "http://127.0.0.1:9"},
        "indexing": {"retry_delay_s": 0.0, "visibility_timeout_s": 0.2},
    }))
    return path


def test_related_command(config_file, temp_vault):
    write_note(temp_vault, "Rust Memory Model.md", "---\nkeywords: [rust, memory]\n---\nBody")
    write_note(temp_vault, "Rust Ownership Model.md", "---\nkeywords: [rust, ownership]\n---\nBody")

    result = CliRunner().invoke(cli, ["--config", str(config_file), "related", "Rust Memory Model.md"])

    assert result.exit_code == 0, result.output
    assert "Notes related to" in result.output
    assert "Ownership" in result.output


def test_related_command_no_results(config_file, temp_vault):
    write_note(temp_vault, "Alone.md", "Body")

    result = CliRunner().invoke(cli, ["--config", str(config_file), "related", "Alone.md"])

    assert result.exit_code == 0
    assert "No related notes found" in result.output


def test_remove_keywords_command(config_file, temp_vault):
    path = write_note(temp_vault, "n.md", "---\ntitle: N\nkeywords: [a, b]\nlastIndexTime: 1\n---\nBody\n")

    result = CliRunner().invoke(cli, ["--config", str(config_file), "remove-keywords", "--yes"])

    assert result.exit_code == 0, result.output
    assert "success 1" in result.output
    assert frontmatter.load(path).metadata == {"title": "N"}


def test_remove_keywords_aborted(config_file, temp_vault):
    path = write_note(temp_vault, "n.md", "---\nkeywords: [a, b]\n---\nBody\n")
    before = path.read_text()

    result = CliRunner().invoke(cli, ["--config", str(config_file), "remove-keywords"], input="n\n")

    assert "Aborted" in result.output
    assert path.read_text() == before


def test_index_missing_note_exits_nonzero(config_file):
    result = CliRunner().invoke(cli, ["--config", str(config_file), "index", "ghost.md"])
    assert result.exit_code == 1


def test_missing_config(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("pathlib.Path.home", lambda: tmp_path)
    result = CliRunner().invoke(cli, ["related", "a.md"])
    assert result.exit_code != 0
    assert "No config file found" in result.output

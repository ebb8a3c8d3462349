"""
Tests for the command line interface.
"""

import pytest
from typer.testing import CliRunner

from storychain_sync.cli import app
from storychain_sync.core.config import settings


runner = CliRunner()


@pytest.fixture
def sqlite_file(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "database_url", f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}")
    monkeypatch.setattr(settings, "contract_address", None)


def test_init_db_then_status(sqlite_file):
    result = runner.invoke(app, ["init-db"])
    assert result.exit_code == 0
    assert "initialized" in result.output

    result = runner.invoke(app, ["status"])
    assert result.exit_code == 0
    assert "never synced" in result.output


def test_fix_chapter_numbers_on_empty_store(sqlite_file):
    runner.invoke(app, ["init-db"])

    result = runner.invoke(app, ["fix-chapter-numbers"])

    assert result.exit_code == 0
    assert "Updated 0 chapters" in result.output


def test_sync_without_contract_address_fails(sqlite_file):
    runner.invoke(app, ["init-db"])

    result = runner.invoke(app, ["sync"])

    assert result.exit_code == 1
    assert "CONFIGURATION_ERROR" in result.output

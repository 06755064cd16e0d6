"""
CLI Tests
=========

Smoke tests for the click commands against the test settings database.
"""

from click.testing import CliRunner

import main


def test_help_lists_commands():
    result = CliRunner().invoke(main.cli, [])

    assert result.exit_code == 0
    for command in ("check-config", "init-db", "resolve", "process-feeds", "process-retries"):
        assert command in result.output


def test_check_config():
    result = CliRunner().invoke(main.cli, ["check-config"])

    assert result.exit_code == 0
    assert "All configuration checks passed" in result.output


def test_init_db_then_add_feed_and_stats():
    runner = CliRunner()

    assert runner.invoke(main.cli, ["init-db"]).exit_code == 0

    added = runner.invoke(main.cli, ["add-feed", "https://news.example/rss/search?q=cli", "--limit", "3"])
    assert added.exit_code == 0

    duplicate = runner.invoke(main.cli, ["add-feed", "https://news.example/rss/search?q=cli"])
    assert duplicate.exit_code == 1

    stats = runner.invoke(main.cli, ["retry-stats"])
    assert stats.exit_code == 0
    assert "Retry Queue" in stats.output


def test_add_feed_rejects_non_http_url():
    result = CliRunner().invoke(main.cli, ["add-feed", "ftp://news.example/rss"])
    assert result.exit_code == 1


def test_show_and_cleanup_logs():
    runner = CliRunner()
    assert runner.invoke(main.cli, ["init-db"]).exit_code == 0

    shown = runner.invoke(main.cli, ["show-logs", "--limit", "5"])
    assert shown.exit_code == 0

    cleaned = runner.invoke(main.cli, ["cleanup-logs", "--days", "30"])
    assert cleaned.exit_code == 0
    assert "Deleted" in cleaned.output

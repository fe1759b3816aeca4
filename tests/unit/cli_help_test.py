"""Tests that -h is accepted as a help flag on all CLI commands."""

from __future__ import annotations

import pytest
from typer.testing import CliRunner

from template_lens.cli.app import app

runner = CliRunner()


@pytest.mark.parametrize(
    "args",
    [
        [],
        ["transform"],
        ["check"],
    ],
    ids=["root", "transform", "check"],
)
def test_short_help_flag(args: list[str]) -> None:
    """Test that -h prints usage."""
    result = runner.invoke(app, [*args, "-h"])
    assert result.exit_code == 0
    assert "Usage" in result.output


def test_no_args_shows_help() -> None:
    """Test that running without arguments lists the commands."""
    result = runner.invoke(app, [])
    assert "Usage" in result.output
    assert "transform" in result.output
    assert "check" in result.output

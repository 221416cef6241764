import pytest
from typer.testing import CliRunner

from pipelog.cli import app
from pipelog.settings import settings

runner = CliRunner()


@pytest.fixture
def small_population(monkeypatch):
    monkeypatch.setattr(settings, "TARGET_TOTAL_COUNT", 60)
    monkeypatch.setattr(settings, "GENERATOR_BATCH_SIZE", 25)
    monkeypatch.setattr(settings, "SMALL_MAX_BYTES", 2_000)
    monkeypatch.setattr(settings, "START_OFFSET", 500)


def test_generate_then_stats(tmp_path, small_population):
    db = tmp_path / "events.db"

    result = runner.invoke(app, ["generate", "--db", str(db)])
    assert result.exit_code == 0, result.output
    assert "Generated 60 records" in result.output

    result = runner.invoke(app, ["stats", "--db", str(db)])
    assert result.exit_code == 0, result.output
    assert "Total:    60 (max offset 559)" in result.output
    assert "Small:    60" in result.output

    # Already at target: a second run writes nothing
    result = runner.invoke(app, ["generate", "--db", str(db)])
    assert "Generated 0 records" in result.output


def test_inspect(tmp_path, small_population):
    db = tmp_path / "events.db"
    runner.invoke(app, ["generate", "--db", str(db)])

    result = runner.invoke(app, ["inspect", "--db", str(db), "--offset", "510", "--limit", "3"])
    assert result.exit_code == 0, result.output
    lines = [line for line in result.output.splitlines() if line.startswith("[")]
    assert [line.split("]")[0] for line in lines] == ["[511", "[512", "[513"]

    result = runner.invoke(app, ["inspect", "--db", str(db), "--budgeted", "--limit", "100"])
    assert result.exit_code == 0, result.output
    assert "[500]" in result.output


@pytest.mark.parametrize("command", ["stats", "inspect"])
def test_missing_database(tmp_path, command):
    result = runner.invoke(app, [command, "--db", str(tmp_path / "nope.db")])
    assert result.exit_code == 1
    assert "does not exist" in result.output

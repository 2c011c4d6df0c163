import pytest
from typer.testing import CliRunner

from desmond import cli
from desmond.config import Settings


@pytest.fixture
def settings(monkeypatch: pytest.MonkeyPatch, tmp_path) -> Settings:
    settings = Settings(_env_file=None, home=tmp_path, telegram_token=None)
    monkeypatch.setattr(cli, "get_settings", lambda: settings)
    monkeypatch.setattr(cli, "configure_logging", lambda **_kwargs: None)
    return settings


def test_tools_command_lists_capabilities(settings: Settings) -> None:
    result = CliRunner().invoke(cli.app, ["tools"])

    assert result.exit_code == 0
    assert "direct=6 group=9" in result.output


def test_run_requires_telegram_token(settings: Settings) -> None:
    result = CliRunner().invoke(cli.app, ["run"])

    assert result.exit_code == 1


def test_ping_command_exits_non_zero_on_failure(settings: Settings, monkeypatch: pytest.MonkeyPatch) -> None:
    async def _fail(_self: object) -> bool:
        return False

    monkeypatch.setattr(cli.AgentRuntime, "ping_model", _fail)

    result = CliRunner().invoke(cli.app, ["ping"])

    assert result.exit_code == 1

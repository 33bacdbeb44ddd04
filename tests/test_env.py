from __future__ import annotations

import os
from pathlib import Path

import pytest

from playbook_vcs.utils import env


def _reset_env_module(
    monkeypatch: pytest.MonkeyPatch, cwd: Path
) -> None:
    monkeypatch.chdir(cwd)
    monkeypatch.setattr(env, "_ENV_LOADED", False)


def test_load_dotenv_populates_environment(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    dotenv = tmp_path / ".env"
    dotenv.write_text(
        "PLAYBOOK_VCS_BUCKET='history'\n# comment\nPLAYBOOK_VCS_PREFIX=\n"
    )
    _reset_env_module(monkeypatch, tmp_path)

    env.load_dotenv()

    assert os.environ["PLAYBOOK_VCS_BUCKET"] == "history"
    assert env.read_setting("PLAYBOOK_VCS_PREFIX", "playbooks") == "playbooks"


def test_load_dotenv_does_not_override_existing(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    (tmp_path / ".env").write_text("PLAYBOOK_VCS_BUCKET=from-file\n")
    _reset_env_module(monkeypatch, tmp_path)
    monkeypatch.setenv("PLAYBOOK_VCS_BUCKET", "existing")

    env.load_dotenv()
    env.load_dotenv()

    assert os.environ["PLAYBOOK_VCS_BUCKET"] == "existing"


def test_parse_line_helpers() -> None:
    assert env._parse_line("KEY=value") == ("KEY", "value")
    assert env._parse_line('KEY="quoted value"') == ("KEY", "quoted value")
    assert env._parse_line("   # comment") is None
    assert env._parse_line("   ") is None
    assert env._parse_line("INVALID") is None


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("1", True), ("yes", True), (" TRUE ", True), ("0", False), ("", False)],
)
def test_env_flag(
    monkeypatch: pytest.MonkeyPatch, raw: str, expected: bool
) -> None:
    monkeypatch.setenv("PLAYBOOK_VCS_LOCAL", raw)

    assert env.env_flag("PLAYBOOK_VCS_LOCAL") is expected


def test_validate_runtime_environment_silent_mode(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("LOG_LEVEL", "0")
    monkeypatch.delenv("LOG_FILE", raising=False)

    env.validate_runtime_environment()


def test_validate_runtime_environment_creates_log_file(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    log_file = tmp_path / "logs" / "vcs.log"
    monkeypatch.setenv("LOG_LEVEL", "1")
    monkeypatch.setenv("LOG_FILE", str(log_file))

    env.validate_runtime_environment()

    assert log_file.exists()


@pytest.mark.parametrize(
    ("level", "log_file", "expected"),
    [
        ("loud", "x.log", "LOG_LEVEL must be an integer"),
        ("2", "", "LOG_FILE is empty or unset"),
    ],
)
def test_validate_runtime_environment_errors(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
    level: str,
    log_file: str,
    expected: str,
) -> None:
    monkeypatch.setenv("LOG_LEVEL", level)
    monkeypatch.setenv("LOG_FILE", log_file)

    with pytest.raises(SystemExit) as excinfo:
        env.validate_runtime_environment()

    assert excinfo.value.code == 1
    assert expected in capsys.readouterr().err


def test_validate_runtime_environment_unwritable_log_file(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
) -> None:
    log_path = tmp_path / "logs" / "app.log"
    log_path.mkdir(parents=True)
    monkeypatch.setenv("LOG_LEVEL", "1")
    # A directory named like a log file cannot be opened for appending.
    monkeypatch.setenv("LOG_FILE", str(log_path))

    with pytest.raises(SystemExit) as excinfo:
        env.validate_runtime_environment()

    assert excinfo.value.code == 1

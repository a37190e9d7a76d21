"""Tests for the command-line entry point."""

from __future__ import annotations

import base64
import json
import tomllib
from typing import TYPE_CHECKING

import pytest

from hostsharing_dyndns.cli import main
from hostsharing_dyndns.config import PasswordConfig
from hostsharing_dyndns.validators import Argon2idValidator

from .conftest import KEY_LEN, MEMORY, PASSWORD, SALT, THREADS, TIME, derive

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    """A valid configuration file."""
    key = base64.urlsafe_b64encode(derive(PASSWORD.encode())).decode("ascii")
    salt = base64.urlsafe_b64encode(SALT).decode("ascii")
    path = tmp_path / "config.toml"
    path.write_text(
        f"""
[server]
host = "127.0.0.1"
port = 9001

[updater]
user = "baz"
filename = "{tmp_path / "zonefile.fragment"}"
domain_subpart = "foobar"

[updater.password]
key = "{key}"
salt = "{salt}"
time = {TIME}
memory = {MEMORY}
threads = {THREADS}
key_len = {KEY_LEN}
""",
        encoding="utf-8",
    )
    return path


class TestGeneratePassword:
    """Tests for the generate-password command."""

    @pytest.mark.parametrize("command", ["generate-password", "genpasswd", "gen"])
    def test_output_is_usable(self, capsys, command: str):
        main([command, "-m", str(MEMORY), "--threads", str(THREADS)])

        out = capsys.readouterr().out
        snippet, password = out.rstrip("\n").rsplit("\n\n", 1)
        data = tomllib.loads(snippet)
        password_config = PasswordConfig(**data["updater"]["password"])

        validator = Argon2idValidator.from_config(password_config)
        assert validator.validate(password.encode()) is True
        assert password_config.memory == MEMORY
        assert password_config.threads == THREADS

    def test_invalid_parameters(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["gen", "-s", "4", "-m", str(MEMORY), "--threads", str(THREADS)])

        assert exc_info.value.code == 1
        captured = capsys.readouterr()
        assert "salt must be at least 8 bytes" in captured.err
        assert captured.out == ""


class TestValidateConfig:
    """Tests for the validate-config command."""

    def test_prints_config_without_key_material(self, capsys, config_file: Path):
        main(["--config", str(config_file), "validate-config"])

        data = json.loads(capsys.readouterr().out)
        assert data["server"]["port"] == 9001
        assert data["updater"]["user"] == "baz"
        assert data["updater"]["password"]["key_len"] == KEY_LEN
        assert "key" not in data["updater"]["password"]
        assert "salt" not in data["updater"]["password"]

    def test_invalid_config(self, capsys, tmp_path: Path):
        config_path = tmp_path / "config.toml"
        config_path.write_text('[server]\nport = 9001\n', encoding="utf-8")

        with pytest.raises(SystemExit) as exc_info:
            main(["--config", str(config_path), "validate-config"])

        assert exc_info.value.code == 1
        assert "[updater]: Missing required field." in capsys.readouterr().err


class TestServe:
    """Tests for the serve command."""

    def test_runs_uvicorn_with_config(self, monkeypatch, config_file: Path):
        calls: list[tuple[str, dict]] = []
        monkeypatch.setattr(
            "hostsharing_dyndns.cli.uvicorn.run",
            lambda app, **kwargs: calls.append((app, kwargs)),
        )
        monkeypatch.setattr("hostsharing_dyndns.cli.setup_logging", lambda _config: None)
        monkeypatch.setattr("hostsharing_dyndns.server._config", None)

        main(["--config", str(config_file), "--port", "9100"])

        assert len(calls) == 1
        app, kwargs = calls[0]
        assert app == "hostsharing_dyndns.server:app"
        assert kwargs["host"] == "127.0.0.1"
        assert kwargs["port"] == 9100
        assert kwargs["log_config"]["handlers"]["access"]["filters"] == ["sensitive"]

        from hostsharing_dyndns import server  # noqa: PLC0415

        assert server.get_config().server.port == 9100

    def test_invalid_config_exits(self, monkeypatch, capsys, tmp_path: Path):
        monkeypatch.chdir(tmp_path)
        with pytest.raises(SystemExit) as exc_info:
            main(["serve"])
        assert exc_info.value.code == 1
        assert "Missing required field" in capsys.readouterr().err

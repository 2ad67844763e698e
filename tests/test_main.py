import json
import os
import sys
from pathlib import Path

import pytest
from click.testing import CliRunner

from procbuilder.main import main

pytestmark = pytest.mark.skipif(os.name == "nt", reason="POSIX process semantics")


@pytest.fixture
def config_path(tmp_path: Path) -> Path:
    def python(code: str) -> str:
        return json.dumps([sys.executable, "-c", code])

    path = tmp_path / "processes.toml"
    path.write_text(
        f"""
[processes.upper]
command = {python("import sys; print(sys.stdin.read().upper())")}

[processes.fail]
command = {python("raise SystemExit(3)")}

[processes.env]
command = {python("import os; print(os.environ['PB_NAME'])")}
env = {{ PB_NAME = "from-config" }}
"""
    )
    return path


def test_show(config_path: Path) -> None:
    result = CliRunner().invoke(main, ["show", str(config_path), "env", "extra"])
    assert result.exit_code == 0
    assert "PB_NAME" in result.output
    assert "'extra'" in result.output


def test_run_exit_code(config_path: Path) -> None:
    result = CliRunner().invoke(main, ["run", str(config_path), "fail"])
    assert result.exit_code == 3


def test_capture(config_path: Path) -> None:
    result = CliRunner().invoke(
        main, ["-v", "capture", str(config_path), "upper", "--input", "hello"]
    )
    assert result.exit_code == 0
    assert "HELLO" in result.stdout


def test_unknown_process(config_path: Path) -> None:
    result = CliRunner().invoke(main, ["show", str(config_path), "nope"])
    assert result.exit_code == 1
    assert "no process named 'nope'" in result.output


def test_invalid_config(tmp_path: Path) -> None:
    path = tmp_path / "bad.toml"
    path.write_text("[processes.bad]\ncwd = '.'\n")
    result = CliRunner().invoke(main, ["show", str(path), "bad"])
    assert result.exit_code == 1
    assert "missing keys" in result.output


def test_missing_config_file(tmp_path: Path) -> None:
    result = CliRunner().invoke(main, ["show", str(tmp_path / "absent.toml"), "x"])
    assert result.exit_code == 1
    assert isinstance(result.exception, SystemExit)
    assert "absent.toml" in result.output


def test_malformed_config_file(tmp_path: Path) -> None:
    path = tmp_path / "broken.toml"
    path.write_text("[processes.bad\ncommand = \n")
    result = CliRunner().invoke(main, ["run", str(path), "bad"])
    assert result.exit_code == 1
    assert isinstance(result.exception, SystemExit)
    assert "broken.toml" in result.output

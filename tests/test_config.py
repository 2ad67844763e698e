from pathlib import Path

import pytest

from procbuilder import Redirect, RLimit
from procbuilder.config import Config, load_config
from procbuilder.typecast import TypeCastError

EXAMPLE = Path(__file__).parent.parent / "example" / "processes.toml"


@pytest.fixture
def config() -> Config:
    return load_config(EXAMPLE)


def write_config(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "processes.toml"
    path.write_text(text)
    return path


def test_example_config(config: Config) -> None:
    assert sorted(config.processes) == ["greet", "logged", "quiet", "shell"]


def test_to_builder(config: Config) -> None:
    process = config.get("shell").to_builder()
    assert process.spawn_args() == [
        {"GREETING": "hi"},
        "sh",
        "-c",
        "echo $GREETING from $PWD; echo oops >&2",
        {
            "chdir": "/tmp",
            "pgroup": True,
            "umask": 0o022,
            "rlimit_core": RLimit(0, 0),
            "rlimit_nofile": 256,
        },
    ]


def test_to_builder_extra_args(config: Config) -> None:
    process = config.get("greet").to_builder("world")
    assert process.command_line == ("echo", "hello", "world")


def test_redirect_targets(config: Config) -> None:
    quiet = config.get("quiet").to_builder()
    assert quiet.redirection == {"out": Redirect.DEVNULL, "err": Redirect.STDOUT}
    assert quiet.close_others is True

    logged = config.get("logged").to_builder()
    assert logged.redirection == {"out": ("/tmp/procbuilder-date.log", "a", 0o600)}


def test_redirect_fd_keys(tmp_path: Path) -> None:
    path = write_config(
        tmp_path,
        """
[processes.fds]
command = ["true"]
redirect = { 3 = "three.log", err = 1, in = { fd = 0 } }
""",
    )
    process = load_config(path).get("fds").to_builder()
    assert process.redirection == {3: "three.log", "err": 1, "in": 0}


def test_env_file(tmp_path: Path) -> None:
    (tmp_path / ".env").write_text("A=1\nB=${A}2\n")
    path = write_config(
        tmp_path,
        f"""
[processes.env]
command = ["env"]
cwd = "{tmp_path.as_posix()}"
env_file = ".env"
env = {{ C = "3" }}
""",
    )
    process = load_config(path).get("env").to_builder()
    assert process.environment == {"A": "1", "B": "12", "C": "3"}


def test_unknown_process(config: Config) -> None:
    with pytest.raises(KeyError, match="no process named 'nope'"):
        config.get("nope")


def test_missing_command(tmp_path: Path) -> None:
    path = write_config(tmp_path, "[processes.bad]\ncwd = '/tmp'\n")
    with pytest.raises(TypeCastError, match=r"missing keys: \['command'\]") as exc_info:
        load_config(path)
    assert exc_info.value.key == "processes.bad"


def test_bool_umask(tmp_path: Path) -> None:
    path = write_config(tmp_path, "[processes.bad]\ncommand = ['ls']\numask = true\n")
    with pytest.raises(TypeCastError, match="Value was bool, but expected int"):
        load_config(path)


def test_unknown_redirect_action(tmp_path: Path) -> None:
    path = write_config(
        tmp_path,
        "[processes.bad]\ncommand = ['ls']\nredirect = { err = { action = 'open' } }\n",
    )
    with pytest.raises(TypeCastError, match="processes.bad.redirect.err"):
        load_config(path)

import dataclasses
from pathlib import Path
from typing import Any

import pytest

from procbuilder import (
    Builder,
    InvalidArgumentError,
    ProcessBuilder,
    Redirect,
    RLimit,
    build,
    copy,
)


def test_build_returns_process_builder() -> None:
    p = ProcessBuilder.build()
    assert isinstance(p, ProcessBuilder)
    assert p.command_line == ()
    assert p.directory is None
    assert p.environment == {}
    assert p.redirection == {}
    assert p.rlimit == {}


def test_build_command_line() -> None:
    p = build("command", "arg1", "arg2")
    assert p.command_line == ("command", "arg1", "arg2")


def test_build_flattens_command_line() -> None:
    p = build("command", ["arg1", None, ("arg2", ["arg3"])], None)
    assert p.command_line == ("command", "arg1", "arg2", "arg3")


def test_configure_receives_builder() -> None:
    seen: list[Any] = []
    build(configure=seen.append)
    assert len(seen) == 1
    assert isinstance(seen[0], Builder)


def test_configure_values_are_copied() -> None:
    def configure(builder: Builder) -> None:
        builder.command_line.append("arg2")
        builder.directory = "/home/user/fakedir"
        builder.environment["ULTIMATE_ANSWER"] = 42
        builder.environment["NILVAR"] = None

    p = build("command", "arg1", configure=configure)
    assert p.command_line == ("command", "arg1", "arg2")
    assert p.directory == Path("/home/user/fakedir")
    assert p.environment == {"ULTIMATE_ANSWER": 42, "NILVAR": None}


def test_build_keyword_attributes() -> None:
    p = build("ls", directory="/tmp", umask=0o22, close_others=False)
    assert p.directory == Path("/tmp")
    assert p.umask == 0o22
    assert p.close_others is False
    assert p.pgroup is None


def test_build_unknown_attribute() -> None:
    with pytest.raises(TypeError, match="unexpected process attribute 'cwd'"):
        build("ls", cwd="/tmp")


def test_descriptor_is_frozen() -> None:
    p = build("ls", environment={"A": "1"})
    with pytest.raises(dataclasses.FrozenInstanceError):
        p.umask = 1  # type: ignore[misc]
    with pytest.raises(TypeError):
        p.environment["B"] = "2"  # type: ignore[index]
    assert isinstance(p.command_line, tuple)


def test_later_builder_mutation_is_ignored() -> None:
    leaked: list[Builder] = []
    p = build("ls", configure=leaked.append)

    leaked[0].command_line.append("-l")
    leaked[0].environment["X"] = "1"
    leaked[0].umask = 0

    assert p.command_line == ("ls",)
    assert p.environment == {}
    assert p.umask is None


def test_source_containers_are_copied() -> None:
    env = {"A": "1"}
    target = ["log.txt", "a"]
    pair = [0, 100]

    def configure(builder: Builder) -> None:
        builder.environment = env
        builder.redirection["out"] = target
        builder.rlimit["core"] = pair

    p = build("ls", configure=configure)
    env["B"] = "2"
    target[1] = "w"
    pair[1] = 5

    assert p.environment == {"A": "1"}
    assert p.redirection["out"] == ("log.txt", "a")
    assert p.rlimit["core"] == (0, 100)


def test_rlimit_values_are_tagged() -> None:
    p = build("ls", rlimit={"core": [0, 100], "nice": 20})
    assert isinstance(p.rlimit["core"], RLimit)
    assert p.rlimit["core"] == RLimit(soft=0, hard=100)
    assert p.rlimit["nice"] == 20


def test_copy_applies_configuration() -> None:
    def initializer(builder: Builder) -> None:
        builder.directory = "somedir"
        builder.environment["SOMEVAR"] = "someval"

    def more(builder: Builder) -> None:
        builder.directory = "anotherdir"
        builder.environment["ANOTHERVAR"] = "anotherval"

    p1 = build("command", "arg1", configure=initializer)
    p2 = copy(p1, more)

    assert p2.command_line == ("command", "arg1")
    assert p2.directory == Path("anotherdir")
    assert p2.environment == {"SOMEVAR": "someval", "ANOTHERVAR": "anotherval"}

    assert p1.directory == Path("somedir")
    assert p1.environment == {"SOMEVAR": "someval"}


def test_copy_without_configuration() -> None:
    p1 = build(
        "command",
        directory="dir",
        environment={"A": "1"},
        pgroup=True,
        redirection={"err": Redirect.CLOSE},
        rlimit={"core": (0, 1)},
    )
    p2 = ProcessBuilder.copy(p1)

    assert p2 == p1
    assert p2 is not p1
    assert p2.environment is not p1.environment
    assert p2.redirection is not p1.redirection


def test_copy_keyword_attributes() -> None:
    p1 = build("ls", umask=0o22)
    p2 = copy(p1, umask=0o77)
    assert p1.umask == 0o22
    assert p2.umask == 0o77


@pytest.mark.parametrize("value", ["ls", None, 42, Builder()])
def test_copy_rejects_non_descriptors(value: Any) -> None:
    with pytest.raises(InvalidArgumentError):
        copy(value)


def test_builder_rejects_other_sources() -> None:
    with pytest.raises(TypeError, match="got dict"):
        Builder({"command_line": ["ls"]})  # type: ignore[arg-type]


def test_builder_from_builder_is_independent() -> None:
    first = Builder(build("ls", environment={"A": "1"}))
    second = Builder(first)
    second.command_line.append("-l")
    second.environment["B"] = "2"

    assert first.command_line == ["ls"]
    assert first.environment == {"A": "1"}


def test_descriptor_is_hashable() -> None:
    first = build("ls", environment={"A": "1"}, rlimit={"core": [0, 100]})
    second = build("ls", environment={"A": "1"}, rlimit={"core": (0, 100)})
    assert hash(first) == hash(second)
    assert {first: "x"}[second] == "x"
    assert len({first, second, build("ls")}) == 2

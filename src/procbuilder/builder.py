"""Immutable process descriptions.

A :class:`ProcessBuilder` describes a process and its attributes: the command
line, working directory, environment, process group, umask, file descriptor
inheritance, resource limits and stream redirections. Descriptions are
created with :meth:`ProcessBuilder.build` or :meth:`ProcessBuilder.copy`,
which hand a mutable :class:`Builder` to an optional ``configure`` callback
and freeze whatever it leaves behind.

Once built, a description can be launched in several ways, such as
:meth:`ProcessBuilder.spawn`, :meth:`ProcessBuilder.popen3` or
:meth:`ProcessBuilder.capture2`. All of them go through
:meth:`ProcessBuilder.spawn_args`.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Callable, Optional, Union

from . import launch
from .errors import InvalidArgumentError
from .rlimit import freeze_limit

if TYPE_CHECKING:
    from typing_extensions import Self

    from .launch import ExitStatus, Popen2, Popen3

__all__ = ["Builder", "ProcessBuilder", "build", "copy"]

Configure = Callable[["Builder"], Any]


def _empty() -> Mapping[Any, Any]:
    return MappingProxyType({})


def _flatten(args: Any) -> list[Any]:
    if isinstance(args, (list, tuple)):
        return [item for arg in args for item in _flatten(arg)]
    if args is None:
        return []
    return [args]


def _freeze(value: Any) -> Any:
    if type(value) in (list, tuple):
        return tuple(_freeze(v) for v in value)
    if isinstance(value, Mapping):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    if isinstance(value, (set, frozenset)):
        return frozenset(value)
    if isinstance(value, bytearray):
        return bytes(value)
    return value


def _thaw(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {k: _thaw(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_thaw(v) for v in value]
    if isinstance(value, set):
        return set(value)
    return value


def _hashable(value: Any) -> Any:
    if isinstance(value, Mapping):
        return frozenset((k, _hashable(v)) for k, v in value.items())
    if isinstance(value, tuple):
        return tuple(_hashable(v) for v in value)
    return value


class Builder:
    """Mutable staging area for a :class:`ProcessBuilder`.

    Only ever seen inside a ``configure`` callback. Not thread-safe.
    """

    def __init__(self, source: ProcessBuilder | Builder | None = None) -> None:
        self.command_line: list[Any] = []
        self.directory: str | os.PathLike[str] | None = None
        self.environment: dict[str, Any] = {}
        self.unsetenv_others: bool | None = None
        self.pgroup: bool | int | None = None
        self.redirection: dict[Any, Any] = {}
        self.close_others: bool | None = None
        self.umask: int | None = None
        self.rlimit: dict[str, Any] = {}

        if source is not None:
            if not isinstance(source, (ProcessBuilder, Builder)):
                raise InvalidArgumentError(source)
            self.command_line = _thaw(list(source.command_line))
            self.directory = source.directory
            self.environment = _thaw(source.environment)
            self.unsetenv_others = source.unsetenv_others
            self.pgroup = source.pgroup
            self.redirection = _thaw(source.redirection)
            self.close_others = source.close_others
            self.umask = source.umask
            self.rlimit = _thaw(source.rlimit)

    def update(self, **attributes: Any) -> None:
        names = {f.name for f in fields(ProcessBuilder)}
        for name, value in attributes.items():
            if name not in names:
                msg = f"unexpected process attribute {name!r}"
                raise TypeError(msg)
            setattr(self, name, value)


@dataclass(frozen=True)
class ProcessBuilder:
    """Immutable description of a process and its attributes."""

    #: The command and its arguments.
    command_line: tuple[Any, ...] = ()
    #: Working directory for the process (``chdir``).
    directory: Optional[Path] = None
    #: Extra environment variables. ``None`` values unset the variable.
    environment: Mapping[str, Any] = field(default_factory=_empty)
    #: If true, the child only sees the variables in ``environment``.
    unsetenv_others: Optional[bool] = None
    #: ``True`` for a new process group, or the id of a group to join.
    pgroup: Union[bool, int, None] = None
    #: Stream redirections, keyed by ``"in"``/``"out"``/``"err"`` or a fd.
    redirection: Mapping[Any, Any] = field(default_factory=_empty)
    #: File descriptor inheritance (``close_others``).
    close_others: Optional[bool] = None
    umask: Optional[int] = None
    #: Resource limits keyed by resource name, e.g. ``{"core": (0, 100)}``.
    #: Each key becomes an ``rlimit_<name>`` option.
    rlimit: Mapping[str, Any] = field(default_factory=_empty)

    def __hash__(self) -> int:
        return hash(tuple(_hashable(getattr(self, f.name)) for f in fields(self)))

    def __post_init__(self) -> None:
        directory = self.directory
        frozen = {
            "command_line": tuple(_freeze(arg) for arg in _flatten(self.command_line)),
            "directory": None if directory is None else Path(directory),
            "environment": _freeze(self.environment or {}),
            "redirection": _freeze(self.redirection or {}),
            "rlimit": MappingProxyType(
                {k: freeze_limit(_freeze(v)) for k, v in (self.rlimit or {}).items()}
            ),
        }
        for name, value in frozen.items():
            object.__setattr__(self, name, value)

    @classmethod
    def build(
        cls, *args: Any, configure: Configure | None = None, **attributes: Any
    ) -> Self:
        """Build a new process description with ``args`` as the command line.

        Keyword ``attributes`` are set on the :class:`Builder` first, then
        ``configure`` is called with it, if given. The returned object is
        frozen no matter what the callback does with the builder afterwards.
        """
        builder = Builder()
        builder.command_line = _flatten(args)
        return cls._finalize(builder, configure, attributes)

    @classmethod
    def copy(
        cls, other: ProcessBuilder, configure: Configure | None = None, **attributes: Any
    ) -> Self:
        """Build a new process description copied from ``other``."""
        if not isinstance(other, ProcessBuilder):
            raise InvalidArgumentError(other)
        return cls._finalize(Builder(other), configure, attributes)

    @classmethod
    def _finalize(
        cls, builder: Builder, configure: Configure | None, attributes: dict[str, Any]
    ) -> Self:
        builder.update(**attributes)
        if configure is not None:
            configure(builder)
        return cls(**{f.name: getattr(builder, f.name) for f in fields(cls)})

    def spawn_args(self) -> list[Any]:
        """Return the arguments for the host spawn primitive.

        The shape is ``[environment?, *command_line, options]``: the
        environment is only present when non-empty, and the options mapping
        always comes last. Redirection entries are applied after every other
        option, so they win when a key collides.
        """
        result: list[Any] = []
        if self.environment:
            result.append(dict(self.environment))
        result.extend(self.command_line)

        opts: dict[Any, Any] = {}
        if self.directory is not None:
            opts["chdir"] = str(self.directory)
        if self.pgroup is not None:
            opts["pgroup"] = self.pgroup
        if self.umask is not None:
            opts["umask"] = self.umask
        if self.unsetenv_others is not None:
            opts["unsetenv_others"] = self.unsetenv_others
        if self.close_others is not None:
            opts["close_others"] = self.close_others
        for key, value in self.rlimit.items():
            opts[f"rlimit_{key}"] = value
        for key, value in self.redirection.items():
            opts[key] = value
        result.append(opts)
        return result

    def spawn(self) -> int:
        """Start the process and return its pid without waiting for it."""
        return launch.spawn(self.spawn_args())

    def popen2(self, *, text: bool = True) -> Popen2:
        """Start the process with pipes to its stdin and stdout.

        Returns ``(stdin, stdout, waiter)``. Used as a context manager, the
        streams are closed and the process waited for when the block exits.
        """
        return launch.popen2(self.spawn_args(), text=text)

    def popen2e(self, *, text: bool = True) -> Popen2:
        """Like :meth:`popen2`, with stderr merged into stdout."""
        return launch.popen2e(self.spawn_args(), text=text)

    def popen3(self, *, text: bool = True) -> Popen3:
        """Start the process with pipes to all three standard streams."""
        return launch.popen3(self.spawn_args(), text=text)

    def capture2(
        self, stdin_data: object = None, *, text: bool = True
    ) -> tuple[Any, ExitStatus]:
        """Run the process to completion, feeding it ``stdin_data``.

        Returns the captured stdout and the exit status.
        """
        return launch.capture2(self.spawn_args(), stdin_data, text=text)

    def capture2e(
        self, stdin_data: object = None, *, text: bool = True
    ) -> tuple[Any, ExitStatus]:
        return launch.capture2e(self.spawn_args(), stdin_data, text=text)

    def capture3(
        self, stdin_data: object = None, *, text: bool = True
    ) -> tuple[Any, Any, ExitStatus]:
        """Run the process to completion and capture stdout and stderr."""
        return launch.capture3(self.spawn_args(), stdin_data, text=text)


build = ProcessBuilder.build
copy = ProcessBuilder.copy

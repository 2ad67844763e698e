"""Mapping of spawn arguments onto :class:`subprocess.Popen`.

A spawn-arguments list has the shape ``[env?, *command, options]``. The
leading mapping is optional and holds the child's environment. The trailing
mapping holds named options (``chdir``, ``pgroup``, ``umask``,
``unsetenv_others``, ``close_others``, ``rlimit_<name>``) and stream
redirections keyed by ``"in"``, ``"out"``, ``"err"``, a file descriptor, or a
tuple of those.

Everything that cannot be expressed as a ``Popen`` keyword (resource limits,
redirections of descriptors above 2, closing descriptors) runs in a
``preexec_fn``. Like any ``preexec_fn``, that is not safe to combine with
threads that hold locks in the parent; callers that spawn from many threads
should avoid those options.
"""

from __future__ import annotations

import contextlib
import os
import subprocess
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from .compat import POPEN_PROCESS_GROUP
from .errors import SpawnOptionError
from .redirect import Redirect, is_redirection_key, selector_fds
from .rlimit import resolve_limits

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator, Sequence

__all__ = ["popen_options", "split_spawn_args"]

RLIMIT_PREFIX = "rlimit_"

_STREAM_KWARGS = {0: "stdin", 1: "stdout", 2: "stderr"}
_SHELL_META = frozenset("*?{}[]<>()~&|\\$;'`\"\n#=% \t")


def split_spawn_args(
    args: Sequence[Any],
) -> tuple[Mapping[str, Any] | None, list[Any], Mapping[Any, Any]]:
    command = list(args)
    env = None
    options: Mapping[Any, Any] = {}
    if command and isinstance(command[0], Mapping):
        env = command.pop(0)
    if command and isinstance(command[-1], Mapping):
        options = command.pop()
    return env, command, options


def build_env(
    env: Mapping[str, Any] | None, *, unsetenv_others: bool = False
) -> dict[str, Any] | None:
    if not env and not unsetenv_others:
        return None

    result: dict[str, Any] = {} if unsetenv_others else dict(os.environ)
    for name, value in (env or {}).items():
        if value is None:
            result.pop(name, None)
        else:
            result[name] = value
    return result


def _needs_shell(command: list[Any]) -> bool:
    return (
        len(command) == 1
        and isinstance(command[0], str)
        and not _SHELL_META.isdisjoint(command[0])
    )


class _PopenOptions:
    def __init__(self, stack: contextlib.ExitStack, pipes: Mapping[int, Any]) -> None:
        self.stack = stack
        self.pipes = pipes
        self.kwargs: dict[str, Any] = {
            _STREAM_KWARGS[fd]: value for fd, value in pipes.items()
        }
        self.unsetenv_others = False
        self.close_others: bool | None = None
        self.pgroup: int | None = None
        self.limits: list[tuple[str, Any]] = []
        self.dups: list[tuple[int, int]] = []
        self.closes: list[int] = []

    def apply(self, options: Mapping[Any, Any]) -> None:
        for key, value in options.items():
            if key == "chdir":
                self.kwargs["cwd"] = value
            elif key == "umask":
                self.kwargs["umask"] = value
            elif key == "unsetenv_others":
                self.unsetenv_others = bool(value)
            elif key == "close_others":
                self.close_others = bool(value)
            elif key == "pgroup":
                self.set_pgroup(value)
            elif isinstance(key, str) and key.startswith(RLIMIT_PREFIX):
                self.limits.append((key[len(RLIMIT_PREFIX) :], value))
            elif is_redirection_key(key):
                self.redirect(key, value)
            else:
                raise SpawnOptionError(key, "unknown option")

    def set_pgroup(self, value: Any) -> None:
        if value is None or value is False:
            return
        if value is True:
            value = 0
        if isinstance(value, bool) or not isinstance(value, int):
            msg = f"expected a bool or a process group id, got {value!r}"
            raise SpawnOptionError("pgroup", msg)
        self.pgroup = value

    def redirect(self, key: Any, target: Any) -> None:
        fds = [fd for fd in selector_fds(key) if fd not in self.pipes]
        if not fds:
            return

        if target is Redirect.CLOSE:
            self.closes.extend(fds)
            return
        if target is Redirect.STDOUT:
            if fds != [2]:
                raise SpawnOptionError(key, "only stderr can be merged into stdout")
            self.kwargs["stderr"] = subprocess.STDOUT
            return

        value = self.open_target(key, target, fds)
        for fd in fds:
            if fd in _STREAM_KWARGS:
                self.kwargs[_STREAM_KWARGS[fd]] = value
            else:
                self.dups.append((self.fileno(value), fd))

    def open_target(self, key: Any, target: Any, fds: list[int]) -> Any:
        if target is Redirect.DEVNULL:
            if all(fd in _STREAM_KWARGS for fd in fds):
                return subprocess.DEVNULL
            return self.stack.enter_context(open(os.devnull, "r+b"))  # noqa: SIM115
        if isinstance(target, bool):
            raise SpawnOptionError(key, f"unsupported target {target!r}")
        if isinstance(target, int):
            return target
        if isinstance(target, (str, os.PathLike)):
            mode = "rb" if fds == [0] else "wb"
            return self.stack.enter_context(open(target, mode))  # noqa: SIM115
        if isinstance(target, (tuple, list)) and 2 <= len(target) <= 3:
            return self.open_file(key, *target)
        if callable(getattr(target, "fileno", None)):
            return target
        raise SpawnOptionError(key, f"unsupported target {target!r}")

    def open_file(self, key: Any, path: Any, mode: Any, perm: int = 0o644) -> Any:
        if isinstance(mode, int):
            fd = os.open(path, mode, perm)
            self.stack.callback(os.close, fd)
            return fd
        if not isinstance(mode, str):
            raise SpawnOptionError(key, f"unsupported file mode {mode!r}")
        if "b" not in mode:
            mode += "b"

        def opener(name: str, flags: int) -> int:
            return os.open(name, flags, perm)

        return self.stack.enter_context(open(path, mode, opener=opener))  # noqa: SIM115

    @staticmethod
    def fileno(value: Any) -> int:
        return value if isinstance(value, int) else value.fileno()

    def finish(self, env: Mapping[str, Any] | None) -> dict[str, Any]:
        kwargs = self.kwargs
        kwargs["env"] = build_env(env, unsetenv_others=self.unsetenv_others)

        if self.dups:
            if self.close_others:
                msg = "descriptors above 2 cannot be redirected when closing others"
                raise SpawnOptionError("close_others", msg)
            kwargs["close_fds"] = False
        elif self.close_others is not None:
            kwargs["close_fds"] = self.close_others

        pgroup = self.pgroup
        if pgroup is not None and POPEN_PROCESS_GROUP:
            kwargs["process_group"] = pgroup
            pgroup = None

        limits = resolve_limits(self.limits)
        if limits or pgroup is not None or self.dups or self.closes:
            kwargs["preexec_fn"] = _child_setup(limits, pgroup, self.dups, self.closes)
        return kwargs


def _child_setup(
    limits: list[tuple[int, tuple[int, int]]],
    pgroup: int | None,
    dups: list[tuple[int, int]],
    closes: list[int],
) -> Callable[[], None]:
    setrlimit = None
    if limits:
        import resource

        setrlimit = resource.setrlimit
    dupfd = None
    if dups:
        import fcntl

        # copies land above every fd involved so no dup2 clobbers a later source
        floor = max(fd for pair in dups for fd in pair) + 1

        def dupfd(fd: int) -> int:
            return fcntl.fcntl(fd, fcntl.F_DUPFD, floor)

    def setup() -> None:
        if setrlimit is not None:
            for resource_id, pair in limits:
                setrlimit(resource_id, pair)
        if pgroup is not None:
            os.setpgid(0, pgroup)
        if dupfd is not None:
            copies = [dupfd(source) for source, _ in dups]
            for copy, (_, target) in zip(copies, dups):
                os.dup2(copy, target)
            for copy in copies:
                os.close(copy)
        for fd in closes:
            os.close(fd)

    return setup


@contextlib.contextmanager
def popen_options(
    args: Sequence[Any], pipes: Mapping[int, Any] | None = None
) -> Iterator[tuple[Any, dict[str, Any]]]:
    """Translate spawn arguments into ``(args, kwargs)`` for ``Popen``.

    ``pipes`` maps standard descriptors (0, 1, 2) to ``Popen`` stream values
    such as :data:`subprocess.PIPE`; they win over redirections of the same
    descriptor. Files opened for redirections stay open until the context
    exits, which must happen after the child has been started.
    """
    env, command, options = split_spawn_args(args)
    if not command:
        raise SpawnOptionError("command_line", "no command to run")

    with contextlib.ExitStack() as stack:
        mapper = _PopenOptions(stack, pipes or {})
        mapper.apply(options)
        kwargs = mapper.finish(env)
        if _needs_shell(command):
            yield command[0], {**kwargs, "shell": True}
        else:
            yield command, kwargs

from __future__ import annotations

import contextlib
import logging
import os
import subprocess
from collections import OrderedDict
from dataclasses import dataclass
from typing import IO, TYPE_CHECKING, Any, NamedTuple

from .host import popen_options

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from typing_extensions import Self

__all__ = [
    "ExitStatus",
    "Popen2",
    "Popen3",
    "WaitHandle",
    "capture2",
    "capture2e",
    "capture3",
    "popen2",
    "popen2e",
    "popen3",
    "spawn",
    "wait",
]

logger = logging.getLogger(__name__)

# processes started with spawn(), kept so they can be reaped by wait()
_spawned: dict[int, subprocess.Popen[Any]] = {}
# statuses of spawned children that exited before anyone waited for them
_exited: OrderedDict[int, ExitStatus] = OrderedDict()
_EXITED_LIMIT = 256


@dataclass(frozen=True)
class ExitStatus:
    pid: int
    #: Negative when the process was killed by a signal.
    returncode: int

    @classmethod
    def from_popen(cls, process: subprocess.Popen[Any]) -> Self:
        return cls(process.pid, process.returncode)

    @property
    def success(self) -> bool:
        return self.returncode == 0

    @property
    def signaled(self) -> bool:
        return self.returncode < 0

    @property
    def exitstatus(self) -> int | None:
        return None if self.signaled else self.returncode

    @property
    def termsig(self) -> int | None:
        return -self.returncode if self.signaled else None

    def __str__(self) -> str:
        if self.signaled:
            return f"pid {self.pid} killed by signal {self.termsig}"
        return f"pid {self.pid} exit {self.returncode}"


class WaitHandle:
    """The eventual exit status of a process started by a ``popen`` call."""

    def __init__(self, process: subprocess.Popen[Any]) -> None:
        self.process = process

    @property
    def pid(self) -> int:
        return self.process.pid

    def is_running(self) -> bool:
        return self.process.poll() is None

    def wait(self) -> ExitStatus:
        self.process.wait()
        return ExitStatus.from_popen(self.process)

    @property
    def value(self) -> ExitStatus:
        return self.wait()

    def __repr__(self) -> str:
        return f"<WaitHandle pid={self.pid}>"


def _finalize(streams: Iterable[IO[Any]], waiter: WaitHandle) -> None:
    try:
        for stream in streams:
            # the child may already be gone with unread input
            with contextlib.suppress(BrokenPipeError):
                stream.close()
    finally:
        waiter.wait()


class Popen2(NamedTuple):
    stdin: IO[Any]
    stdout: IO[Any]
    waiter: WaitHandle

    def __enter__(self) -> Popen2:
        return self

    def __exit__(self, *exc_info: object) -> None:
        _finalize((self.stdout, self.stdin), self.waiter)


class Popen3(NamedTuple):
    stdin: IO[Any]
    stdout: IO[Any]
    stderr: IO[Any]
    waiter: WaitHandle

    def __enter__(self) -> Popen3:
        return self

    def __exit__(self, *exc_info: object) -> None:
        _finalize((self.stdout, self.stderr, self.stdin), self.waiter)


def _popen(
    args: Sequence[Any], pipes: dict[int, int] | None = None, *, text: bool = False
) -> subprocess.Popen[Any]:
    with popen_options(args, pipes) as (argv, kwargs):
        logger.debug("Starting %s", argv)
        process = subprocess.Popen(argv, text=text, **kwargs)  # noqa: S603
    logger.debug("Started pid %d", process.pid)
    return process


def _stdin_payload(data: object, *, text: bool) -> str | bytes:
    if isinstance(data, (bytes, bytearray, memoryview)):
        payload: str | bytes = bytes(data)
    else:
        payload = "" if data is None else str(data)

    if text and isinstance(payload, bytes):
        return payload.decode()
    if not text and isinstance(payload, str):
        return payload.encode()
    return payload


def _reap_spawned() -> None:
    for pid, process in list(_spawned.items()):
        if process.poll() is not None:
            del _spawned[pid]
            _exited[pid] = ExitStatus.from_popen(process)
    while len(_exited) > _EXITED_LIMIT:
        _exited.popitem(last=False)


def spawn(args: Sequence[Any]) -> int:
    _reap_spawned()
    process = _popen(args)
    _exited.pop(process.pid, None)
    _spawned[process.pid] = process
    return process.pid


def wait(pid: int) -> ExitStatus:
    """Wait for a process started by :func:`spawn` and return its status."""
    process = _spawned.pop(pid, None)
    if process is not None:
        process.wait()
        return ExitStatus.from_popen(process)
    if pid in _exited:
        return _exited.pop(pid)

    _, status = os.waitpid(pid, 0)
    return ExitStatus(pid, os.waitstatus_to_exitcode(status))


def popen2(args: Sequence[Any], *, text: bool = True) -> Popen2:
    pipes = {0: subprocess.PIPE, 1: subprocess.PIPE}
    process = _popen(args, pipes, text=text)
    return Popen2(process.stdin, process.stdout, WaitHandle(process))  # type: ignore[arg-type]


def popen2e(args: Sequence[Any], *, text: bool = True) -> Popen2:
    pipes = {0: subprocess.PIPE, 1: subprocess.PIPE, 2: subprocess.STDOUT}
    process = _popen(args, pipes, text=text)
    return Popen2(process.stdin, process.stdout, WaitHandle(process))  # type: ignore[arg-type]


def popen3(args: Sequence[Any], *, text: bool = True) -> Popen3:
    pipes = {0: subprocess.PIPE, 1: subprocess.PIPE, 2: subprocess.PIPE}
    process = _popen(args, pipes, text=text)
    return Popen3(
        process.stdin,  # type: ignore[arg-type]
        process.stdout,  # type: ignore[arg-type]
        process.stderr,  # type: ignore[arg-type]
        WaitHandle(process),
    )


def _communicate(
    args: Sequence[Any], pipes: dict[int, int], stdin_data: object, *, text: bool
) -> tuple[Any, Any, ExitStatus]:
    payload = _stdin_payload(stdin_data, text=text)
    with _popen(args, {0: subprocess.PIPE, **pipes}, text=text) as process:
        stdout, stderr = process.communicate(payload)
    status = ExitStatus.from_popen(process)
    logger.debug("Captured %s", status)
    return stdout, stderr, status


def capture2(
    args: Sequence[Any], stdin_data: object = None, *, text: bool = True
) -> tuple[Any, ExitStatus]:
    stdout, _, status = _communicate(
        args, {1: subprocess.PIPE}, stdin_data, text=text
    )
    return stdout, status


def capture2e(
    args: Sequence[Any], stdin_data: object = None, *, text: bool = True
) -> tuple[Any, ExitStatus]:
    stdout, _, status = _communicate(
        args, {1: subprocess.PIPE, 2: subprocess.STDOUT}, stdin_data, text=text
    )
    return stdout, status


def capture3(
    args: Sequence[Any], stdin_data: object = None, *, text: bool = True
) -> tuple[Any, Any, ExitStatus]:
    return _communicate(
        args, {1: subprocess.PIPE, 2: subprocess.PIPE}, stdin_data, text=text
    )

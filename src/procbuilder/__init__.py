"""Immutable process descriptions built on :mod:`subprocess`."""

from .builder import Builder, ProcessBuilder, build, copy
from .errors import InvalidArgumentError, ProcessBuilderError, SpawnOptionError
from .launch import ExitStatus, Popen2, Popen3, WaitHandle, wait
from .redirect import Redirect
from .rlimit import RLimit

__all__ = [
    "Builder",
    "ExitStatus",
    "InvalidArgumentError",
    "Popen2",
    "Popen3",
    "ProcessBuilder",
    "ProcessBuilderError",
    "RLimit",
    "Redirect",
    "SpawnOptionError",
    "WaitHandle",
    "build",
    "copy",
    "wait",
]

__version__ = "0.5.0"

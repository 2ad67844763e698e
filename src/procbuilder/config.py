from collections import OrderedDict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal, Optional, Union

import dotenv

from .builder import Builder, ProcessBuilder
from .compat import tomllib
from .redirect import Redirect
from .rlimit import RLimit
from .typecast import typecast

_ACTIONS = {
    "close": Redirect.CLOSE,
    "devnull": Redirect.DEVNULL,
    "stdout": Redirect.STDOUT,
}


@dataclass(kw_only=True)
class FileTarget:
    path: str
    mode: str = "w"
    perm: Optional[int] = None

    def resolve(self) -> Any:
        if self.perm is None:
            return (self.path, self.mode)
        return (self.path, self.mode, self.perm)


@dataclass(kw_only=True)
class FdTarget:
    fd: int

    def resolve(self) -> Any:
        return self.fd


@dataclass(kw_only=True)
class ActionTarget:
    action: Literal["close", "devnull", "stdout"]

    def resolve(self) -> Any:
        return _ACTIONS[self.action]


RedirectTarget = Union[str, int, FileTarget, FdTarget, ActionTarget]
LimitValue = Union[int, str, tuple[Union[int, str], Union[int, str]]]


def _redirect_key(key: str) -> Union[str, int]:
    return int(key) if key.isdigit() else key


@dataclass(kw_only=True)
class ProcessConfig:
    command: list[str]
    cwd: Optional[str] = None
    env: dict[str, Optional[str]] = field(default_factory=dict)
    env_file: Optional[str] = None
    unsetenv_others: Optional[bool] = None
    pgroup: Union[bool, int, None] = None
    umask: Optional[int] = None
    close_others: Optional[bool] = None
    rlimit: dict[str, LimitValue] = field(default_factory=dict)
    redirect: dict[str, RedirectTarget] = field(default_factory=dict)

    def read_env_file(self) -> dict[str, Optional[str]]:
        env = {}

        if self.env_file:
            env_file = Path(self.cwd or ".") / self.env_file
            env.update(dotenv.dotenv_values(env_file, interpolate=False))

        env.update(self.env)

        return OrderedDict(dotenv.main.resolve_variables(env.items(), override=True))

    def configure(self, builder: Builder) -> None:
        if self.cwd is not None:
            builder.directory = self.cwd
        builder.environment.update(self.read_env_file())
        builder.unsetenv_others = self.unsetenv_others
        builder.pgroup = self.pgroup
        builder.umask = self.umask
        builder.close_others = self.close_others
        for name, value in self.rlimit.items():
            builder.rlimit[name] = RLimit(*value) if isinstance(value, tuple) else value
        for key, target in self.redirect.items():
            if not isinstance(target, (str, int)):
                target = target.resolve()
            builder.redirection[_redirect_key(key)] = target

    def to_builder(self, *extra_args: str) -> ProcessBuilder:
        return ProcessBuilder.build(*self.command, *extra_args, configure=self.configure)


@dataclass(kw_only=True)
class Config:
    processes: dict[str, ProcessConfig] = field(default_factory=dict)

    def get(self, name: str) -> ProcessConfig:
        try:
            return self.processes[name]
        except KeyError:
            msg = f"no process named {name!r}, expected one of {sorted(self.processes)}"
            raise KeyError(msg) from None


def load_config(path: Path) -> Config:
    data = tomllib.loads(path.read_text())
    return typecast(Config, data)

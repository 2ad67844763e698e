from __future__ import annotations

import enum
from typing import Union

from typing_extensions import TypeAlias

STREAM_NAMES = {"in": 0, "out": 1, "err": 2}

Selector: TypeAlias = Union[str, int]


class Redirect(enum.Enum):
    """Symbolic redirection targets."""

    CLOSE = "close"
    DEVNULL = "devnull"
    # stderr only: merge into whatever the child's stdout is connected to
    STDOUT = "stdout"


def is_stream_selector(key: object) -> bool:
    if isinstance(key, bool):
        return False
    if isinstance(key, int):
        return key >= 0
    return key in STREAM_NAMES


def is_redirection_key(key: object) -> bool:
    if isinstance(key, tuple):
        return bool(key) and all(is_stream_selector(k) for k in key)
    return is_stream_selector(key)


def stream_fd(selector: Selector) -> int:
    if isinstance(selector, int):
        return selector
    return STREAM_NAMES[selector]


def selector_fds(key: Selector | tuple[Selector, ...]) -> tuple[int, ...]:
    if isinstance(key, tuple):
        return tuple(stream_fd(k) for k in key)
    return (stream_fd(key),)

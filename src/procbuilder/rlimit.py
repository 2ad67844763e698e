from __future__ import annotations

from typing import TYPE_CHECKING, NamedTuple, Union

from typing_extensions import Self, TypeAlias

from .errors import SpawnOptionError

if TYPE_CHECKING:
    from collections.abc import Iterable

_INFINITY_NAMES = frozenset({"infinity", "unlimited"})

Limit: TypeAlias = Union[int, str, None]


class RLimit(NamedTuple):
    """A soft and hard resource limit pair.

    A resource limit in a process description is either a plain ``int``, which
    sets the soft and hard limits to the same value, or an ``RLimit``.
    """

    soft: Limit
    hard: Limit

    @classmethod
    def of(cls, value: RLimitValue) -> Self:
        if isinstance(value, cls):
            return value
        return cls(value, value)  # type: ignore[arg-type]

    def resolve(self) -> tuple[int, int]:
        return _resolve_limit(self.soft), _resolve_limit(self.hard)


RLimitValue: TypeAlias = Union[int, str, RLimit]


def freeze_limit(value: object) -> object:
    """Normalize a builder-side limit into ``int | RLimit``.

    Pairs become an ``RLimit``; anything else is passed through untouched and
    only fails once the host applies it.
    """
    if isinstance(value, RLimit):
        return value
    if isinstance(value, (list, tuple)) and len(value) == 2:
        return RLimit(*value)
    return value


def resource_id(name: str) -> int:
    import resource

    key = str(name).upper()
    if not key.startswith("RLIMIT_"):
        key = f"RLIMIT_{key}"
    try:
        return getattr(resource, key)
    except AttributeError:
        raise SpawnOptionError(
            f"rlimit_{name}", "unknown resource on this platform"
        ) from None


def _resolve_limit(value: Limit) -> int:
    import resource

    if value is None:
        return resource.RLIM_INFINITY
    if isinstance(value, str):
        if value.lower() in _INFINITY_NAMES:
            return resource.RLIM_INFINITY
        msg = f"limit must be an int or 'infinity', not {value!r}"
        raise SpawnOptionError(value, msg)
    if isinstance(value, bool) or not isinstance(value, int):
        msg = f"limit must be an int, not {type(value).__name__}"
        raise SpawnOptionError(value, msg)
    return value


def resolve_limits(
    limits: Iterable[tuple[str, object]],
) -> list[tuple[int, tuple[int, int]]]:
    """Resolve ``(name, value)`` pairs into arguments for ``setrlimit``.

    Runs in the parent so bad names are reported before anything is forked.
    """
    resolved = []
    for name, value in limits:
        value = freeze_limit(value)
        if not isinstance(value, (int, str, RLimit)):
            msg = f"expected an int or a (soft, hard) pair, got {value!r}"
            raise SpawnOptionError(f"rlimit_{name}", msg)
        resolved.append((resource_id(name), RLimit.of(value).resolve()))
    return resolved

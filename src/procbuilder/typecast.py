from __future__ import annotations

from dataclasses import MISSING, fields, is_dataclass
from typing import TYPE_CHECKING, Any, Literal, Protocol, TypeVar, Union

from typing_extensions import TypeAlias, get_args, get_origin, get_type_hints, overload

from .compat import NoneType, UnionType

if TYPE_CHECKING:
    from _typeshed import DataclassInstance

    T_Data = TypeVar("T_Data", bound=DataclassInstance)


T = TypeVar("T")

Primitive: TypeAlias = (
    "str | float | int | bool | None | list[Primitive] | dict[str, Primitive]"
)


class TypeCastError(Exception):
    def __init__(self, key: str, message: str) -> None:
        self.key = key
        self.message = message
        super().__init__(f"Unable to parse config key {key!r}: {message}")


def _build_obj_key(key: str, next_key: str) -> str:
    return f"{key}{'.' if key else ''}{next_key}"


def _describe(typ: Any) -> str:
    return getattr(typ, "__name__", str(typ))


def _coerce_dataclass(typ: type[T_Data], val: Primitive, *, key: str) -> T_Data:
    val = _coerce_type(dict, val, key=key)
    hints = get_type_hints(typ)
    all_fields = {f.name: hints.get(f.name, Any) for f in fields(typ)}

    unknown = sorted(set(val).difference(all_fields))
    missing = sorted(
        f.name
        for f in fields(typ)
        if f.default is f.default_factory is MISSING and f.name not in val
    )
    if missing or unknown:
        msg_parts = []
        if missing:
            msg_parts.append(f"missing keys: {missing}")
        if unknown:
            msg_parts.append(f"unknown keys: {unknown}")
        raise TypeCastError(key, ", ".join(msg_parts))

    kwargs = {
        k: typecast(all_fields[k], v, key=_build_obj_key(key, k)) for k, v in val.items()
    }
    return typ(**kwargs)


@overload
def _coerce_type(typ: type[T], val: Primitive, *, key: str) -> T: ...
@overload
def _coerce_type(typ: type[Any], val: Primitive, *, key: str) -> Any: ...
def _coerce_type(typ: type[Any], val: Primitive, *, key: str) -> Any:
    if typ is Any:
        return val

    if is_dataclass(typ):
        return _coerce_dataclass(typ, val, key=key)

    # TOML booleans must not pass for integers
    if not isinstance(val, typ) or (isinstance(val, bool) and typ is not bool):
        msg = f"Value was {type(val).__name__}, but expected {_describe(typ)}"
        raise TypeCastError(key, msg)
    return val


def _coerce_dict(typ: type[dict[str, T]], val: Primitive, *, key: str) -> dict[str, T]:
    val = _coerce_type(dict, val, key=key)

    kt, vt = get_args(typ)
    assert kt is str, "non-string dict keys are not supported"
    return {k: typecast(vt, v, key=_build_obj_key(key, k)) for k, v in val.items()}


def _coerce_list(typ: type[list[T]], val: Primitive, *, key: str) -> list[T]:
    val = _coerce_type(list, val, key=key)
    (it,) = get_args(typ)
    return [typecast(it, item, key=f"{key}[{index}]") for index, item in enumerate(val)]


def _coerce_tuple(typ: Any, val: Primitive, *, key: str) -> tuple[Any, ...]:
    val = _coerce_type(list, val, key=key)
    item_types = get_args(typ)
    if len(item_types) == 2 and item_types[1] is Ellipsis:
        item_types = (item_types[0],) * len(val)
    if len(item_types) != len(val):
        msg = f"Expected {len(item_types)} items, got {len(val)}"
        raise TypeCastError(key, msg)
    return tuple(
        typecast(it, item, key=f"{key}[{index}]")
        for index, (it, item) in enumerate(zip(item_types, val))
    )


def _coerce_literal(typ: Any, val: Primitive, *, key: str) -> Any:
    choices = get_args(typ)
    if val not in choices or isinstance(val, bool) != isinstance(choices[0], bool):
        msg = f"Value was {val!r}, but expected one of {list(choices)}"
        raise TypeCastError(key, msg)
    return val


def _coerce_union(typ: type[T], val: Primitive, *, key: str) -> T:
    errors = []
    for ut in get_args(typ):
        if ut is NoneType:
            if val is None:
                return None  # type: ignore[return-value]
            continue
        try:
            return typecast(ut, val, key=key)
        except TypeCastError as e:
            errors.append(f"- {e.message}")
    raise TypeCastError(key, "\nPossible issues:\n" + "\n".join(errors))


_origin_mapper = {
    dict: _coerce_dict,
    list: _coerce_list,
    tuple: _coerce_tuple,
    Literal: _coerce_literal,
    Union: _coerce_union,
    UnionType: _coerce_union,
}


class Coercable(Protocol):
    def __call__(self, typ: Any, val: Primitive, *, key: str) -> Any: ...


@overload
def typecast(typ: type[T], val: Primitive, *, key: str = ...) -> T: ...
@overload
def typecast(typ: Any, val: Primitive, *, key: str = ...) -> Any: ...
def typecast(typ: Any, val: Primitive, *, key: str = "") -> Any:
    """Check ``val`` against ``typ``, building dataclasses out of dicts.

    ``key`` is the dotted path of ``val`` in the source document and only
    shows up in error messages.
    """
    coerce: Coercable
    if (origin := get_origin(typ)) in _origin_mapper:
        coerce = _origin_mapper[origin]
    elif typ is Any or isinstance(typ, type):
        coerce = _coerce_type
    else:
        raise NotImplementedError(f"{typ} is not supported yet")

    return coerce(typ, val, key=key)

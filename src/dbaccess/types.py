"""
Type helpers shared by the record profiler and the type converter.

This module provides:
- Char: the single-character text type
- zero_value: the value a null column takes for a given target type
- Target classification helpers for annotated, optional and array types
"""
import types
import typing
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Union

import numpy as np

INT64_MIN = -(1 << 63)
INT64_MAX = (1 << 63) - 1

# numpy sized integer types narrow with two's-complement wrap-around
SIZED_INT_TYPES: dict[type, int] = {
    np.int8: 8,
    np.int16: 16,
    np.int32: 32,
    np.int64: 64,
}

SIZED_FLOAT_TYPES: tuple[type, ...] = (np.float32, np.float64)


class Char(str):
    """A single character.

    Accepts a one-character string or an integer code point.
    """
    __slots__ = ()

    def __new__(cls, value: 'str | int' = '\0') -> 'Char':
        if isinstance(value, int):
            value = chr(value)
        if not isinstance(value, str) or len(value) != 1:
            raise ValueError(f'Char requires exactly one character, got {value!r}')
        return super().__new__(cls, value)

    def __repr__(self) -> str:
        return f'Char({str.__repr__(self)})'


def strip_annotated(target: Any) -> Any:
    """Return the bare type of an `Annotated[...]` hint."""
    while typing.get_origin(target) is Annotated:
        target = target.__origin__
    return target


def is_union(target: Any) -> bool:
    return typing.get_origin(target) in {Union, types.UnionType}


def union_members(target: Any) -> list[Any]:
    """Return the non-None members of a union or Optional hint."""
    return [arg for arg in typing.get_args(target) if arg is not type(None)]


def is_integer_type(target: Any) -> bool:
    return target is int or target in SIZED_INT_TYPES


def is_float_type(target: Any) -> bool:
    return target is float or target in SIZED_FLOAT_TYPES


def is_numeric_type(target: Any) -> bool:
    return is_integer_type(target) or is_float_type(target) or target is Decimal


def is_enum_type(target: Any) -> bool:
    return isinstance(target, type) and issubclass(target, Enum)


def array_element_type(target: Any) -> tuple[type, Any] | None:
    """Classify a target as an array type.

    Returns
        (container, element type) for `list`, `tuple`, `list[T]` and
        `tuple[T, ...]` targets, None for anything else
    """
    if target in {list, tuple}:
        return target, Any
    origin = typing.get_origin(target)
    if origin in {list, tuple}:
        args = typing.get_args(target)
        if origin is tuple and not (len(args) == 2 and args[1] is Ellipsis):
            return None
        return origin, (args[0] if args else Any)
    return None


def is_bytes_type(target: Any) -> bool:
    return target in {bytes, bytearray}


def zero_value(target: Any) -> Any:
    """Return the value a null takes when converted to `target`.

    Primitive-like targets get their zero; everything else gets None.
    """
    target = strip_annotated(target)
    if target is bool:
        return False
    if target is int:
        return 0
    if target is float:
        return 0.0
    if target is Char:
        return Char('\0')
    if target in SIZED_INT_TYPES or target in SIZED_FLOAT_TYPES:
        return target(0)
    return None

"""
Value coercion for result mapping.

`TypeConverter.convert(value, target)` turns any value a driver can return
into the type a record member declares. Rules are tried in order and the
first match wins:

1. None becomes the target's zero value (False, 0, 0.0, Char('\\0')) or None
2. Values the target already accepts pass through unchanged
3. Arrays (list, tuple, bytes, ndarray, ...) convert element-wise; byte and
   character arrays behave like text
4. Mappings become new records, one member assignment per entry
5. Other collections convert element-wise into array targets
6. Enums give their ordinal to numbers, their name to text
7. Booleans give 0/1 to numbers, 'true'/'false' to text
8. Numbers narrow like native casts (truncate toward zero, wrap sized ints)
9. Characters give their code point to numbers
10. Dates and datetimes give epoch milliseconds to numbers, ISO text to text
11. Text is parsed leniently; malformed numbers become zero
12. Large objects (anything with `read()`) are drained and converted again
13. Anything else raises TypeConversionError

The lenient parsing helpers (`parse_bool`, `parse_int`, `parse_float`,
`parse_decimal`) never raise; they return the zero value on bad input.
"""
import array
import datetime
import io
import logging
import math
import numbers
import re
import typing
from collections.abc import Iterable, Mapping, Sequence
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

import dateutil.parser
import numpy as np
from dbaccess.exceptions import TypeConversionError
from dbaccess.profile import get_profile
from dbaccess.types import INT64_MAX, INT64_MIN, SIZED_FLOAT_TYPES
from dbaccess.types import SIZED_INT_TYPES, Char, array_element_type
from dbaccess.types import is_bytes_type, is_enum_type, is_float_type
from dbaccess.types import is_integer_type, is_numeric_type, is_union
from dbaccess.types import strip_annotated, union_members, zero_value

logger = logging.getLogger(__name__)

LOB_CHUNK_SIZE = 64 * 1024

_INTEGER_TEXT = re.compile(r'[+-]?[0-9]+')
_DECIMAL_TEXT = re.compile(r'[+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?')
_FLOAT_TEXT = re.compile(
    r'\s*[+-]?(?:(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?|Infinity|NaN)\s*')

_EPOCH = datetime.datetime(1970, 1, 1, tzinfo=datetime.timezone.utc)

_BYTE_ARRAYS = (bytes, bytearray, memoryview)
_ARRAYS = (list, tuple, array.array, np.ndarray, *_BYTE_ARRAYS)


# Lenient parsing helpers

def parse_bool(text: str | None) -> bool:
    """True only for 'true' in any letter case."""
    return text is not None and text.lower() == 'true'


def parse_int(text: str | None, bits: int | None = None) -> int:
    """Parse a decimal integer, returning 0 for malformed or out-of-range text.

    Args:
        text: Text to parse
        bits: Width of the signed target; None means unbounded
    """
    if text is None or not _INTEGER_TEXT.fullmatch(text):
        return 0
    value = int(text)
    if bits is not None and not -(1 << (bits - 1)) <= value < (1 << (bits - 1)):
        return 0
    return value


def parse_float(text: str | None) -> float:
    """Parse a float, returning 0.0 for malformed text.

    Only plain decimal and exponent notation is accepted, plus the exact
    words 'Infinity' and 'NaN'. Digit separators and 'inf' are malformed.
    """
    if text is None or not _FLOAT_TEXT.fullmatch(text):
        return 0.0
    return float(text)


def parse_decimal(text: str | None) -> Decimal:
    """Parse a decimal, returning Decimal(0) for malformed text."""
    if text is None or not _DECIMAL_TEXT.fullmatch(text):
        return Decimal(0)
    try:
        return Decimal(text)
    except InvalidOperation:
        return Decimal(0)


# Native narrowing

def _wrap(value: int, bits: int) -> int:
    """Two's-complement wrap of an integer to a signed width."""
    value &= (1 << bits) - 1
    if value >= 1 << (bits - 1):
        value -= 1 << bits
    return value


def _is_floating(number: Any) -> bool:
    return isinstance(number, (float, np.floating))


def truncate(number: Any) -> int:
    """Truncate toward zero. NaN is 0 and infinities saturate at 64 bits."""
    if isinstance(number, Decimal):
        if number.is_nan():
            return 0
        if number.is_infinite():
            return INT64_MAX if number > 0 else INT64_MIN
        return int(number)
    if _is_floating(number):
        number = float(number)
        if math.isnan(number):
            return 0
        if math.isinf(number):
            return INT64_MAX if number > 0 else INT64_MIN
    return int(number)


def narrow(number: Any, bits: int) -> int:
    """Narrow a number to a signed integer width the way a native cast does.

    Floating values saturate to the 32- or 64-bit range first, then every
    value wraps to `bits`.
    """
    value = truncate(number)
    if _is_floating(number):
        limit = 32 if bits <= 32 else 64
        value = max(-(1 << (limit - 1)), min((1 << (limit - 1)) - 1, value))
    return _wrap(value, bits)


def epoch_millis(value: datetime.date) -> int:
    """Milliseconds since the epoch; naive values are taken as UTC."""
    if not isinstance(value, datetime.datetime):
        value = datetime.datetime.combine(value, datetime.time())
    if value.tzinfo is None:
        value = value.replace(tzinfo=datetime.timezone.utc)
    return (value - _EPOCH) // datetime.timedelta(milliseconds=1)


def from_epoch_millis(millis: int) -> datetime.datetime:
    """Naive UTC datetime for an epoch millisecond count."""
    moment = _EPOCH + datetime.timedelta(milliseconds=millis)
    return moment.replace(tzinfo=None)


def _is_char_array(value: Any) -> bool:
    return (isinstance(value, (list, tuple)) and len(value) > 0
            and all(isinstance(item, Char) for item in value))


def _is_lob(value: Any) -> bool:
    return callable(getattr(value, 'read', None))


def _is_record_type(target: Any) -> bool:
    return (isinstance(target, type) and typing.get_origin(target) is None
            and not issubclass(target, (str, bytes, bytearray, numbers.Number,
                                        Enum, datetime.date, datetime.time,
                                        Mapping, Iterable, np.generic)))


class TypeConverter:
    """Convert driver values to the types record members declare.

    Args:
        lob_errors: 'null' turns unreadable large objects into None,
            'raise' turns them into TypeConversionError
    """

    def __init__(self, lob_errors: str = 'null') -> None:
        if lob_errors not in {'null', 'raise'}:
            raise ValueError(f'Unknown large object error policy: {lob_errors}')
        self.lob_errors = lob_errors

    def __repr__(self) -> str:
        return f'TypeConverter(lob_errors={self.lob_errors!r})'

    def convert(self, value: Any, target: Any, member: str = 'source') -> Any:
        """Convert `value` to `target`.

        Args:
            value: The value to convert
            target: A type or typing hint (Optional, list[T], Annotated, ...)
            member: Name reported in conversion errors

        Raises
            TypeConversionError: If no rule converts the value
        """
        target = strip_annotated(target)

        if is_union(target):
            return self._convert_union(value, target, member)

        if value is None:
            return zero_value(target)

        if self._accepts(target, value):
            return value

        if isinstance(value, _ARRAYS):
            return self._convert_array(value, target, member)

        if isinstance(value, Mapping):
            return self._convert_mapping(value, target, member)

        if _is_lob(value) and not isinstance(value, Enum):
            return self._convert_lob(value, target, member)

        if isinstance(value, Iterable) and not isinstance(value, str):
            return self._convert_collection(value, target, member)

        if isinstance(value, Enum):
            return self._convert_enum(value, target, member)

        if isinstance(value, (bool, np.bool_)):
            return self._convert_bool(bool(value), target, member)

        if isinstance(value, Char):
            return self._convert_char(value, target, member)

        if isinstance(value, (numbers.Number, np.number)):
            return self._convert_number(value, target, member)

        if isinstance(value, (datetime.date, datetime.time)):
            return self._convert_temporal(value, target, member)

        if isinstance(value, str):
            return self._convert_text(value, target, member)

        raise TypeConversionError(member, type(value), target)

    def _accepts(self, target: Any, value: Any) -> bool:
        """Whether `value` can be handed to `target` unchanged."""
        if target is Any or target is object:
            return True
        if not isinstance(target, type) or typing.get_origin(target) is not None:
            return False
        if isinstance(value, bool) and target is not bool:
            return False
        if isinstance(value, Enum) and not issubclass(target, Enum):
            return False
        if target is datetime.date and isinstance(value, datetime.datetime):
            return False
        if target is str and isinstance(value, Char):
            return False
        return isinstance(value, target)

    def _convert_union(self, value: Any, target: Any, member: str) -> Any:
        if value is None:
            return None
        members = union_members(target)
        for candidate in members:
            if self._accepts(strip_annotated(candidate), value):
                return value
        return self.convert(value, members[0], member)

    def _single_element(self, value: Any, target: Any, member: str) -> Any:
        """Wrap a scalar in a one-element array of the target kind."""
        if is_bytes_type(target):
            return target([narrow(self.convert(value, int, member), 8) & 0xFF])
        container, element = array_element_type(target)
        return container([self.convert(value, element, member)])

    def _is_array_target(self, target: Any) -> bool:
        return is_bytes_type(target) or array_element_type(target) is not None

    def _convert_array(self, value: Any, target: Any, member: str) -> Any:
        if isinstance(value, _BYTE_ARRAYS):
            return self._convert_bytes(bytes(value), target, member)

        if _is_char_array(value):
            shape = array_element_type(target)
            if shape is None:
                return self.convert(''.join(value), target, member)
            container, element = shape
            if element is Char:
                return container(value)

        return self._convert_elements(value, target, member)

    def _convert_bytes(self, data: bytes, target: Any, member: str) -> Any:
        if target is str:
            return data.decode('utf-8', errors='replace')
        if is_bytes_type(target):
            return target(data)
        shape = array_element_type(target)
        if shape is not None:
            container, element = shape
            if element is Char:
                return container(Char(c) for c in data.decode('utf-8', errors='replace'))
            return container(self.convert(b, element, member) for b in data)
        raise TypeConversionError(member, bytes, target)

    def _convert_elements(self, items: Iterable, target: Any, member: str) -> Any:
        if is_bytes_type(target):
            return target(narrow(self.convert(item, int, member), 8) & 0xFF for item in items)
        shape = array_element_type(target)
        if shape is None:
            raise TypeConversionError(member, type(items), target)
        container, element = shape
        return container(self.convert(item, element, f'{member}[{i}]')
                         for i, item in enumerate(items))

    def _convert_mapping(self, value: Mapping, target: Any, member: str) -> Any:
        if not _is_record_type(target):
            raise TypeConversionError(member, type(value), target)
        return self.to_record(target, value.keys(), value.values())

    def _convert_collection(self, value: Iterable, target: Any, member: str) -> Any:
        if not self._is_array_target(target):
            raise TypeConversionError(member, type(value), target)
        return self._convert_elements(list(value), target, member)

    def _convert_enum(self, value: Enum, target: Any, member: str) -> Any:
        if is_numeric_type(target) or target is Char:
            ordinal = list(type(value)).index(value)
            return self.convert(ordinal, target, member)
        if target is str:
            return value.name
        if is_enum_type(target):
            return target.__members__.get(value.name)
        raise TypeConversionError(member, type(value), target)

    def _convert_bool(self, value: bool, target: Any, member: str) -> Any:
        if target is bool:
            return value
        if is_numeric_type(target):
            return self.convert(int(value), target, member)
        if target is Char:
            return Char(int(value))
        if target is str:
            return 'true' if value else 'false'
        if self._is_array_target(target):
            return self._single_element(value, target, member)
        raise TypeConversionError(member, bool, target)

    def _convert_number(self, value: Any, target: Any, member: str) -> Any:
        if target is bool:
            return truncate(value) != 0
        if target in SIZED_INT_TYPES:
            return target(narrow(value, SIZED_INT_TYPES[target]))
        if target is int:
            return truncate(value)
        if target is float or target in SIZED_FLOAT_TYPES:
            try:
                number = float(value)
            except OverflowError:
                number = math.inf if value > 0 else -math.inf
            return target(number)
        if target is Decimal:
            if isinstance(value, (int, np.integer)):
                return Decimal(int(value))
            return Decimal(str(value))
        if target is Char:
            return Char(narrow(value, 16) & 0xFFFF)
        if target is datetime.datetime:
            return from_epoch_millis(truncate(value))
        if target is datetime.date:
            return from_epoch_millis(truncate(value)).date()
        if target is str:
            return str(value)
        if self._is_array_target(target):
            return self._single_element(value, target, member)
        raise TypeConversionError(member, type(value), target)

    def _convert_char(self, value: Char, target: Any, member: str) -> Any:
        if target is bool:
            return ord(value) != 0
        if is_numeric_type(target):
            return self.convert(ord(value), target, member)
        if target is str:
            return str(value)
        if self._is_array_target(target):
            return self._single_element(value, target, member)
        raise TypeConversionError(member, Char, target)

    def _convert_temporal(self, value: Any, target: Any, member: str) -> Any:
        if isinstance(value, datetime.time):
            if target is str:
                return value.isoformat()
            raise TypeConversionError(member, type(value), target)
        if is_integer_type(target) or is_float_type(target):
            return self.convert(epoch_millis(value), target, member)
        if target is str:
            return value.isoformat()
        if target is datetime.datetime:
            return datetime.datetime.combine(value, datetime.time())
        if target is datetime.date:
            return value.date()
        if self._is_array_target(target):
            return self._single_element(value, target, member)
        raise TypeConversionError(member, type(value), target)

    def _convert_text(self, text: str, target: Any, member: str) -> Any:
        if target is bool:
            return parse_bool(text)
        if target in SIZED_INT_TYPES:
            return target(parse_int(text, SIZED_INT_TYPES[target]))
        if target is int:
            return parse_int(text)
        if target is float or target in SIZED_FLOAT_TYPES:
            return target(parse_float(text))
        if target is Decimal:
            return parse_decimal(text)
        if target is Char and len(text) == 1:
            return Char(text)
        if target is str:
            return str(text)
        if is_enum_type(target):
            return target.__members__.get(text)
        if target in {datetime.datetime, datetime.date}:
            return self._parse_temporal(text, target)
        if is_bytes_type(target):
            return target(text.encode('utf-8'))
        shape = array_element_type(target)
        if shape is not None:
            container, element = shape
            if element is Char:
                return container(Char(c) for c in text)
            return container([self.convert(text, element, member)])
        raise TypeConversionError(member, str, target)

    @staticmethod
    def _parse_temporal(text: str, target: Any) -> Any:
        try:
            moment = dateutil.parser.parse(text)
        except (ValueError, OverflowError):
            return None
        return moment if target is datetime.datetime else moment.date()

    def read_lob(self, value: Any, member: str = 'source') -> bytes | str | None:
        """Drain a large object into memory.

        Returns None when the read fails and the error policy is 'null'.
        """
        chunks = []
        try:
            while True:
                chunk = value.read(LOB_CHUNK_SIZE)
                if not chunk:
                    break
                chunks.append(chunk)
        except (OSError, ValueError) as err:
            if self.lob_errors == 'raise':
                raise TypeConversionError(
                    member, type(value), bytes,
                    message=f'Could not read large object {member}: {err}') from err
            logger.debug(f'Could not read large object {member}, using null: {err}')
            return None
        if not chunks:
            return '' if isinstance(value, io.TextIOBase) else b''
        return ''.join(chunks) if isinstance(chunks[0], str) else b''.join(chunks)

    def _convert_lob(self, value: Any, target: Any, member: str) -> Any:
        content = self.read_lob(value, member)
        if content is None:
            return None
        return self.convert(content, target, member)

    def drain(self, value: Any, member: str = 'source') -> Any:
        """Replace large objects and memoryviews with in-memory values."""
        if isinstance(value, memoryview):
            return bytes(value)
        if _is_lob(value):
            return self.read_lob(value, member)
        return value

    def apply_member(self, instance: Any, name: str, value: Any) -> bool:
        """Convert `value` and assign it to the member `name` resolves to.

        Returns
            False if no member matches the name
        """
        member = get_profile(type(instance)).find_member(name)
        if member is None:
            return False
        member.assign(instance, self.convert(value, member.type, name))
        return True

    def to_record(self, record_type: type, names: Iterable[str], values: Iterable[Any]) -> Any:
        """Build a record from parallel column names and values.

        Columns without a matching member are ignored.
        """
        profile = get_profile(record_type)
        instance = profile.new_instance()
        for name, value in zip(names, values):
            member = profile.find_member(name)
            if member is not None:
                member.assign(instance, self.convert(value, member.type, name))
        return instance


_default_converter = TypeConverter()


def default_converter() -> TypeConverter:
    """Converter with the default large object error policy."""
    return _default_converter


def adapt_param(value: Any) -> Any:
    """Convert a bind parameter to a value the drivers understand.

    NumPy scalars become Python scalars; NaN/NaT become None; Char and
    Enum parameters are sent as text.
    """
    if value is None:
        return None
    if isinstance(value, Enum):
        return value.name
    if isinstance(value, Char):
        return str(value)
    if isinstance(value, np.datetime64):
        if np.isnat(value):
            return None
        return value.astype('datetime64[us]').item()
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, float) and math.isnan(value):
        return None
    return value


def adapt_params(params: Sequence[Any]) -> tuple:
    """Convert a sequence of bind parameters with `adapt_param`."""
    return tuple(adapt_param(p) for p in params)

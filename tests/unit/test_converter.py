"""Unit tests for TypeConverter.

Covers the coercion rules in order: nulls, pass-through, arrays, mappings,
collections, enums, booleans, numbers, characters, temporals, text and
large objects.
"""
import array
import datetime
import io
import math
from decimal import Decimal
from typing import Any, Optional

import numpy as np
import pytest
from dbaccess.converter import TypeConverter, adapt_param, epoch_millis, narrow
from dbaccess.converter import parse_bool, parse_decimal, parse_float, parse_int
from dbaccess.exceptions import TypeConversionError
from dbaccess.types import Char

from tests.fixtures.records import Color, Fruit


@pytest.fixture
def converter():
    return TypeConverter()


class TestSpotChecks:
    """Conversions every caller relies on."""

    @pytest.mark.parametrize(('value', 'target', 'expected'), [
        (7, bool, True),
        (0, bool, False),
        ('TRUE', bool, True),
        ('true', bool, True),
        ('yes', bool, False),
        (b'abcd', str, 'abcd'),
        ('abc', int, 0),
    ], ids=['int_true', 'int_false', 'text_upper_true', 'text_true', 'text_other',
            'bytes_to_text', 'malformed_int'])
    def test_conversion(self, converter, value, target, expected):
        assert converter.convert(value, target) == expected


class TestNulls:

    @pytest.mark.parametrize(('target', 'expected'), [
        (bool, False),
        (int, 0),
        (float, 0.0),
        (Char, '\0'),
        (str, None),
        (Decimal, None),
        (datetime.date, None),
        (Optional[int], None),
        (int | None, None),
        (list[int], None),
    ])
    def test_zero_values(self, converter, target, expected):
        assert converter.convert(None, target) == expected

    def test_sized_zero(self, converter):
        result = converter.convert(None, np.int16)
        assert result == 0
        assert isinstance(result, np.int16)


class TestPassThrough:

    def test_same_type(self, converter):
        value = datetime.date(2024, 1, 2)
        assert converter.convert(value, datetime.date) is value

    def test_any_and_object(self, converter):
        value = object()
        assert converter.convert(value, Any) is value
        assert converter.convert(value, object) is value

    def test_bool_does_not_pass_to_int(self, converter):
        result = converter.convert(True, int)
        assert result == 1
        assert type(result) is int

    def test_optional_unwraps(self, converter):
        assert converter.convert(5, Optional[int]) == 5
        assert converter.convert('5', int | None) == 5


class TestArrays:

    def test_list_element_wise(self, converter):
        assert converter.convert([1, '2', 3.7], list[int]) == [1, 2, 3]

    def test_tuple_target(self, converter):
        assert converter.convert([1, 2], tuple[str, ...]) == ('1', '2')

    def test_untyped_list_target(self, converter):
        assert converter.convert((1, 2), list) == [1, 2]

    def test_ndarray_and_array(self, converter):
        assert converter.convert(np.array([1.5, 2.5]), list[int]) == [1, 2]
        assert converter.convert(array.array('i', [4, 5]), list[float]) == [4.0, 5.0]

    def test_bytes_to_bytes_types(self, converter):
        assert converter.convert(b'ab', bytearray) == bytearray(b'ab')
        assert converter.convert(memoryview(b'ab'), bytes) == b'ab'

    def test_malformed_utf8_is_replaced(self, converter):
        assert converter.convert(b'a\xffb', str) == 'a\ufffdb'

    def test_char_array_textual(self, converter):
        chars = [Char('4'), Char('2')]
        assert converter.convert(chars, str) == '42'
        assert converter.convert(chars, int) == 42
        assert converter.convert(chars, list[Char]) == chars

    def test_bytes_to_char_list(self, converter):
        assert converter.convert(b'hi', list[Char]) == [Char('h'), Char('i')]

    def test_int_list_to_bytes(self, converter):
        assert converter.convert([1, 256, -1], bytes) == bytes([1, 0, 255])

    def test_array_to_scalar_fails(self, converter):
        with pytest.raises(TypeConversionError, match='target is int'):
            converter.convert([1, 2], int)


class TestMappingsAndCollections:

    def test_mapping_to_record(self, converter):
        fruit = converter.convert({'id': '3', 'value': 'durian', 'extra': 1}, Fruit)
        assert fruit == Fruit(3, 'durian')

    def test_mapping_to_scalar_fails(self, converter):
        with pytest.raises(TypeConversionError):
            converter.convert({'a': 1}, int)

    def test_set_to_list(self, converter):
        assert sorted(converter.convert({1, 2}, list[str])) == ['1', '2']

    def test_generator_to_tuple(self, converter):
        assert converter.convert((i for i in range(3)), tuple[int, ...]) == (0, 1, 2)

    def test_collection_to_scalar_fails(self, converter):
        with pytest.raises(TypeConversionError):
            converter.convert({1, 2}, str)


class TestEnumsAndBooleans:

    def test_enum_to_number_is_ordinal(self, converter):
        assert converter.convert(Color.BLUE, int) == 2
        assert converter.convert(Color.GREEN, float) == 1.0

    def test_enum_to_text_is_name(self, converter):
        assert converter.convert(Color.RED, str) == 'RED'

    def test_enum_lookup_by_name(self, converter):
        assert converter.convert('GREEN', Color) is Color.GREEN
        assert converter.convert('PURPLE', Color) is None

    def test_bool_targets(self, converter):
        assert converter.convert(True, float) == 1.0
        assert converter.convert(False, str) == 'false'
        assert converter.convert(True, Char) == '\x01'
        assert converter.convert(True, list[int]) == [1]


class TestNumbers:

    def test_truncation_toward_zero(self, converter):
        assert converter.convert(3.9, int) == 3
        assert converter.convert(-3.9, int) == -3
        assert converter.convert(Decimal('7.8'), int) == 7

    def test_sized_integers_wrap(self, converter):
        assert converter.convert(300, np.int8) == 44
        assert converter.convert(-129, np.int8) == 127
        assert converter.convert(70000, np.int16) == 4464

    def test_floats_saturate_before_narrowing(self, converter):
        assert converter.convert(1e20, np.int32) == 2147483647
        assert converter.convert(-1e20, np.int64) == -(1 << 63)
        assert converter.convert(1e20, np.int8) == -1

    def test_nan_and_infinity(self, converter):
        assert converter.convert(float('nan'), int) == 0
        assert converter.convert(float('inf'), int) == (1 << 63) - 1

    def test_python_int_unbounded(self, converter):
        assert converter.convert(10 ** 30, int) == 10 ** 30

    def test_huge_int_to_float_saturates(self, converter):
        assert converter.convert(10 ** 400, float) == math.inf
        assert converter.convert(-10 ** 400, float) == -math.inf

    def test_number_to_bool(self, converter):
        assert converter.convert(0.4, bool) is False
        assert converter.convert(-2, bool) is True

    def test_number_to_text_and_decimal(self, converter):
        assert converter.convert(12, str) == '12'
        assert converter.convert(0.1, Decimal) == Decimal('0.1')

    def test_numpy_scalars(self, converter):
        assert converter.convert(np.int64(5), int) == 5
        assert converter.convert(np.float32(2.5), float) == 2.5

    def test_epoch_millis_to_datetime(self, converter):
        assert converter.convert(1000, datetime.datetime) == datetime.datetime(1970, 1, 1, 0, 0, 1)
        assert converter.convert(86_400_000, datetime.date) == datetime.date(1970, 1, 2)

    def test_number_to_char_wraps(self, converter):
        assert converter.convert(65, Char) == 'A'
        assert converter.convert(65 + 65536, Char) == 'A'


class TestCharsAndTemporals:

    def test_char_code_point(self, converter):
        assert converter.convert(Char('A'), int) == 65
        assert converter.convert(Char('\0'), bool) is False
        assert converter.convert(Char('x'), str) == 'x'
        assert converter.convert(Char('x'), list[str]) == ['x']

    def test_temporal_to_number(self, converter):
        moment = datetime.datetime(1970, 1, 1, 0, 0, 2)
        assert converter.convert(moment, int) == 2000
        assert converter.convert(datetime.date(1970, 1, 2), int) == 86_400_000

    def test_aware_datetime_millis(self):
        moment = datetime.datetime(1970, 1, 1, 1, tzinfo=datetime.timezone(datetime.timedelta(hours=1)))
        assert epoch_millis(moment) == 0

    def test_temporal_to_text(self, converter):
        assert converter.convert(datetime.date(2024, 3, 1), str) == '2024-03-01'

    def test_datetime_date_conversions(self, converter):
        moment = datetime.datetime(2024, 3, 1, 12, 30)
        assert converter.convert(moment, datetime.date) == datetime.date(2024, 3, 1)
        assert converter.convert(datetime.date(2024, 3, 1), datetime.datetime) == \
            datetime.datetime(2024, 3, 1)


class TestText:

    @pytest.mark.parametrize(('text', 'target', 'expected'), [
        ('42', int, 42),
        ('-42', int, -42),
        ('4.2', int, 0),
        ('4.2', float, 4.2),
        ('nope', float, 0.0),
        ('1.10', Decimal, Decimal('1.10')),
        ('nope', Decimal, Decimal(0)),
        ('200', np.int8, 0),
        ('100', np.int8, 100),
        ('x', Char, 'x'),
        ('hi', bytes, b'hi'),
        ('hi', list[Char], ['h', 'i']),
        ('7', list[int], [7]),
        ('2024-01-02', datetime.date, datetime.date(2024, 1, 2)),
        ('2024-01-02T03:04:05', datetime.datetime, datetime.datetime(2024, 1, 2, 3, 4, 5)),
        ('not a date', datetime.date, None),
    ])
    def test_lenient_parsing(self, converter, text, target, expected):
        assert converter.convert(text, target) == expected

    def test_long_text_to_char_fails(self, converter):
        with pytest.raises(TypeConversionError):
            converter.convert('xy', Char)


class TestLargeObjects:

    def test_binary_stream(self, converter):
        assert converter.convert(io.BytesIO(b'hello'), str) == 'hello'

    def test_text_stream(self, converter):
        assert converter.convert(io.StringIO('12'), int) == 12

    def test_empty_stream(self, converter):
        assert converter.read_lob(io.BytesIO()) == b''
        assert converter.read_lob(io.StringIO()) == ''

    def test_drain(self, converter):
        assert converter.drain(memoryview(b'ab')) == b'ab'
        assert converter.drain(io.BytesIO(b'ab')) == b'ab'
        assert converter.drain(5) == 5

    def test_read_failure_is_null_by_default(self, converter, mocker):
        stream = mocker.Mock()
        stream.read.side_effect = OSError('gone')
        assert converter.convert(stream, str) is None

    def test_read_failure_raises_when_strict(self, mocker):
        stream = mocker.Mock()
        stream.read.side_effect = OSError('gone')
        with pytest.raises(TypeConversionError, match='Could not read large object'):
            TypeConverter(lob_errors='raise').convert(stream, str, member='body')

    def test_unknown_policy(self):
        with pytest.raises(ValueError):
            TypeConverter(lob_errors='ignore')


def test_unconvertible_value_names_member_and_types(converter):
    with pytest.raises(TypeConversionError) as exc_info:
        converter.convert(object(), int, member='amount')
    err = exc_info.value
    assert err.member == 'amount'
    assert err.target is int
    assert 'amount is object, target is int' in str(err)
    assert isinstance(err, TypeError)


class TestParseHelpers:

    def test_parse_bool(self):
        assert parse_bool('True') is True
        assert parse_bool('1') is False
        assert parse_bool(None) is False

    def test_parse_int(self):
        assert parse_int('+12') == 12
        assert parse_int(' 12') == 0
        assert parse_int('128', bits=8) == 0
        assert parse_int('-128', bits=8) == -128
        assert parse_int(None) == 0

    def test_parse_float_and_decimal(self):
        assert parse_float('1e3') == 1000.0
        assert parse_float(' -2.5 ') == -2.5
        assert parse_float(None) == 0.0
        assert parse_float('1_000') == 0.0
        assert parse_float('inf') == 0.0
        assert parse_float('Infinity') == math.inf
        assert math.isnan(parse_float('NaN'))
        assert parse_decimal('x') == Decimal(0)
        assert parse_decimal('1_000') == Decimal(0)
        assert parse_decimal('NaN') == Decimal(0)
        assert parse_decimal('-.5E2') == Decimal('-50')

    def test_narrow(self):
        assert narrow(255, 8) == -1
        assert narrow(2.9, 16) == 2


class TestAdaptParam:

    @pytest.mark.parametrize(('value', 'expected'), [
        (np.int64(3), 3),
        (np.float64(1.5), 1.5),
        (float('nan'), None),
        (np.datetime64('NaT'), None),
        (Color.RED, 'RED'),
        (Char('c'), 'c'),
        ('text', 'text'),
        (None, None),
    ])
    def test_adapt(self, value, expected):
        result = adapt_param(value)
        assert result == expected
        assert type(result) is type(expected)

    def test_datetime64(self):
        assert adapt_param(np.datetime64('2024-01-02T03:04:05')) == datetime.datetime(2024, 1, 2, 3, 4, 5)

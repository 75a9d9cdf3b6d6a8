"""Unit tests for ResultRow, ResultSet and the DataFrame loaders."""
import datetime
import io

import pandas as pd
import pytest
from dbaccess.converter import TypeConverter
from dbaccess.exceptions import TypeConversionError
from dbaccess.result import CaseInsensitiveDict, ResultRow, ResultSet

from tests.fixtures.records import Fruit


def make_row(**values):
    return ResultRow(list(values), list(values.values()))


class TestCaseInsensitiveDict:

    def test_lookup_ignores_case(self):
        data = CaseInsensitiveDict({'Name': 1})
        assert data['name'] == 1
        assert data['NAME'] == 1
        assert 'nAmE' in data

    def test_last_key_wins(self):
        data = CaseInsensitiveDict([('b', 1), ('B', 2)])
        assert len(data) == 1
        assert data['b'] == 2
        assert list(data) == ['B']

    def test_missing_key(self):
        with pytest.raises(KeyError):
            CaseInsensitiveDict()['x']


class TestResultRow:

    def test_positional_and_named_access(self):
        row = make_row(id=3, value='durian')
        assert row[0] == 3
        assert row['value'] == 'durian'
        assert row['VALUE'] == 'durian'
        assert row[-1] == 'durian'
        assert row[0:2] == (3, 'durian')
        assert len(row) == 2
        assert list(row) == [3, 'durian']

    def test_repeated_name_resolves_to_last_column(self):
        row = ResultRow(['id', 'ID'], [1, 2])
        assert row['id'] == 2
        assert row.to_dict() == {'id': 1, 'ID': 2}

    def test_unknown_column(self):
        row = make_row(id=1)
        with pytest.raises(KeyError):
            row['missing']
        assert row.get('missing') is None
        assert row.get('missing', 'x') == 'x'
        assert row.get(5) is None
        assert 'missing' not in row
        assert 'ID' in row

    def test_is_null(self):
        row = make_row(a=None, b=0)
        assert row.is_null('a')
        assert not row.is_null('b')
        assert row.is_null('c')

    def test_typed_getters(self):
        row = make_row(flag='true', count='12', ratio='0.5', label=42,
                       raw='abc', moment='2024-01-02 03:04:05', day=datetime.date(2024, 1, 2))
        assert row.get_bool('flag') is True
        assert row.get_int('count') == 12
        assert row.get_float('ratio') == 0.5
        assert row.get_str('label') == '42'
        assert row.get_bytes('raw') == b'abc'
        assert row.get_datetime('moment') == datetime.datetime(2024, 1, 2, 3, 4, 5)
        assert row.get_date('day') == datetime.date(2024, 1, 2)
        assert row.get_as('count', float) == 12.0

    def test_getters_on_null(self):
        row = make_row(a=None)
        assert row.get_int('a') == 0
        assert row.get_bool('a') is False
        assert row.get_str('a') is None
        assert row.get_int('missing') == 0

    def test_getter_conversion_error(self):
        row = make_row(when=datetime.time(1, 2))
        with pytest.raises(TypeConversionError):
            row.get_int('when')

    def test_large_objects_are_drained(self):
        row = ResultRow(['body', 'view'], [io.BytesIO(b'payload'), memoryview(b'xy')])
        assert row['body'] == b'payload'
        assert row['view'] == b'xy'

    def test_unreadable_large_object(self, mocker):
        stream = mocker.Mock()
        stream.read.side_effect = OSError('gone')
        assert ResultRow(['body'], [stream])['body'] is None
        with pytest.raises(TypeConversionError):
            ResultRow(['body'], [stream], TypeConverter(lob_errors='raise'))

    def test_to_record(self):
        row = ResultRow(['ID', 'value'], [3, 'durian'])
        assert row.to_record(Fruit) == Fruit(0, 'durian')
        assert make_row(id=3, value='durian').to_record(Fruit) == Fruit(3, 'durian')

    def test_equality(self):
        assert make_row(a=1) == make_row(a=1)
        assert make_row(a=1) != make_row(a=2)
        assert make_row(a=[1, 2]) == make_row(a=[1, 2])

    def test_rows_are_unhashable(self):
        with pytest.raises(TypeError):
            hash(make_row(a=1))

    def test_keys_and_values(self):
        row = make_row(id=3, value='durian')
        assert row.keys() == ('id', 'value')
        assert row.column_names == ('id', 'value')
        assert row.values == (3, 'durian')


class TestResultSet:

    @pytest.fixture
    def result(self):
        names = ['id', 'value']
        rows = [ResultRow(names, [1, 'apple']), ResultRow(names, [2, 'banana'])]
        return ResultSet.from_rows(names, rows)

    def test_query_result(self, result):
        assert result.row_count == 2
        assert len(result) == 2
        assert not result.is_update
        assert result.column_names == ('id', 'value')
        assert result.first_row['value'] == 'apple'
        assert [row['id'] for row in result] == [1, 2]
        assert result.generated_key is None

    def test_update_result(self):
        result = ResultSet.from_update(1, [42])
        assert result.is_update
        assert result.rows is None
        assert result.rows_affected == 1
        assert result.generated_key == 42
        assert list(result) == []
        assert result.first_row is None

    def test_empty(self):
        result = ResultSet.from_rows(['id'], [])
        assert result.row_count == 0
        assert result.first_row is None
        assert result.to_dicts() == []

    def test_to_dicts_and_records(self, result):
        assert result.to_dicts() == [{'id': 1, 'value': 'apple'}, {'id': 2, 'value': 'banana'}]
        assert result.to_records(Fruit) == [Fruit(1, 'apple'), Fruit(2, 'banana')]

    def test_immutable(self, result):
        with pytest.raises(AttributeError):
            result.row_count = 5


class TestDataFrames:

    @pytest.fixture
    def result(self):
        names = ['id', 'value']
        rows = [ResultRow(names, [1, 'apple']), ResultRow(names, [2, 'banana'])]
        return ResultSet.from_rows(names, rows)

    def test_numpy_backend(self, result):
        df = result.to_dataframe()
        assert list(df.columns) == ['id', 'value']
        assert df['id'].tolist() == [1, 2]
        assert df['value'].tolist() == ['apple', 'banana']

    def test_pyarrow_backend(self, result):
        df = result.to_dataframe('pyarrow')
        assert list(df.columns) == ['id', 'value']
        assert isinstance(df['id'].dtype, pd.ArrowDtype)
        assert df['value'].tolist() == ['apple', 'banana']

    @pytest.mark.parametrize('backend', ['numpy', 'pyarrow'])
    def test_empty_result_keeps_columns(self, backend):
        df = ResultSet.from_rows(['id', 'value'], []).to_dataframe(backend)
        assert list(df.columns) == ['id', 'value']
        assert len(df) == 0

    def test_update_result_is_empty(self):
        df = ResultSet.from_update(3).to_dataframe()
        assert df.empty

    def test_unknown_backend(self, result):
        with pytest.raises(ValueError, match='backend must be one of'):
            result.to_dataframe('polars')

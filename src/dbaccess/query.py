"""
Query execution shared by connections and transactions.

Every operation takes the Connection whose physical connection runs the
statement; callers check state before getting here.
"""
import logging
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING, Any, TypeVar

from dbaccess.options import DEFAULT_BATCH_SIZE
from dbaccess.result import ResultRow, ResultSet, UpdateResult
from more_itertools import chunked

if TYPE_CHECKING:
    from dbaccess.connection import Connection

__all__ = [
    'fetch_result',
    'fetch_row',
    'fetch_records',
    'execute_update',
    'execute_batch',
    'execute_batch_results',
]

logger = logging.getLogger(__name__)

T = TypeVar('T')


def fetch_result(cn: 'Connection', sql: str, *args: Any) -> ResultSet:
    """Execute a query and materialize every row.

    Column names are read once from the cursor description; rows are
    fetched eagerly and the cursor is closed before returning.
    """
    with cn.cursor() as cursor:
        cursor.execute(sql, *args)
        names = cursor.column_names
        rows = [ResultRow(names, values, cn.converter) for values in cursor.fetchall()]
    logger.debug(f'Query returned {len(rows)} rows')
    return ResultSet.from_rows(names, rows)


def fetch_row(cn: 'Connection', sql: str, *args: Any) -> ResultRow | None:
    """First row of a query, or None when it returns no rows."""
    return fetch_result(cn, sql, *args).first_row


def fetch_records(cn: 'Connection', record_type: type[T], sql: str, *args: Any) -> list[T]:
    """Execute a query and map each row onto a new `record_type` instance."""
    return fetch_result(cn, sql, *args).to_records(record_type)


def execute_update(cn: 'Connection', sql: str, *args: Any) -> UpdateResult:
    """Execute a write statement.

    Generated keys are collected before the affected row count is read;
    a driver reporting an unknown count (-1) yields 0.
    """
    with cn.cursor() as cursor:
        cursor.execute(sql, *args)
        keys = cursor.generated_keys()
        count = max(cursor.rowcount, 0)
    logger.debug(f'Statement affected {count} rows, generated {len(keys)} keys')
    return ResultSet.from_update(count, keys)


def _chunks(param_sets: Iterable[Sequence[Any]], granularity: int) -> Iterable[list]:
    param_sets = list(param_sets)
    if granularity <= 0:
        return [param_sets] if param_sets else []
    return chunked(param_sets, granularity)


def execute_batch(cn: 'Connection', sql: str, param_sets: Iterable[Sequence[Any]],
                  granularity: int = DEFAULT_BATCH_SIZE) -> list[int]:
    """Execute one statement for many parameter sets.

    Args:
        cn: Connection to run on
        sql: Statement with positional placeholders
        param_sets: One parameter sequence per execution
        granularity: Parameter sets per chunk; 0 or less sends one chunk

    Returns
        One affected row count per parameter set, in input order
    """
    counts: list[int] = []
    with cn.cursor() as cursor:
        for chunk in _chunks(param_sets, granularity):
            counts.extend(cursor.executemany(sql, chunk))
    logger.debug(f'Batch executed {len(counts)} parameter sets')
    return counts


def execute_batch_results(cn: 'Connection', sql: str,
                          param_sets: Iterable[Sequence[Any]]) -> list[UpdateResult]:
    """Execute one statement per parameter set, keeping generated keys.

    Returns
        One update result per parameter set, in input order
    """
    results = []
    with cn.cursor() as cursor:
        for params in param_sets:
            cursor.execute(sql, *params)
            keys = cursor.generated_keys()
            results.append(ResultSet.from_update(max(cursor.rowcount, 0), keys))
    return results

from __future__ import annotations

import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from psycopg2.extras import execute_values

"""Batched INSERT helper on top of psycopg2.extras.execute_values.

Used for the replace-batch steps (attendance, payroll details): the caller
deletes the run's old rows and hands the new ones here in one call.
Identifiers are fixed by the store, never taken from workbook text.
"""

__all__ = [
    "BatchInsertError",
    "BatchMetrics",
    "InsertResult",
    "batch_insert",
]


class BatchInsertError(Exception):
    pass


@dataclass(frozen=True)
class BatchMetrics:
    """Timing for one batch insert call."""
    batch_size: int  # rows sent
    elapsed_seconds: float  # time spent in execute_values
    start_time: float  # time.time()
    end_time: float  # time.time()


@dataclass(frozen=True)
class InsertResult:
    inserted_rows: int
    returned_values: list[tuple[Any, ...]] | None = None


def batch_insert(
    cursor: Any,
    table: str,
    columns: Sequence[str],
    rows: Iterable[Sequence[Any]],
    returning: Sequence[str] | None = None,
    page_size: int = 500,
    metrics_callback: Callable[[BatchMetrics], None] | None = None,
) -> InsertResult:
    """Insert ``rows`` into ``table`` with execute_values.

    Parameters
    ----------
    cursor: psycopg2 cursor (transaction managed by the caller)
    table: target table name
    columns: insert column order; every row follows it
    rows: row tuples
    returning: optional column names for a RETURNING clause
    page_size: execute_values page size
    metrics_callback: receives BatchMetrics; not called for an empty batch

    Raises
    ------
    BatchInsertError: the database rejected the batch
    """
    rows_list = list(rows)
    if not rows_list:
        return InsertResult(inserted_rows=0, returned_values=[] if returning else None)

    cols_sql = ",".join(f'"{c}"' for c in columns)
    sql = f"INSERT INTO {table} ({cols_sql}) VALUES %s"
    if returning:
        sql += " RETURNING " + ",".join(f'"{c}"' for c in returning)

    start_time = time.time()
    returned = None
    try:
        # fetch=True collects RETURNING rows across all pages
        result = execute_values(cursor, sql, rows_list, page_size=page_size, fetch=bool(returning))
        if returning:
            returned = [tuple(r) for r in result]
    except Exception as e:
        raise BatchInsertError(str(e)) from e
    finally:
        end_time = time.time()
        if metrics_callback is not None:
            metrics_callback(
                BatchMetrics(
                    batch_size=len(rows_list),
                    elapsed_seconds=end_time - start_time,
                    start_time=start_time,
                    end_time=end_time,
                )
            )

    return InsertResult(inserted_rows=len(rows_list), returned_values=returned)

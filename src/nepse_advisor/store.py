"""
Append-only table store.

Tables hold text rows keyed by column header, one batch per date for the
dated tables. ``ParquetTableStore`` keeps one Parquet file per table under the
data directory; ``MemoryTableStore`` keeps rows in process.
"""

import logging
import math
import os
import threading
from concurrent.futures import TimeoutError as FuturesTimeoutError
from datetime import date
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pandas as pd

from nepse_advisor.config import DATA_DIR, DATED_TABLES, SECTOR_SUMMARY_TABLE, STORE_TIMEOUT_SECONDS, TABLE_COLUMNS
from nepse_advisor.utils import call_with_timeout

logger = logging.getLogger(__name__)

Row = Dict[str, str]

class StoreError(RuntimeError):
    """A table could not be read or written."""

class StoreTimeoutError(StoreError):
    """A table operation did not finish within the store timeout."""

def format_cell(value: Any) -> str:
    """Render a cell value as stored text."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value).upper()
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if value.is_integer():
            return str(int(value))
        return repr(value)
    return str(value)

def duplicate_key(table: str, row: Row) -> tuple:
    """Identity of a row for duplicate removal."""
    if table == SECTOR_SUMMARY_TABLE:
        return (row.get('Date'), row.get('Sector'))
    return (row.get('Date'), row.get('Symbol'))

class TableStore:
    """Base class for table stores.
    
    Subclasses implement ``_read_rows`` and ``_write_rows``; every call goes
    through a timeout and surfaces failures as ``StoreError``.
    """
    
    def __init__(self, timeout: Optional[float] = STORE_TIMEOUT_SECONDS):
        """Initialize the store.
        
        Args:
            timeout: Seconds to wait for a single table operation (None waits forever)
        """
        self.timeout = timeout
        self._lock = threading.RLock()

    def _read_rows(self, table: str) -> List[Row]:
        raise NotImplementedError

    def _write_rows(self, table: str, rows: List[Row]) -> None:
        """Replace the full contents of a table."""
        raise NotImplementedError

    def _call(self, action: str, func: Callable, *args) -> Any:
        try:
            return call_with_timeout(func, self.timeout, *args)
        except FuturesTimeoutError as e:
            raise StoreTimeoutError(f"Timed out {action} after {self.timeout}s") from e
        except StoreError:
            raise
        except Exception as e:
            raise StoreError(f"Error {action}: {e}") from e

    def _normalize(self, table: str, row: Dict[str, Any], batch_date: date) -> Row:
        columns = TABLE_COLUMNS.get(table, list(row.keys()))
        values = dict(row)
        if not values.get('Date'):
            values['Date'] = batch_date.isoformat()
        return {col: format_cell(values.get(col)) for col in columns}

    def read(self, table: str) -> List[Row]:
        """Read all rows of a table in insertion order (empty if missing).

        Raises:
            StoreError: If the table cannot be read
        """
        return self._call(f"reading {table}", self._read_rows, table)

    def append(self, table: str, rows: List[Dict[str, Any]], batch_date: date) -> bool:
        """Append a batch of rows dated ``batch_date``.

        Dated tables accept one batch per date; a second batch for the same
        date is rejected.

        Args:
            table: Table name
            rows: Row dicts keyed by column header
            batch_date: Date stamped on rows without one

        Returns:
            True if the rows were written

        Raises:
            StoreError: If the table cannot be read or written
        """
        new_rows = [self._normalize(table, row, batch_date) for row in rows]
        if not new_rows:
            return False

        with self._lock:
            existing = self.read(table)
            if table in DATED_TABLES:
                date_str = batch_date.isoformat()
                if any(row.get('Date') == date_str for row in existing):
                    logger.info(f"[Skip] Data for {date_str} already exists in {table}. Preventing duplicates.")
                    return False

            self._call(f"writing {table}", self._write_rows, table, existing + new_rows)

        logger.info(f"Appended {len(new_rows)} rows to {table}")
        return True

    def remove_duplicates(self, table: str) -> int:
        """Keep the first row per (Date, Symbol) or (Date, Sector).

        Returns:
            Number of rows removed
        """
        with self._lock:
            rows = self.read(table)
            if not rows:
                return 0

            seen = set()
            unique_rows = []
            for row in rows:
                key = duplicate_key(table, row)
                if key in seen:
                    continue
                seen.add(key)
                unique_rows.append(row)

            removed = len(rows) - len(unique_rows)
            if removed == 0:
                logger.info(f"No duplicates found in {table}.")
                return 0

            logger.info(f"Found {removed} duplicates in {table}. Cleaning up...")
            self._call(f"rewriting {table}", self._write_rows, table, unique_rows)
            return removed

class MemoryTableStore(TableStore):
    """Table store kept in process memory."""

    def __init__(self, tables: Optional[Dict[str, List[Dict[str, Any]]]] = None, timeout: Optional[float] = None):
        super().__init__(timeout=timeout)
        self._tables: Dict[str, List[Row]] = {}
        for table, rows in (tables or {}).items():
            self._tables[table] = [{k: format_cell(v) for k, v in row.items()} for row in rows]

    def _read_rows(self, table: str) -> List[Row]:
        return [dict(row) for row in self._tables.get(table, [])]

    def _write_rows(self, table: str, rows: List[Row]) -> None:
        self._tables[table] = [dict(row) for row in rows]

class ParquetTableStore(TableStore):
    """Table store with one Parquet file per table.

    A write that times out is not interrupted: its table file may still be
    replaced after the timeout was reported. The replacement is atomic, so the
    file holds either the old rows or the complete new batch.
    """

    def __init__(self, data_dir: Path = DATA_DIR, timeout: Optional[float] = STORE_TIMEOUT_SECONDS):
        super().__init__(timeout=timeout)
        self.data_dir = Path(data_dir)

    def table_path(self, table: str) -> Path:
        return self.data_dir / f"{table}.parquet"

    def _read_rows(self, table: str) -> List[Row]:
        path = self.table_path(table)
        if not path.exists():
            return []
        df = pd.read_parquet(path)
        if df.empty:
            return []
        return df.fillna("").astype(str).to_dict('records')

    def _write_rows(self, table: str, rows: List[Row]) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        path = self.table_path(table)
        columns = TABLE_COLUMNS.get(table)
        df = pd.DataFrame(rows, columns=columns).fillna("").astype(str)

        # Readers never see a partially written table
        tmp_path = path.with_suffix('.parquet.tmp')
        df.to_parquet(tmp_path, index=False)
        os.replace(tmp_path, path)

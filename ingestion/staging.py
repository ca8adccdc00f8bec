"""
Bulk-load chunk files into a staging table shaped like the live table.

Ensures:
- The staging table is created fresh from the live table's definition
- Secondary index maintenance is suspended for the whole load and restored on
  every exit path
- Each chunk commits atomically or not at all
- The live table is never touched here
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Set, Tuple

from sqlalchemy import Boolean, Index, MetaData, Table, func, inspect, insert, select, text
from sqlalchemy.ext.asyncio import AsyncConnection

from core.exceptions import IngestionException, LoadError
from ingestion.artifacts import ChunkSet
from ingestion.datasets import DEFAULT_TRAILING_COLUMNS, LOAD_TIME, DatasetSource
from models.base import Base
import logging

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, int], Awaitable[None]]

_MYSQL_DIALECTS = ("mysql", "mariadb")


def coerce_value(raw: str, column_type) -> Any:
    """
    Convert one tab-separated field to the column's Python type.

    Empty fields are NULL, except booleans where an empty flag means False.
    """
    if isinstance(column_type, Boolean):
        return raw.strip().lower() in ("1", "t", "true", "y", "yes")
    if raw == "":
        return None

    try:
        python_type = column_type.python_type
    except NotImplementedError:
        return raw

    if python_type is int:
        return int(raw)
    if python_type is float:
        return float(raw)
    if python_type is Decimal:
        return Decimal(raw)
    if python_type is datetime:
        return datetime.fromisoformat(raw)
    if python_type is date:
        return date.fromisoformat(raw)
    return raw


class StagingLoader:
    """
    Load one dataset's chunks into its staging table.

    The loader owns ``connection`` for the duration of the dataset run; no
    other component touches the staging table while it is being filled.

    Attributes:
        strategy: "copy" (PostgreSQL COPY via asyncpg) or "insert" (batched
            multi-row INSERT for stores without a bulk-load primitive)
        max_statement_variables: Bound parameters allowed per INSERT statement
    """

    def __init__(
        self,
        connection: AsyncConnection,
        target_table: str,
        staging_table: str,
        columns: Sequence[str],
        trailing_columns: Sequence[Tuple[str, Any]] = DEFAULT_TRAILING_COLUMNS,
        strategy: str = "auto",
        max_statement_variables: int = 999
    ):
        self.connection = connection
        self.target_table = target_table
        self.staging_table = staging_table
        self.columns = tuple(columns)
        self.trailing_columns = tuple(trailing_columns)
        self.max_statement_variables = max_statement_variables
        self.strategy = self._resolve_strategy(strategy)
        self._table: Optional[Table] = None
        self._keys_disabled = False

    @classmethod
    def for_source(
        cls,
        connection: AsyncConnection,
        source: DatasetSource,
        strategy: str = "auto",
        max_statement_variables: int = 999
    ) -> "StagingLoader":
        return cls(
            connection,
            target_table=source.target_table,
            staging_table=source.staging_table,
            columns=source.spec.columns,
            trailing_columns=source.spec.trailing_columns,
            strategy=strategy,
            max_statement_variables=max_statement_variables
        )

    @property
    def dialect(self) -> str:
        return self.connection.dialect.name

    def _resolve_strategy(self, strategy: str) -> str:
        copy_capable = (
            self.dialect == "postgresql"
            and self.connection.dialect.driver == "asyncpg"
        )
        if strategy == "auto":
            return "copy" if copy_capable else "insert"
        if strategy == "copy" and not copy_capable:
            raise ValueError(
                f"COPY bulk loading needs postgresql+asyncpg, not "
                f"{self.dialect}+{self.connection.dialect.driver}"
            )
        if strategy not in ("copy", "insert"):
            raise ValueError(f"Unknown bulk load strategy '{strategy}'")
        return strategy

    # ------------------------------------------------------------------
    # Staging table lifecycle
    # ------------------------------------------------------------------

    async def create_staging_table(self):
        """Drop any leftover staging table and recreate it from the live table"""
        try:
            async with self.connection.begin():
                await self.connection.run_sync(self._create_staging_sync)
        except IngestionException:
            raise
        except Exception as e:
            raise LoadError(
                f"Unable to create staging table {self.staging_table}",
                context={
                    "table_name": self.staging_table,
                    "target_table": self.target_table,
                    "operation": "CREATE TABLE"
                },
                original_exception=e
            )

        self._table = None
        logger.info(f"Created staging table {self.staging_table} like {self.target_table}")

    def _create_staging_sync(self, sync_conn):
        inspector = inspect(sync_conn)
        if not inspector.has_table(self.target_table):
            raise LoadError(
                f"Target table {self.target_table} does not exist",
                context={"target_table": self.target_table}
            )

        quote = sync_conn.dialect.identifier_preparer.quote
        staging, target = quote(self.staging_table), quote(self.target_table)

        sync_conn.execute(text(f"DROP TABLE IF EXISTS {staging}"))

        if self.dialect == "postgresql":
            sync_conn.execute(text(f"CREATE TABLE {staging} (LIKE {target} INCLUDING ALL)"))
        elif self.dialect in _MYSQL_DIALECTS:
            sync_conn.execute(text(f"CREATE TABLE {staging} LIKE {target}"))
        else:
            self._copy_table_definition(sync_conn, inspector)

    def _copy_table_definition(self, sync_conn, inspector):
        source = Table(self.target_table, MetaData(), autoload_with=sync_conn)
        staging = source.to_metadata(MetaData(), name=self.staging_table)
        for index in list(staging.indexes):
            staging.indexes.discard(index)
        staging.create(sync_conn)

        # Index names are database-wide on SQLite
        taken = self._index_names(inspector)
        for index in source.indexes:
            column_names = [column.name for column in index.columns]
            name = self._free_index_name(column_names, taken)
            taken.add(name)
            Index(
                name,
                *[staging.c[column_name] for column_name in column_names],
                unique=index.unique
            ).create(sync_conn)

    @staticmethod
    def _index_names(inspector) -> Set[str]:
        names = set()
        for table_name in inspector.get_table_names():
            names.update(index["name"] for index in inspector.get_indexes(table_name))
        return names

    def _free_index_name(self, column_names: List[str], taken: Set[str]) -> str:
        base = f"ix_{self.staging_table}_{'_'.join(column_names)}"
        name, suffix = base, 1
        while name in taken:
            name = f"{base}_{suffix}"
            suffix += 1
        return name

    # ------------------------------------------------------------------
    # Index maintenance
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def suspended_indexes(self):
        """
        Suspend non-unique secondary indexes on the staging table.

        MySQL uses DISABLE/ENABLE KEYS. Elsewhere the indexes are dropped and
        rebuilt as plain indexes on the same columns. Unique indexes and the
        primary key stay in place. Indexes are restored even when the load
        fails; a restore failure then is logged without hiding the load error.
        """
        try:
            async with self.connection.begin():
                suspended = await self.connection.run_sync(self._suspend_indexes_sync)
        except Exception as e:
            raise LoadError(
                f"Unable to suspend indexes on {self.staging_table}",
                context={"table_name": self.staging_table},
                original_exception=e
            )

        logger.info(
            f"Suspended index maintenance on {self.staging_table} "
            f"({len(suspended)} index(es))"
        )

        try:
            yield suspended
        except Exception:
            try:
                await self._restore_indexes(suspended)
            except Exception:
                logger.exception(
                    f"Unable to restore indexes on {self.staging_table} after a failed load"
                )
            raise
        else:
            try:
                await self._restore_indexes(suspended)
            except Exception as e:
                raise LoadError(
                    f"Unable to rebuild indexes on {self.staging_table}",
                    context={"table_name": self.staging_table},
                    original_exception=e
                )

    def _suspend_indexes_sync(self, sync_conn) -> List[Dict[str, Any]]:
        quote = sync_conn.dialect.identifier_preparer.quote

        if self.dialect in _MYSQL_DIALECTS:
            sync_conn.execute(text(f"ALTER TABLE {quote(self.staging_table)} DISABLE KEYS"))
            self._keys_disabled = True
            return []

        suspended = []
        for index in inspect(sync_conn).get_indexes(self.staging_table):
            if index.get("unique") or index.get("duplicates_constraint"):
                continue
            if not index["column_names"] or None in index["column_names"]:
                continue
            sync_conn.execute(text(f"DROP INDEX {quote(index['name'])}"))
            suspended.append({"name": index["name"], "column_names": list(index["column_names"])})
        return suspended

    async def _restore_indexes(self, suspended: List[Dict[str, Any]]):
        async with self.connection.begin():
            await self.connection.run_sync(self._restore_indexes_sync, suspended)
        logger.info(f"Rebuilt indexes on {self.staging_table}")

    def _restore_indexes_sync(self, sync_conn, suspended: List[Dict[str, Any]]):
        if self._keys_disabled:
            quote = sync_conn.dialect.identifier_preparer.quote
            sync_conn.execute(text(f"ALTER TABLE {quote(self.staging_table)} ENABLE KEYS"))
            self._keys_disabled = False
            return

        if not suspended:
            return
        table = Table(self.staging_table, MetaData(), autoload_with=sync_conn)
        for index in suspended:
            Index(index["name"], *[table.c[name] for name in index["column_names"]]).create(sync_conn)

    # ------------------------------------------------------------------
    # Chunk loading
    # ------------------------------------------------------------------

    async def _staging(self) -> Table:
        if self._table is None:
            async with self.connection.begin():
                self._table = await self.connection.run_sync(
                    lambda sync_conn: Table(self.staging_table, MetaData(), autoload_with=sync_conn)
                )
        return self._table

    def column_types(self, table: Table) -> List[Any]:
        """
        Types used to coerce the positional source fields.

        The declared model columns win over the reflected staging table, since
        reflection loses some types (MySQL reports Boolean as TINYINT).
        """
        declared = Base.metadata.tables.get(self.target_table)
        types = []
        for name in self.columns:
            if declared is not None and name in declared.c:
                types.append(declared.c[name].type)
            else:
                types.append(table.c[name].type)
        return types

    def read_rows(self, chunk_path: Path, table: Table) -> Tuple[List[str], List[Dict[str, Any]]]:
        """
        Parse a chunk into row dictionaries.

        Source fields map positionally onto ``columns``; extra trailing fields
        are ignored and missing ones are empty. Trailing default columns get
        fixed values (LOAD_TIME becomes the current time).
        """
        mapped = list(zip([table.c[name] for name in self.columns], self.column_types(table)))
        load_time = datetime.now(timezone.utc)
        trailing = [
            (name, load_time if value is LOAD_TIME else value)
            for name, value in self.trailing_columns
            if name in table.c
        ]
        column_names = [column.name for column, _ in mapped] + [name for name, _ in trailing]

        rows = []
        with open(chunk_path, "rb") as fh:
            for line_number, raw_line in enumerate(fh, start=1):
                fields = raw_line.decode("utf-8").rstrip("\r\n").split("\t")
                row = {}
                for position, (column, column_type) in enumerate(mapped):
                    raw = fields[position] if position < len(fields) else ""
                    try:
                        row[column.name] = coerce_value(raw, column_type)
                    except ValueError as e:
                        raise ValueError(
                            f"line {line_number}, column {column.name}: {e}"
                        ) from e
                for name, value in trailing:
                    row[name] = value
                rows.append(row)
        return column_names, rows

    async def load_chunk(self, chunk_path: Path, chunk_number: int, chunk_total: int) -> int:
        """
        Load one chunk in its own transaction.

        Returns:
            Number of rows inserted

        Raises:
            LoadError: Carrying the chunk number and the underlying cause
        """
        try:
            table = await self._staging()
            column_names, rows = await asyncio.to_thread(self.read_rows, Path(chunk_path), table)

            async with self.connection.begin():
                if self.strategy == "copy":
                    await self._copy_rows(column_names, rows)
                else:
                    await self._insert_rows(table, rows)

        except Exception as e:
            raise LoadError(
                f"Failed to load chunk {chunk_number} of {chunk_total} into {self.staging_table}",
                context={
                    "table_name": self.staging_table,
                    "chunk_path": str(chunk_path),
                    "chunk_total": chunk_total,
                    "strategy": self.strategy
                },
                original_exception=e,
                chunk_number=chunk_number
            )

        return len(rows)

    async def _copy_rows(self, column_names: List[str], rows: List[Dict[str, Any]]):
        raw_connection = await self.connection.get_raw_connection()
        driver_connection = raw_connection.driver_connection
        await driver_connection.copy_records_to_table(
            self.staging_table,
            records=[tuple(row[name] for name in column_names) for row in rows],
            columns=column_names
        )

    async def _insert_rows(self, table: Table, rows: List[Dict[str, Any]]):
        if not rows:
            return
        batch_size = max(1, self.max_statement_variables // len(rows[0]))
        for start in range(0, len(rows), batch_size):
            await self.connection.execute(insert(table).values(rows[start:start + batch_size]))

    async def load_chunks(
        self,
        chunk_set: ChunkSet,
        on_progress: Optional[ProgressCallback] = None
    ) -> int:
        """
        Load every chunk in order, stopping at the first failure.

        ``on_progress`` is awaited after each chunk with
        (chunk_number, chunk_total, rows_loaded_so_far).
        """
        total = len(chunk_set)
        rows_loaded = 0

        for number, chunk_path in enumerate(chunk_set.chunks, start=1):
            logger.info(f"Loading chunk {number} of {total} into {self.staging_table}")
            rows = await self.load_chunk(chunk_path, number, total)
            rows_loaded += rows
            logger.info(f"Inserted chunk {number} of {total} ({rows} rows, {rows_loaded} so far)")
            if on_progress is not None:
                await on_progress(number, total, rows_loaded)

        return rows_loaded

    async def count_rows(self) -> int:
        table = await self._staging()
        async with self.connection.begin():
            result = await self.connection.execute(select(func.count()).select_from(table))
            return result.scalar_one()

    async def verify_row_count(self, expected: int):
        """Refuse to hand a short or padded staging table to the swap"""
        actual = await self.count_rows()
        if actual != expected:
            raise LoadError(
                f"Staging table {self.staging_table} holds {actual} rows, expected {expected}",
                context={
                    "table_name": self.staging_table,
                    "expected_rows": expected,
                    "actual_rows": actual
                }
            )

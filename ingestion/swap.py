"""
Atomic promotion of a staging table to the live table name.

The rename sequence runs in one transaction (PostgreSQL and SQLite have
transactional DDL; MySQL gets a single multi-table RENAME TABLE), so readers
see either the previous contents or the new contents, never a missing table.
Swaps on the same live table are serialized in-process.
"""

import asyncio
from typing import Dict, List, Optional

from sqlalchemy import inspect, text
from sqlalchemy.ext.asyncio import AsyncConnection

from core.exceptions import SwapError
import logging

logger = logging.getLogger(__name__)


class SwapCoordinator:
    """
    Swap staging tables into place and clean up what they replaced.

    Attributes:
        retain_previous: Keep the replaced table under its ``_old`` name
            instead of dropping it after the swap
        cleanup_failures: Tables whose post-swap drop failed (kept for
            reporting; a failed drop does not fail the dataset)
    """

    def __init__(self, retain_previous: bool = False):
        self.retain_previous = retain_previous
        self.cleanup_failures: List[str] = []
        self._locks: Dict[str, asyncio.Lock] = {}

    def lock_for(self, target_table: str) -> asyncio.Lock:
        return self._locks.setdefault(target_table, asyncio.Lock())

    async def swap(
        self,
        connection: AsyncConnection,
        staging_table: str,
        target_table: str,
        previous_table: Optional[str] = None
    ):
        """
        Replace ``target_table`` with ``staging_table``.

        Raises:
            SwapError: Nothing was changed; the live table keeps its contents
        """
        previous_table = previous_table or f"{target_table}_old"
        context = {
            "target_table": target_table,
            "staging_table": staging_table,
            "previous_table": previous_table
        }

        async with self.lock_for(target_table):
            logger.info(f"Swapping {staging_table} into {target_table}")
            try:
                async with connection.begin():
                    await connection.run_sync(
                        self._swap_sync, staging_table, target_table, previous_table
                    )
            except SwapError:
                raise
            except Exception as e:
                raise SwapError(
                    f"Unable to swap {staging_table} into {target_table}",
                    context=context,
                    original_exception=e
                )

            logger.info(f"{target_table} now serves the contents of {staging_table}")

            if not self.retain_previous:
                await self.drop_previous(connection, previous_table)

    def _swap_sync(self, sync_conn, staging_table: str, target_table: str, previous_table: str):
        inspector = inspect(sync_conn)
        if not inspector.has_table(staging_table):
            raise SwapError(
                f"Staging table {staging_table} does not exist",
                context={"staging_table": staging_table, "target_table": target_table}
            )
        target_exists = inspector.has_table(target_table)

        quote = sync_conn.dialect.identifier_preparer.quote
        staging, target, previous = quote(staging_table), quote(target_table), quote(previous_table)

        sync_conn.execute(text(f"DROP TABLE IF EXISTS {previous}"))

        if sync_conn.dialect.name in ("mysql", "mariadb"):
            if target_exists:
                sync_conn.execute(
                    text(f"RENAME TABLE {target} TO {previous}, {staging} TO {target}")
                )
            else:
                sync_conn.execute(text(f"RENAME TABLE {staging} TO {target}"))
            return

        if target_exists:
            sync_conn.execute(text(f"ALTER TABLE {target} RENAME TO {previous}"))
        sync_conn.execute(text(f"ALTER TABLE {staging} RENAME TO {target}"))

    async def drop_previous(self, connection: AsyncConnection, previous_table: str) -> bool:
        """Drop the replaced table; failure is logged and recorded, not raised"""
        try:
            async with connection.begin():
                await connection.run_sync(self._drop_sync, previous_table)
        except Exception as e:
            logger.warning(f"Could not drop previous table {previous_table}: {e}")
            self.cleanup_failures.append(previous_table)
            return False

        logger.info(f"Dropped previous table {previous_table}")
        return True

    @staticmethod
    def _drop_sync(sync_conn, table_name: str):
        quote = sync_conn.dialect.identifier_preparer.quote
        sync_conn.execute(text(f"DROP TABLE IF EXISTS {quote(table_name)}"))

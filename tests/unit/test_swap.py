"""
Unit tests for the swap coordinator (SQLite through aiosqlite)
"""

import asyncio
import pytest
import pytest_asyncio
from unittest.mock import patch
from sqlalchemy import text
from ingestion.swap import SwapCoordinator
from core.exceptions import SwapError

TARGET = "geonames_iso_language_codes"
STAGING = "geonames_iso_language_codes_working"
PREVIOUS = "geonames_iso_language_codes_old"


async def fill(engine, table, count):
    async with engine.begin() as connection:
        for i in range(count):
            await connection.execute(
                text(f'INSERT INTO "{table}" (iso_639_3, language_name) VALUES (:code, :name)'),
                {"code": f"x{i:02d}", "name": f"Language {i}"}
            )


@pytest_asyncio.fixture
async def staged(test_engine):
    """Live table with 3 rows, staging table with 5"""
    async with test_engine.begin() as connection:
        await connection.execute(text(
            f'CREATE TABLE "{STAGING}" (id INTEGER PRIMARY KEY, iso_639_3 VARCHAR(3), '
            f'iso_639_2 VARCHAR(50), iso_639_1 VARCHAR(2), language_name VARCHAR(255), '
            f'created_at DATETIME, updated_at DATETIME)'
        ))
    await fill(test_engine, TARGET, 3)
    await fill(test_engine, STAGING, 5)
    return test_engine


class TestSwapCoordinator:
    """Test staging -> live table promotion"""

    @pytest.mark.asyncio
    async def test_swap_replaces_target(self, staged, count_rows, table_names):
        async with staged.connect() as connection:
            await SwapCoordinator().swap(connection, STAGING, TARGET)

        assert await count_rows(TARGET) == 5
        tables = await table_names()
        assert STAGING not in tables
        assert PREVIOUS not in tables

    @pytest.mark.asyncio
    async def test_retain_previous_table(self, staged, count_rows, table_names):
        async with staged.connect() as connection:
            await SwapCoordinator(retain_previous=True).swap(connection, STAGING, TARGET, PREVIOUS)

        assert await count_rows(TARGET) == 5
        assert await count_rows(PREVIOUS) == 3

    @pytest.mark.asyncio
    async def test_old_slot_is_cleared_first(self, staged, count_rows):
        async with staged.begin() as connection:
            await connection.execute(text(f'CREATE TABLE "{PREVIOUS}" (stale INTEGER)'))

        async with staged.connect() as connection:
            await SwapCoordinator(retain_previous=True).swap(connection, STAGING, TARGET)

        assert await count_rows(PREVIOUS) == 3

    @pytest.mark.asyncio
    async def test_first_load_without_target(self, staged, count_rows):
        async with staged.begin() as connection:
            await connection.execute(text(f'DROP TABLE "{TARGET}"'))

        async with staged.connect() as connection:
            await SwapCoordinator().swap(connection, STAGING, TARGET)

        assert await count_rows(TARGET) == 5

    @pytest.mark.asyncio
    async def test_missing_staging_table(self, test_engine, count_rows):
        await fill(test_engine, TARGET, 2)

        async with test_engine.connect() as connection:
            with pytest.raises(SwapError):
                await SwapCoordinator().swap(connection, STAGING, TARGET)

        assert await count_rows(TARGET) == 2

    @pytest.mark.asyncio
    async def test_failed_swap_rolls_back(self, staged, count_rows, table_names):
        """Test: a failure after the renames leaves both tables as they were"""
        real_swap = SwapCoordinator._swap_sync

        def swap_then_fail(self, sync_conn, *args):
            real_swap(self, sync_conn, *args)
            raise RuntimeError("connection lost")

        with patch.object(SwapCoordinator, "_swap_sync", swap_then_fail):
            async with staged.connect() as connection:
                with pytest.raises(SwapError) as exc_info:
                    await SwapCoordinator().swap(connection, STAGING, TARGET)

        assert isinstance(exc_info.value.original_exception, RuntimeError)
        assert await count_rows(TARGET) == 3
        assert await count_rows(STAGING) == 5
        assert PREVIOUS not in await table_names()

    @pytest.mark.asyncio
    async def test_cleanup_failure_does_not_fail_swap(self, staged, count_rows):
        coordinator = SwapCoordinator()

        with patch.object(SwapCoordinator, "_drop_sync", side_effect=RuntimeError("locked")):
            async with staged.connect() as connection:
                await coordinator.swap(connection, STAGING, TARGET)

        assert await count_rows(TARGET) == 5
        assert coordinator.cleanup_failures == [PREVIOUS]

    @pytest.mark.asyncio
    async def test_swaps_on_one_target_are_serialized(self, staged):
        coordinator = SwapCoordinator()
        assert coordinator.lock_for(TARGET) is coordinator.lock_for(TARGET)
        assert coordinator.lock_for(TARGET) is not coordinator.lock_for("other_table")

        async with staged.connect() as connection:
            async with coordinator.lock_for(TARGET):
                task = asyncio.create_task(coordinator.swap(connection, STAGING, TARGET))
                await asyncio.sleep(0.05)
                assert not task.done()
            await task

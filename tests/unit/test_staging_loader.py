"""
Unit tests for the staging loader (SQLite through aiosqlite)
"""

from decimal import Decimal
from datetime import datetime
import pytest
from unittest.mock import AsyncMock, MagicMock
from sqlalchemy import Boolean, Column, DateTime, Integer, MetaData, Numeric, SmallInteger, String, Table, inspect, select, text
from ingestion.artifacts import ChunkSet
from ingestion.datasets import build_sources
from ingestion.staging import StagingLoader, coerce_value
from models.geonames import AlternateName
from core.exceptions import LoadError

TARGET = "geonames_alternate_names"
STAGING = "geonames_alternate_names_working"


@pytest.fixture
def source():
    return build_sources("alternate-names", "https://geonames.test/")[0]


def staging_table():
    return AlternateName.__table__.to_metadata(MetaData(), name=STAGING)


def write_chunk(path, lines):
    path.write_text("".join(lines), encoding="utf-8")
    return path


async def index_names(connection, table_name):
    async with connection.begin():
        return await connection.run_sync(
            lambda sync_conn: sorted(index["name"] for index in inspect(sync_conn).get_indexes(table_name))
        )


class TestCoerceValue:

    def test_booleans(self):
        assert coerce_value("1", Boolean()) is True
        assert coerce_value("0", Boolean()) is False
        assert coerce_value("", Boolean()) is False

    def test_empty_is_null(self):
        assert coerce_value("", Integer()) is None
        assert coerce_value("", String(7)) is None

    def test_typed_values(self):
        assert coerce_value("6693391", Integer()) == 6693391
        assert coerce_value("1.50", Numeric()) == Decimal("1.50")
        assert coerce_value("2024-01-15T10:00:00", DateTime()) == datetime(2024, 1, 15, 10, 0)
        assert coerce_value("Köln", String(400)) == "Köln"

    def test_bad_integer(self):
        with pytest.raises(ValueError):
            coerce_value("not-a-number", Integer())


class TestStagingTable:
    """Test staging table lifecycle"""

    @pytest.mark.asyncio
    async def test_create_staging_table_like_target(self, test_engine, source):
        async with test_engine.connect() as connection:
            loader = StagingLoader.for_source(connection, source)
            await loader.create_staging_table()

            async with connection.begin():
                columns = await connection.run_sync(
                    lambda sync_conn: {
                        name: [column["name"] for column in inspect(sync_conn).get_columns(name)]
                        for name in (TARGET, STAGING)
                    }
                )
            staging_indexes = await index_names(connection, STAGING)

        assert columns[STAGING] == columns[TARGET]
        assert staging_indexes == [
            "ix_geonames_alternate_names_working_geonameid",
            "ix_geonames_alternate_names_working_isolanguage",
        ]

    @pytest.mark.asyncio
    async def test_index_names_never_collide(self, test_engine, source):
        """Test: names already taken elsewhere get a numeric suffix"""
        async with test_engine.begin() as connection:
            await connection.execute(text(
                'CREATE INDEX "ix_geonames_alternate_names_working_geonameid" '
                'ON "geonames_alternate_names" (alternate_name)'
            ))

        async with test_engine.connect() as connection:
            await StagingLoader.for_source(connection, source).create_staging_table()
            staging_indexes = await index_names(connection, STAGING)

        assert "ix_geonames_alternate_names_working_geonameid_1" in staging_indexes

    @pytest.mark.asyncio
    async def test_leftover_staging_table_is_replaced(self, test_engine, source, count_rows):
        async with test_engine.begin() as connection:
            await connection.execute(text(f'CREATE TABLE "{STAGING}" (junk INTEGER)'))
            await connection.execute(text(f'INSERT INTO "{STAGING}" VALUES (1)'))

        async with test_engine.connect() as connection:
            await StagingLoader.for_source(connection, source).create_staging_table()

        assert await count_rows(STAGING) == 0

    @pytest.mark.asyncio
    async def test_missing_target_table(self, test_engine):
        async with test_engine.connect() as connection:
            loader = StagingLoader(connection, "no_such_table", "no_such_table_working", ["a"])
            with pytest.raises(LoadError) as exc_info:
                await loader.create_staging_table()

        assert exc_info.value.context["target_table"] == "no_such_table"

    @pytest.mark.asyncio
    async def test_copy_strategy_needs_asyncpg(self, test_engine, source):
        async with test_engine.connect() as connection:
            assert StagingLoader.for_source(connection, source).strategy == "insert"
            with pytest.raises(ValueError):
                StagingLoader.for_source(connection, source, strategy="copy")


class TestSuspendedIndexes:
    """Test scoped suspension of secondary index maintenance"""

    @pytest.mark.asyncio
    async def test_indexes_dropped_then_rebuilt(self, test_engine, source):
        async with test_engine.connect() as connection:
            loader = StagingLoader.for_source(connection, source)
            await loader.create_staging_table()
            before = await index_names(connection, STAGING)

            async with loader.suspended_indexes() as suspended:
                assert len(suspended) == 2
                assert await index_names(connection, STAGING) == []

            assert await index_names(connection, STAGING) == before

    @pytest.mark.asyncio
    async def test_indexes_rebuilt_when_load_fails(self, test_engine, source):
        async with test_engine.connect() as connection:
            loader = StagingLoader.for_source(connection, source)
            await loader.create_staging_table()
            before = await index_names(connection, STAGING)

            with pytest.raises(LoadError):
                async with loader.suspended_indexes():
                    raise LoadError("chunk failed", chunk_number=2)

            assert await index_names(connection, STAGING) == before


class TestReadRows:
    """Test parsing chunk lines against the declared columns"""

    def test_flags_follow_model_types_when_reflection_loses_them(self, source, tmp_path):
        # MySQL reflects Boolean columns as TINYINT
        reflected = Table(STAGING, MetaData(), *[
            Column(column.name, SmallInteger() if isinstance(column.type, Boolean) else column.type)
            for column in AlternateName.__table__.columns
        ])
        chunk = write_chunk(tmp_path / "split_DE_00001.txt", [
            "7\t2921044\tde\tDeutschland\t1\t\t\t\t\t\n",
        ])
        loader = StagingLoader.for_source(MagicMock(), source, strategy="insert")

        column_names, rows = loader.read_rows(chunk, reflected)

        assert "is_short_name" in column_names
        assert rows[0]["alternate_name_id"] == 7
        assert rows[0]["is_preferred_name"] is True
        assert rows[0]["is_short_name"] is False
        assert rows[0]["is_historic"] is False

    def test_unregistered_target_uses_reflected_types(self, tmp_path):
        reflected = Table("plain_working", MetaData(), Column("code", String(3)), Column("flag", SmallInteger()))
        chunk = write_chunk(tmp_path / "split_plain_00001.txt", ["abc\t\n"])
        loader = StagingLoader(
            MagicMock(), "plain", "plain_working", ["code", "flag"], trailing_columns=(), strategy="insert"
        )

        _, rows = loader.read_rows(chunk, reflected)

        assert rows == [{"code": "abc", "flag": None}]


class TestLoadChunk:
    """Test loading chunk files into the staging table"""

    @pytest.mark.asyncio
    async def test_positional_mapping_and_defaults(self, test_engine, source, tmp_path):
        chunk = write_chunk(tmp_path / "split_DE_00001.txt", [
            "2\t2921044\tde\tDeutschland\t1\t\t\t\t\t\n",
            "3\t2921044\ten\tGermany\t1\t1\t\t\t1900\t\n",
            "4\t2921044\n",
        ])

        async with test_engine.connect() as connection:
            loader = StagingLoader.for_source(connection, source)
            await loader.create_staging_table()
            loaded = await loader.load_chunk(chunk, 1, 1)

            result = await connection.execute(
                select(staging_table()).order_by("alternate_name_id")
            )
            rows = result.mappings().all()
            await connection.rollback()

        assert loaded == 3
        assert rows[0]["alternate_name"] == "Deutschland"
        assert rows[0]["is_preferred_name"] is True
        assert rows[0]["is_short_name"] is False
        assert rows[1]["is_short_name"] is True
        assert rows[2]["isolanguage"] is None
        assert rows[2]["alternate_name"] is None
        assert rows[2]["is_historic"] is False
        assert all(row["created_at"] is not None for row in rows)
        assert all(row["updated_at"] is None for row in rows)

    @pytest.mark.asyncio
    async def test_bad_value_raises_load_error(self, test_engine, source, tmp_path, count_rows):
        chunk = write_chunk(tmp_path / "split_DE_00002.txt", [
            "5\t1\ten\tGood\t\t\t\t\t\t\n",
            "6\tnot-a-number\ten\tBad\t\t\t\t\t\t\n",
        ])

        async with test_engine.connect() as connection:
            loader = StagingLoader.for_source(connection, source)
            await loader.create_staging_table()
            with pytest.raises(LoadError) as exc_info:
                await loader.load_chunk(chunk, 2, 3)

        error = exc_info.value
        assert error.chunk_number == 2
        assert error.context["chunk_number"] == 2
        assert error.context["chunk_path"] == str(chunk)
        assert "line 2" in str(error.original_exception)
        assert await count_rows(STAGING) == 0

    @pytest.mark.asyncio
    async def test_chunk_is_all_or_nothing(self, test_engine, source, tmp_path, count_rows):
        """Test: a database error part-way through a chunk rolls back the whole chunk"""
        chunk = write_chunk(tmp_path / "split_DE_00001.txt", [
            "10\t1\ten\tA\t\t\t\t\t\t\n",
            "11\t1\ten\tB\t\t\t\t\t\t\n",
            "12\t1\ten\tC\t\t\t\t\t\t\n",
            "10\t1\ten\tDuplicate\t\t\t\t\t\t\n",
        ])

        async with test_engine.connect() as connection:
            # 10 columns per row -> 2 rows per INSERT, so the first batch succeeds
            loader = StagingLoader.for_source(connection, source, max_statement_variables=20)
            await loader.create_staging_table()
            with pytest.raises(LoadError):
                await loader.load_chunk(chunk, 1, 1)

        assert await count_rows(STAGING) == 0

    @pytest.mark.asyncio
    async def test_load_chunks_reports_progress(self, test_engine, source, tmp_path, count_rows):
        chunks = (
            write_chunk(tmp_path / "split_DE_00001.txt", ["1\t1\t\tA\n", "2\t1\t\tB\n"]),
            write_chunk(tmp_path / "split_DE_00002.txt", ["3\t1\t\tC\n"]),
        )
        progress = AsyncMock()

        async with test_engine.connect() as connection:
            loader = StagingLoader.for_source(connection, source, max_statement_variables=25)
            await loader.create_staging_table()
            async with loader.suspended_indexes():
                rows = await loader.load_chunks(
                    ChunkSet(source_path=tmp_path / "DE.txt", chunks=chunks, row_counts=(2, 1)),
                    on_progress=progress
                )
            await loader.verify_row_count(3)

        assert rows == 3
        assert [call.args for call in progress.await_args_list] == [(1, 2, 2), (2, 2, 3)]
        assert await count_rows(STAGING) == 3
        assert await count_rows(TARGET) == 0

    @pytest.mark.asyncio
    async def test_verify_row_count_mismatch(self, test_engine, source):
        async with test_engine.connect() as connection:
            loader = StagingLoader.for_source(connection, source)
            await loader.create_staging_table()
            with pytest.raises(LoadError) as exc_info:
                await loader.verify_row_count(5)

        assert exc_info.value.context["actual_rows"] == 0

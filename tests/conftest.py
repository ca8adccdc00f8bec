"""
Pytest configuration and fixtures
"""

import io
import zipfile
from typing import AsyncGenerator, Dict, List, Union

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import inspect, text
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import IngestionConfig
from core.database import create_engine, create_session_maker
from ingestion.fetcher import Fetcher
from ingestion.orchestrator import IngestionOrchestrator
from models.base import Base
# Import all models to ensure they are registered
from models.geonames import AlternateName, IsoLanguageCode, FeatureClass
from models.ingestion_run import IngestionRun
from models.ingestion_error import IngestionError

BASE_URL = "https://geonames.test/export/dump/"

LANGUAGES = ["en", "de", "fr", "", "link", "post"]


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """On-disk SQLite database with transactional DDL"""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'geonames_test.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests"""
    async_session_maker = create_session_maker(test_engine)

    async with async_session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture
def alternate_name_rows():
    """Build alternateNamesV2-style lines (10 tab-separated fields)"""

    def _rows(count: int, start: int = 1) -> List[str]:
        return [
            f"{i}\t{1_000_000 + i % 5_000}\t{LANGUAGES[i % len(LANGUAGES)]}\tName {i}"
            f"\t{'1' if i % 7 == 0 else ''}\t\t\t{'1' if i % 11 == 0 else ''}\t\t\n"
            for i in range(start, start + count)
        ]

    return _rows


@pytest.fixture
def make_zip():
    def _zip(members: Dict[str, Union[str, bytes]]) -> bytes:
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
            for name, data in members.items():
                archive.writestr(name, data)
        return buffer.getvalue()

    return _zip


@pytest.fixture
def remote_files() -> Dict[str, Union[bytes, int]]:
    """URL -> response body (or HTTP status) served by mock_transport"""
    return {}


@pytest.fixture
def mock_transport(remote_files):
    """Fake GeoNames server; URLs not in remote_files answer 404"""

    def handler(request: httpx.Request) -> httpx.Response:
        body = remote_files.get(str(request.url))
        if body is None:
            return httpx.Response(404, text="Not Found")
        if isinstance(body, int):
            return httpx.Response(body)
        return httpx.Response(200, content=body)

    return httpx.MockTransport(handler)


@pytest.fixture
def ingestion_config(tmp_path) -> IngestionConfig:
    return IngestionConfig(
        base_url=BASE_URL,
        storage_root=tmp_path / "storage",
        chunk_size=50_000,
        bulk_load_strategy="insert",
        max_statement_variables=5_000,
    )


@pytest.fixture
def orchestrator(test_engine, ingestion_config, mock_transport) -> IngestionOrchestrator:
    return IngestionOrchestrator(
        test_engine,
        ingestion_config,
        fetcher=Fetcher(transport=mock_transport)
    )


@pytest.fixture
def count_rows(test_engine):
    async def _count(table_name: str) -> int:
        async with test_engine.connect() as conn:
            result = await conn.execute(text(f'SELECT COUNT(*) FROM "{table_name}"'))
            return result.scalar_one()

    return _count


@pytest.fixture
def table_names(test_engine):
    async def _names() -> List[str]:
        async with test_engine.connect() as conn:
            return await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())

    return _names

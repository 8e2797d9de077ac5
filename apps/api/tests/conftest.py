from typing import Any, Dict, List

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from database import Base
from main import app
from routers import rate_limit
from services.categories import Category
from services.document_store import DocumentStore


@pytest.fixture(autouse=True)
def reset_local_rate_limit_counters():
    """Keep in-memory rate-limit state isolated between tests."""
    previous = getattr(app.state, "disable_rate_limits", False)
    app.state.disable_rate_limits = True
    rate_limit._local_counters.clear()
    yield
    rate_limit._local_counters.clear()
    app.state.disable_rate_limits = previous


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    db_path = tmp_path / "reel_studio_test.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}")
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield maker
    await engine.dispose()


@pytest_asyncio.fixture
async def document_store(session_maker):
    return DocumentStore(session_maker)


@pytest.fixture
def content_pools() -> Dict[Category, List[Dict[str, Any]]]:
    return {
        Category.DIALOGUE: [
            {
                "id": "dlg_1",
                "type": "dialogue",
                "text": "Em ra idhi, endhuku ala choostunnav?",
                "situation": "when seeing something unexpected",
                "tags": ["confusion", "comedy"],
            },
            {
                "id": "dlg_2",
                "type": "dialogue",
                "text": "Thaggedhe le!",
                "situation": "when refusing to back down before exams",
                "tags": ["savage", "exams"],
            },
        ],
        Category.MEME: [
            {
                "id": "meme_1",
                "type": "meme",
                "text": "Salary vachindi, poyindi",
                "caption": "Salary vachindi, poyindi",
                "situation": "when rent is due",
                "tags": ["money"],
            },
        ],
        Category.TREND: [
            {
                "id": "trend_1",
                "type": "trend",
                "text": "Exam results announced today",
                "headline": "Exam results announced today",
                "situation": "when results are out",
                "tags": ["exams"],
            },
        ],
    }

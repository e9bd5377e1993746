"""
Shared fixtures for unit tests.

Every test gets a fresh in-memory SQLite database with the full schema and
settings that keep file writes inside pytest's tmp_path.
"""

import pytest
import pytest_asyncio

from parley.components import ParleyComponents
from parley.config.settings import (
    DatabaseSettings,
    KnowledgeSettings,
    LLMSettings,
    Settings,
    ToolSettings,
)
from parley.storage.database import Database


@pytest.fixture
def settings(tmp_path):
    """Settings with an in-memory database and tmp_path file locations."""
    return Settings(
        _env_file=None,
        owner_name="Test Owner",
        database=DatabaseSettings(url="sqlite+aiosqlite:///:memory:"),
        llm=LLMSettings(call_timeout=5.0, turn_timeout=10.0),
        tools=ToolSettings(downloads_dir=tmp_path / "downloads", call_timeout=5.0),
        knowledge=KnowledgeSettings(path=tmp_path / "knowledge_bank.md"),
    )


@pytest_asyncio.fixture
async def db(settings):
    """Initialized database with every table created."""
    async with Database(settings.database) as database:
        await database.create_all()
        yield database


@pytest.fixture
def repos(settings, db):
    """All SQL repositories over the test database."""
    return ParleyComponents(settings).create_repositories(db)

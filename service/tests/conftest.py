"""
Pytest configuration and fixtures for celestial bot tests.
"""

import json
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from celestial_bot.config import get_settings
from celestial_bot.services.memory import Base, ConversationStore

FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch):
    """Every test starts from default settings (no tokens configured)."""
    for name in ("TELEGRAM_BOT_TOKEN", "TELEGRAM_WEBHOOK_SECRET", "OPENROUTER_API_KEY"):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def bot_token(monkeypatch):
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "123:test-token")
    get_settings.cache_clear()
    return "123:test-token"


@pytest.fixture
def store():
    """Conversation store on a fresh in-memory SQLite database."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    yield ConversationStore(session_factory=factory)
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="session")
def patna_fixture() -> dict:
    with open(FIXTURES_DIR / "patna_solstice.json", encoding="utf-8") as f:
        return json.load(f)

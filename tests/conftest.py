"""Shared test configuration.

Required settings are provided through the environment before any
``scribe`` module is imported, and the database points at a throwaway
SQLite file.
"""

from __future__ import annotations

import asyncio
import os
import sys
import tempfile
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

_TMP_DIR = Path(tempfile.mkdtemp(prefix="scribe-tests-"))

os.environ.setdefault("S3_BUCKET_NAME", "scribe-test-bucket")
os.environ.setdefault("GEMINI_API_KEY", "test-gemini-key")
os.environ.setdefault("JWT_SECRET", "scribe-test-signing-secret")
os.environ["DB_DSN"] = f"sqlite+aiosqlite:///{_TMP_DIR / 'app.db'}"
os.environ["LOG_FILE"] = str(_TMP_DIR / "logs" / "app.log")
os.environ["PIPELINE_LOG_FILE"] = str(_TMP_DIR / "logs" / "pipeline.log")
os.environ["TRANSCRIPT_LOG_FILE"] = str(_TMP_DIR / "logs" / "transcripts.log")

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

from scribe.database import init_models  # noqa: E402


@pytest.fixture
def session_factory(tmp_path: Path):
    """A session factory bound to a fresh SQLite database with all tables."""

    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'history.db'}",
        poolclass=NullPool,
    )
    asyncio.run(init_models(engine))
    yield async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    asyncio.run(engine.dispose())


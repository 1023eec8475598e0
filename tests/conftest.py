"""
Shared fixtures for StemBot ingestion tests.

SQLite (aiosqlite) stands in for PostgreSQL: each test function gets a fresh
database file under tmp_path with the tables created from the ORM metadata.
The completion endpoint is replaced by FakeCompletionClient, which answers
from a per-test responder and records every prompt it receives.
"""
from __future__ import annotations

import json
import os
import tempfile
from typing import AsyncGenerator, Callable, List, Tuple, Union

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

# Override settings *before* any stembot module is imported, so that
# settings.DATABASE_URL and the global engine never point at Postgres.
_GLOBAL_DB = os.path.join(tempfile.gettempdir(), "stembot_test_global.db")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_GLOBAL_DB}"
os.environ["OPENAI_API_KEY"] = ""

from stembot.database import Base, get_db  # noqa: E402
from stembot.dependencies.services import get_completion_client  # noqa: E402
from stembot.main import app  # noqa: E402
from stembot.models import database_models  # noqa: E402,F401
from stembot.services.completion_client import CompletionClient, CompletionError  # noqa: E402


# ---------------------------------------------------------------------------
# Fake completion endpoint
# ---------------------------------------------------------------------------

Reply = Union[str, Exception]
Responder = Callable[[str, str], Reply]

SUMMARY_REPLY = """This review article surveys the relationship between sleep duration and academic performance.

- Shorter sleep is associated with lower exam scores
- Effects are strongest in first-year students
- Caffeine partially masks fatigue

Document Type: Review Article
Research Relevance: Highly relevant to studies on student sleep habits."""


def suggestion_reply(question: str = "How does sleep duration affect exam scores in first-year students?",
                     confidence: int = 85) -> str:
    return json.dumps(
        {
            "suggestedQuestion": question,
            "reasoning": "The document links sleep and performance.",
            "confidence": confidence,
            "variables": {
                "independent": "sleep duration",
                "dependent": "exam scores",
                "population": "first-year students",
            },
        }
    )


def default_responder(system_prompt: str, user_prompt: str) -> Reply:
    if "document analysis assistant" in system_prompt:
        return SUMMARY_REPLY
    return suggestion_reply()


class FakeCompletionClient(CompletionClient):
    """CompletionClient that never touches the network."""

    def __init__(self, responder: Responder = default_responder, healthy: bool = True) -> None:
        super().__init__(api_key="test-key", base_url="http://completion.test/v1", model="fake-model")
        self.responder = responder
        self.healthy = healthy
        self.calls: List[Tuple[str, str]] = []

    async def complete(self, system_prompt, user_prompt, max_tokens=1000, temperature=0.3) -> str:
        self.calls.append((system_prompt, user_prompt))
        reply = self.responder(system_prompt, user_prompt)
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def check_health(self) -> bool:
        return self.healthy

    @property
    def user_prompts(self) -> List[str]:
        return [user for _, user in self.calls]


def failing_responder(system_prompt: str, user_prompt: str) -> Reply:
    return CompletionError("Completion endpoint returned HTTP 503")


# ---------------------------------------------------------------------------
# Per-test fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def db_session(tmp_path) -> AsyncGenerator[AsyncSession, None]:
    """Provide a session on a fresh SQLite database for each test."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'stembot_test.db'}",
        echo=False,
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    await engine.dispose()


@pytest.fixture
def fake_llm() -> FakeCompletionClient:
    return FakeCompletionClient()


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession,
    fake_llm: FakeCompletionClient,
) -> AsyncGenerator[AsyncClient, None]:
    """
    httpx AsyncClient wired to the FastAPI app with the DB session and the
    completion client overridden.
    """

    async def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_completion_client] = lambda: fake_llm

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

AUTH_HEADERS = {"X-User-Id": "student-1"}

ACADEMIC_TEXT = (
    "Abstract. This study examines sleep and academic outcomes among undergraduates. "
    "Introduction. Prior work links rest and learning. "
    "Methodology. Participants completed a survey over one semester. "
    "Results. Shorter sleep predicted lower grades and the effect was significant (p < 0.05). "
    "Discussion. Limitations include self-reported sleep; future research should use actigraphy. "
    "References. Smith 2020; Jones 2021."
)


def make_pdf(pages: List[str], title: str = "", author: str = "") -> bytes:
    """Build a PDF with one text block per page."""
    import fitz

    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        if text:
            page.insert_textbox(fitz.Rect(50, 50, 550, 800), text, fontsize=10)
    if title or author:
        doc.set_metadata({"title": title, "author": author})
    data = doc.tobytes()
    doc.close()
    return data


def make_docx(paragraphs: List[str], table: List[List[str]] = None, title: str = "") -> bytes:
    import io

    from docx import Document

    doc = Document()
    for text in paragraphs:
        doc.add_paragraph(text)
    if table:
        grid = doc.add_table(rows=len(table), cols=len(table[0]))
        for r, row in enumerate(table):
            for c, value in enumerate(row):
                grid.cell(r, c).text = value
    if title:
        doc.core_properties.title = title
    buf = io.BytesIO()
    doc.save(buf)
    return buf.getvalue()


def make_xlsx(sheets: dict) -> bytes:
    import io

    from openpyxl import Workbook

    wb = Workbook()
    wb.remove(wb.active)
    for name, rows in sheets.items():
        ws = wb.create_sheet(title=name)
        for row in rows:
            ws.append(row)
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def make_png(width: int = 120, height: int = 60) -> bytes:
    import io

    from PIL import Image

    buf = io.BytesIO()
    Image.new("RGB", (width, height), "white").save(buf, format="PNG")
    return buf.getvalue()

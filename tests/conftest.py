"""Pytest configuration and shared fixtures."""

import pytest
import pytest_asyncio

from src.boards import BoardCatalog
from src.models import Board, Job
from src.posting import CostGuard, MemorySink, StatusPublisher
from tests.fakes import FORM_HTML, FakeSession


# Configure pytest-asyncio
pytest_plugins = ["pytest_asyncio"]


@pytest.fixture
def job():
    """Job with every postable field set."""
    return Job(
        id="job-0001",
        title="Senior Python Developer",
        description="Build async services with Python and Playwright.",
        location="Remote (EU)",
        company="Example GmbH",
        contact_email="jobs@example.com",
        salary_min=70000,
        salary_max=90000,
        salary_currency="EUR",
        employment_type="full-time",
        board_ids=["alpha", "beta"],
    )


@pytest.fixture
def board():
    return Board(
        id="alpha",
        name="Alpha Jobs",
        base_url="https://alpha.example",
        post_url="https://alpha.example/jobs/post",
    )


@pytest.fixture
def boards():
    """Three public boards with distinct form URLs."""
    return [
        Board(
            id=board_id,
            name=f"{board_id.title()} Jobs",
            base_url=f"https://{board_id}.example",
            post_url=f"https://{board_id}.example/jobs/post",
        )
        for board_id in ("alpha", "beta", "gamma")
    ]


@pytest.fixture
def catalog(boards):
    return BoardCatalog(boards)


@pytest.fixture
def form_html():
    return FORM_HTML


@pytest.fixture
def memory_sink():
    return MemorySink()


@pytest_asyncio.fixture
async def publisher(memory_sink):
    publisher = StatusPublisher([memory_sink])
    yield publisher
    await publisher.stop()


@pytest.fixture
def cost_guard():
    return CostGuard(ceiling_usd=1.0)


@pytest.fixture
def session():
    return FakeSession()

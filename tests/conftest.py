import json
import pytest
from contextlib import asynccontextmanager
from unittest.mock import MagicMock
import sys
from pathlib import Path

# Add project root to Python path
project_root = str(Path(__file__).parent.parent)
sys.path.append(project_root)

from scatterbrain.rate_limiter import RateLimiter


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def sse(*records) -> bytes:
    """Frame records the way the synthesize endpoint does."""
    parts = []
    for record in records:
        payload = record if isinstance(record, str) else json.dumps(record)
        parts.append(f"data: {payload}\n\n")
    return ''.join(parts).encode('utf-8')


async def aiter_chunks(chunks):
    for chunk in chunks:
        yield chunk


class FakeTransport:
    """Replays scripted outcomes: an exception to raise or a list of body chunks."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.payloads = []

    @property
    def calls(self) -> int:
        return len(self.payloads)

    @asynccontextmanager
    async def post_stream(self, url, payload, headers=None):
        self.payloads.append(payload)
        outcome = self.outcomes[min(len(self.payloads), len(self.outcomes)) - 1]
        if isinstance(outcome, Exception):
            raise outcome
        yield aiter_chunks(outcome)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_sleep():
    return FakeSleep()


@pytest.fixture
def mock_services():
    from api.routes import Services

    storage = MagicMock()
    storage.supabase.auth.get_user.return_value = MagicMock(user=MagicMock(id='user-1'))
    storage.get_organization.return_value = {'subscription_tier': 'professional', 'niche': 'productivity'}
    return Services(
        storage=storage,
        usage=MagicMock(),
        synthesis=MagicMock(),
        research=MagicMock(),
        audio=MagicMock(),
        billing=MagicMock(),
        rate_limiter=RateLimiter(max_attempts=100, window_seconds=60),
        trending=MagicMock(),
        content=MagicMock()
    )


@pytest.fixture
def test_client(mock_services):
    from api.routes import create_app

    app = create_app(mock_services)
    app.config['TESTING'] = True
    return app.test_client()

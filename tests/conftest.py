import pytest

from strapi_mcp.client import StrapiClient
from strapi_mcp.config import StrapiSettings
from tests.fake_strapi import ADMIN_EMAIL, ADMIN_PASSWORD, FakeStrapi


class SleepRecorder:
    """Stands in for asyncio.sleep so backoff schedules can be asserted without waiting."""

    def __init__(self):
        self.calls = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def fake():
    return FakeStrapi()


@pytest.fixture
def sleeps():
    return SleepRecorder()


@pytest.fixture
def settings(tmp_path):
    return StrapiSettings(
        url="http://strapi.test/",
        admin_email=ADMIN_EMAIL,
        admin_password=ADMIN_PASSWORD,
        token_cache_path=tmp_path / "tokens.json",
    )


@pytest.fixture
async def client(settings, fake, sleeps):
    async with StrapiClient(settings, transport=fake.transport, sleep=sleeps) as strapi:
        yield strapi

import sys
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from fakeredis.aioredis import FakeRedis

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from peerline.escalations.domain import container
from peerline.infra import redis as redis_module
from peerline.main import app


@pytest.fixture(autouse=True)
def reset_escalation_container():
	container.reset()
	try:
		yield
	finally:
		container.reset()


@pytest_asyncio.fixture
async def fake_redis():
	original = redis_module.redis_client._client
	client = FakeRedis(decode_responses=True)
	redis_module.set_redis_client(client)
	try:
		yield client
	finally:
		await client.flushall()
		redis_module.set_redis_client(original)


@pytest_asyncio.fixture
async def api_client():
	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client

from __future__ import annotations

import pytest

from peerline.infra import postgres


class _Pool:
    def __init__(self) -> None:
        self.closed = False

    async def close(self) -> None:
        self.closed = True


@pytest.mark.asyncio
async def test_init_pool_is_cached_until_closed(monkeypatch) -> None:
    created: list[dict] = []

    async def fake_create_pool(**kwargs):
        created.append(kwargs)
        return _Pool()

    monkeypatch.setattr(postgres.asyncpg, "create_pool", fake_create_pool)
    monkeypatch.setattr(postgres, "_pool", None)
    monkeypatch.setattr(postgres.settings, "postgres_url", "postgresql://u:p@localhost:5432/peerline")

    first = await postgres.init_pool()
    second = await postgres.init_pool()

    assert first is second
    assert len(created) == 1
    assert created[0]["dsn"] == "postgresql://u:p@127.0.0.1:5432/peerline"
    assert created[0]["ssl"] == "disable"

    await postgres.close_pool()

    assert first.closed
    assert postgres._pool is None

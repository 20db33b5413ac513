"""Redis connection management.

Provides a stable proxy object so imports like `from peerline.infra.redis import redis_client`
always reference the same proxy instance. The underlying client can be swapped at
runtime (e.g., to fakeredis in tests) without breaking previously imported references.
"""

from __future__ import annotations

from typing import Any, Mapping

import redis.asyncio as redis

from peerline.settings import settings


class RedisProxy:
	"""Lightweight proxy that forwards attribute access to an underlying Redis client."""

	def __init__(self, client: redis.Redis):
		self._client: redis.Redis = client

	def set_client(self, client: redis.Redis) -> None:
		self._client = client

	async def xadd(self, name: str, fields: Mapping[str, Any], *, maxlen: int | None = None):
		"""Drop None values; redis rejects them as stream field values."""
		cleaned = {key: value for key, value in fields.items() if value is not None}
		return await self._client.xadd(name, cleaned, maxlen=maxlen, approximate=maxlen is not None)

	def __getattr__(self, item: str) -> Any:
		return getattr(self._client, item)


redis_client = RedisProxy(redis.from_url(settings.redis_url, decode_responses=True))


def set_redis_client(client: redis.Redis) -> None:
	redis_client.set_client(client)


__all__ = ["RedisProxy", "redis_client", "set_redis_client"]

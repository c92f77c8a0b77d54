"""Redis connection pool used as the realtime pub/sub broker."""

import redis.asyncio as redis


def create_redis(url: str, max_connections: int = 50) -> redis.Redis:
    """Create a Redis client with a bounded connection pool."""
    return redis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=max_connections,
    )


async def close_redis(client: redis.Redis | None) -> None:
    """Close the Redis connection pool."""
    if client is not None:
        await client.aclose()

"""Redis async client shared by the graph and score stores."""

import redis.asyncio as redis
from fastapi import Request


def create_redis_client(url: str) -> redis.Redis:
    """Build the process-wide client; called once from the app lifespan."""
    return redis.from_url(url, decode_responses=True)


async def close_redis(client: redis.Redis) -> None:
    """Close the Redis connection pool."""
    await client.aclose()


async def get_redis(request: Request) -> redis.Redis:
    """FastAPI dependency that returns the client opened in the lifespan."""
    return request.app.state.redis

# Core package - Infrastructure components
from .cache import RedisClient, get_redis_client, close_redis_client

__all__ = [
    # Redis/Cache
    "RedisClient",
    "get_redis_client",
    "close_redis_client",
]

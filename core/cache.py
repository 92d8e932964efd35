"""
Redis client manager for the Framework Analyzer
Handles connection pooling and health checks for the run store
"""

import logging
from typing import Optional

import redis

from config import settings

logger = logging.getLogger(__name__)


class RedisClient:
    """
    Redis connection manager with connection pooling and retry logic.
    """

    def __init__(self, redis_url: Optional[str] = None):
        redis_url = redis_url or settings.REDIS_URL

        try:
            # Create connection pool for efficiency
            self.pool = redis.ConnectionPool.from_url(
                redis_url,
                max_connections=20,
                decode_responses=True,  # Auto-decode bytes to strings
                socket_timeout=5,
                socket_connect_timeout=5,
                retry_on_timeout=True,
            )
            self.client = redis.Redis(connection_pool=self.pool)

            # Test connection
            self.client.ping()
            logger.info(f"✅ Redis connected successfully: {redis_url}")
        except redis.ConnectionError as e:
            logger.error(f"❌ Redis connection failed: {str(e)}")
            raise RuntimeError(f"Failed to connect to Redis: {str(e)}")

    def ping(self) -> bool:
        """Check if Redis is available"""
        try:
            return self.client.ping()
        except redis.ConnectionError:
            return False

    def get_stats(self) -> dict:
        """
        Get Redis connection and memory stats.

        Returns:
            Dictionary with Redis statistics
        """
        try:
            info = self.client.info()
            return {
                "connected_clients": info.get("connected_clients", 0),
                "used_memory_human": info.get("used_memory_human", "unknown"),
                "total_commands_processed": info.get("total_commands_processed", 0),
                "keyspace": info.get("keyspace", {}),
            }
        except redis.RedisError as e:
            logger.error(f"Failed to get Redis stats: {str(e)}")
            return {"error": str(e)}

    def close(self):
        """Close Redis connection pool"""
        try:
            self.pool.disconnect()
            logger.info("Redis connection closed")
        except redis.RedisError as e:
            logger.error(f"Error closing Redis connection: {str(e)}")


# Global Redis client instance
redis_client: Optional[RedisClient] = None


def get_redis_client() -> RedisClient:
    """
    Get or create the global Redis client instance.

    Returns:
        RedisClient instance
    """
    global redis_client

    if redis_client is None:
        redis_client = RedisClient()

    return redis_client


def close_redis_client():
    """Close the global Redis client"""
    global redis_client

    if redis_client is not None:
        redis_client.close()
        redis_client = None

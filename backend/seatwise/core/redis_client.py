"""Redis client configuration."""

import platform
import socket
from typing import Optional

import redis.asyncio as redis

from seatwise.core.config import settings


class RedisClient:
    """Redis client wrapper with connection pooling."""

    def __init__(self):
        """Initialize the lazily created Redis client."""
        self._client: Optional[redis.Redis] = None

    @property
    def client(self) -> redis.Redis:
        """Get or create the main Redis client."""
        if self._client is None:
            self._client = self._create_client(max_connections=50)
        return self._client

    def _get_socket_keepalive_options(self) -> dict:
        """Get socket keepalive options based on the OS.

        Returns empty dict for macOS to avoid socket option errors.
        """
        if platform.system() == "Darwin":
            return {}

        if hasattr(socket, "TCP_KEEPIDLE"):
            return {
                socket.TCP_KEEPIDLE: 60,  # Start keepalive after 60s idle
                socket.TCP_KEEPINTVL: 10,
                socket.TCP_KEEPCNT: 6,
            }
        return {}

    def _create_client(self, max_connections: int = 50) -> redis.Redis:
        """Create a Redis client with specified connection pool size."""
        pool = redis.ConnectionPool(
            host=settings.REDIS_HOST,
            port=settings.REDIS_PORT,
            db=settings.REDIS_DB,
            password=settings.REDIS_PASSWORD if settings.REDIS_PASSWORD else None,
            decode_responses=True,
            max_connections=max_connections,
            retry_on_timeout=True,
            socket_keepalive=True,
            socket_keepalive_options=self._get_socket_keepalive_options(),
            socket_connect_timeout=5,
            socket_timeout=5,
            retry_on_error=[ConnectionError, TimeoutError],
        )

        return redis.Redis(connection_pool=pool)


# Create a global instance
redis_client = RedisClient()

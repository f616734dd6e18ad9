"""Pub/Sub トランスポート。"""

from .subscriber import RedisReleaseSubscriber, RelayTransportError

__all__ = ["RedisReleaseSubscriber", "RelayTransportError"]

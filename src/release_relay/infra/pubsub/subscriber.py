"""Redis Pub/Sub の購読アダプタ。"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import redis.asyncio as aioredis
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from release_relay.shared.exceptions import ExternalServiceError
from release_relay.shared.logging import get_logger

MessageCallback = Callable[[str], object]
ClientFactory = Callable[..., Any]

DEFAULT_RECONNECT_ATTEMPTS = 10
RECONNECT_BACKOFF_CAP_SECONDS = 30.0
RECONNECT_BACKOFF_BASE_SECONDS = 0.5


class RelayTransportError(ExternalServiceError):
    """Pub/Sub への接続・購読に失敗した際の例外。"""

    default_message = "Pub/Sub transport failed"


class RedisReleaseSubscriber:
    """チャンネルを購読し、受信メッセージを 1 件ずつコールバックへ渡す。

    コールバックは同期関数で、戻るまで次のメッセージは取り出さない。
    コールバック内の例外はログに記録し、購読は継続する。
    切断時は指数バックオフで再接続し (再接続時にチャンネルも再購読される)、
    `reconnect_attempts` 回失敗した時点で `RelayTransportError` を送出する。
    """

    def __init__(
        self,
        *,
        url: str,
        channel: str,
        reconnect_attempts: int = DEFAULT_RECONNECT_ATTEMPTS,
        client_factory: ClientFactory = aioredis.from_url,
        logger=None,
    ) -> None:
        self._url = url
        self._channel = channel
        self._reconnect_attempts = reconnect_attempts
        self._client_factory = client_factory
        self._logger = logger or get_logger(__name__, channel=channel)

    @property
    def channel(self) -> str:
        return self._channel

    def _create_client(self) -> Any:
        # 生バイトのまま受け取り、デコードは _invoke で行う
        return self._client_factory(
            self._url,
            decode_responses=False,
            retry=Retry(
                ExponentialBackoff(
                    cap=RECONNECT_BACKOFF_CAP_SECONDS, base=RECONNECT_BACKOFF_BASE_SECONDS
                ),
                self._reconnect_attempts,
            ),
            retry_on_error=[RedisConnectionError, RedisTimeoutError],
        )

    async def run(self, callback: MessageCallback) -> None:
        """購読を開始し、再接続を使い切るかキャンセルされるまで受信を続ける。"""

        client = self._create_client()
        try:
            try:
                await client.ping()
            except RedisError as exc:
                self._logger.error("redis_connect_failed", error=str(exc))
                msg = f"Could not connect to Redis: {exc}"
                raise RelayTransportError(msg) from exc
            self._logger.info("redis_connected")

            pubsub = client.pubsub()
            try:
                await pubsub.subscribe(self._channel)
                self._logger.info("redis_subscribed")
                async for message in pubsub.listen():
                    if message.get("type") != "message":
                        continue
                    self._invoke(callback, message.get("data"))
            except RedisError as exc:
                self._logger.error("redis_subscription_failed", error=str(exc))
                msg = f"Subscription to {self._channel!r} failed: {exc}"
                raise RelayTransportError(msg) from exc
            finally:
                await pubsub.aclose()
        finally:
            await client.aclose()

    def _invoke(self, callback: MessageCallback, data: Any) -> None:
        if isinstance(data, (bytes, bytearray)):
            try:
                data = bytes(data).decode("utf-8")
            except UnicodeDecodeError as exc:
                self._logger.error(
                    "release_event_decode_failed",
                    error=f"Message is not valid UTF-8: {exc}",
                    size=len(data),
                )
                return
        try:
            callback(data)
        except Exception as exc:  # noqa: BLE001 - 購読ループは止めない
            self._logger.exception("redis_callback_failed", error=str(exc))


__all__ = [
    "ClientFactory",
    "DEFAULT_RECONNECT_ATTEMPTS",
    "MessageCallback",
    "RedisReleaseSubscriber",
    "RelayTransportError",
]

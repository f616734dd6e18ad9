"""リリースイベントを全 Webhook へ並行配信するディスパッチャ。"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass

import httpx

from release_relay.core.notes.models import (
    ReleaseEvent,
    ReleaseEventDecodeError,
    decode_release_event,
)
from release_relay.shared.config import AppSettings, DiscordSettings
from release_relay.shared.exceptions import Result
from release_relay.shared.logging import get_logger

from .client import DiscordWebhookClient, DiscordWebhookError
from .templates import build_release_payload


def redact_webhook_url(url: str) -> str:
    """ログ出力用に Webhook URL 末尾のトークンを伏せる。"""

    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL:
        return "<invalid-url>"
    segments = parsed.path.rstrip("/").split("/")
    if len(segments) > 1:
        segments[-1] = "***"
    return f"{parsed.host}{'/'.join(segments)}"


@dataclass(slots=True, frozen=True)
class DeliveryOutcome:
    """1 エンドポイントへの配信結果。`result` の値は実際に投稿したかどうか。"""

    endpoint: str
    result: Result[bool, DiscordWebhookError]


class ReleaseDispatcher:
    """1 イベントを設定済みの全エンドポイントへ独立に配信する。

    `dispatch` はエンドポイントごとにタスクを起動するだけで完了を待たない。
    各タスクの失敗はログに記録して破棄し、他のエンドポイントや購読側には
    影響させない。
    """

    def __init__(
        self,
        *,
        endpoints: Sequence[str],
        client: DiscordWebhookClient,
        settings: DiscordSettings | None = None,
        logger=None,
    ) -> None:
        self._endpoints = tuple(endpoints)
        self._client = client
        self._settings = settings or DiscordSettings()
        self._logger = logger or get_logger(__name__, component="release-dispatcher")
        self._in_flight: set[asyncio.Task[None]] = set()

    @classmethod
    def from_settings(
        cls,
        settings: AppSettings,
        *,
        client: DiscordWebhookClient | None = None,
    ) -> ReleaseDispatcher:
        webhook_client = client or DiscordWebhookClient(
            timeout=settings.discord.timeout_seconds
        )
        return cls(
            endpoints=settings.webhook_urls,
            client=webhook_client,
            settings=settings.discord,
        )

    @property
    def endpoints(self) -> tuple[str, ...]:
        return self._endpoints

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    async def deliver(self, endpoint: str, event: ReleaseEvent) -> bool:
        """1 エンドポイントへ配信する。

        対象カテゴリの行がなければ何も送らず False を返す。
        投稿に失敗した場合は `DiscordWebhookError` を送出する。
        """

        payload = build_release_payload(event, settings=self._settings)
        if payload is None:
            self._logger.debug(
                "release_delivery_skipped",
                release=event.release,
                endpoint=redact_webhook_url(endpoint),
                reason="empty_diff" if event.diffs.is_empty else "no_known_categories",
            )
            return False

        await self._client.post(endpoint, payload)
        self._logger.info(
            "release_delivered",
            release=event.release,
            endpoint=redact_webhook_url(endpoint),
            fields=len(payload["embeds"][0]["fields"]),
        )
        return True

    def dispatch(self, event: ReleaseEvent) -> tuple[asyncio.Task[None], ...]:
        """全エンドポイント分の配信タスクを起動して即座に返す。"""

        tasks: list[asyncio.Task[None]] = []
        for endpoint in self._endpoints:
            task = asyncio.create_task(
                self._deliver_isolated(endpoint, event),
                name=f"deliver-release-{event.release}",
            )
            self._in_flight.add(task)
            task.add_done_callback(self._in_flight.discard)
            tasks.append(task)

        self._logger.info(
            "release_dispatched",
            release=event.release,
            endpoints=len(tasks),
        )
        return tuple(tasks)

    def handle_message(self, raw: str | bytes) -> tuple[asyncio.Task[None], ...]:
        """Pub/Sub から受け取った生メッセージを処理するコールバック。

        デコードできないメッセージはログに残して読み捨てる。
        """

        try:
            event = decode_release_event(raw)
        except ReleaseEventDecodeError as exc:
            self._logger.error("release_event_decode_failed", error=str(exc))
            return ()
        return self.dispatch(event)

    async def deliver_all(self, event: ReleaseEvent) -> tuple[DeliveryOutcome, ...]:
        """全エンドポイントへの配信完了を待ち、結果を返す。"""

        async def _attempt(endpoint: str) -> DeliveryOutcome:
            try:
                sent = await self.deliver(endpoint, event)
            except DiscordWebhookError as exc:
                self._log_failure(endpoint, event, exc)
                return DeliveryOutcome(endpoint=endpoint, result=Result.err(exc))
            except Exception as exc:  # noqa: BLE001 - 1 件の失敗で全体を止めない
                self._log_failure(endpoint, event, exc)
                wrapped = DiscordWebhookError(f"Error posting to webhook: {type(exc).__name__}")
                wrapped.__cause__ = exc
                return DeliveryOutcome(endpoint=endpoint, result=Result.err(wrapped))
            return DeliveryOutcome(endpoint=endpoint, result=Result.ok(sent))

        outcomes = await asyncio.gather(*(_attempt(endpoint) for endpoint in self._endpoints))
        return tuple(outcomes)

    async def drain(self) -> None:
        """起動済みの配信タスクがすべて終わるまで待つ。"""

        while self._in_flight:
            await asyncio.gather(*tuple(self._in_flight), return_exceptions=True)

    async def aclose(self) -> None:
        """実行中の配信を待ってから HTTP クライアントを閉じる。"""

        await self.drain()
        await self._client.aclose()

    async def _deliver_isolated(self, endpoint: str, event: ReleaseEvent) -> None:
        try:
            await self.deliver(endpoint, event)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001 - 他の配信へ波及させない
            self._log_failure(endpoint, event, exc)

    def _log_failure(self, endpoint: str, event: ReleaseEvent, exc: Exception) -> None:
        self._logger.error(
            "release_delivery_failed",
            release=event.release,
            endpoint=redact_webhook_url(endpoint),
            error=str(exc),
            error_type=type(exc).__name__,
            status_code=getattr(exc, "status_code", None),
            body=getattr(exc, "body", None),
        )


__all__ = [
    "DeliveryOutcome",
    "ReleaseDispatcher",
    "redact_webhook_url",
]

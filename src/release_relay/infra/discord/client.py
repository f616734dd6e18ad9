"""Discord Webhook へペイロードを POST する非同期クライアント。"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import httpx

from release_relay.shared.exceptions import ExternalServiceError

DEFAULT_TIMEOUT_SECONDS = 10.0
ERROR_BODY_LIMIT = 500


class DiscordWebhookError(ExternalServiceError):
    """Webhook 投稿に失敗した際の例外。"""

    default_message = "Error posting to webhook"

    def __init__(
        self,
        message: str | None = None,
        *,
        status_code: int | None = None,
        body: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class DiscordWebhookClient:
    """Webhook URL へ JSON を 1 回だけ POST するクライアント。

    リトライもログ出力も行わない。失敗は `DiscordWebhookError` として
    呼び出し側へ返し、記録は呼び出し側に任せる。
    `http_client` を渡した場合、そのクローズは呼び出し側の責務になる。
    """

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._owns_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(timeout=timeout)
        self._timeout = timeout

    async def post(self, webhook_url: str, payload: Mapping[str, Any]) -> None:
        """ペイロードを送信する。2xx 以外は失敗として扱う。"""

        try:
            response = await self._http_client.post(
                webhook_url,
                json=dict(payload),
                headers={"Content-Type": "application/json"},
                timeout=self._timeout,
            )
        except (httpx.RequestError, httpx.InvalidURL) as exc:
            msg = f"Error posting to webhook: {type(exc).__name__}"
            raise DiscordWebhookError(msg) from exc

        if not response.is_success:
            body = response.text.strip()
            msg = f"Error posting to webhook: {response.reason_phrase}"
            raise DiscordWebhookError(
                msg,
                status_code=response.status_code,
                body=body[:ERROR_BODY_LIMIT] or None,
            )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http_client.aclose()

    async def __aenter__(self) -> DiscordWebhookClient:
        return self

    async def __aexit__(self, *_exc_info: object) -> None:
        await self.aclose()


__all__ = [
    "DEFAULT_TIMEOUT_SECONDS",
    "DiscordWebhookClient",
    "DiscordWebhookError",
]

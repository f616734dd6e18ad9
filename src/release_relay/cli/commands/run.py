from __future__ import annotations

import asyncio
from typing import Annotated

import typer
from structlog.stdlib import BoundLogger

from release_relay.infra.discord.dispatcher import ReleaseDispatcher
from release_relay.infra.pubsub.subscriber import RedisReleaseSubscriber, RelayTransportError
from release_relay.shared.config import AppSettings, get_settings, validate_runtime
from release_relay.shared.exceptions import ConfigurationError
from release_relay.shared.logging import configure_logging, get_logger

app = typer.Typer(
    help="Pub/Sub を購読し、リリースノート差分を Webhook へ中継する",
    invoke_without_command=True,
)


def _load_settings(logger: BoundLogger) -> AppSettings:
    try:
        settings = get_settings()
        validate_runtime(settings)
    except ConfigurationError as exc:
        logger.error("relay_config_invalid", error=str(exc))
        typer.echo(f"設定の読み込みに失敗しました: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    return settings


def _create_subscriber(settings: AppSettings, channel: str) -> RedisReleaseSubscriber:
    return RedisReleaseSubscriber(
        url=str(settings.redis_url),
        channel=channel,
        reconnect_attempts=settings.redis_reconnect_attempts,
    )


def _create_dispatcher(settings: AppSettings) -> ReleaseDispatcher:
    return ReleaseDispatcher.from_settings(settings)


async def _serve(subscriber: RedisReleaseSubscriber, dispatcher: ReleaseDispatcher) -> None:
    try:
        await subscriber.run(dispatcher.handle_message)
    finally:
        await dispatcher.aclose()


@app.callback()
def run(
    channel: Annotated[
        str | None,
        typer.Option("--channel", "-c", help="購読するチャンネル。省略時は設定値"),
    ] = None,
) -> None:
    """購読を開始する。Redis URL と Webhook が未設定なら接続前に終了する。"""

    logger = get_logger("cli.run.run")
    settings = _load_settings(logger)
    configure_logging(settings.log_level, json_output=settings.log_json)

    target_channel = channel or settings.channel
    logger = logger.bind(channel=target_channel)
    logger.info(
        "relay_starting",
        environment=settings.environment,
        endpoints=len(settings.webhook_urls),
    )

    subscriber = _create_subscriber(settings, target_channel)
    dispatcher = _create_dispatcher(settings)

    try:
        asyncio.run(_serve(subscriber, dispatcher))
    except RelayTransportError as exc:
        logger.error("relay_transport_failed", error=str(exc))
        typer.echo(f"Pub/Sub の購読に失敗しました: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    except KeyboardInterrupt:
        logger.info("relay_stopped")


__all__ = ["app", "run"]

from __future__ import annotations

import asyncio
from typing import Annotated

import typer

from release_relay.cli.commands import preview as preview_cli
from release_relay.core.notes.models import ReleaseEvent
from release_relay.infra.discord.dispatcher import (
    DeliveryOutcome,
    ReleaseDispatcher,
    redact_webhook_url,
)
from release_relay.shared.config import AppSettings, get_settings
from release_relay.shared.exceptions import ConfigurationError
from release_relay.shared.logging import get_logger

app = typer.Typer(
    help="イベント JSON を全 Webhook へ 1 回だけ送信する",
    invoke_without_command=True,
    no_args_is_help=True,
)


def _create_dispatcher(settings: AppSettings) -> ReleaseDispatcher:
    return ReleaseDispatcher.from_settings(settings)


async def _deliver(dispatcher: ReleaseDispatcher, event: ReleaseEvent) -> tuple[DeliveryOutcome, ...]:
    try:
        return await dispatcher.deliver_all(event)
    finally:
        await dispatcher.aclose()


@app.callback()
def notify(
    source: Annotated[
        str, typer.Option("--file", "-i", help="イベント JSON のパス。`-` で標準入力")
    ] = ...,
) -> None:
    """Pub/Sub を経由せずに手元のイベントを配信する。"""

    logger = get_logger("cli.notify.notify", source=source)
    try:
        settings = get_settings()
    except ConfigurationError as exc:
        logger.error("notify_config_invalid", error=str(exc))
        typer.echo(f"設定の読み込みに失敗しました: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    if not settings.webhook_urls:
        logger.error("notify_no_webhooks", prefix=settings.webhook_prefix)
        typer.echo(f"{settings.webhook_prefix} で始まる Webhook URL が設定されていません", err=True)
        raise typer.Exit(code=1)

    event = preview_cli._read_event(source)
    outcomes = asyncio.run(_deliver(_create_dispatcher(settings), event))

    failed = 0
    for outcome in outcomes:
        endpoint = redact_webhook_url(outcome.endpoint)
        if outcome.result.is_ok:
            status = "送信済み" if outcome.result.unwrap() else "対象なし (スキップ)"
            typer.echo(f"{endpoint}: {status}")
        else:
            failed += 1
            typer.echo(f"{endpoint}: 失敗 ({outcome.result.unwrap_err()})")

    logger.info(
        "notify_completed",
        release=event.release,
        endpoints=len(outcomes),
        failed=failed,
    )
    if failed:
        raise typer.Exit(code=1)


__all__ = ["app", "notify"]

from __future__ import annotations

import json
import sys
from enum import Enum
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from release_relay.core.notes.formatter import CategoryBuckets, format_diffs
from release_relay.core.notes.models import (
    ReleaseEvent,
    ReleaseEventDecodeError,
    decode_release_event,
)
from release_relay.infra.discord.templates import build_release_payload
from release_relay.shared.config import get_settings
from release_relay.shared.exceptions import ConfigurationError
from release_relay.shared.logging import get_logger


class OutputFormat(str, Enum):
    """出力形式。"""

    TABLE = "table"
    JSON = "json"


app = typer.Typer(
    help="イベント JSON を整形結果として表示する (送信はしない)",
    invoke_without_command=True,
    no_args_is_help=True,
)


def _read_event(source: str) -> ReleaseEvent:
    """ファイル (`-` は標準入力) からイベントを読み込む。失敗時は終了コード 2。"""

    try:
        raw = sys.stdin.read() if source == "-" else Path(source).read_text(encoding="utf-8")
    except OSError as exc:
        typer.echo(f"イベントファイルを読み込めませんでした: {exc}", err=True)
        raise typer.Exit(code=2) from exc

    try:
        return decode_release_event(raw)
    except ReleaseEventDecodeError as exc:
        typer.echo(f"イベントの形式が不正です: {exc}", err=True)
        raise typer.Exit(code=2) from exc


def _render_table(event: ReleaseEvent, buckets: CategoryBuckets) -> None:
    console = Console(force_terminal=False, color_system=None)
    table = Table(title=f"Release {event.release}")
    table.add_column("Category", style="cyan", no_wrap=True)
    table.add_column("Line")

    for category, lines in buckets.items():
        for line in lines:
            table.add_row(category.value, line)

    console.print(table)


@app.callback()
def preview(
    source: Annotated[
        str, typer.Option("--file", "-i", help="イベント JSON のパス。`-` で標準入力")
    ] = ...,
    output: Annotated[
        OutputFormat,
        typer.Option("--format", "-f", case_sensitive=False, help="出力形式 (table/json)"),
    ] = OutputFormat.TABLE,
) -> None:
    """Webhook へ送られる内容を確認する。"""

    logger = get_logger("cli.preview.preview", source=source)
    try:
        settings = get_settings()
    except ConfigurationError as exc:
        logger.error("preview_config_invalid", error=str(exc))
        typer.echo(f"設定の読み込みに失敗しました: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    event = _read_event(source)
    payload = build_release_payload(event, settings=settings.discord)
    if payload is None:
        typer.echo("通知対象の行はありません (Improvements / Fixes が空です)")
        return

    if output is OutputFormat.JSON:
        typer.echo(json.dumps(payload, ensure_ascii=False, indent=2))
    else:
        _render_table(event, format_diffs(event.diffs))


__all__ = ["OutputFormat", "app", "preview"]

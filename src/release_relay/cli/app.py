from __future__ import annotations

import typer

from release_relay.cli.commands import notify, preview, run
from release_relay.shared.logging import configure_logging

app = typer.Typer(help="リリースノート差分を Webhook へ中継するツールの CLI")

app.add_typer(run.app, name="run", help="Pub/Sub を購読して中継を開始する")
app.add_typer(preview.app, name="preview", help="イベント JSON の整形結果を表示する")
app.add_typer(notify.app, name="notify", help="イベント JSON を全 Webhook へ送信する")


def main() -> None:
    """エントリポイント。"""

    configure_logging()
    app()


if __name__ == "__main__":  # pragma: no cover - CLI エントリ
    main()

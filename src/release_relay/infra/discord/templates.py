"""Discord Webhook 向けの Embed / ペイロードテンプレート。"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from release_relay.core.notes.formatter import CategoryBuckets, format_diffs
from release_relay.core.notes.models import ReleaseEvent
from release_relay.shared.config import DiscordSettings

DISCORD_FIELD_VALUE_LIMIT = 1024
SUPPRESS_NOTIFICATIONS_FLAG = 1 << 12
DIFF_LANGUAGE = "diff"


def codify(language: str, content: str) -> str:
    """コードブロックで囲む。"""

    return f"```{language}\n{content}\n```"


def fit_lines(
    lines: Sequence[str],
    *,
    language: str = DIFF_LANGUAGE,
    limit: int = DISCORD_FIELD_VALUE_LIMIT,
) -> str:
    """行をコードブロック化し、フィールド上限を超える場合は末尾の行を省略する。"""

    value = codify(language, "\n".join(lines))
    if len(value) <= limit:
        return value

    kept = list(lines)
    while kept:
        kept.pop()
        marker = f"... and {len(lines) - len(kept)} more"
        value = codify(language, "\n".join([*kept, marker]))
        if len(value) <= limit:
            return value

    msg = f"limit {limit} is too small to hold a code block"
    raise ValueError(msg)


def build_fields(buckets: CategoryBuckets) -> list[dict[str, str]]:
    """空でないカテゴリごとに Embed フィールドを作る。"""

    return [
        {"name": category.value, "value": fit_lines(lines)}
        for category, lines in buckets.items()
        if lines
    ]


def build_release_embed(
    release: object,
    fields: Sequence[dict[str, str]],
    *,
    settings: DiscordSettings,
) -> dict[str, Any]:
    return {
        "title": f"** Release {release}**",
        "description": settings.description_template.format(release=release),
        "color": settings.color,
        "fields": list(fields),
    }


def build_release_payload(
    event: ReleaseEvent,
    *,
    settings: DiscordSettings | None = None,
) -> dict[str, Any] | None:
    """イベントから Webhook へ POST する JSON ボディを組み立てる。

    対象カテゴリの行が 1 つもない場合は投稿不要として None を返す。
    """

    discord_settings = settings or DiscordSettings()
    fields = build_fields(format_diffs(event.diffs))
    if not fields:
        return None

    return {
        "content": None,
        "embeds": [build_release_embed(event.release, fields, settings=discord_settings)],
        "username": discord_settings.username,
        "avatar_url": str(discord_settings.avatar_url),
        "attachments": [],
        "flags": SUPPRESS_NOTIFICATIONS_FLAG,
    }


__all__ = [
    "DIFF_LANGUAGE",
    "DISCORD_FIELD_VALUE_LIMIT",
    "SUPPRESS_NOTIFICATIONS_FLAG",
    "build_fields",
    "build_release_embed",
    "build_release_payload",
    "codify",
    "fit_lines",
]

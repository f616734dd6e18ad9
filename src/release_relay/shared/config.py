"""アプリケーション全体で共有する設定ローダー。"""

from __future__ import annotations

import os
from collections.abc import Iterable, Mapping
from functools import lru_cache
from pathlib import Path
from typing import Literal

from dotenv import dotenv_values
from pydantic import AnyHttpUrl, BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError

EnvName = Literal["local", "test", "staging", "production"]

ENV_FILES: tuple[str, ...] = (".env", ".env.local")
DEFAULT_WEBHOOK_PREFIX = "DISCORD_WEBHOOK"
DEFAULT_CHANNEL = "update"
DEFAULT_DESCRIPTION_TEMPLATE = (
    "Roblox has pushed some changes to the release notes! check them out here or go and see "
    "the [version notes](https://github.com/OutOfBears/rbx-release-tracker/blob/main/docs/"
    "release-{release}.md)"
)


class DiscordSettings(BaseModel):
    """Webhook 投稿の見た目と HTTP 設定。"""

    username: str = Field("RBX Release Tracker", description="Webhook 投稿時のユーザー名")
    avatar_url: AnyHttpUrl = Field(
        "https://i.imgur.com/YWC5JA3.png", description="Webhook 投稿時のアイコン URL"
    )
    color: int = Field(16748288, ge=0, le=0xFFFFFF, description="Embed の色 (10 進数)")
    description_template: str = Field(
        DEFAULT_DESCRIPTION_TEMPLATE,
        description="Embed 本文。{release} がリリース番号に置換される",
    )
    timeout_seconds: float = Field(10.0, gt=0, description="1 リクエストあたりのタイムアウト秒数")

    @field_validator("description_template")
    @classmethod
    def _check_description_template(cls, value: str) -> str:
        try:
            value.format(release="0")
        except (AttributeError, IndexError, KeyError, ValueError) as exc:
            msg = f"description_template must only use the {{release}} placeholder: {exc!r}"
            raise ValueError(msg) from exc
        return value


class AppSettings(BaseSettings):
    """共有設定。`.env` 読み込みと環境変数バリデーションを担う。"""

    model_config = SettingsConfigDict(
        env_file=ENV_FILES,
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    environment: EnvName = Field("local", description="実行環境識別子")
    log_level: str = Field("INFO", description="ルートロガーのログレベル")
    log_json: bool = Field(False, description="JSON 形式でログを出力する")
    redis_url: str | None = Field(None, description="Pub/Sub に利用する Redis の接続 URL")
    redis_reconnect_attempts: int = Field(
        10, ge=0, description="切断時に Redis へ再接続を試みる回数"
    )
    channel: str = Field(DEFAULT_CHANNEL, min_length=1, description="購読するチャンネル名")
    webhook_prefix: str = Field(
        DEFAULT_WEBHOOK_PREFIX,
        min_length=1,
        description="この接頭辞で始まる変数を Webhook URL として扱う",
    )
    webhook_urls: tuple[str, ...] = Field(
        default_factory=tuple,
        description="配信先 Webhook URL。通常は接頭辞による探索結果が入る",
    )
    discord: DiscordSettings = Field(default_factory=DiscordSettings)


def discover_webhook_urls(variables: Mapping[str, str | None], prefix: str) -> tuple[str, ...]:
    """接頭辞に一致する変数を Webhook URL として抽出する。

    変数名の昇順に並べ、空値と重複は除外する。接頭辞は大文字小文字を区別する。
    """

    urls: list[str] = []
    for key in sorted(variables):
        if not key.startswith(prefix):
            continue
        value = (variables[key] or "").strip()
        if value and value not in urls:
            urls.append(value)
    return tuple(urls)


def _collect_variables(env_files: Iterable[str | Path]) -> dict[str, str | None]:
    # 実環境変数が .env より優先される
    variables: dict[str, str | None] = {}
    for env_file in env_files:
        path = Path(env_file)
        if path.is_file():
            variables.update(dotenv_values(path))
    variables.update(os.environ)
    return variables


def validate_runtime(settings: AppSettings) -> None:
    """relay を起動できる設定かを検証する。"""

    if not settings.redis_url:
        msg = "No Redis URL provided"
        raise ConfigurationError(msg)
    if not settings.webhook_urls:
        msg = f"No webhooks provided (set variables starting with {settings.webhook_prefix})"
        raise ConfigurationError(msg)


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    """設定をロードし、再利用する。

    Webhook URL は `webhook_prefix` で始まる環境変数 (および `.env`) から
    探索し、プロセス存続中は不変のタプルとして保持する。
    `pytest` などから `get_settings.cache_clear()` を呼び出すことで再読込できる。
    """

    try:
        base = AppSettings()
        if base.webhook_urls:
            return base
        discovered = discover_webhook_urls(_collect_variables(ENV_FILES), base.webhook_prefix)
        return base.model_copy(update={"webhook_urls": discovered})
    except ValidationError as exc:
        raise ConfigurationError(str(exc)) from exc


__all__ = [
    "AppSettings",
    "DiscordSettings",
    "EnvName",
    "discover_webhook_urls",
    "get_settings",
    "validate_runtime",
]

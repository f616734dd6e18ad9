"""リリースノート差分イベントの DTO とデコード処理。"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from release_relay.shared.exceptions import DomainError
from release_relay.shared.types import DTO, ReleaseID

__all__ = [
    "ChangeEntry",
    "ModifiedEntry",
    "DiffSet",
    "ReleaseEvent",
    "ReleaseEventDecodeError",
    "decode_release_event",
]


class ReleaseEventDecodeError(DomainError):
    """受信メッセージを ReleaseEvent として解釈できないことを表すエラー。"""

    default_message = "Release event payload is malformed"


def _require_mapping(value: Any, label: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        msg = f"{label} must be an object, got {type(value).__name__}"
        raise ReleaseEventDecodeError(msg)
    return value


def _require_text(payload: Mapping[str, Any], key: str, label: str) -> str:
    if key not in payload or payload[key] is None:
        msg = f"{label}.{key} is required"
        raise ReleaseEventDecodeError(msg)
    return str(payload[key])


def _entries(payload: Mapping[str, Any], key: str) -> Sequence[Any]:
    value = payload.get(key)
    if value is None:
        return ()
    if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
        msg = f"diffs.{key} must be an array"
        raise ReleaseEventDecodeError(msg)
    return value


@dataclass(slots=True, frozen=True)
class ChangeEntry(DTO):
    """カテゴリとステータスが付いたリリースノートの 1 項目。"""

    type: str
    status: str
    content: str

    @classmethod
    def from_payload(cls, payload: Any, *, label: str = "entry") -> ChangeEntry:
        data = _require_mapping(payload, label)
        return cls(
            type=_require_text(data, "type", label),
            status=_require_text(data, "status", label),
            content=_require_text(data, "content", label),
        )


@dataclass(slots=True, frozen=True)
class ModifiedEntry(DTO):
    """ステータス遷移。`value.status` が遷移後のステータス。"""

    old_status: str
    value: ChangeEntry

    @property
    def new_status(self) -> str:
        return self.value.status

    @classmethod
    def from_payload(cls, payload: Any, *, label: str = "modified") -> ModifiedEntry:
        data = _require_mapping(payload, label)
        return cls(
            old_status=_require_text(data, "oldStatus", label),
            value=ChangeEntry.from_payload(data.get("value"), label=f"{label}.value"),
        )


@dataclass(slots=True, frozen=True)
class DiffSet(DTO):
    """追加・削除・変更の各項目列。並び順は入力順を保持する。"""

    added: tuple[ChangeEntry, ...] = field(default_factory=tuple)
    removed: tuple[ChangeEntry, ...] = field(default_factory=tuple)
    modified: tuple[ModifiedEntry, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "added", tuple(self.added))
        object.__setattr__(self, "removed", tuple(self.removed))
        object.__setattr__(self, "modified", tuple(self.modified))

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.removed or self.modified)

    @classmethod
    def from_payload(cls, payload: Any) -> DiffSet:
        data = _require_mapping(payload, "diffs")
        return cls(
            added=tuple(
                ChangeEntry.from_payload(item, label=f"diffs.added[{index}]")
                for index, item in enumerate(_entries(data, "added"))
            ),
            removed=tuple(
                ChangeEntry.from_payload(item, label=f"diffs.removed[{index}]")
                for index, item in enumerate(_entries(data, "removed"))
            ),
            modified=tuple(
                ModifiedEntry.from_payload(item, label=f"diffs.modified[{index}]")
                for index, item in enumerate(_entries(data, "modified"))
            ),
        )


@dataclass(slots=True, frozen=True)
class ReleaseEvent(DTO):
    """1 リリース分の差分通知。1 イベントが各 Webhook への 1 投稿に対応する。"""

    release: ReleaseID
    diffs: DiffSet = field(default_factory=DiffSet)

    @classmethod
    def from_payload(cls, payload: Any) -> ReleaseEvent:
        data = _require_mapping(payload, "event")
        release = data.get("release")
        if isinstance(release, bool) or not isinstance(release, (str, int, float)):
            msg = "event.release must be a string or number"
            raise ReleaseEventDecodeError(msg)
        if isinstance(release, float) and release.is_integer():
            release = int(release)
        return cls(
            release=release if isinstance(release, (str, int)) else str(release),
            diffs=DiffSet.from_payload(data.get("diffs", {})),
        )


def decode_release_event(raw: str | bytes | bytearray) -> ReleaseEvent:
    """Pub/Sub で受信した JSON 文字列を ReleaseEvent へ変換する。"""

    try:
        payload = json.loads(raw)
    except (TypeError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        msg = f"Release event is not valid JSON: {exc}"
        raise ReleaseEventDecodeError(msg) from exc
    return ReleaseEvent.from_payload(payload)

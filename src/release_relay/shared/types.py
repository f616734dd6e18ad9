"""共有型・ユーティリティ。"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, TypeAlias

ReleaseID: TypeAlias = str | int


@dataclass(slots=True, frozen=True)
class ValueObject:
    """不変な DTO / VO のベースクラス。"""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True, frozen=True)
class DTO(ValueObject):
    """データ転送オブジェクト用ベース。"""


__all__ = [
    "DTO",
    "ReleaseID",
    "ValueObject",
]

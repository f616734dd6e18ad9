"""差分イベントをカテゴリ別の diff 行へ整形する。"""

from __future__ import annotations

import re
from collections.abc import Mapping
from enum import Enum

from .models import ChangeEntry, DiffSet, ModifiedEntry

_TAG_PATTERN = re.compile(r"<[^>]*>")


class Category(str, Enum):
    """通知対象となるカテゴリ。宣言順がフィールドの出力順になる。"""

    IMPROVEMENTS = "Improvements"
    FIXES = "Fixes"

    @classmethod
    def parse(cls, value: str) -> Category | None:
        try:
            return cls(value)
        except ValueError:
            return None


CategoryBuckets = Mapping[Category, tuple[str, ...]]


def strip_html_tags(value: str) -> str:
    """`<...>` 形式のタグを取り除く。エンティティのデコードは行わない。"""

    return _TAG_PATTERN.sub("", value)


def format_modified(entry: ModifiedEntry) -> str:
    return f"* [{entry.old_status} -> {entry.new_status}] {strip_html_tags(entry.value.content)}"


def format_added(entry: ChangeEntry) -> str:
    return f"+ [{entry.status}] {strip_html_tags(entry.content)}"


def format_removed(entry: ChangeEntry) -> str:
    return f"- [{entry.status}] {strip_html_tags(entry.content)}"


def format_diffs(diffs: DiffSet) -> CategoryBuckets:
    """差分をカテゴリごとの行リストへ変換する。

    変更 → 追加 → 削除 の順に処理し、各列の入力順をそのまま保つ。
    未知のカテゴリの項目はエラーにせず読み捨てる。
    """

    buckets: dict[Category, list[str]] = {category: [] for category in Category}

    def emit(entry_type: str, line: str) -> None:
        category = Category.parse(entry_type)
        if category is not None:
            buckets[category].append(line)

    for modified in diffs.modified:
        emit(modified.value.type, format_modified(modified))
    for added in diffs.added:
        emit(added.type, format_added(added))
    for removed in diffs.removed:
        emit(removed.type, format_removed(removed))

    return {category: tuple(lines) for category, lines in buckets.items()}


__all__ = [
    "Category",
    "CategoryBuckets",
    "format_added",
    "format_diffs",
    "format_modified",
    "format_removed",
    "strip_html_tags",
]

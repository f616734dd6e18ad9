"""リリースノート差分のモデルと整形。"""

from .formatter import Category, CategoryBuckets, format_diffs, strip_html_tags
from .models import (
    ChangeEntry,
    DiffSet,
    ModifiedEntry,
    ReleaseEvent,
    ReleaseEventDecodeError,
    decode_release_event,
)

__all__ = [
    "Category",
    "CategoryBuckets",
    "ChangeEntry",
    "DiffSet",
    "ModifiedEntry",
    "ReleaseEvent",
    "ReleaseEventDecodeError",
    "decode_release_event",
    "format_diffs",
    "strip_html_tags",
]

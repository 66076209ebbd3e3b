# models/bookmark_models.py
from dataclasses import dataclass
from typing import Any, Dict, Optional

from models.geometry_models import Point


@dataclass
class Bookmark:
    """ページに付けるしおり。

    Attributes:
        id (str): しおりID。
        page_number (int): 対象ページ番号。
        note (Optional[str]): 任意のメモ。
        position (Point): ページ上のフラグ表示位置（正規化座標）。
        color (str): フラグの色。
        created_at (str): 作成日時。
    """
    id: str
    page_number: int
    note: Optional[str]
    position: Point
    color: str
    created_at: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "page_number": self.page_number,
            "note": self.note,
            "position": self.position.to_dict(),
            "color": self.color,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Bookmark":
        return cls(
            id=str(data["id"]),
            page_number=int(data["page_number"]),
            note=data.get("note") or None,
            position=Point.from_dict(data.get("position") or {"x": 0.9, "y": 0.1}),
            color=str(data.get("color") or ""),
            created_at=str(data.get("created_at") or ""),
        )

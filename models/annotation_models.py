# models/annotation_models.py
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from models.geometry_models import Point, RectShape, Shape, shape_from_dict

ANNOTATION_TYPES = ("highlight", "underline", "strike", "freehand", "comment", "group")


@dataclass
class Comment:
    """注釈に付くコメント一件。

    Attributes:
        text (str): コメント本文。
        created_at (str): 作成日時（ISO 8601形式）。
        id (Optional[str]): サーバー側のコメントID（存在する場合）。
    """
    text: str
    created_at: str
    id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"text": self.text, "created_at": self.created_at}
        if self.id is not None:
            data["id"] = self.id
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Comment":
        return cls(
            text=str(data.get("text") or ""),
            created_at=str(data.get("created_at") or data.get("createdAt") or ""),
            id=data.get("id"),
        )


@dataclass
class Annotation:
    """文書内の単一の注釈を表現するデータモデル。

    Attributes:
        id (str): 注釈の一意なID。
        page_number (int): 注釈が追加されたページ番号（1始まり）。
        type (str): 注釈の種類（'highlight', 'underline', 'strike', 'freehand', 'comment', 'group'）。
        color (str): 表示色。
        created_at (str): 作成日時（ISO 8601形式）。
        shapes (List[Shape]): 注釈の図形。グループの場合は束ねたハイライトの一覧。
        comments (List[Comment]): コメントスレッド。
        content (Optional[str]): 付箋（comment）の本文。
        linked_text (Optional[str]): 付箋に紐付いた選択テキスト。
        anchor (Optional[Point]): 付箋の表示位置。
        text (Optional[str]): テキストマークアップ対象の文字列。
    """
    id: str
    page_number: int
    type: str
    color: str
    created_at: str
    shapes: List[Shape] = field(default_factory=list)
    comments: List[Comment] = field(default_factory=list)
    content: Optional[str] = None
    linked_text: Optional[str] = None
    anchor: Optional[Point] = None
    text: Optional[str] = None

    @property
    def is_group(self) -> bool:
        return self.type == "group"

    @property
    def highlights(self) -> List[Shape]:
        """グループが束ねているハイライト（= shapes）。"""
        return self.shapes

    @property
    def position(self) -> Optional[RectShape]:
        """エリアハイライトの矩形。矩形を持たない注釈ではNone。"""
        if self.shapes and isinstance(self.shapes[0], RectShape):
            return self.shapes[0]
        return None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "page_number": self.page_number,
            "type": self.type,
            "color": self.color,
            "created_at": self.created_at,
            "shapes": [s.to_dict() for s in self.shapes],
            "comments": [c.to_dict() for c in self.comments],
        }
        if self.content is not None:
            data["content"] = self.content
        if self.linked_text is not None:
            data["linked_text"] = self.linked_text
        if self.anchor is not None:
            data["anchor"] = self.anchor.to_dict()
        if self.text is not None:
            data["text"] = self.text
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Annotation":
        """辞書から注釈を復元する。

        Raises:
            ValueError: 注釈種別が不正な場合、ハイライトの無いグループの場合、または図形データが不正な場合。
        """
        ann_type = data.get("type")
        if ann_type not in ANNOTATION_TYPES:
            raise ValueError(f"未知の注釈種別です: {ann_type}")
        shapes_data = data.get("shapes")
        if shapes_data is None:
            shapes_data = data.get("highlights") or []
        if ann_type == "group" and not shapes_data:
            raise ValueError("ハイライトを持たないグループは不正です")
        anchor = data.get("anchor")
        return cls(
            id=str(data["id"]),
            page_number=int(data["page_number"]),
            type=ann_type,
            color=str(data.get("color") or ""),
            created_at=str(data.get("created_at") or ""),
            shapes=[shape_from_dict(s) for s in shapes_data],
            comments=[Comment.from_dict(c) for c in data.get("comments") or []],
            content=data.get("content"),
            linked_text=data.get("linked_text"),
            anchor=Point.from_dict(anchor) if anchor else None,
            text=data.get("text"),
        )

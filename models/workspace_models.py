# models/workspace_models.py
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from models.geometry_models import Point, RectShape, shape_from_dict

WORKSPACE_ITEM_TYPES = ("clip", "comment")


def parse_source_page(value: Any) -> int:
    """ページ番号を取り出す。'2, 3' のような複数ページ表記は先頭のページを使う。"""
    first = str(value).split(",")[0].strip()
    try:
        return int(first)
    except ValueError:
        return 1


def _rect_or_none(data: Optional[Dict[str, Any]]) -> Optional[RectShape]:
    if not data:
        return None
    shape = shape_from_dict(data)
    return shape if isinstance(shape, RectShape) else None


@dataclass
class ClipSegment:
    """結合クリップを構成する一区間。元クリップのIDを保持する。"""
    id: str
    label: str
    content: str
    source_page: int
    source_rect: Optional[RectShape] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "content": self.content,
            "source_page": self.source_page,
            "source_rect": self.source_rect.to_dict() if self.source_rect else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClipSegment":
        return cls(
            id=str(data["id"]),
            label=str(data.get("label") or ""),
            content=str(data.get("content") or ""),
            source_page=parse_source_page(data.get("source_page") or 1),
            source_rect=_rect_or_none(data.get("source_rect")),
        )


@dataclass
class Clipping:
    """抽出したテキスト（クリップ）を表現するデータモデル。

    Attributes:
        id (str): クリップの一意なID。
        content (str): 抽出テキスト。
        created_at (str): 作成日時。
        source_page (int): 抽出元のページ番号。結合クリップでは先頭区間のページ。
        source_rect (Optional[RectShape]): 抽出元の矩形（正規化座標）。計測できなかった場合はNone。
        source (str): 'PDF'（テキストレイヤー）または 'OCR'。
        confidence (Optional[int]): OCRの信頼度。
        segments (List[ClipSegment]): 結合クリップの区間。通常のクリップでは空。
    """
    id: str
    content: str
    created_at: str
    source_page: int
    source_rect: Optional[RectShape] = None
    source: str = "PDF"
    confidence: Optional[int] = None
    segments: List[ClipSegment] = field(default_factory=list)

    @property
    def is_combined(self) -> bool:
        return bool(self.segments)

    @property
    def source_pages(self) -> List[int]:
        """このクリップが参照するページ番号の一覧（重複なし、出現順）。"""
        if not self.segments:
            return [self.source_page]
        pages: List[int] = []
        for seg in self.segments:
            if seg.source_page not in pages:
                pages.append(seg.source_page)
        return pages

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "content": self.content,
            "created_at": self.created_at,
            "source_page": self.source_page,
            "source_rect": self.source_rect.to_dict() if self.source_rect else None,
            "source": self.source,
            "confidence": self.confidence,
            "segments": [s.to_dict() for s in self.segments],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Clipping":
        return cls(
            id=str(data["id"]),
            content=str(data.get("content") or ""),
            created_at=str(data.get("created_at") or ""),
            source_page=parse_source_page(data.get("source_page") or 1),
            source_rect=_rect_or_none(data.get("source_rect")),
            source=str(data.get("source") or "PDF"),
            confidence=data.get("confidence"),
            segments=[ClipSegment.from_dict(s) for s in data.get("segments") or []],
        )


@dataclass
class WorkspaceComment:
    """文書上の位置に紐付き、ワークスペースにのみ表示されるコメント。"""
    id: str
    content: str
    quote_text: str
    page_number: int
    source_rect: Optional[RectShape]
    source_type: str
    color: str
    created_at: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "content": self.content,
            "quote_text": self.quote_text,
            "page_number": self.page_number,
            "source_rect": self.source_rect.to_dict() if self.source_rect else None,
            "source_type": self.source_type,
            "color": self.color,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkspaceComment":
        return cls(
            id=str(data["id"]),
            content=str(data.get("content") or ""),
            quote_text=str(data.get("quote_text") or ""),
            page_number=int(data.get("page_number") or 1),
            source_rect=_rect_or_none(data.get("source_rect")),
            source_type=str(data.get("source_type") or "text"),
            color=str(data.get("color") or ""),
            created_at=str(data.get("created_at") or ""),
        )


@dataclass
class WorkspaceItem:
    """ワークスペース上に配置されたクリップまたはコメントの代理表示。

    Attributes:
        id (str): アイテムID。
        type (str): 'clip' または 'comment'。
        source_id (str): 参照先のクリップ／コメントのID。
        x (float): ワークスペース幅に対する横位置。
        y (float): ワークスペース高さに対する縦位置。
        created_at (str): 作成日時。
    """
    id: str
    type: str
    source_id: str
    x: float
    y: float
    created_at: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id, "type": self.type, "source_id": self.source_id,
            "x": self.x, "y": self.y, "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkspaceItem":
        item_type = data.get("type") or "clip"
        if item_type not in WORKSPACE_ITEM_TYPES:
            raise ValueError(f"未知のワークスペースアイテム種別です: {item_type}")
        return cls(
            id=str(data["id"]),
            type=item_type,
            source_id=str(data.get("source_id") or data.get("clipping_id") or ""),
            x=float(data.get("x", 0.5)),
            y=float(data.get("y", 0.5)),
            created_at=str(data.get("created_at") or ""),
        )


@dataclass
class PaneRect:
    """ペイン（文書表示領域・ワークスペース）の現在の矩形。共有座標系のピクセル値。"""
    left: float
    top: float
    width: float
    height: float


@dataclass
class PaneGeometry:
    """コネクタ計算に使う各ペインのライブな矩形。

    Attributes:
        document (PaneRect): 文書ページ（ズーム・スクロール反映後）の矩形。
        workspace (PaneRect): ワークスペースキャンバスの矩形。
        origin (PaneRect): コネクタを描画する共通レイヤーの矩形。座標はこの左上を原点とする。
    """
    document: PaneRect
    workspace: PaneRect
    origin: PaneRect


@dataclass
class Connector:
    """ワークスペースアイテムと文書上の抽出元を結ぶアンカー点の組。"""
    item_id: str
    start: Point
    end: Point
